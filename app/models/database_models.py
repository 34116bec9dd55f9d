"""
SQLAlchemy ORM models for the Draftwright database.

Structured values (template structure, draft content tree, provenance,
references) are stored as JSON columns and round-tripped verbatim.
"""
from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    DateTime,
    ForeignKey,
    JSON,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.database import Base
from app.utils.helpers import generate_id


class Template(Base):
    """An uploaded DOCX template and the section structure extracted from it."""

    __tablename__ = "templates"

    id = Column(String(32), primary_key=True, default=generate_id)
    filename = Column(String(255), nullable=False)
    # List of SectionDescriptor records in document order
    structure = Column(JSON, nullable=False, default=list)
    warnings = Column(JSON, nullable=False, default=list)
    plain_text = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    # Relationships
    drafts = relationship("Draft", back_populates="template")


class Draft(Base):
    """A document in progress, bound to at most one template."""

    __tablename__ = "drafts"

    id = Column(String(32), primary_key=True, default=generate_id)
    template_id = Column(
        String(32), ForeignKey("templates.id", ondelete="SET NULL"), nullable=True, index=True
    )
    title = Column(String(255), nullable=False)
    # Bumped on every saved mutation
    version = Column(Integer, nullable=False, default=1)
    # ProseMirror-style {"type": "doc", "content": [...]}
    content = Column(JSON, nullable=False, default=dict)
    # section id -> provenance record
    section_sources = Column(JSON, nullable=False, default=dict)
    references = Column(JSON, nullable=False, default=list)
    # Source DocumentMetadata records and other free-form draft data
    metadata_json = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    # Relationships
    template = relationship("Template", back_populates="drafts")
