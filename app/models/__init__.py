"""Database and schema models for Draftwright."""
from app.models.database_models import (
    Template,
    Draft,
)
from app.models.schemas import (
    TemplateParseResponse,
    TemplateResponse,
    TemplateStructureResponse,
    GeneratedSectionResponse,
    DraftResponse,
    SectionListResponse,
    HealthCheckResponse,
)

__all__ = [
    # Database models
    "Template",
    "Draft",
    # Pydantic schemas
    "TemplateParseResponse",
    "TemplateResponse",
    "TemplateStructureResponse",
    "GeneratedSectionResponse",
    "DraftResponse",
    "SectionListResponse",
    "HealthCheckResponse",
]
