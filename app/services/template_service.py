"""
Template service: structure extraction and template persistence.

Public API
----------
TemplateService.parse(data)                       -> ExtractionResult
TemplateService.create(data, filename, db)        -> Template
TemplateService.get(template_id, db)              -> Template
TemplateService.get_structure(template_id, db)    -> Tuple[SectionDescriptor, ...]
"""
from __future__ import annotations

import logging
from typing import Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import NotFoundError, TemplateValidationError
from app.models.database_models import Template
from app.services.structure_extractor import (
    ExtractionResult,
    SectionDescriptor,
    TemplateStructureExtractor,
    structure_from_records,
)

logger = logging.getLogger(__name__)


class TemplateService:
    """Extracts, validates and stores DOCX templates."""

    def __init__(self, extractor: Optional[TemplateStructureExtractor] = None) -> None:
        self.extractor = extractor or TemplateStructureExtractor()

    def parse(self, data: bytes) -> ExtractionResult:
        """Extract the section structure without storing anything."""
        return self.extractor.extract(data)

    async def create(self, data: bytes, filename: str, db: AsyncSession) -> Template:
        """
        Validate a template and store it with its structure.

        Raises:
            TemplateValidationError: unreadable file, no sections, or
                                     duplicated placeholders.
        """
        validation = self.extractor.validate(data)
        if not validation.valid:
            logger.info("Rejected template %r: %s", filename, "; ".join(validation.errors))
            raise TemplateValidationError(validation.errors)

        template = Template(
            filename=filename,
            structure=[d.to_dict() for d in validation.structure],
            warnings=list(validation.warnings),
            plain_text=validation.plain_text,
        )
        db.add(template)
        await db.flush()

        logger.info(
            "Stored template %s (%r) with %d sections",
            template.id,
            filename,
            len(validation.structure),
        )
        return template

    async def get(self, template_id: str, db: AsyncSession) -> Template:
        template = await db.get(Template, template_id)
        if template is None:
            raise NotFoundError("Template", template_id)
        return template

    async def get_structure(
        self, template_id: str, db: AsyncSession
    ) -> Tuple[SectionDescriptor, ...]:
        template = await self.get(template_id, db)
        return structure_from_records(template.structure or [])
