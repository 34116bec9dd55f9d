"""
Export service: stored drafts and plain text to downloadable DOCX files.

Public API
----------
ExportService.export_draft(draft_id, db, *, title=None, include_references=True) -> ExportResult
ExportService.export_text(text, title=None)                                      -> ExportResult
"""
from __future__ import annotations

import dataclasses
import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.exceptions import NotFoundError
from app.models.database_models import Draft, Template
from app.services.content_tree import ContentTree
from app.services.docx_writer import render_draft_docx, render_text_docx
from app.services.references import ReferenceRecord
from app.services.structure_extractor import structure_from_records
from app.utils.helpers import export_filename

logger = logging.getLogger(__name__)

DOCX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"


@dataclasses.dataclass
class ExportResult:
    """A rendered document ready to be sent as a download."""

    filename: str
    content: bytes
    media_type: str = DOCX_MEDIA_TYPE

    @property
    def size(self) -> int:
        return len(self.content)


class ExportService:
    """Renders drafts with their template structure and references."""

    async def export_draft(
        self,
        draft_id: str,
        db: AsyncSession,
        *,
        title: Optional[str] = None,
        include_references: bool = True,
    ) -> ExportResult:
        draft = await db.get(Draft, draft_id)
        if draft is None:
            raise NotFoundError("Draft", draft_id)

        structure = ()
        if draft.template_id is not None:
            template = await db.get(Template, draft.template_id)
            if template is not None:
                structure = structure_from_records(template.structure or [])

        document_title = title or draft.title or settings.EXPORT_DEFAULT_TITLE
        content = render_draft_docx(
            ContentTree.from_dict(draft.content),
            structure,
            [ReferenceRecord.from_dict(r) for r in draft.references or []],
            title=document_title,
            include_references=include_references,
        )

        result = ExportResult(filename=export_filename(document_title), content=content)
        logger.info(
            "Exported draft %s v%d as %s (%d bytes)",
            draft_id,
            draft.version,
            result.filename,
            result.size,
        )
        return result

    def export_text(self, text: str, title: Optional[str] = None) -> ExportResult:
        content = render_text_docx(text, title=title)
        return ExportResult(
            filename=export_filename(title or settings.EXPORT_DEFAULT_TITLE),
            content=content,
        )
