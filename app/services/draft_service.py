"""
Draft service: loading, mutating and saving drafts.

Every mutation loads the stored draft into a DraftDocument, applies one
operation, writes the records back and commits, all while holding the
draft's lock, so concurrent requests against one draft are applied one at a
time.

Public API
----------
DraftService.create(db, template_id=None, title=None, ...)          -> Draft
DraftService.get(draft_id, db)                                      -> Draft
DraftService.upsert_section(draft_id, section_id, raw_text, db, ...) -> SectionUpsertOutcome
DraftService.replace_content(draft_id, content, db)                 -> Draft
DraftService.list_sections(draft_id, db)                            -> List[SectionSummary]
DraftService.section_text(draft_id, section_id, db)                 -> Tuple[str, str]
DraftService.get_references(draft_id, db)                           -> List[ReferenceRecord]
DraftService.set_references(draft_id, references, db)               -> Draft
"""
from __future__ import annotations

import dataclasses
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.exceptions import NotFoundError, UnknownSectionError
from app.models.database_models import Draft, Template
from app.services.content_tree import DraftDocument, SectionSummary, SourceRef
from app.services.content_validator import (
    GeneratedSectionResult,
    GroundingReport,
    parse_section_content,
    validate_grounding,
)
from app.services.draft_locks import draft_locks
from app.services.references import DocumentMetadata, ReferenceRecord
from app.services.renderer import blocks_to_text
from app.services.structure_extractor import SectionDescriptor, structure_from_records
from app.utils.helpers import utc_now

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Result dataclasses
# ---------------------------------------------------------------------------

@dataclasses.dataclass
class SectionUpsertOutcome:
    """Returned by DraftService.upsert_section."""

    draft: Draft
    section_id: str
    version: int
    result: GeneratedSectionResult
    grounding: Optional[GroundingReport] = None


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------

class DraftService:
    """Owns the load -> mutate -> save cycle of stored drafts."""

    async def create(
        self,
        db: AsyncSession,
        template_id: Optional[str] = None,
        title: Optional[str] = None,
        references: Sequence[ReferenceRecord] = (),
        source_documents: Sequence[DocumentMetadata] = (),
    ) -> Draft:
        """Create an empty draft, optionally bound to a stored template."""
        template: Optional[Template] = None
        if template_id is not None:
            template = await db.get(Template, template_id)
            if template is None:
                raise NotFoundError("Template", template_id)

        if not title:
            title = Path(template.filename).stem if template else settings.EXPORT_DEFAULT_TITLE

        document = DraftDocument(references=references)
        record = document.to_record()
        draft = Draft(
            template_id=template_id,
            title=title,
            version=1,
            content=record["content"],
            section_sources=record["section_sources"],
            references=record["references"],
            metadata_json={"source_documents": [d.to_dict() for d in source_documents]},
        )
        db.add(draft)
        await db.commit()
        await db.refresh(draft)

        logger.info("Created draft %s (template=%s)", draft.id, template_id)
        return draft

    async def get(self, draft_id: str, db: AsyncSession) -> Draft:
        draft = await db.get(Draft, draft_id)
        if draft is None:
            raise NotFoundError("Draft", draft_id)
        return draft

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def upsert_section(
        self,
        draft_id: str,
        section_id: str,
        raw_text: str,
        db: AsyncSession,
        *,
        title: Optional[str] = None,
        source_refs: Iterable[SourceRef] = (),
        source_count: Optional[int] = None,
        source_text: Optional[str] = None,
    ) -> SectionUpsertOutcome:
        """
        Screen generated text and store it as one section of the draft.

        The section's title and heading level come from the bound template
        when there is one; *title* overrides the title.  A failed generation
        is still stored: the section keeps only its heading and the failure
        is recorded in its provenance warnings.

        Raises:
            NotFoundError:       unknown draft.
            UnknownSectionError: section id not in the bound template.
        """
        async with draft_locks.hold(draft_id):
            draft = await self.get(draft_id, db)
            structure = await self._load_structure(draft, db)

            descriptor = _find_descriptor(structure, section_id)
            if structure and descriptor is None:
                raise UnknownSectionError(section_id)

            section_title = title or (descriptor.title if descriptor else None) or section_id
            level = descriptor.level if descriptor else 1

            result = parse_section_content(
                raw_text, section_title=section_title, source_count=source_count
            )

            grounding: Optional[GroundingReport] = None
            if source_text is not None and result.content:
                grounding = validate_grounding(result.content, source_text)
                if grounding.warnings:
                    result = dataclasses.replace(
                        result, warnings=result.warnings + grounding.warnings
                    )

            document = self._load_document(draft, structure)
            document.upsert_section(
                section_id,
                section_title,
                result,
                source_refs=source_refs,
                level=level,
            )
            self._store(draft, document)
            version = draft.version
            await db.commit()

        logger.info(
            "Draft %s v%d: section %s stored (success=%s)",
            draft_id,
            version,
            section_id,
            result.success,
        )
        return SectionUpsertOutcome(
            draft=draft,
            section_id=section_id,
            version=version,
            result=result,
            grounding=grounding,
        )

    async def replace_content(
        self, draft_id: str, content: Dict[str, Any], db: AsyncSession
    ) -> Draft:
        """
        Replace the draft's whole tree with an edited one.

        Raises:
            MalformedNodeError / DuplicateSectionError: invalid tree.
        """
        async with draft_locks.hold(draft_id):
            draft = await self.get(draft_id, db)
            document = self._load_document(draft)
            document.replace_whole(content)
            self._store(draft, document)
            await db.commit()
        return draft

    async def set_references(
        self, draft_id: str, references: Iterable[ReferenceRecord], db: AsyncSession
    ) -> Draft:
        async with draft_locks.hold(draft_id):
            draft = await self.get(draft_id, db)
            document = self._load_document(draft)
            document.set_references(references)
            self._store(draft, document)
            await db.commit()
        return draft

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def list_sections(self, draft_id: str, db: AsyncSession) -> List[SectionSummary]:
        draft = await self.get(draft_id, db)
        return self._load_document(draft).list_sections()

    async def section_text(
        self, draft_id: str, section_id: str, db: AsyncSession
    ) -> Tuple[str, str]:
        """Return ``(title, text)`` of one section, body only, as markdown-like text."""
        draft = await self.get(draft_id, db)
        section = self._load_document(draft).get_section(section_id)
        if section is None:
            raise NotFoundError("Section", section_id)
        return section.title, blocks_to_text(section.body)

    async def get_references(self, draft_id: str, db: AsyncSession) -> List[ReferenceRecord]:
        draft = await self.get(draft_id, db)
        return self._load_document(draft).references

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _load_structure(
        self, draft: Draft, db: AsyncSession
    ) -> Tuple[SectionDescriptor, ...]:
        if draft.template_id is None:
            return ()
        template = await db.get(Template, draft.template_id)
        if template is None:
            logger.warning("Draft %s points at missing template %s", draft.id, draft.template_id)
            return ()
        return structure_from_records(template.structure or [])

    @staticmethod
    def _load_document(
        draft: Draft, structure: Sequence[SectionDescriptor] = ()
    ) -> DraftDocument:
        return DraftDocument.from_record(
            draft.content,
            section_sources=draft.section_sources,
            references=draft.references,
            known_section_ids=[d.id for d in structure] if structure else None,
        )

    @staticmethod
    def _store(draft: Draft, document: DraftDocument) -> None:
        record = document.to_record()
        draft.content = record["content"]
        draft.section_sources = record["section_sources"]
        draft.references = record["references"]
        draft.version = (draft.version or 0) + 1
        draft.updated_at = utc_now()


def _find_descriptor(
    structure: Sequence[SectionDescriptor], section_id: str
) -> Optional[SectionDescriptor]:
    for descriptor in structure:
        if descriptor.id == section_id:
            return descriptor
    return None
