"""
Draft endpoints.

Route summary
-------------
POST   /                                  : create a draft (optionally for a template)
GET    /{draft_id}                        : draft with content, provenance, references
PATCH  /{draft_id}                        : replace the whole content tree (editor save)
GET    /{draft_id}/sections               : section list with content flags and warnings
PUT    /{draft_id}/sections/{section_id}  : store generated text for one section
GET    /{draft_id}/sections/{section_id}/text: section body as markdown-like text
GET    /{draft_id}/references             : bibliography entries
PUT    /{draft_id}/references             : replace bibliography entries
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.exceptions import NotFoundError, TreeConsistencyError, UnknownSectionError
from app.models.schemas import (
    DraftContentUpdate,
    DraftCreateRequest,
    DraftResponse,
    GroundingResponse,
    ReferenceSchema,
    ReferencesResponse,
    ReferencesUpdate,
    SectionListResponse,
    SectionSummarySchema,
    SectionTextResponse,
    SectionUpsertRequest,
    SectionUpsertResponse,
)
from app.routers.content import section_result_response
from app.services.content_tree import SourceRef
from app.services.draft_service import DraftService
from app.services.references import DocumentMetadata, ReferenceRecord

logger = logging.getLogger(__name__)

router = APIRouter()

_service = DraftService()


def _not_found(exc: NotFoundError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))


@router.post("/", response_model=DraftResponse, status_code=status.HTTP_201_CREATED)
async def create_draft(
    request: DraftCreateRequest,
    db: AsyncSession = Depends(get_db),
) -> DraftResponse:
    try:
        draft = await _service.create(
            db,
            template_id=request.template_id,
            title=request.title,
            references=[ReferenceRecord.from_dict(r.model_dump()) for r in request.references],
            source_documents=[
                DocumentMetadata.from_dict(d.model_dump()) for d in request.source_documents
            ],
        )
    except NotFoundError as exc:
        raise _not_found(exc)
    return DraftResponse.model_validate(draft)


@router.get("/{draft_id}", response_model=DraftResponse)
async def get_draft(draft_id: str, db: AsyncSession = Depends(get_db)) -> DraftResponse:
    try:
        draft = await _service.get(draft_id, db)
    except NotFoundError as exc:
        raise _not_found(exc)
    return DraftResponse.model_validate(draft)


@router.patch("/{draft_id}", response_model=DraftResponse)
async def replace_draft_content(
    draft_id: str,
    update: DraftContentUpdate,
    db: AsyncSession = Depends(get_db),
) -> DraftResponse:
    """
    Save an edited content tree.

    Every section's provenance is marked as manually edited.
    """
    try:
        draft = await _service.replace_content(draft_id, update.content, db)
    except NotFoundError as exc:
        raise _not_found(exc)
    except TreeConsistencyError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    return DraftResponse.model_validate(draft)


@router.get("/{draft_id}/sections", response_model=SectionListResponse)
async def list_draft_sections(
    draft_id: str,
    db: AsyncSession = Depends(get_db),
) -> SectionListResponse:
    try:
        sections = await _service.list_sections(draft_id, db)
    except NotFoundError as exc:
        raise _not_found(exc)
    return SectionListResponse(
        draft_id=draft_id,
        sections=[
            SectionSummarySchema(
                id=s.id, title=s.title, has_content=s.has_content, warnings=list(s.warnings)
            )
            for s in sections
        ],
    )


@router.put("/{draft_id}/sections/{section_id}", response_model=SectionUpsertResponse)
async def upsert_draft_section(
    draft_id: str,
    section_id: str,
    request: SectionUpsertRequest,
    db: AsyncSession = Depends(get_db),
) -> SectionUpsertResponse:
    """
    Screen generated text and store it as one section.

    Failed generations are stored too (heading only, failure in the section
    warnings) and reported with ``success=false``.
    """
    try:
        outcome = await _service.upsert_section(
            draft_id,
            section_id,
            request.raw_text,
            db,
            title=request.title,
            source_refs=[
                SourceRef(document_id=r.document_id, sections=tuple(r.sections))
                for r in request.source_refs
            ],
            source_count=request.source_count,
            source_text=request.source_text,
        )
    except NotFoundError as exc:
        raise _not_found(exc)
    except UnknownSectionError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    except TreeConsistencyError as exc:
        raise HTTPException(status_code=422, detail=str(exc))

    grounding = None
    if outcome.grounding is not None:
        grounding = GroundingResponse(
            is_grounded=outcome.grounding.is_grounded,
            warnings=list(outcome.grounding.warnings),
            unmatched_numbers=list(outcome.grounding.unmatched_numbers),
        )

    return SectionUpsertResponse(
        draft_id=draft_id,
        section_id=section_id,
        version=outcome.version,
        result=section_result_response(outcome.result),
        grounding=grounding,
    )


@router.get("/{draft_id}/sections/{section_id}/text", response_model=SectionTextResponse)
async def get_section_text(
    draft_id: str,
    section_id: str,
    db: AsyncSession = Depends(get_db),
) -> SectionTextResponse:
    try:
        title, text = await _service.section_text(draft_id, section_id, db)
    except NotFoundError as exc:
        raise _not_found(exc)
    return SectionTextResponse(draft_id=draft_id, section_id=section_id, title=title, text=text)


@router.get("/{draft_id}/references", response_model=ReferencesResponse)
async def get_draft_references(
    draft_id: str,
    db: AsyncSession = Depends(get_db),
) -> ReferencesResponse:
    try:
        references = await _service.get_references(draft_id, db)
    except NotFoundError as exc:
        raise _not_found(exc)
    return ReferencesResponse(
        draft_id=draft_id,
        references=[ReferenceSchema(**r.to_dict()) for r in references],
    )


@router.put("/{draft_id}/references", response_model=ReferencesResponse)
async def set_draft_references(
    draft_id: str,
    update: ReferencesUpdate,
    db: AsyncSession = Depends(get_db),
) -> ReferencesResponse:
    records = [ReferenceRecord.from_dict(r.model_dump()) for r in update.references]
    try:
        await _service.set_references(draft_id, records, db)
    except NotFoundError as exc:
        raise _not_found(exc)
    return ReferencesResponse(
        draft_id=draft_id,
        references=[ReferenceSchema(**r.to_dict()) for r in records],
    )
