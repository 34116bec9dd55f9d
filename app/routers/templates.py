"""
Template upload and structure endpoints.

POST /parse           : extract the section structure of a DOCX, store nothing.
POST /                : validate and store a DOCX template.
GET  /{id}            : stored template with its structure and warnings.
GET  /{id}/structure  : section structure only.
"""
from __future__ import annotations

import logging
from pathlib import Path

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import get_db
from app.exceptions import NotFoundError, TemplateValidationError
from app.models.schemas import (
    SectionDescriptorSchema,
    TemplateParseResponse,
    TemplateResponse,
    TemplateStructureResponse,
)
from app.services.template_service import TemplateService

logger = logging.getLogger(__name__)

router = APIRouter()

_service = TemplateService()


# ---------------------------------------------------------------------------
# Upload helpers
# ---------------------------------------------------------------------------

async def _read_upload(file: UploadFile) -> bytes:
    """Read an uploaded template into memory, enforcing type and size limits."""
    if not file.filename:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Upload must include a filename.",
        )

    file_ext = Path(file.filename).suffix.lower()
    if file_ext not in settings.SUPPORTED_TEMPLATE_TYPES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=(
                f"Unsupported file type '{file_ext}'. "
                f"Accepted: {', '.join(settings.SUPPORTED_TEMPLATE_TYPES)}"
            ),
        )

    data = bytearray()
    while True:
        chunk = await file.read(1024 * 1024)   # 1 MB slices
        if not chunk:
            break
        data.extend(chunk)
        if len(data) > settings.MAX_FILE_SIZE:
            raise HTTPException(
                status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                detail=(
                    f"File exceeds the {settings.MAX_FILE_SIZE // (1024 * 1024)} MB "
                    "size limit."
                ),
            )
    return bytes(data)


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post("/parse", response_model=TemplateParseResponse)
async def parse_template(file: UploadFile = File(...)) -> TemplateParseResponse:
    """
    Extract the section structure of a DOCX template without storing it.

    An unreadable file is not an error here: the response carries
    ``success=false`` and a warning.
    """
    data = await _read_upload(file)
    result = _service.parse(data)
    return TemplateParseResponse(
        success=result.success,
        filename=file.filename,
        structure=[SectionDescriptorSchema(**d.to_dict()) for d in result.structure],
        warnings=result.warnings,
    )


@router.post("/", response_model=TemplateResponse, status_code=status.HTTP_201_CREATED)
async def create_template(
    file: UploadFile = File(...),
    db: AsyncSession = Depends(get_db),
) -> TemplateResponse:
    """Validate a DOCX template and store it with its extracted structure."""
    data = await _read_upload(file)
    try:
        template = await _service.create(data, file.filename, db)
    except TemplateValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": "Invalid template", "errors": exc.errors},
        )
    await db.commit()
    await db.refresh(template)
    return TemplateResponse.model_validate(template)


@router.get("/{template_id}", response_model=TemplateResponse)
async def get_template(
    template_id: str,
    db: AsyncSession = Depends(get_db),
) -> TemplateResponse:
    try:
        template = await _service.get(template_id, db)
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    return TemplateResponse.model_validate(template)


@router.get("/{template_id}/structure", response_model=TemplateStructureResponse)
async def get_template_structure(
    template_id: str,
    db: AsyncSession = Depends(get_db),
) -> TemplateStructureResponse:
    try:
        structure = await _service.get_structure(template_id, db)
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    return TemplateStructureResponse(
        template_id=template_id,
        section_count=len(structure),
        structure=[SectionDescriptorSchema(**d.to_dict()) for d in structure],
    )
