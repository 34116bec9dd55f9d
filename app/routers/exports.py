"""
DOCX export endpoints.

POST /drafts/{draft_id} : render a stored draft (template order, references).
POST /text              : render plain generated text.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.exceptions import NotFoundError
from app.models.schemas import DraftExportRequest, TextExportRequest
from app.services.export_service import ExportResult, ExportService

logger = logging.getLogger(__name__)

router = APIRouter()

_service = ExportService()


def _download(result: ExportResult) -> Response:
    return Response(
        content=result.content,
        media_type=result.media_type,
        headers={"Content-Disposition": f'attachment; filename="{result.filename}"'},
    )


@router.post("/drafts/{draft_id}")
async def export_draft(
    draft_id: str,
    request: Optional[DraftExportRequest] = None,
    db: AsyncSession = Depends(get_db),
) -> Response:
    """Download a stored draft as DOCX."""
    request = request or DraftExportRequest()
    try:
        result = await _service.export_draft(
            draft_id,
            db,
            title=request.title,
            include_references=request.include_references,
        )
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    return _download(result)


@router.post("/text")
async def export_text(request: TextExportRequest) -> Response:
    """Download plain generated text as DOCX."""
    return _download(_service.export_text(request.text, title=request.title))
