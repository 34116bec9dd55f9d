"""
Stateless screening endpoints for generated text.

POST /validate  : clean + screen raw text for one section.
POST /grounding : numbers in generated text missing from the source text.
POST /coverage  : which numbered sources the text never mentions.
"""
import logging

from fastapi import APIRouter

from app.models.schemas import (
    ContentValidateRequest,
    CoverageRequest,
    CoverageResponse,
    GeneratedSectionResponse,
    GenerationMetadataSchema,
    GroundingRequest,
    GroundingResponse,
)
from app.services.content_validator import (
    GeneratedSectionResult,
    check_source_coverage,
    parse_section_content,
    validate_grounding,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def section_result_response(result: GeneratedSectionResult) -> GeneratedSectionResponse:
    return GeneratedSectionResponse(
        content=result.content,
        success=result.success,
        warnings=list(result.warnings),
        metadata=GenerationMetadataSchema(**result.metadata.to_dict()),
        section_title=result.section_title,
        error=result.error,
        needs_manual_input=result.needs_manual_input,
    )


@router.post("/validate", response_model=GeneratedSectionResponse)
async def validate_content(request: ContentValidateRequest) -> GeneratedSectionResponse:
    result = parse_section_content(
        request.text,
        section_title=request.section_title,
        source_count=request.source_count,
    )
    return section_result_response(result)


@router.post("/grounding", response_model=GroundingResponse)
async def check_grounding(request: GroundingRequest) -> GroundingResponse:
    report = validate_grounding(
        request.generated_content,
        request.source_content,
        allowed_numbers=request.allowed_numbers,
    )
    return GroundingResponse(
        is_grounded=report.is_grounded,
        warnings=list(report.warnings),
        unmatched_numbers=list(report.unmatched_numbers),
    )


@router.post("/coverage", response_model=CoverageResponse)
async def check_coverage(request: CoverageRequest) -> CoverageResponse:
    report = check_source_coverage(request.text, request.source_count)
    return CoverageResponse(
        referenced=list(report.referenced),
        missing=list(report.missing),
        all_sources_used=report.all_sources_used,
        warnings=list(report.warnings),
    )
