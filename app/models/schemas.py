"""
Pydantic schemas for request/response validation.
"""
from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, List, Dict, Any
from datetime import datetime


# Health
class HealthCheckResponse(BaseModel):
    """Schema for health check endpoint."""

    status: str
    database: str
    timestamp: datetime
    version: str = "0.1.0"


# Template Schemas
class SectionDescriptorSchema(BaseModel):
    """One section position in a template."""

    id: str
    level: int = Field(..., ge=1)
    title: str
    order: int = Field(..., ge=1)
    placeholder: Optional[str] = None
    parent_id: Optional[str] = None
    is_title: bool = False


class TemplateParseResponse(BaseModel):
    """Schema for a parse-only template upload."""

    success: bool
    filename: Optional[str] = None
    structure: List[SectionDescriptorSchema] = []
    warnings: List[str] = []


class TemplateResponse(BaseModel):
    """Schema for a stored template."""

    id: str
    filename: str
    structure: List[SectionDescriptorSchema] = []
    warnings: List[str] = []
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TemplateStructureResponse(BaseModel):
    """Schema for the section structure of a stored template."""

    template_id: str
    section_count: int
    structure: List[SectionDescriptorSchema] = []


# Content Validation Schemas
class ContentValidateRequest(BaseModel):
    """Schema for screening raw generated text."""

    text: str
    section_title: str = ""
    source_count: Optional[int] = Field(None, ge=0)


class GenerationMetadataSchema(BaseModel):
    word_count: int = 0
    paragraph_count: int = 0
    has_hallucination_markers: bool = False


class GeneratedSectionResponse(BaseModel):
    """Schema for the outcome of screening one section's generated text."""

    content: str
    success: bool
    warnings: List[str] = []
    metadata: GenerationMetadataSchema = GenerationMetadataSchema()
    section_title: str = ""
    error: Optional[str] = None
    needs_manual_input: bool = False


class GroundingRequest(BaseModel):
    """Schema for a numeric grounding check."""

    generated_content: str
    source_content: str
    allowed_numbers: Optional[List[str]] = None


class GroundingResponse(BaseModel):
    is_grounded: bool
    warnings: List[str] = []
    unmatched_numbers: List[str] = []


class CoverageRequest(BaseModel):
    """Schema for a multi-source coverage check."""

    text: str
    source_count: int = Field(..., ge=1)


class CoverageResponse(BaseModel):
    referenced: List[int] = []
    missing: List[int] = []
    all_sources_used: bool
    warnings: List[str] = []


# Reference / Metadata Schemas
class ReferenceSchema(BaseModel):
    """One bibliography entry."""

    authors: List[str] = []
    title: Optional[str] = None
    year: Optional[int] = None
    journal: Optional[str] = None
    volume: Optional[str] = None
    pages: Optional[str] = None
    doi: Optional[str] = None
    raw_text: Optional[str] = None
    formatted: Optional[str] = None


class DocumentMetadataSchema(BaseModel):
    """Bibliographic metadata of one source document."""

    title: Optional[str] = None
    authors: List[str] = []
    abstract: Optional[str] = None
    year: Optional[int] = None
    doi: Optional[str] = None
    keywords: List[str] = []


# Draft Schemas
class DraftCreateRequest(BaseModel):
    """Schema for creating a draft."""

    template_id: Optional[str] = None
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    references: List[ReferenceSchema] = []
    source_documents: List[DocumentMetadataSchema] = []


class DraftResponse(BaseModel):
    """Schema for draft details."""

    id: str
    template_id: Optional[str] = None
    title: str
    version: int
    content: Dict[str, Any]
    section_sources: Dict[str, Any] = {}
    references: List[Dict[str, Any]] = []
    metadata_json: Optional[Dict[str, Any]] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class DraftContentUpdate(BaseModel):
    """Schema for replacing a draft's whole content tree."""

    content: Dict[str, Any]


class SourceRefSchema(BaseModel):
    document_id: str
    sections: List[str] = []


class SectionUpsertRequest(BaseModel):
    """Schema for storing generated text into one draft section."""

    raw_text: str
    title: Optional[str] = None
    source_refs: List[SourceRefSchema] = []
    source_count: Optional[int] = Field(None, ge=0)
    # When given, numbers in the text are checked against it
    source_text: Optional[str] = None


class SectionUpsertResponse(BaseModel):
    draft_id: str
    section_id: str
    version: int
    result: GeneratedSectionResponse
    grounding: Optional[GroundingResponse] = None


class SectionSummarySchema(BaseModel):
    id: str
    title: str
    has_content: bool
    warnings: List[str] = []


class SectionListResponse(BaseModel):
    draft_id: str
    sections: List[SectionSummarySchema] = []


class SectionTextResponse(BaseModel):
    draft_id: str
    section_id: str
    title: str
    text: str


class ReferencesUpdate(BaseModel):
    references: List[ReferenceSchema] = []


class ReferencesResponse(BaseModel):
    draft_id: str
    references: List[ReferenceSchema] = []


# Export Schemas
class DraftExportRequest(BaseModel):
    """Schema for exporting a stored draft."""

    title: Optional[str] = None
    include_references: bool = True


class TextExportRequest(BaseModel):
    """Schema for exporting plain generated text."""

    text: str = Field(..., min_length=1)
    title: Optional[str] = None
