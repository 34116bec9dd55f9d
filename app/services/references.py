"""
Reference and document-metadata records delivered by the external
bibliographic extraction service.

Only the record shapes and the citation fallback live here; parsing the
service's wire format is the caller's job.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class ReferenceRecord:
    """One bibliography entry."""

    authors: List[str] = field(default_factory=list)
    title: Optional[str] = None
    year: Optional[int] = None
    journal: Optional[str] = None
    volume: Optional[str] = None
    pages: Optional[str] = None
    doi: Optional[str] = None
    raw_text: Optional[str] = None
    formatted: Optional[str] = None  # citation string in the house style, if any

    def citation_text(self, index: int) -> str:
        """Text printed after the ``[i]`` label in the References section."""
        return self.formatted or self.raw_text or f"Reference {index}"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ReferenceRecord":
        year = data.get("year")
        record = cls(
            authors=[str(a) for a in data.get("authors") or []],
            title=data.get("title"),
            year=int(year) if year not in (None, "") else None,
            journal=data.get("journal"),
            volume=_optional_str(data.get("volume")),
            pages=_optional_str(data.get("pages")),
            doi=data.get("doi"),
            raw_text=data.get("raw_text"),
            formatted=data.get("formatted"),
        )
        if not record.raw_text and (record.title or record.authors):
            record.raw_text = format_reference(record)
        return record


@dataclass
class DocumentMetadata:
    """Bibliographic metadata of a source document."""

    title: Optional[str] = None
    authors: List[str] = field(default_factory=list)
    abstract: Optional[str] = None
    year: Optional[int] = None
    doi: Optional[str] = None
    keywords: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "DocumentMetadata":
        data = data or {}
        year = data.get("year")
        return cls(
            title=data.get("title"),
            authors=[str(a) for a in data.get("authors") or []],
            abstract=data.get("abstract"),
            year=int(year) if year not in (None, "") else None,
            doi=data.get("doi"),
            keywords=[str(k) for k in data.get("keywords") or []],
        )


def format_reference(ref: ReferenceRecord) -> str:
    """
    Build a plain citation string from the structured fields.

    "A. Smith, B. Jones (2021). Title. Journal, 12, 1-10."
    """
    authors = ", ".join(ref.authors) if ref.authors else "Unknown"
    year = ref.year if ref.year else "n.d."
    title = ref.title or "Untitled"
    journal = f". {ref.journal}" if ref.journal else ""
    volume = f", {ref.volume}" if ref.volume else ""
    pages = f", {ref.pages}" if ref.pages else ""
    return f"{authors} ({year}). {title}{journal}{volume}{pages}."


def _optional_str(value: Any) -> Optional[str]:
    if value in (None, ""):
        return None
    return str(value)
