"""
Template structure extraction for DOCX files.

Turns a styled template into an ordered, leveled, parented list of
SectionDescriptor objects.  Two scan strategies exist and exactly one is
chosen per document:

  1. Style-based  : paragraphs styled "Heading 1".."Heading 6" or "Title".
  2. Pattern-based: only when (1) finds nothing: short plain lines carrying a
                     {{PLACEHOLDER}} token or a numeric outline prefix
                     ("2.1 Background").

Parent links are assigned afterwards in one left-to-right pass over an
explicit stack, so the result is always a forest whatever the level sequence.

Public API
----------
TemplateStructureExtractor.extract(data)   -> ExtractionResult
TemplateStructureExtractor.validate(data)  -> TemplateValidation
build_hierarchy(headings)                  -> Tuple[SectionDescriptor, ...]
extract_placeholders(text)                 -> List[str]
"""
from __future__ import annotations

import io
import logging
import re
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from docx import Document as DocxDocument

from app.config import settings
from app.utils.helpers import generate_id

logger = logging.getLogger(__name__)

# {{UPPER_SNAKE_NAME}}
PLACEHOLDER_RE = re.compile(r"\{\{([A-Z][A-Z0-9_]*)\}\}")

_HEADING_STYLE_RE = re.compile(r"^heading\s*(\d+)$", re.IGNORECASE)
_TITLE_STYLE_RE = re.compile(r"^title$", re.IGNORECASE)

# "1 Introduction", "2.1 Background", "3.2.1. Sampling"
_NUMBERED_HEADING_RE = re.compile(r"^(\d+(?:\.\d+)*)\.?\s+[A-Z]")

MAX_STYLE_HEADING_LEVEL = 6

FALLBACK_WARNING = "No heading styles detected. Using text pattern detection."
FEW_SECTIONS_WARNING = (
    "Template has very few sections. Consider adding more heading structure."
)


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RawHeading:
    """A heading found by a scan, before ids and parents are assigned."""

    level: int
    title: str
    placeholder: Optional[str] = None
    is_title: bool = False


@dataclass(frozen=True)
class StyleBased:
    """Headings found through explicit heading styles."""

    headings: Tuple[RawHeading, ...]


@dataclass(frozen=True)
class PatternBased:
    """Headings found by the plain-text fallback."""

    headings: Tuple[RawHeading, ...]
    warnings: Tuple[str, ...] = (FALLBACK_WARNING,)


HeadingScan = Union[StyleBased, PatternBased]


@dataclass(frozen=True)
class SectionDescriptor:
    """One section position in a template."""

    id: str
    level: int
    title: str
    order: int
    placeholder: Optional[str] = None
    parent_id: Optional[str] = None
    is_title: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "level": self.level,
            "title": self.title,
            "placeholder": self.placeholder,
            "order": self.order,
            "parent_id": self.parent_id,
            "is_title": self.is_title,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SectionDescriptor":
        return cls(
            id=str(data["id"]),
            level=int(data["level"]),
            title=str(data["title"]),
            order=int(data["order"]),
            placeholder=data.get("placeholder"),
            parent_id=data.get("parent_id"),
            is_title=bool(data.get("is_title", False)),
        )


@dataclass
class ExtractionResult:
    """
    Output of TemplateStructureExtractor.extract.

    Attributes:
        success:    False only when the document could not be opened at all.
        structure:  Descriptors in document order with parent links.
        warnings:   Non-fatal problems, in the order they were found.
        plain_text: Paragraph text of the template, one paragraph per line.
    """

    success: bool
    structure: Tuple[SectionDescriptor, ...] = ()
    warnings: List[str] = field(default_factory=list)
    plain_text: str = ""


@dataclass
class TemplateValidation:
    """Output of TemplateStructureExtractor.validate."""

    valid: bool
    errors: List[str]
    structure: Tuple[SectionDescriptor, ...] = ()
    warnings: List[str] = field(default_factory=list)
    plain_text: str = ""


# ---------------------------------------------------------------------------
# Extractor
# ---------------------------------------------------------------------------

class TemplateStructureExtractor:
    """Extracts section structure from DOCX templates."""

    def __init__(
        self,
        max_line_length: Optional[int] = None,
        min_sections: Optional[int] = None,
        id_factory: Callable[[], str] = generate_id,
    ) -> None:
        self.max_line_length = (
            max_line_length if max_line_length is not None else settings.HEADING_LINE_MAX_LENGTH
        )
        self.min_sections = (
            min_sections if min_sections is not None else settings.MIN_TEMPLATE_SECTIONS
        )
        self.id_factory = id_factory

    def extract(self, data: bytes) -> ExtractionResult:
        """
        Parse DOCX bytes into a section structure.

        Never raises: an unreadable document yields ``success=False``, an
        empty structure and a warning describing the problem.
        """
        try:
            doc = DocxDocument(io.BytesIO(data))
            paragraphs = [
                (para.style.name if para.style is not None else "", para.text)
                for para in doc.paragraphs
            ]
        except Exception as exc:
            logger.warning("Template could not be opened: %s", exc)
            return ExtractionResult(
                success=False,
                warnings=[f"Failed to parse template: {exc}"],
            )

        return self.extract_from_paragraphs(paragraphs)

    def extract_from_paragraphs(
        self, paragraphs: Sequence[Tuple[str, str]]
    ) -> ExtractionResult:
        """Build the structure from ``(style_name, text)`` pairs in document order."""
        scan = self.scan(paragraphs)
        warnings: List[str] = []
        if isinstance(scan, PatternBased):
            warnings.extend(scan.warnings)

        structure = build_hierarchy(scan.headings, id_factory=self.id_factory)

        if len(structure) < self.min_sections:
            warnings.append(FEW_SECTIONS_WARNING)

        logger.info(
            "Extracted %d sections (%s)",
            len(structure),
            "styles" if isinstance(scan, StyleBased) else "text patterns",
        )
        return ExtractionResult(
            success=True,
            structure=structure,
            warnings=warnings,
            plain_text="\n".join(text for _style, text in paragraphs),
        )

    def scan(self, paragraphs: Sequence[Tuple[str, str]]) -> HeadingScan:
        """Pick the scan strategy once for the whole document."""
        headings = scan_styled_headings(paragraphs)
        if headings:
            return StyleBased(headings=headings)

        lines = [
            line
            for _style, text in paragraphs
            for line in text.split("\n")
        ]
        return PatternBased(headings=self.scan_text_patterns(lines))

    def scan_text_patterns(self, lines: Iterable[str]) -> Tuple[RawHeading, ...]:
        """Find placeholder and outline-numbered headings in plain lines."""
        headings: List[RawHeading] = []
        for line in lines:
            trimmed = line.strip()
            if not trimmed or len(trimmed) >= self.max_line_length:
                continue

            placeholder = first_placeholder(trimmed)
            if placeholder:
                headings.append(RawHeading(level=1, title=trimmed, placeholder=placeholder))
                continue

            level = numbered_heading_level(trimmed)
            if level is not None:
                headings.append(RawHeading(level=level, title=trimmed))

        return tuple(headings)

    def validate(self, data: bytes) -> TemplateValidation:
        """
        Check that a DOCX file can drive a draft.

        Errors: unreadable file, no sections, duplicated placeholders.
        """
        result = self.extract(data)
        errors: List[str] = []

        if not result.success:
            errors.append("Could not parse the DOCX file")
            return TemplateValidation(
                valid=False, errors=errors, warnings=list(result.warnings)
            )

        if not result.structure:
            errors.append("No sections detected in template. Add headings or placeholders.")

        duplicates = duplicate_placeholders(result.structure)
        if duplicates:
            errors.append(f"Duplicate placeholders found: {', '.join(duplicates)}")

        return TemplateValidation(
            valid=not errors,
            errors=errors,
            structure=result.structure,
            warnings=list(result.warnings),
            plain_text=result.plain_text,
        )


# ---------------------------------------------------------------------------
# Module-level helpers
# ---------------------------------------------------------------------------

def extract_placeholders(text: str) -> List[str]:
    """Return every placeholder name in *text*, in order of appearance."""
    return PLACEHOLDER_RE.findall(text)


def first_placeholder(text: str) -> Optional[str]:
    match = PLACEHOLDER_RE.search(text)
    return match.group(1) if match else None


def heading_level_for_style(style_name: str) -> Optional[int]:
    """Map "Heading N" (1..6) to N and "Title" to 1; anything else to None."""
    if not style_name:
        return None
    name = style_name.strip()
    match = _HEADING_STYLE_RE.match(name)
    if match:
        level = int(match.group(1))
        return level if 1 <= level <= MAX_STYLE_HEADING_LEVEL else None
    if _TITLE_STYLE_RE.match(name):
        return 1
    return None


def numbered_heading_level(line: str) -> Optional[int]:
    """
    Level of an outline-numbered line, or None when it is not one.

    The level is one more than the number of dots inside the numeric prefix,
    capped at MAX_PATTERN_HEADING_LEVEL: "2 Scope" -> 1, "2.1 Background" -> 2.
    """
    match = _NUMBERED_HEADING_RE.match(line)
    if not match:
        return None
    dot_count = match.group(1).count(".")
    return min(settings.MAX_PATTERN_HEADING_LEVEL, dot_count + 1)


def scan_styled_headings(paragraphs: Sequence[Tuple[str, str]]) -> Tuple[RawHeading, ...]:
    headings: List[RawHeading] = []
    for style_name, text in paragraphs:
        title = text.strip()
        if not title:
            continue
        level = heading_level_for_style(style_name)
        if level is None:
            continue
        headings.append(
            RawHeading(
                level=level,
                title=title,
                placeholder=first_placeholder(title),
                is_title=bool(_TITLE_STYLE_RE.match(style_name.strip())),
            )
        )
    return tuple(headings)


def build_hierarchy(
    headings: Sequence[RawHeading],
    id_factory: Callable[[], str] = generate_id,
) -> Tuple[SectionDescriptor, ...]:
    """
    Assign ids, order and parent links to headings in document order.

    The parent of each heading is the nearest preceding heading with a
    strictly lower level.  Every heading is pushed once and popped at most
    once, so the pass is linear.
    """
    descriptors: List[SectionDescriptor] = []
    stack: List[Tuple[int, str]] = []  # (level, id)

    for order, heading in enumerate(headings, start=1):
        while stack and stack[-1][0] >= heading.level:
            stack.pop()

        section_id = id_factory()
        descriptors.append(
            SectionDescriptor(
                id=section_id,
                level=heading.level,
                title=heading.title,
                order=order,
                placeholder=heading.placeholder,
                parent_id=stack[-1][1] if stack else None,
                is_title=heading.is_title,
            )
        )
        stack.append((heading.level, section_id))

    return tuple(descriptors)


def duplicate_placeholders(structure: Iterable[SectionDescriptor]) -> List[str]:
    """Placeholder names used by more than one descriptor, each listed once."""
    counts = Counter(d.placeholder for d in structure if d.placeholder)
    return [name for name, count in counts.items() if count > 1]


def structure_from_records(records: Iterable[Dict[str, Any]]) -> Tuple[SectionDescriptor, ...]:
    """Rebuild a persisted structure, keeping the stored order."""
    descriptors = [SectionDescriptor.from_dict(r) for r in records]
    return tuple(sorted(descriptors, key=lambda d: d.order))
