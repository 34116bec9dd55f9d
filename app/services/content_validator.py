"""
Screening of raw generated text before it enters a draft.

Every generation attempt for one section goes through
``parse_section_content``, which cleans the text and then runs three screens
in a fixed order:

  1. Failure screen      : fixed phrases meaning the generator gave up.
                           Short-circuits with success=False.
  2. Hallucination screen: hedging / uncertainty phrases.  Non-fatal,
                           reported as one warning.
  3. Length screen       : very short content is flagged success=False.

Two companion checks can be run on their own:

  validate_grounding     : numbers in the generated text that do not occur in
                           the source text.  This is a heuristic: a matching
                           number proves nothing and a missing one may be a
                           legitimate derived value.
  check_source_coverage  : which of N sources ("Paper 2", "Study 3", ...) the
                           synthesis never mentions.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Pattern, Sequence, Tuple

from app.config import settings
from app.utils.helpers import count_words, split_paragraphs, utc_now

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Marker phrases
# ---------------------------------------------------------------------------

HALLUCINATION_MARKERS: Tuple[Pattern[str], ...] = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (
        r"I don't have (?:access to|information about)",
        r"I cannot (?:find|locate|access)",
        r"there is no (?:information|data|content)",
        r"I would need more (?:information|context|data)",
        r"I'm not (?:sure|certain|able to confirm)",
        r"this (?:may|might|could) not be accurate",
        r"I cannot verify",
        r"hypothetically",
        r"I assume",
        r"let me (?:imagine|suppose|assume)",
    )
)

FAILURE_MARKERS: Tuple[Pattern[str], ...] = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (
        r"insufficient source content",
        r"no relevant (?:content|information) found",
        r"unable to (?:generate|create|write)",
        r"content not available",
    )
)

SHORT_CONTENT_WARNING = (
    "Generated content is very short. May need additional source material."
)

_NUMBER_RE = re.compile(r"\d+(?:\.\d+)?%?")


# ---------------------------------------------------------------------------
# Cleaning
# ---------------------------------------------------------------------------

_FENCE_RE = re.compile(r"^```[\w+-]*[ \t]*\n(.*?)\n?[ \t]*```$", re.DOTALL)
_PREAMBLE_RE = re.compile(
    r"^(?:Here is|Here's|Below is|The following is)[^:\n]*:[ \t]*\n*", re.IGNORECASE
)
_LEADING_HEADING_RE = re.compile(r"^#{1,6}[ \t]*[^\n]*(?:\n+|$)")
_TRAILER_RE = re.compile(
    r"\n+[ \t]*(?:Note:|Please note:|I hope|Let me know|Is there anything).*$",
    re.IGNORECASE | re.DOTALL,
)
_HORIZONTAL_WS_RE = re.compile(r"[ \t\f\v\r]+")


def _clean_once(text: str) -> str:
    cleaned = text.strip()

    fence = _FENCE_RE.match(cleaned)
    if fence:
        cleaned = fence.group(1).strip()

    cleaned = _PREAMBLE_RE.sub("", cleaned)
    cleaned = _LEADING_HEADING_RE.sub("", cleaned)
    cleaned = _TRAILER_RE.sub("", cleaned)

    paragraphs: List[str] = []
    for chunk in split_paragraphs(cleaned):
        lines = [_HORIZONTAL_WS_RE.sub(" ", line).strip() for line in chunk.split("\n")]
        joined = "\n".join(line for line in lines if line)
        if joined:
            paragraphs.append(joined)
    return "\n\n".join(paragraphs)


def clean_generated_text(text: Optional[str]) -> str:
    """
    Strip generation artifacts and normalize whitespace.

    Removes a whole-text code fence, a "Here is ...:" preamble, a leading
    markdown heading (the caller adds its own), and trailing "Note: ..." style
    boilerplate.  Spaces are collapsed inside each line; single line breaks
    are kept so that lists and tables survive, and paragraphs end up separated
    by exactly one blank line.

    The steps are repeated until nothing changes, which makes the function
    idempotent.
    """
    if not text:
        return ""
    current = text
    while True:
        cleaned = _clean_once(current)
        if cleaned == current:
            return cleaned
        current = cleaned


# ---------------------------------------------------------------------------
# Screens
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class HallucinationReport:
    detected: bool
    markers: Tuple[str, ...] = ()


@dataclass(frozen=True)
class FailureReport:
    failed: bool
    reason: Optional[str] = None


def detect_failure(text: str) -> FailureReport:
    """Return the first failure phrase found in *text*, if any."""
    for pattern in FAILURE_MARKERS:
        match = pattern.search(text)
        if match:
            return FailureReport(failed=True, reason=match.group(0))
    return FailureReport(failed=False)


def detect_hallucination(text: str) -> HallucinationReport:
    """Collect every hedging phrase found in *text* (first occurrence of each)."""
    markers = []
    for pattern in HALLUCINATION_MARKERS:
        match = pattern.search(text)
        if match:
            markers.append(match.group(0))
    return HallucinationReport(detected=bool(markers), markers=tuple(markers))


# ---------------------------------------------------------------------------
# Section result
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class GenerationMetadata:
    word_count: int = 0
    paragraph_count: int = 0
    has_hallucination_markers: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "word_count": self.word_count,
            "paragraph_count": self.paragraph_count,
            "has_hallucination_markers": self.has_hallucination_markers,
        }


@dataclass(frozen=True)
class GeneratedSectionResult:
    """
    Outcome of one generation attempt for one section.

    Attributes:
        content:            Cleaned text (empty on generation failure).
        success:            True when the content is usable as-is.
        warnings:           Human-readable quality warnings, in screen order.
        metadata:           Word / paragraph counts and the hallucination flag.
        section_title:      Title of the section the text was generated for.
        error:              Failure reason when the generator gave up.
        needs_manual_input: True when the section must be written by hand.
    """

    content: str
    success: bool
    warnings: Tuple[str, ...] = ()
    metadata: GenerationMetadata = field(default_factory=GenerationMetadata)
    section_title: str = ""
    error: Optional[str] = None
    needs_manual_input: bool = False

    def to_record(self) -> Dict[str, Any]:
        """Storage form of the result, stamped with the time it was produced."""
        return {
            "content": self.content,
            "success": self.success,
            "warnings": list(self.warnings),
            "error": self.error,
            "needs_manual_input": self.needs_manual_input,
            "metadata": {**self.metadata.to_dict(), "generated_at": utc_now().isoformat()},
        }


def parse_section_content(
    raw_text: Optional[str],
    section_title: str = "",
    source_count: Optional[int] = None,
) -> GeneratedSectionResult:
    """
    Clean and screen generated text for one section.

    Args:
        raw_text:      Text as returned by the generation service.
        section_title: Title of the target section (carried through).
        source_count:  Number of sources the text was synthesized from; when
                       greater than one, missing source references are warned.

    Returns:
        GeneratedSectionResult
    """
    cleaned = clean_generated_text(raw_text)

    failure = detect_failure(cleaned)
    if failure.failed:
        error = f"Could not generate content: {failure.reason}"
        logger.info("Generation failed for section %r: %s", section_title, failure.reason)
        return GeneratedSectionResult(
            content="",
            success=False,
            warnings=(error,),
            section_title=section_title,
            error=error,
            needs_manual_input=True,
        )

    warnings: List[str] = []

    hallucination = detect_hallucination(cleaned)
    if hallucination.detected:
        warnings.append(
            f"Potential uncertainty detected: {', '.join(hallucination.markers)}"
        )

    is_too_short = len(cleaned) < settings.MIN_CONTENT_LENGTH
    if is_too_short:
        warnings.append(SHORT_CONTENT_WARNING)

    if source_count is not None and source_count > 1:
        warnings.extend(check_source_coverage(cleaned, source_count).warnings)

    return GeneratedSectionResult(
        content=cleaned,
        success=not is_too_short,
        warnings=tuple(warnings),
        metadata=GenerationMetadata(
            word_count=count_words(cleaned),
            paragraph_count=len(split_paragraphs(cleaned)),
            has_hallucination_markers=hallucination.detected,
        ),
        section_title=section_title,
    )


# ---------------------------------------------------------------------------
# Grounding
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class GroundingReport:
    is_grounded: bool
    warnings: Tuple[str, ...] = ()
    unmatched_numbers: Tuple[str, ...] = ()


def extract_numbers(text: str) -> List[str]:
    """Integers and decimals, each with an optional trailing percent sign."""
    return _NUMBER_RE.findall(text or "")


def validate_grounding(
    generated_content: str,
    source_content: str,
    allowed_numbers: Optional[Sequence[str]] = None,
) -> GroundingReport:
    """
    Flag numbers in generated text that never appear in the source text.

    Numbers are compared as literal tokens ("42%" and "42" differ).  Small
    common numbers in *allowed_numbers* are never flagged.  Each distinct
    number is reported once.
    """
    allowed = set(allowed_numbers if allowed_numbers is not None else settings.GROUNDING_ALLOWED_NUMBERS)
    source_numbers = set(extract_numbers(source_content))

    unmatched: List[str] = []
    for number in extract_numbers(generated_content):
        if number in allowed or number in source_numbers or number in unmatched:
            continue
        unmatched.append(number)

    warnings = tuple(
        f'Number "{number}" in generated content may not be in source' for number in unmatched
    )
    return GroundingReport(
        is_grounded=not unmatched,
        warnings=warnings,
        unmatched_numbers=tuple(unmatched),
    )


# ---------------------------------------------------------------------------
# Multi-source coverage
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CoverageReport:
    referenced: Tuple[int, ...]
    missing: Tuple[int, ...]
    all_sources_used: bool
    warnings: Tuple[str, ...] = ()


def _source_pattern(ordinal: int) -> Pattern[str]:
    return re.compile(rf"\b(?:Paper|Study|Document) {ordinal}(?!\d)", re.IGNORECASE)


def check_source_coverage(text: str, source_count: int) -> CoverageReport:
    """
    Report which of sources 1..source_count the text refers to by ordinal.

    A source counts as referenced when "Paper i", "Study i" or "Document i"
    appears anywhere in the text (case-insensitive).
    """
    referenced: List[int] = []
    missing: List[int] = []
    for ordinal in range(1, source_count + 1):
        if _source_pattern(ordinal).search(text or ""):
            referenced.append(ordinal)
        else:
            missing.append(ordinal)

    warnings: Tuple[str, ...] = ()
    if missing:
        warnings = (f"Only {len(referenced)} of {source_count} sources were referenced",)

    return CoverageReport(
        referenced=tuple(referenced),
        missing=tuple(missing),
        all_sources_used=not missing,
        warnings=warnings,
    )
