"""
Common utility functions and helpers.
"""
from datetime import datetime, timezone
from typing import List, Optional
import re
import uuid


_PARAGRAPH_BREAK_RE = re.compile(r"\n[ \t]*\n")


def generate_id() -> str:
    """
    Generate an opaque unique identifier.

    Returns:
        32-character hex string
    """
    return uuid.uuid4().hex


def utc_now() -> datetime:
    """Return the current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def normalize_whitespace(text: str) -> str:
    """
    Collapse every whitespace run (newlines included) to a single space.

    Args:
        text: Raw text string

    Returns:
        Text with single spaces and no leading/trailing whitespace
    """
    return re.sub(r"\s+", " ", text).strip()


def split_paragraphs(text: str) -> List[str]:
    """
    Split text on blank lines.

    Args:
        text: Text with blank-line paragraph breaks

    Returns:
        Non-empty paragraph chunks with surrounding whitespace removed
    """
    parts = _PARAGRAPH_BREAK_RE.split(text)
    return [p.strip() for p in parts if p.strip()]


def count_words(text: str) -> int:
    """Count whitespace-delimited tokens."""
    return len(text.split())


def slugify(text: str, separator: str = "_", max_length: Optional[int] = None) -> str:
    """
    Turn arbitrary text into a lowercase filename-safe slug.

    Args:
        text: Text to slugify
        separator: Character that replaces runs of non-alphanumerics
        max_length: Optional maximum slug length

    Returns:
        Slug such as "my_research_paper"
    """
    slug = re.sub(r"[^a-z0-9]+", separator, text.lower()).strip(separator)
    if max_length is not None:
        slug = slug[:max_length].rstrip(separator)
    return slug


def export_filename(title: str, when: Optional[datetime] = None) -> str:
    """
    Build a download filename for an exported document.

    Args:
        title: Document or draft title
        when: Export timestamp (defaults to now)

    Returns:
        Filename such as "literature_review_2026-10-18.docx"
    """
    when = when or utc_now()
    slug = slugify(title, max_length=50) or "document"
    return f"{slug}_{when.date().isoformat()}.docx"

