"""
Markdown-like text <-> content tree blocks.

Text -> blocks
--------------
The text is split on blank lines and every chunk is classified, first match
wins:

  1. table    : contains "|" and spans more than one line
  2. list     : first line starts with "-", "*" or "<digits>." plus a space
  3. paragraph: everything else

Inline emphasis (**bold**, *italic*) never nests in this model, so runs are
produced by a single left-to-right scan: find the next marker, emit the plain
text before it, emit the marked run, continue after the match, and flush the
remaining plain text at the end.

Blocks -> text
--------------
The inverse re-emits the same markers, so plain paragraphs, lists and tables
survive a round trip through the tree.
"""
from __future__ import annotations

import logging
import re
from typing import List, Optional, Sequence, Tuple

from app.services.content_nodes import (
    BlockNode,
    HeadingBlock,
    ListBlock,
    Mark,
    ParagraphBlock,
    RunNode,
    TableBlock,
)
from app.utils.helpers import normalize_whitespace, split_paragraphs

logger = logging.getLogger(__name__)

# One alternation for both emphasis kinds; bold is tried first at each position
_INLINE_RE = re.compile(r"\*\*([^*]+)\*\*|\*([^*]+)\*")

_LIST_MARKER_RE = re.compile(r"^(?:[-*]|\d+\.)\s+")
_ORDERED_MARKER_RE = re.compile(r"^\d+\.\s+")
_TABLE_SEPARATOR_RE = re.compile(r"^[\s|:-]*-[\s|:-]*$")


# ---------------------------------------------------------------------------
# Inline runs
# ---------------------------------------------------------------------------

def parse_inline_runs(text: str) -> Tuple[RunNode, ...]:
    """
    Split *text* into plain, bold and italic runs in original order.

    Falls back to a single unmarked run when no emphasis is present.
    """
    runs: List[RunNode] = []
    last_index = 0

    for match in _INLINE_RE.finditer(text):
        if match.start() > last_index:
            runs.append(RunNode(text=text[last_index:match.start()]))
        if match.group(1) is not None:
            runs.append(RunNode(text=match.group(1), marks=frozenset({Mark.BOLD})))
        else:
            runs.append(RunNode(text=match.group(2), marks=frozenset({Mark.ITALIC})))
        last_index = match.end()

    if last_index < len(text):
        runs.append(RunNode(text=text[last_index:]))

    if not runs:
        runs.append(RunNode(text=text))

    return tuple(runs)


def runs_to_text(runs: Sequence[RunNode]) -> str:
    """Render runs back to text with emphasis markers."""
    parts = []
    for run in runs:
        if run.bold and run.italic:
            parts.append(f"***{run.text}***")
        elif run.bold:
            parts.append(f"**{run.text}**")
        elif run.italic:
            parts.append(f"*{run.text}*")
        else:
            parts.append(run.text)
    return "".join(parts)


# ---------------------------------------------------------------------------
# Tables
# ---------------------------------------------------------------------------

def _split_table_row(line: str) -> Tuple[str, ...]:
    cells = [cell.strip() for cell in line.strip().split("|")]
    if cells and not cells[0]:
        cells = cells[1:]
    if cells and not cells[-1]:
        cells = cells[:-1]
    return tuple(cells)


def is_table_separator(line: str) -> bool:
    """True for header/body separator lines such as "| --- | :-: |"."""
    return bool(_TABLE_SEPARATOR_RE.match(line))


def parse_markdown_table(text: str) -> Optional[TableBlock]:
    """
    Parse a pipe table.

    The first non-separator line gives the headers, separator lines are
    skipped, and every later line is a body row.  Returns None when fewer than
    two non-empty lines are present.
    """
    lines = [line for line in text.strip().split("\n") if line.strip()]
    if len(lines) < 2:
        return None

    headers: Optional[Tuple[str, ...]] = None
    rows: List[Tuple[str, ...]] = []
    for line in lines:
        if is_table_separator(line):
            continue
        cells = _split_table_row(line)
        if headers is None:
            headers = cells
        else:
            rows.append(cells)

    if headers is None:
        return None
    return TableBlock(headers=headers, rows=tuple(rows))


def table_to_text(table: TableBlock) -> str:
    width = table.column_count
    if width == 0:
        return ""

    def _line(cells: Sequence[str]) -> str:
        padded = list(cells) + [""] * (width - len(cells))
        return "| " + " | ".join(padded) + " |"

    lines = [_line(table.headers), _line(["---"] * width)]
    lines.extend(_line(row) for row in table.rows)
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Lists
# ---------------------------------------------------------------------------

def parse_list(text: str) -> ListBlock:
    """
    Parse a list chunk; ordering is decided by the first item's marker.

    Lines without a marker continue the previous item.
    """
    lines = [line.strip() for line in text.split("\n") if line.strip()]
    ordered = bool(_ORDERED_MARKER_RE.match(lines[0])) if lines else False

    items: List[str] = []
    for line in lines:
        marker = _LIST_MARKER_RE.match(line)
        if marker:
            items.append(line[marker.end():].strip())
        elif items:
            items[-1] = f"{items[-1]} {line}"
        else:
            items.append(line)

    return ListBlock(
        items=tuple(parse_inline_runs(item) for item in items if item),
        ordered=ordered,
    )


def list_to_text(block: ListBlock) -> str:
    lines = []
    for index, item in enumerate(block.items, start=1):
        marker = f"{index}." if block.ordered else "-"
        lines.append(f"{marker} {runs_to_text(item)}")
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Chunks
# ---------------------------------------------------------------------------

def classify_chunk(chunk: str) -> str:
    """Return "table", "list" or "paragraph" for one blank-line-delimited chunk."""
    lines = [line for line in chunk.split("\n") if line.strip()]
    if "|" in chunk and len(lines) > 1:
        return "table"
    if lines and _LIST_MARKER_RE.match(lines[0].strip()):
        return "list"
    return "paragraph"


def text_to_blocks(text: Optional[str]) -> List[BlockNode]:
    """Convert generated or edited text into block nodes."""
    blocks: List[BlockNode] = []
    if not text:
        return blocks

    for chunk in split_paragraphs(text):
        kind = classify_chunk(chunk)

        if kind == "table":
            table = parse_markdown_table(chunk)
            if table is not None:
                blocks.append(table)
                continue
            kind = "paragraph"

        if kind == "list":
            block = parse_list(chunk)
            if block.items:
                blocks.append(block)
            continue

        blocks.append(ParagraphBlock(runs=parse_inline_runs(normalize_whitespace(chunk))))

    return blocks


def block_to_text(block: BlockNode) -> str:
    if isinstance(block, HeadingBlock):
        return f"{'#' * block.level} {runs_to_text(block.runs)}"
    if isinstance(block, ListBlock):
        return list_to_text(block)
    if isinstance(block, TableBlock):
        return table_to_text(block)
    return runs_to_text(block.runs)


def blocks_to_text(blocks: Sequence[BlockNode]) -> str:
    """Render blocks as markdown-like text, one blank line between blocks."""
    rendered = (block_to_text(block) for block in blocks)
    return "\n\n".join(part for part in rendered if part.strip())
