"""
DOCX output (and read-back) for draft content trees.

Writing
-------
render_draft_docx   Draft tree + optional template structure + references
                    -> DOCX bytes.
render_text_docx    Plain generated text (no template) -> DOCX bytes.

Document-wide formatting (body font, line spacing, page margins) is applied
once to the Normal style and to every page section before any content is
added.

Reading
-------
read_docx_blocks    DOCX bytes -> flat list of block nodes.  Used to check
                    what an export actually contains and to bring an edited
                    document back into a tree.
"""
from __future__ import annotations

import io
import logging
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from docx import Document
from docx.document import Document as DocxDocument
from docx.enum.text import WD_ALIGN_PARAGRAPH
from docx.oxml import OxmlElement
from docx.oxml.ns import qn
from docx.shared import Inches, Pt
from docx.table import Table
from docx.text.paragraph import Paragraph

from app.config import settings
from app.services.content_nodes import (
    BlockNode,
    HeadingBlock,
    ListBlock,
    Mark,
    ParagraphBlock,
    RunNode,
    SectionNode,
    TableBlock,
    merge_runs,
)
from app.services.content_tree import ContentTree
from app.services.references import ReferenceRecord
from app.services.renderer import text_to_blocks
from app.services.structure_extractor import SectionDescriptor, heading_level_for_style

logger = logging.getLogger(__name__)

MAX_DOCX_HEADING_LEVEL = 9
BULLET_STYLE = "List Bullet"
NUMBER_STYLE = "List Number"
TABLE_STYLE = "Table Grid"
REFERENCES_HEADING = "References"


# ---------------------------------------------------------------------------
# Document setup
# ---------------------------------------------------------------------------

def _new_document() -> DocxDocument:
    doc = Document()

    style = doc.styles["Normal"]
    style.font.name = settings.EXPORT_FONT_NAME
    style.font.size = Pt(settings.EXPORT_FONT_SIZE_PT)
    style.paragraph_format.line_spacing = settings.EXPORT_LINE_SPACING

    margin = Inches(settings.EXPORT_MARGIN_INCHES)
    for section in doc.sections:
        section.top_margin = margin
        section.bottom_margin = margin
        section.left_margin = margin
        section.right_margin = margin

    return doc


def _to_bytes(doc: DocxDocument) -> bytes:
    buffer = io.BytesIO()
    doc.save(buffer)
    return buffer.getvalue()


def _add_title(doc: DocxDocument, title: str) -> None:
    heading = doc.add_heading(title, level=0)
    heading.alignment = WD_ALIGN_PARAGRAPH.CENTER


def _add_heading(doc: DocxDocument, text: str, level: int) -> Paragraph:
    return doc.add_heading(text, level=max(1, min(level, MAX_DOCX_HEADING_LEVEL)))


# ---------------------------------------------------------------------------
# Blocks
# ---------------------------------------------------------------------------

def _add_runs(paragraph: Paragraph, runs: Iterable[RunNode]) -> None:
    for node in runs:
        run = paragraph.add_run(node.text)
        if node.bold:
            run.bold = True
        if node.italic:
            run.italic = True


def _shade_cell(cell, fill: str) -> None:
    """Set a solid background fill on a table cell."""
    tc_pr = cell._tc.get_or_add_tcPr()
    shading = OxmlElement("w:shd")
    shading.set(qn("w:val"), "clear")
    shading.set(qn("w:color"), "auto")
    shading.set(qn("w:fill"), fill)
    tc_pr.append(shading)


def _add_table(doc: DocxDocument, block: TableBlock) -> None:
    width = block.column_count
    if width == 0:
        return

    header_rows = 1 if block.headers else 0
    table = doc.add_table(rows=header_rows + len(block.rows), cols=width)
    table.style = TABLE_STYLE

    if block.headers:
        for index, cell in enumerate(table.rows[0].cells):
            text = block.headers[index] if index < len(block.headers) else ""
            paragraph = cell.paragraphs[0]
            run = paragraph.add_run(text)
            run.bold = True
            _shade_cell(cell, settings.EXPORT_TABLE_HEADER_FILL)

    for row_index, row in enumerate(block.rows, start=header_rows):
        for index, cell in enumerate(table.rows[row_index].cells):
            cell.text = row[index] if index < len(row) else ""


def _add_block(doc: DocxDocument, block: BlockNode) -> None:
    if isinstance(block, HeadingBlock):
        _add_heading(doc, block.text, block.level)
    elif isinstance(block, ListBlock):
        style = NUMBER_STYLE if block.ordered else BULLET_STYLE
        for item in block.items:
            paragraph = doc.add_paragraph(style=style)
            _add_runs(paragraph, item)
    elif isinstance(block, TableBlock):
        _add_table(doc, block)
    else:
        paragraph = doc.add_paragraph()
        paragraph.alignment = WD_ALIGN_PARAGRAPH.JUSTIFY
        _add_runs(paragraph, block.runs)


def _add_placeholder(doc: DocxDocument) -> None:
    paragraph = doc.add_paragraph(settings.EMPTY_SECTION_PLACEHOLDER)
    paragraph.alignment = WD_ALIGN_PARAGRAPH.LEFT


def _add_section_body(doc: DocxDocument, section: Optional[SectionNode]) -> None:
    if section is None or not section.body:
        _add_placeholder(doc)
        return
    for block in section.body:
        _add_block(doc, block)


def _add_references(doc: DocxDocument, references: Sequence[ReferenceRecord]) -> None:
    doc.add_page_break()
    _add_heading(doc, REFERENCES_HEADING, 1)

    indent = Inches(settings.EXPORT_REFERENCE_INDENT_INCHES)
    for index, reference in enumerate(references, start=1):
        paragraph = doc.add_paragraph(f"[{index}] {reference.citation_text(index)}")
        paragraph.paragraph_format.left_indent = indent
        paragraph.paragraph_format.first_line_indent = -indent


# ---------------------------------------------------------------------------
# Section matching
# ---------------------------------------------------------------------------

def match_sections(
    tree: ContentTree,
    structure: Sequence[SectionDescriptor],
) -> Dict[str, Optional[SectionNode]]:
    """
    Pair every descriptor with a tree section.

    A section matches by id first; descriptors left over then take the first
    unclaimed section with the same title.  Each section is used at most once.

    Returns:
        Descriptor id -> matched SectionNode (or None).
    """
    by_id = {section.id: section for section in tree}
    claimed = set()
    matches: Dict[str, Optional[SectionNode]] = {}

    for descriptor in structure:
        section = by_id.get(descriptor.id)
        if section is not None:
            claimed.add(section.id)
        matches[descriptor.id] = section

    for descriptor in structure:
        if matches[descriptor.id] is not None:
            continue
        for section in tree:
            if section.id not in claimed and section.title == descriptor.title:
                matches[descriptor.id] = section
                claimed.add(section.id)
                break

    unplaced = [section.id for section in tree if section.id not in claimed]
    if unplaced:
        logger.warning(
            "%d section(s) have no position in the template and are not exported: %s",
            len(unplaced),
            ", ".join(unplaced),
        )
    return matches


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def render_draft_docx(
    tree: ContentTree,
    structure: Optional[Sequence[SectionDescriptor]] = None,
    references: Sequence[ReferenceRecord] = (),
    *,
    title: Optional[str] = None,
    include_references: bool = True,
) -> bytes:
    """
    Render a draft as a DOCX document.

    Args:
        tree:               Draft content tree.
        structure:          Template structure.  When given it fixes section
                            order and heading levels; sections with no content
                            get a placeholder paragraph.  When omitted, the
                            tree is rendered in its own order.
        references:         Bibliography entries.
        title:              Centered document title (omitted when None).
        include_references: Emit the References section when entries exist.

    Returns:
        DOCX file content.
    """
    doc = _new_document()

    if title:
        _add_title(doc, title)

    if structure:
        matches = match_sections(tree, structure)
        for descriptor in sorted(structure, key=lambda d: d.order):
            _add_heading(doc, descriptor.title, descriptor.level)
            _add_section_body(doc, matches.get(descriptor.id))
    else:
        for section in tree:
            heading = section.heading
            if heading is not None:
                _add_heading(doc, heading.text or section.title, heading.level)
            else:
                _add_heading(doc, section.title, 1)
            _add_section_body(doc, section)

    if include_references and references:
        _add_references(doc, references)

    logger.info(
        "Rendered DOCX: %d sections, %d references, template=%s",
        len(structure) if structure else len(tree),
        len(references) if include_references else 0,
        bool(structure),
    )
    return _to_bytes(doc)


def render_text_docx(text: str, title: Optional[str] = None) -> bytes:
    """Render plain generated text (paragraphs, lists, tables) to DOCX."""
    doc = _new_document()
    if title:
        _add_title(doc, title)
    for block in text_to_blocks(text):
        _add_block(doc, block)
    return _to_bytes(doc)


# ---------------------------------------------------------------------------
# Read-back
# ---------------------------------------------------------------------------

def _read_runs(paragraph: Paragraph) -> Tuple[RunNode, ...]:
    runs = []
    for run in paragraph.runs:
        marks = set()
        if run.bold:
            marks.add(Mark.BOLD)
        if run.italic:
            marks.add(Mark.ITALIC)
        runs.append(RunNode(text=run.text, marks=frozenset(marks)))
    return merge_runs(runs)


def _list_kind(style_name: str) -> Optional[bool]:
    """True for numbered list styles, False for bullets, None otherwise."""
    if style_name.startswith(NUMBER_STYLE):
        return True
    if style_name.startswith(BULLET_STYLE):
        return False
    return None


def _read_table(table: Table) -> TableBlock:
    rows = [tuple(cell.text.strip() for cell in row.cells) for row in table.rows]
    if not rows:
        return TableBlock(headers=())
    return TableBlock(headers=rows[0], rows=tuple(rows[1:]))


def read_docx_blocks(data: bytes) -> List[BlockNode]:
    """
    Read a DOCX body back into block nodes, in document order.

    Heading and Title styles become headings (Title as level 1), consecutive
    list-style paragraphs of the same kind become one list, tables keep their
    first row as headers, and empty paragraphs are skipped.
    """
    doc = Document(io.BytesIO(data))
    blocks: List[BlockNode] = []
    pending_items: List[Tuple[RunNode, ...]] = []
    pending_ordered: Optional[bool] = None

    def _flush_list() -> None:
        nonlocal pending_items, pending_ordered
        if pending_items:
            blocks.append(ListBlock(items=tuple(pending_items), ordered=bool(pending_ordered)))
        pending_items = []
        pending_ordered = None

    for child in doc.element.body.iterchildren():
        if child.tag == qn("w:tbl"):
            _flush_list()
            blocks.append(_read_table(Table(child, doc)))
            continue
        if child.tag != qn("w:p"):
            continue

        paragraph = Paragraph(child, doc)
        style_name = paragraph.style.name if paragraph.style is not None else ""
        runs = _read_runs(paragraph)
        if not "".join(run.text for run in runs).strip():
            continue

        ordered = _list_kind(style_name)
        if ordered is not None:
            if pending_items and pending_ordered != ordered:
                _flush_list()
            pending_items.append(runs)
            pending_ordered = ordered
            continue

        _flush_list()
        level = heading_level_for_style(style_name)
        if level is not None:
            blocks.append(HeadingBlock(level=level, runs=runs))
        else:
            blocks.append(ParagraphBlock(runs=runs))

    _flush_list()
    return blocks
