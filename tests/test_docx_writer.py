"""Tests for DOCX rendering and read-back."""
import io
import itertools

from docx import Document

from app.config import settings
from app.services.content_nodes import HeadingBlock, ListBlock, Mark, ParagraphBlock, TableBlock
from app.services.content_tree import ContentTree, DraftDocument
from app.services.content_validator import parse_section_content
from app.services.docx_writer import (
    match_sections,
    read_docx_blocks,
    render_draft_docx,
    render_text_docx,
)
from app.services.references import ReferenceRecord
from app.services.renderer import blocks_to_text
from app.services.structure_extractor import RawHeading, build_hierarchy

BODY = "This section summarises the findings of the reviewed literature in plain prose."


def _structure(*titles_and_levels):
    counter = itertools.count(1)
    return build_hierarchy(
        [RawHeading(level=level, title=title) for title, level in titles_and_levels],
        id_factory=lambda: f"sec{next(counter)}",
    )


def _headings(blocks):
    return [b for b in blocks if isinstance(b, HeadingBlock)]


def _placeholders(blocks):
    return [
        b for b in blocks
        if isinstance(b, ParagraphBlock) and b.text == settings.EMPTY_SECTION_PLACEHOLDER
    ]


# ---------------------------------------------------------------------------
# Template-driven export
# ---------------------------------------------------------------------------

def test_five_descriptors_three_populated():
    structure = _structure(
        ("Introduction", 1), ("Background", 2), ("Methods", 1), ("Results", 1), ("Discussion", 1)
    )
    doc = DraftDocument()
    for descriptor in (structure[0], structure[2], structure[4]):
        doc.upsert_section(
            descriptor.id, descriptor.title, parse_section_content(BODY), level=descriptor.level
        )

    blocks = read_docx_blocks(render_draft_docx(doc.tree, structure))

    headings = _headings(blocks)
    assert [h.text for h in headings] == [
        "Introduction", "Background", "Methods", "Results", "Discussion"
    ]
    assert [h.level for h in headings] == [1, 2, 1, 1, 1]
    assert len(_placeholders(blocks)) == 2


def test_sections_match_by_title_when_ids_differ():
    structure = _structure(("Introduction", 1), ("Methods", 1))
    doc = DraftDocument()
    doc.upsert_section("legacy-id", "Methods", parse_section_content(BODY))

    matches = match_sections(doc.tree, structure)
    assert matches[structure[0].id] is None
    assert matches[structure[1].id].id == "legacy-id"

    blocks = read_docx_blocks(render_draft_docx(doc.tree, structure))
    assert blocks[-1].text == BODY
    assert len(_placeholders(blocks)) == 1


def test_sections_outside_template_are_not_exported():
    structure = _structure(("Introduction", 1))
    doc = DraftDocument()
    doc.upsert_section("stray", "Appendix", parse_section_content(BODY))

    blocks = read_docx_blocks(render_draft_docx(doc.tree, structure))
    assert [h.text for h in _headings(blocks)] == ["Introduction"]
    assert all(getattr(b, "text", "") != BODY for b in blocks)


def test_title_and_formatting():
    data = render_draft_docx(ContentTree(), _structure(("Only", 1)), title="My Report")
    document = Document(io.BytesIO(data))

    assert document.paragraphs[0].style.name == "Title"
    assert document.paragraphs[0].text == "My Report"
    normal = document.styles["Normal"]
    assert normal.font.name == settings.EXPORT_FONT_NAME
    assert normal.font.size.pt == settings.EXPORT_FONT_SIZE_PT
    assert document.sections[0].left_margin.inches == settings.EXPORT_MARGIN_INCHES


# ---------------------------------------------------------------------------
# Template-free export
# ---------------------------------------------------------------------------

def test_tree_order_export_without_template():
    doc = DraftDocument()
    doc.upsert_section("b", "Second", parse_section_content(BODY), level=2)
    doc.upsert_section("a", "First", parse_section_content(BODY))

    blocks = read_docx_blocks(render_draft_docx(doc.tree))
    assert [(h.text, h.level) for h in _headings(blocks)] == [("Second", 2), ("First", 1)]


def test_rich_blocks_survive_export():
    text = (
        "Findings with **bold** and *italic* words in the running text.\n\n"
        "- first point\n- second point\n\n"
        "1. step one\n2. step two\n\n"
        "| Metric | Value |\n| --- | --- |\n| Recall | 0.9 |"
    )
    blocks = read_docx_blocks(render_text_docx(text))

    paragraph, bullets, numbers, table = blocks
    assert [r.marks for r in paragraph.runs if r.text in ("bold", "italic")] == [
        frozenset({Mark.BOLD}),
        frozenset({Mark.ITALIC}),
    ]
    assert isinstance(bullets, ListBlock) and not bullets.ordered
    assert isinstance(numbers, ListBlock) and numbers.ordered
    assert table == TableBlock(headers=("Metric", "Value"), rows=(("Recall", "0.9"),))


def test_table_header_row_is_shaded_and_bold():
    data = render_text_docx("| A | B |\n|---|---|\n| 1 | 2 |")
    table = Document(io.BytesIO(data)).tables[0]

    assert table.style.name == "Table Grid"
    header_cell = table.rows[0].cells[0]
    assert header_cell.paragraphs[0].runs[0].bold
    assert settings.EXPORT_TABLE_HEADER_FILL in header_cell._tc.xml


def test_plain_paragraph_round_trip():
    text = "First paragraph of plain text.\n\nSecond paragraph, also plain.\n\nThird."
    assert blocks_to_text(read_docx_blocks(render_text_docx(text))) == text


# ---------------------------------------------------------------------------
# References
# ---------------------------------------------------------------------------

def test_references_follow_page_break():
    references = [
        ReferenceRecord(formatted="Lee, J. (2020). Formatted entry."),
        ReferenceRecord(raw_text="Raw citation text"),
        ReferenceRecord(),
    ]
    data = render_draft_docx(ContentTree(), _structure(("Intro", 1)), references)
    document = Document(io.BytesIO(data))
    texts = [p.text for p in document.paragraphs]

    start = texts.index("References")
    assert texts[start + 1:start + 4] == [
        "[1] Lee, J. (2020). Formatted entry.",
        "[2] Raw citation text",
        "[3] Reference 3",
    ]
    assert 'w:type="page"' in document.paragraphs[start - 1]._p.xml

    entry = document.paragraphs[start + 1].paragraph_format
    assert entry.left_indent.inches == settings.EXPORT_REFERENCE_INDENT_INCHES
    assert entry.first_line_indent.inches == -settings.EXPORT_REFERENCE_INDENT_INCHES


def test_references_can_be_left_out():
    data = render_draft_docx(
        ContentTree(), _structure(("Intro", 1)), [ReferenceRecord(raw_text="x")], include_references=False
    )
    texts = [p.text for p in Document(io.BytesIO(data)).paragraphs]
    assert "References" not in texts
