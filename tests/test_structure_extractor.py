"""Tests for DOCX template structure extraction."""
import itertools
import random

import pytest

from app.services.structure_extractor import (
    FALLBACK_WARNING,
    FEW_SECTIONS_WARNING,
    RawHeading,
    SectionDescriptor,
    TemplateStructureExtractor,
    build_hierarchy,
    extract_placeholders,
    heading_level_for_style,
    numbered_heading_level,
    structure_from_records,
)
from tests.conftest import build_docx, sample_template_docx


def _counter_ids():
    counter = itertools.count(1)
    return lambda: f"s{next(counter)}"


@pytest.fixture
def extractor() -> TemplateStructureExtractor:
    return TemplateStructureExtractor(id_factory=_counter_ids())


# ---------------------------------------------------------------------------
# Style-based extraction
# ---------------------------------------------------------------------------

def test_styled_headings_in_document_order(extractor):
    result = extractor.extract(sample_template_docx())

    assert result.success
    assert [d.title for d in result.structure] == [
        "Introduction",
        "Background",
        "Methods",
        "Results",
        "{{DISCUSSION}}",
    ]
    assert [d.level for d in result.structure] == [1, 2, 1, 1, 1]
    assert [d.order for d in result.structure] == [1, 2, 3, 4, 5]
    assert result.warnings == []


def test_parent_links_follow_levels(extractor):
    result = extractor.extract(sample_template_docx())
    by_title = {d.title: d for d in result.structure}

    assert by_title["Introduction"].parent_id is None
    assert by_title["Background"].parent_id == by_title["Introduction"].id
    assert by_title["Methods"].parent_id is None


def test_placeholder_in_heading_is_recorded(extractor):
    result = extractor.extract(sample_template_docx())
    assert result.structure[-1].placeholder == "DISCUSSION"
    assert result.structure[0].placeholder is None


def test_title_style_counts_as_level_one(extractor):
    data = build_docx([("Annual Report", "Title"), ("Summary", "Heading 1")])
    result = extractor.extract(data)

    assert [d.level for d in result.structure] == [1, 1]
    assert result.structure[0].is_title
    assert not result.structure[1].is_title


def test_plain_text_is_kept(extractor):
    result = extractor.extract(sample_template_docx())
    assert "Describe the research question." in result.plain_text.split("\n")


def test_few_sections_warning(extractor):
    result = extractor.extract(build_docx([("Only Section", "Heading 1")]))
    assert result.success
    assert len(result.structure) == 1
    assert FEW_SECTIONS_WARNING in result.warnings


def test_explicit_zero_thresholds_are_kept():
    extractor = TemplateStructureExtractor(max_line_length=0, min_sections=0)
    assert extractor.max_line_length == 0
    assert extractor.min_sections == 0

    result = extractor.extract(build_docx([("Only Section", "Heading 1")]))
    assert FEW_SECTIONS_WARNING not in result.warnings


# ---------------------------------------------------------------------------
# Pattern-based fallback
# ---------------------------------------------------------------------------

def test_fallback_to_text_patterns(extractor):
    data = build_docx(
        [
            ("1 Introduction", None),
            ("Some body text that is not a heading at all.", None),
            ("2.1 Background", None),
            ("{{METHODS}}", None),
        ]
    )
    result = extractor.extract(data)

    assert result.success
    assert result.warnings[0] == FALLBACK_WARNING
    assert [(d.title, d.level) for d in result.structure] == [
        ("1 Introduction", 1),
        ("2.1 Background", 2),
        ("{{METHODS}}", 1),
    ]
    assert result.structure[2].placeholder == "METHODS"
    assert result.structure[1].parent_id == result.structure[0].id


def test_fallback_skips_long_lines(extractor):
    long_line = "1 Introduction " + "word " * 30
    data = build_docx([(long_line, None), ("2 Methods", None), ("3 Results", None)])
    result = extractor.extract(data)
    assert [d.title for d in result.structure] == ["2 Methods", "3 Results"]


def test_styles_win_over_patterns(extractor):
    data = build_docx([("Overview", "Heading 1"), ("2.1 Not a heading here", None)])
    result = extractor.extract(data)
    assert [d.title for d in result.structure] == ["Overview"]
    assert FALLBACK_WARNING not in result.warnings


@pytest.mark.parametrize(
    "line, level",
    [
        ("2.1 Background", 2),
        ("1 Introduction", 1),
        ("1. Introduction", 1),
        ("3.2.1 Sampling", 3),
        ("3.2.1. Sampling", 3),
        ("1.2.3.4.5 Deep", 4),
        ("12 apples", None),
        ("Background", None),
    ],
)
def test_numbered_heading_level(line, level):
    assert numbered_heading_level(line) == level


@pytest.mark.parametrize(
    "style, level",
    [("Heading 1", 1), ("Heading 6", 6), ("Title", 1), ("Normal", None), ("", None), ("Heading 7", None)],
)
def test_heading_level_for_style(style, level):
    assert heading_level_for_style(style) == level


# ---------------------------------------------------------------------------
# Failure handling and validation
# ---------------------------------------------------------------------------

def test_unreadable_bytes_yield_failure_result(extractor):
    result = extractor.extract(b"definitely not a zip file")
    assert not result.success
    assert result.structure == ()
    assert result.warnings[0].startswith("Failed to parse template:")


def test_validate_accepts_good_template(extractor):
    validation = extractor.validate(sample_template_docx())
    assert validation.valid
    assert validation.errors == []
    assert len(validation.structure) == 5


def test_validate_rejects_unreadable_file(extractor):
    validation = extractor.validate(b"garbage")
    assert not validation.valid
    assert validation.errors == ["Could not parse the DOCX file"]


def test_validate_rejects_template_without_sections(extractor):
    validation = extractor.validate(build_docx([("just some prose in the body of the document", None)]))
    assert not validation.valid
    assert "No sections detected in template. Add headings or placeholders." in validation.errors


def test_validate_rejects_duplicate_placeholders(extractor):
    data = build_docx(
        [("{{SUMMARY}}", "Heading 1"), ("Middle", "Heading 1"), ("{{SUMMARY}} again", "Heading 1")]
    )
    validation = extractor.validate(data)
    assert not validation.valid
    assert validation.errors == ["Duplicate placeholders found: SUMMARY"]


def test_extract_placeholders_only_matches_upper_snake():
    assert extract_placeholders("{{INTRO}} and {{RESULTS_2}} but not {{lower}}") == [
        "INTRO",
        "RESULTS_2",
    ]


# ---------------------------------------------------------------------------
# Hierarchy builder
# ---------------------------------------------------------------------------

def test_hierarchy_is_a_forest_for_random_level_sequences():
    rng = random.Random(1234)
    for _ in range(200):
        levels = [rng.randint(1, 6) for _ in range(rng.randint(0, 25))]
        structure = build_hierarchy(
            [RawHeading(level=lvl, title=f"H{i}") for i, lvl in enumerate(levels)],
            id_factory=_counter_ids(),
        )
        by_id = {d.id: d for d in structure}
        position = {d.id: i for i, d in enumerate(structure)}

        assert len(structure) == len(levels)
        for index, descriptor in enumerate(structure):
            if descriptor.parent_id is None:
                assert all(d.level >= descriptor.level for d in structure[:index])
                continue
            parent = by_id[descriptor.parent_id]
            assert position[parent.id] < index
            assert parent.level < descriptor.level
            # nearest preceding strictly-lower heading
            between = structure[position[parent.id] + 1:index]
            assert all(d.level >= descriptor.level for d in between)


def test_hierarchy_root_when_no_lower_level_precedes():
    structure = build_hierarchy(
        [RawHeading(level=2, title="A"), RawHeading(level=1, title="B"), RawHeading(level=3, title="C")],
        id_factory=_counter_ids(),
    )
    assert structure[0].parent_id is None
    assert structure[1].parent_id is None
    assert structure[2].parent_id == structure[1].id


def test_structure_records_round_trip():
    structure = build_hierarchy(
        [RawHeading(level=1, title="A"), RawHeading(level=2, title="B", placeholder="B")],
        id_factory=_counter_ids(),
    )
    records = [d.to_dict() for d in reversed(structure)]
    assert structure_from_records(records) == structure
    assert isinstance(structure_from_records(records)[0], SectionDescriptor)
