"""Tests for generated-text cleaning and screening."""
import pytest

from app.services.content_validator import (
    SHORT_CONTENT_WARNING,
    check_source_coverage,
    clean_generated_text,
    detect_failure,
    detect_hallucination,
    extract_numbers,
    parse_section_content,
    validate_grounding,
)

LONG_PARAGRAPH = (
    "The reviewed studies agree that early intervention improves long-term outcomes "
    "for most participants across the sampled regions."
)


# ---------------------------------------------------------------------------
# Cleaning
# ---------------------------------------------------------------------------

def test_clean_strips_preamble_heading_and_trailer():
    raw = (
        "Here is the introduction section:\n\n"
        "# Introduction\n\n"
        "First   paragraph\t text.\n\n\n\n"
        "Second paragraph.\n\n"
        "Note: this was generated from limited sources."
    )
    assert clean_generated_text(raw) == "First paragraph text.\n\nSecond paragraph."


def test_clean_removes_code_fence():
    raw = "```markdown\nFenced body text.\n```"
    assert clean_generated_text(raw) == "Fenced body text."


def test_clean_keeps_list_and_table_lines():
    raw = "- one\n- two\n\n| A | B |\n| --- | --- |\n| 1 | 2 |"
    assert clean_generated_text(raw) == raw


@pytest.mark.parametrize(
    "raw",
    [
        "",
        "Plain text.",
        "Here is the section:\n\n# Heading\n\nBody.\n\nI hope this helps!",
        "```\nHere's the text:\n## Methods\nBody   text\n```",
        "   \n\n  spaced \n\n\n out  \n",
        "Below is a summary:\nLine one\nLine two\n\nLet me know if you need more.",
    ],
)
def test_clean_is_idempotent(raw):
    once = clean_generated_text(raw)
    assert clean_generated_text(once) == once


def test_clean_handles_none():
    assert clean_generated_text(None) == ""


# ---------------------------------------------------------------------------
# Screens
# ---------------------------------------------------------------------------

def test_failure_detection():
    report = detect_failure("Sorry, insufficient source content to write this.")
    assert report.failed
    assert report.reason == "insufficient source content"
    assert not detect_failure(LONG_PARAGRAPH).failed


def test_hallucination_detection_collects_markers():
    report = detect_hallucination("I cannot verify this. Hypothetically, it works.")
    assert report.detected
    assert report.markers == ("I cannot verify", "Hypothetically")


# ---------------------------------------------------------------------------
# parse_section_content
# ---------------------------------------------------------------------------

def test_parse_good_content():
    result = parse_section_content(LONG_PARAGRAPH + "\n\n" + LONG_PARAGRAPH, section_title="Intro")

    assert result.success
    assert result.warnings == ()
    assert result.section_title == "Intro"
    assert result.metadata.word_count == 2 * len(LONG_PARAGRAPH.split())
    assert result.metadata.paragraph_count == 2
    assert not result.needs_manual_input


def test_parse_failure_short_circuits():
    result = parse_section_content("Unable to generate content for this section.", "Methods")

    assert not result.success
    assert result.content == ""
    assert result.needs_manual_input
    assert result.error == "Could not generate content: Unable to generate"
    assert result.warnings == (result.error,)


def test_parse_hallucination_and_grounding_example():
    text = "I cannot verify the exact figure, but adoption rose by 42% in the cohort over time."
    result = parse_section_content(text)

    assert result.success
    assert result.metadata.has_hallucination_markers
    assert any(w.startswith("Potential uncertainty detected: I cannot verify") for w in result.warnings)

    grounding = validate_grounding(result.content, "Adoption rose by 40% in the cohort.")
    assert not grounding.is_grounded
    assert grounding.unmatched_numbers == ("42%",)
    assert grounding.warnings == ('Number "42%" in generated content may not be in source',)


def test_parse_short_content():
    result = parse_section_content("Too short.")
    assert not result.success
    assert SHORT_CONTENT_WARNING in result.warnings
    assert not result.needs_manual_input


def test_parse_adds_coverage_warning_for_multiple_sources():
    text = "Paper 1 reports strong effects, while later work failed to replicate the findings."
    result = parse_section_content(text, source_count=3)
    assert "Only 1 of 3 sources were referenced" in result.warnings


def test_result_record_is_stamped():
    record = parse_section_content(LONG_PARAGRAPH).to_record()
    assert record["success"] is True
    assert "generated_at" in record["metadata"]
    assert record["metadata"]["word_count"] == len(LONG_PARAGRAPH.split())


# ---------------------------------------------------------------------------
# Grounding and coverage
# ---------------------------------------------------------------------------

def test_extract_numbers():
    assert extract_numbers("In 2021, 3.5% of 120 sites") == ["2021", "3.5%", "120"]


def test_grounding_ignores_allowed_and_source_numbers():
    report = validate_grounding("We ran 3 trials over 2019 and 2020.", "Trials ran in 2019.")
    assert report.unmatched_numbers == ("2020",)


def test_grounding_reports_each_number_once():
    report = validate_grounding("77 sites, then 77 more sites.", "No numbers here.")
    assert report.unmatched_numbers == ("77",)
    assert len(report.warnings) == 1


def test_grounding_with_custom_allowed_numbers():
    report = validate_grounding("Only 5 remained.", "", allowed_numbers=[])
    assert report.unmatched_numbers == ("5",)


def test_source_coverage():
    report = check_source_coverage("Study 1 and document 3 agree; Paper 10 differs.", 3)
    assert report.referenced == (1, 3)
    assert report.missing == (2,)
    assert not report.all_sources_used
    assert report.warnings == ("Only 2 of 3 sources were referenced",)


def test_source_coverage_all_used():
    report = check_source_coverage("Paper 1 and Paper 2.", 2)
    assert report.all_sources_used
    assert report.warnings == ()
