"""Tests for draft creation, section upserts, edits and references."""
import asyncio
import warnings

import pytest
from httpx import AsyncClient

from tests.test_templates import create_template

INTRO_TEXT = (
    "Here is the introduction:\n\n"
    "Remote work adoption grew steadily, and Paper 1 links it to productivity gains "
    "reported by 42% of firms.\n\n"
    "- faster hiring\n- lower overheads"
)
SOURCE_TEXT = "Paper 1: productivity gains were reported by 40% of firms."


async def _create_draft(client: AsyncClient, template_id: str = None, **extra) -> dict:
    payload = {"template_id": template_id, **extra}
    resp = await client.post("/api/drafts/", json=payload)
    assert resp.status_code == 201
    return resp.json()


@pytest.mark.asyncio
async def test_create_draft_for_template(client: AsyncClient):
    template = await create_template(client)
    draft = await _create_draft(client, template["id"])

    assert draft["template_id"] == template["id"]
    assert draft["title"] == "report"
    assert draft["version"] == 1
    assert draft["content"] == {"type": "doc", "content": []}


@pytest.mark.asyncio
async def test_create_draft_for_missing_template(client: AsyncClient):
    resp = await client.post("/api/drafts/", json={"template_id": "nope"})
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_get_missing_draft(client: AsyncClient):
    resp = await client.get("/api/drafts/nope")
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_upsert_section_screens_and_stores(client: AsyncClient):
    template = await create_template(client)
    draft = await _create_draft(client, template["id"])
    intro_id = template["structure"][0]["id"]

    resp = await client.put(
        f"/api/drafts/{draft['id']}/sections/{intro_id}",
        json={
            "raw_text": INTRO_TEXT,
            "source_refs": [{"document_id": "doc-1", "sections": ["Results"]}],
            "source_text": SOURCE_TEXT,
        },
    )
    assert resp.status_code == 200
    data = resp.json()
    assert data["version"] == 2
    assert data["result"]["success"] is True
    assert not data["result"]["content"].startswith("Here is")
    assert data["grounding"]["unmatched_numbers"] == ["42%"]

    stored = (await client.get(f"/api/drafts/{draft['id']}")).json()
    section = stored["content"]["content"][0]
    assert section["attrs"] == {"id": intro_id, "title": "Introduction"}
    assert [c["type"] for c in section["content"]] == ["heading", "paragraph", "bulletList"]
    provenance = stored["section_sources"][intro_id]
    assert provenance["source_document_ids"] == ["doc-1"]
    assert provenance["ai_generated"] is True
    assert 'Number "42%" in generated content may not be in source' in provenance["warnings"]


@pytest.mark.asyncio
async def test_upsert_uses_template_heading_level(client: AsyncClient):
    template = await create_template(client)
    draft = await _create_draft(client, template["id"])
    background = template["structure"][1]

    await client.put(
        f"/api/drafts/{draft['id']}/sections/{background['id']}",
        json={"raw_text": "Background material covering the prior studies in enough depth."},
    )
    stored = (await client.get(f"/api/drafts/{draft['id']}")).json()
    heading = stored["content"]["content"][0]["content"][0]
    assert heading["attrs"]["level"] == 2


@pytest.mark.asyncio
async def test_upsert_unknown_section_is_404(client: AsyncClient):
    template = await create_template(client)
    draft = await _create_draft(client, template["id"])
    resp = await client.put(
        f"/api/drafts/{draft['id']}/sections/not-in-template",
        json={"raw_text": "Anything at all."},
    )
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_upsert_failed_generation(client: AsyncClient):
    template = await create_template(client)
    draft = await _create_draft(client, template["id"])
    methods_id = template["structure"][2]["id"]

    resp = await client.put(
        f"/api/drafts/{draft['id']}/sections/{methods_id}",
        json={"raw_text": "Insufficient source content to describe the methods."},
    )
    result = resp.json()["result"]
    assert result["success"] is False
    assert result["needs_manual_input"] is True

    sections = (await client.get(f"/api/drafts/{draft['id']}/sections")).json()["sections"]
    assert sections == [
        {
            "id": methods_id,
            "title": "Methods",
            "has_content": False,
            "warnings": [result["error"]],
        }
    ]


@pytest.mark.asyncio
async def test_concurrent_upserts_to_one_section(client: AsyncClient):
    draft = await _create_draft(client)
    texts = [f"Version {i} of the section body, long enough to pass every check." for i in range(5)]

    responses = await asyncio.gather(
        *[
            client.put(f"/api/drafts/{draft['id']}/sections/s1", json={"raw_text": t, "title": "S"})
            for t in texts
        ]
    )
    assert all(r.status_code == 200 for r in responses)
    assert sorted(r.json()["version"] for r in responses) == [2, 3, 4, 5, 6]

    stored = (await client.get(f"/api/drafts/{draft['id']}")).json()
    assert len(stored["content"]["content"]) == 1
    assert stored["version"] == 6


@pytest.mark.asyncio
async def test_replace_content_marks_sections_edited(client: AsyncClient):
    draft = await _create_draft(client)
    await client.put(
        f"/api/drafts/{draft['id']}/sections/s1",
        json={"raw_text": "Generated text that is comfortably longer than fifty characters.", "title": "S1"},
    )
    stored = (await client.get(f"/api/drafts/{draft['id']}")).json()
    edited = stored["content"]
    edited["content"][0]["content"][1]["content"][0]["text"] = "Rewritten by hand."

    resp = await client.patch(f"/api/drafts/{draft['id']}", json={"content": edited})
    assert resp.status_code == 200
    data = resp.json()
    assert data["section_sources"]["s1"]["manually_edited"] is True

    text = (await client.get(f"/api/drafts/{draft['id']}/sections/s1/text")).json()
    assert text["text"] == "Rewritten by hand."


@pytest.mark.asyncio
async def test_replace_content_rejects_malformed_tree(client: AsyncClient):
    draft = await _create_draft(client)
    bad = {"type": "doc", "content": [{"type": "section", "attrs": {}, "content": []}]}
    resp = await client.patch(f"/api/drafts/{draft['id']}", json={"content": bad})
    assert resp.status_code == 422


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "block",
    [
        {"type": "bulletList", "content": ["oops"]},
        {"type": "paragraph", "content": [{"type": "text", "text": "x", "marks": ["bold"]}]},
    ],
)
async def test_replace_content_rejects_malformed_nested_nodes(client: AsyncClient, block):
    draft = await _create_draft(client)
    bad = {"type": "doc", "content": [{"type": "section", "attrs": {"id": "s1"}, "content": [block]}]}
    resp = await client.patch(f"/api/drafts/{draft['id']}", json={"content": bad})
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_malformed_tree_rejection_emits_no_deprecation_warning(client: AsyncClient):
    draft = await _create_draft(client)
    bad = {"type": "doc", "content": [{"type": "section", "attrs": {}, "content": []}]}
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        resp = await client.patch(f"/api/drafts/{draft['id']}", json={"content": bad})
    assert resp.status_code == 422
    assert not [w for w in caught if "HTTP_422" in str(w.message)]


@pytest.mark.asyncio
async def test_section_text_for_missing_section(client: AsyncClient):
    draft = await _create_draft(client)
    resp = await client.get(f"/api/drafts/{draft['id']}/sections/none/text")
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_references_round_trip(client: AsyncClient):
    draft = await _create_draft(client)
    resp = await client.put(
        f"/api/drafts/{draft['id']}/references",
        json={"references": [{"authors": ["Ng, A."], "title": "Deep Work", "year": 2019}]},
    )
    assert resp.status_code == 200
    assert resp.json()["references"][0]["raw_text"] == "Ng, A. (2019). Deep Work."

    resp = await client.get(f"/api/drafts/{draft['id']}/references")
    assert resp.json()["references"][0]["title"] == "Deep Work"
