"""
Node types of the draft content tree.

The serialized form is ProseMirror-compatible JSON, which is what the editor
on the other side of the persistence boundary reads and writes:

    {"type": "doc", "content": [
        {"type": "section", "attrs": {"id": "...", "title": "..."}, "content": [
            {"type": "heading", "attrs": {"level": 1}, "content": [{"type": "text", "text": "..."}]},
            {"type": "paragraph", "content": [{"type": "text", "text": "...", "marks": [{"type": "bold"}]}]},
            {"type": "bulletList", "content": [{"type": "listItem", "content": [{"type": "paragraph", ...}]}]},
            {"type": "table", "content": [{"type": "tableRow", "content": [{"type": "tableHeader", ...}]}]}
        ]}
    ]}
"""
from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Sequence, Tuple, Union

from app.exceptions import MalformedNodeError


class Mark(str, enum.Enum):
    BOLD = "bold"
    ITALIC = "italic"


# ---------------------------------------------------------------------------
# Runs
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RunNode:
    """A span of text with uniform formatting."""

    text: str
    marks: FrozenSet[Mark] = frozenset()

    @property
    def bold(self) -> bool:
        return Mark.BOLD in self.marks

    @property
    def italic(self) -> bool:
        return Mark.ITALIC in self.marks

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"type": "text", "text": self.text}
        if self.marks:
            # Stable order so serialized trees can be diffed
            data["marks"] = [{"type": m.value} for m in sorted(self.marks, key=lambda m: m.value)]
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RunNode":
        data = _as_dict(data, "a text node")
        if data.get("type") != "text" or not isinstance(data.get("text"), str):
            raise MalformedNodeError(f"Expected a text node, got {data!r}")
        marks = set()
        raw_marks = data.get("marks") or []
        if not isinstance(raw_marks, list):
            raise MalformedNodeError(f"Expected a marks list, got {raw_marks!r}")
        for mark in raw_marks:
            mark = _as_dict(mark, "a mark")
            try:
                marks.add(Mark(mark.get("type")))
            except ValueError:
                # Marks the exporter cannot render (links, code, ...) are dropped
                continue
        return cls(text=data["text"], marks=frozenset(marks))


def _as_dict(value: Any, what: str) -> Dict[str, Any]:
    if not isinstance(value, dict):
        raise MalformedNodeError(f"Expected {what} object, got {value!r}")
    return value


def _children(data: Dict[str, Any]) -> List[Any]:
    content = data.get("content") or []
    if not isinstance(content, list):
        raise MalformedNodeError(f"Expected a content list, got {content!r}")
    return content


def plain_text(runs: Iterable[RunNode]) -> str:
    return "".join(run.text for run in runs)


def merge_runs(runs: Iterable[RunNode]) -> Tuple[RunNode, ...]:
    """Join adjacent runs that carry the same marks; drop empty runs."""
    merged: List[RunNode] = []
    for run in runs:
        if not run.text:
            continue
        if merged and merged[-1].marks == run.marks:
            merged[-1] = RunNode(text=merged[-1].text + run.text, marks=run.marks)
        else:
            merged.append(run)
    return tuple(merged)


def _runs_to_dicts(runs: Sequence[RunNode]) -> List[Dict[str, Any]]:
    return [run.to_dict() for run in runs]


def _runs_from_dicts(data: Dict[str, Any]) -> Tuple[RunNode, ...]:
    return tuple(RunNode.from_dict(item) for item in _children(data))


def _paragraph_wrapper(runs: Sequence[RunNode]) -> Dict[str, Any]:
    return {"type": "paragraph", "content": _runs_to_dicts(runs)}


def _runs_from_wrapped(data: Dict[str, Any]) -> Tuple[RunNode, ...]:
    """Flatten the paragraphs inside a list item or table cell into one run list."""
    runs: List[RunNode] = []
    for index, child in enumerate(_children(data)):
        child = _as_dict(child, "a paragraph")
        if child.get("type") != "paragraph":
            raise MalformedNodeError(f"Expected a paragraph, got {child.get('type')!r}")
        if index:
            runs.append(RunNode(text=" "))
        runs.extend(_runs_from_dicts(child))
    return merge_runs(runs)


# ---------------------------------------------------------------------------
# Blocks
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ParagraphBlock:
    runs: Tuple[RunNode, ...]
    type: str = field(default="paragraph", init=False)

    @property
    def text(self) -> str:
        return plain_text(self.runs)

    def to_dict(self) -> Dict[str, Any]:
        return _paragraph_wrapper(self.runs)


@dataclass(frozen=True)
class HeadingBlock:
    level: int
    runs: Tuple[RunNode, ...]
    type: str = field(default="heading", init=False)

    @property
    def text(self) -> str:
        return plain_text(self.runs)

    @classmethod
    def from_text(cls, text: str, level: int = 1) -> "HeadingBlock":
        return cls(level=level, runs=(RunNode(text=text),) if text else ())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": "heading",
            "attrs": {"level": self.level},
            "content": _runs_to_dicts(self.runs),
        }


@dataclass(frozen=True)
class ListBlock:
    items: Tuple[Tuple[RunNode, ...], ...]
    ordered: bool = False
    type: str = field(default="list", init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": "orderedList" if self.ordered else "bulletList",
            "content": [
                {"type": "listItem", "content": [_paragraph_wrapper(item)]}
                for item in self.items
            ],
        }


@dataclass(frozen=True)
class TableBlock:
    headers: Tuple[str, ...]
    rows: Tuple[Tuple[str, ...], ...] = ()
    type: str = field(default="table", init=False)

    @property
    def column_count(self) -> int:
        return max([len(self.headers)] + [len(row) for row in self.rows])

    def to_dict(self) -> Dict[str, Any]:
        def _row(cells: Sequence[str], cell_type: str) -> Dict[str, Any]:
            return {
                "type": "tableRow",
                "content": [
                    {"type": cell_type, "content": [_paragraph_wrapper((RunNode(text=cell),) if cell else ())]}
                    for cell in cells
                ],
            }

        rows = []
        if self.headers:
            rows.append(_row(self.headers, "tableHeader"))
        rows.extend(_row(row, "tableCell") for row in self.rows)
        return {"type": "table", "content": rows}


BlockNode = Union[ParagraphBlock, HeadingBlock, ListBlock, TableBlock]


def block_from_dict(data: Dict[str, Any]) -> BlockNode:
    """Rebuild one block node from its serialized form."""
    node_type = data.get("type") if isinstance(data, dict) else None

    if node_type == "paragraph":
        return ParagraphBlock(runs=_runs_from_dicts(data))

    if node_type == "heading":
        level = _as_dict(data.get("attrs") or {}, "heading attrs").get("level", 1)
        if not isinstance(level, int) or level < 1:
            raise MalformedNodeError(f"Invalid heading level {level!r}")
        return HeadingBlock(level=level, runs=_runs_from_dicts(data))

    if node_type in ("bulletList", "orderedList"):
        items = []
        for item in _children(data):
            item = _as_dict(item, "a listItem")
            if item.get("type") != "listItem":
                raise MalformedNodeError(f"Expected a listItem, got {item.get('type')!r}")
            items.append(_runs_from_wrapped(item))
        return ListBlock(items=tuple(items), ordered=node_type == "orderedList")

    if node_type == "table":
        headers: Tuple[str, ...] = ()
        rows: List[Tuple[str, ...]] = []
        for index, row in enumerate(_children(data)):
            row = _as_dict(row, "a tableRow")
            if row.get("type") != "tableRow":
                raise MalformedNodeError(f"Expected a tableRow, got {row.get('type')!r}")
            cells = [_as_dict(cell, "a table cell") for cell in _children(row)]
            texts = tuple(plain_text(_runs_from_wrapped(cell)) for cell in cells)
            is_header = bool(cells) and all(cell.get("type") == "tableHeader" for cell in cells)
            if index == 0 and is_header:
                headers = texts
            else:
                rows.append(texts)
        return TableBlock(headers=headers, rows=tuple(rows))

    raise MalformedNodeError(f"Unknown block type {node_type!r}")


# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SectionNode:
    """A named document part: its heading block followed by body blocks."""

    id: str
    title: str
    blocks: Tuple[BlockNode, ...] = ()

    @property
    def heading(self) -> Optional[HeadingBlock]:
        if self.blocks and isinstance(self.blocks[0], HeadingBlock):
            return self.blocks[0]
        return None

    @property
    def body(self) -> Tuple[BlockNode, ...]:
        return self.blocks[1:] if self.heading is not None else self.blocks

    @property
    def has_content(self) -> bool:
        """True when the section holds more than just its heading."""
        return bool(self.body)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": "section",
            "attrs": {"id": self.id, "title": self.title},
            "content": [block.to_dict() for block in self.blocks],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SectionNode":
        if not isinstance(data, dict):
            raise MalformedNodeError(f"Expected a section object, got {data!r}")
        attrs = _as_dict(data.get("attrs") or {}, "section attrs")
        section_id = attrs.get("id")
        if not section_id or not isinstance(section_id, str):
            raise MalformedNodeError("Section node is missing attrs.id")
        blocks = tuple(block_from_dict(child) for child in _children(data))
        title = attrs.get("title")
        if not title:
            first = blocks[0] if blocks else None
            title = first.text if isinstance(first, HeadingBlock) else ""
        return cls(id=section_id, title=title, blocks=blocks)
