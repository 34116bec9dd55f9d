"""
Content tree of a document in progress, plus per-section provenance.

The tree (sections -> blocks -> runs) and the provenance map are kept apart:
provenance is a side-map keyed by section id, so the tree can be serialized
and diffed on its own and provenance can be rewritten without touching tree
structure.

Mutations
---------
DraftDocument.upsert_section(...) : generated content for one section;
                                    replaces that section's blocks in one
                                    assignment or appends a new section.
DraftDocument.replace_whole(tree) : wholesale replacement from an editor;
                                    every provenance entry is stamped as
                                    manually edited.
DraftDocument.list_sections()     : navigation / progress summary.

Sections stay in upsert order.  Nothing here re-sorts by template order;
callers that want template order drive upserts in that order (the exporter
walks the template itself).

A DraftDocument is not safe for concurrent mutation.  Callers sequence
upserts per draft (see app.services.draft_locks).
"""
from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Sequence, Set, Tuple, Union

from app.exceptions import DuplicateSectionError, MalformedNodeError, TreeConsistencyError, UnknownSectionError
from app.services.content_nodes import BlockNode, HeadingBlock, SectionNode
from app.services.content_validator import GeneratedSectionResult
from app.services.references import ReferenceRecord
from app.services.renderer import text_to_blocks
from app.utils.helpers import utc_now

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Tree
# ---------------------------------------------------------------------------

class ContentTree:
    """Ordered sections of one document; section ids are unique."""

    def __init__(self, sections: Iterable[SectionNode] = ()) -> None:
        self._sections: List[SectionNode] = list(sections)
        ids = [s.id for s in self._sections]
        duplicates = sorted({i for i in ids if ids.count(i) > 1})
        if duplicates:
            raise DuplicateSectionError(f"Duplicate section ids: {', '.join(duplicates)}")
        if any(not i for i in ids):
            raise TreeConsistencyError("Section ids must be non-empty")

    @property
    def sections(self) -> Tuple[SectionNode, ...]:
        return tuple(self._sections)

    def __len__(self) -> int:
        return len(self._sections)

    def __iter__(self):
        return iter(self._sections)

    def index_of(self, section_id: str) -> Optional[int]:
        for index, section in enumerate(self._sections):
            if section.id == section_id:
                return index
        return None

    def get(self, section_id: str) -> Optional[SectionNode]:
        index = self.index_of(section_id)
        return self._sections[index] if index is not None else None

    def put(self, section: SectionNode) -> bool:
        """
        Replace the section with the same id in place, or append it.

        Returns True when an existing section was replaced.
        """
        index = self.index_of(section.id)
        if index is None:
            self._sections.append(section)
            return False
        self._sections[index] = section
        return True

    def to_dict(self) -> Dict[str, Any]:
        return {"type": "doc", "content": [s.to_dict() for s in self._sections]}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ContentTree":
        """
        Rebuild a tree from its ProseMirror-style record.

        Top-level nodes that are not sections (loose paragraphs an editor may
        leave behind) are ignored.
        """
        if not data:
            return cls()
        if not isinstance(data, dict) or data.get("type", "doc") != "doc":
            raise MalformedNodeError("Tree record must be a 'doc' node")
        content = data.get("content") or []
        if not isinstance(content, list):
            raise MalformedNodeError("Tree record content must be a list")
        sections = []
        for node in content:
            if not isinstance(node, dict):
                raise MalformedNodeError(f"Expected a node object, got {node!r}")
            attrs = node.get("attrs")
            if node.get("type") == "section" or (isinstance(attrs, dict) and attrs.get("id")):
                sections.append(SectionNode.from_dict(node))
            else:
                logger.debug("Skipping top-level %r node outside any section", node.get("type"))
        return cls(sections)


# ---------------------------------------------------------------------------
# Provenance
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SourceRef:
    """Which parts of which source document fed a generated section."""

    document_id: str
    sections: Tuple[str, ...] = ()


@dataclass
class SectionProvenance:
    source_document_ids: Set[str] = field(default_factory=set)
    source_sections: Set[str] = field(default_factory=set)
    ai_generated: bool = False
    manually_edited: bool = False
    warnings: List[str] = field(default_factory=list)
    last_modified_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source_document_ids": sorted(self.source_document_ids),
            "source_sections": sorted(self.source_sections),
            "ai_generated": self.ai_generated,
            "manually_edited": self.manually_edited,
            "warnings": list(self.warnings),
            "last_modified_at": self.last_modified_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SectionProvenance":
        stamp = data.get("last_modified_at")
        return cls(
            source_document_ids=set(data.get("source_document_ids") or []),
            source_sections=set(data.get("source_sections") or []),
            ai_generated=bool(data.get("ai_generated", False)),
            manually_edited=bool(data.get("manually_edited", False)),
            warnings=list(data.get("warnings") or []),
            last_modified_at=datetime.fromisoformat(stamp) if stamp else utc_now(),
        )


@dataclass(frozen=True)
class SectionSummary:
    id: str
    title: str
    has_content: bool
    warnings: Tuple[str, ...] = ()


# ---------------------------------------------------------------------------
# Draft document
# ---------------------------------------------------------------------------

class DraftDocument:
    """
    The authoritative in-progress document: tree, provenance and references.

    Args:
        tree:              Current content tree (owned exclusively).
        provenance:        Section id -> SectionProvenance.
        known_section_ids: Section ids of the bound template.  When given,
                           upserting any other id raises UnknownSectionError.
        references:        Bibliography entries for the export.
    """

    def __init__(
        self,
        tree: Optional[ContentTree] = None,
        provenance: Optional[Dict[str, SectionProvenance]] = None,
        known_section_ids: Optional[Iterable[str]] = None,
        references: Sequence[ReferenceRecord] = (),
    ) -> None:
        self.tree = tree if tree is not None else ContentTree()
        self.provenance: Dict[str, SectionProvenance] = dict(provenance or {})
        self.known_section_ids: Optional[FrozenSet[str]] = (
            frozenset(known_section_ids) if known_section_ids is not None else None
        )
        self.references: List[ReferenceRecord] = list(references)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def upsert_section(
        self,
        section_id: str,
        title: str,
        result: GeneratedSectionResult,
        source_refs: Iterable[SourceRef] = (),
        level: int = 1,
        now: Optional[datetime] = None,
    ) -> SectionNode:
        """
        Insert or replace one section from a generation result.

        The section's blocks are the heading followed by the blocks parsed
        from ``result.content``.  The whole block list is built first and
        swapped in with a single assignment, so a partially updated section
        is never observable.  The section's provenance entry is replaced.

        Raises:
            TreeConsistencyError: empty id or invalid level.
            UnknownSectionError:  id not in the bound template.
        """
        self._check_section_id(section_id)
        if level < 1:
            raise TreeConsistencyError(f"Heading level must be >= 1, got {level}")

        blocks: List[BlockNode] = [HeadingBlock.from_text(title, level=level)]
        blocks.extend(text_to_blocks(result.content))
        section = SectionNode(id=section_id, title=title, blocks=tuple(blocks))

        replaced = self.tree.put(section)

        refs = list(source_refs)
        warnings = list(result.warnings)
        if result.error and result.error not in warnings:
            warnings.append(result.error)
        self.provenance[section_id] = SectionProvenance(
            source_document_ids={r.document_id for r in refs},
            source_sections={name for r in refs for name in r.sections},
            ai_generated=True,
            manually_edited=False,
            warnings=warnings,
            last_modified_at=now or utc_now(),
        )

        logger.info(
            "%s section %s (%d blocks, %d warnings)",
            "Replaced" if replaced else "Added",
            section_id,
            len(section.blocks),
            len(warnings),
        )
        return section

    def replace_whole(
        self,
        new_tree: Union[ContentTree, Dict[str, Any]],
        now: Optional[datetime] = None,
    ) -> None:
        """
        Replace the entire tree with an externally edited one.

        Every existing provenance entry is marked ``manually_edited`` and
        re-stamped, whether or not that section's nodes changed.
        ``ai_generated`` is left as it was.
        """
        if isinstance(new_tree, ContentTree):
            tree = ContentTree(copy.deepcopy(list(new_tree.sections)))
        else:
            tree = ContentTree.from_dict(new_tree)

        stamp = now or utc_now()
        self.tree = tree
        for entry in self.provenance.values():
            entry.manually_edited = True
            entry.last_modified_at = stamp

        logger.info(
            "Replaced draft tree (%d sections); %d provenance entries marked edited",
            len(tree),
            len(self.provenance),
        )

    def set_references(self, references: Iterable[ReferenceRecord]) -> None:
        self.references = list(references)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def list_sections(self) -> List[SectionSummary]:
        """Sections in tree order with their content flag and current warnings."""
        summaries = []
        for section in self.tree:
            entry = self.provenance.get(section.id)
            summaries.append(
                SectionSummary(
                    id=section.id,
                    title=section.title or "Untitled",
                    has_content=section.has_content,
                    warnings=tuple(entry.warnings) if entry else (),
                )
            )
        return summaries

    def get_section(self, section_id: str) -> Optional[SectionNode]:
        return self.tree.get(section_id)

    # ------------------------------------------------------------------
    # Persistence records
    # ------------------------------------------------------------------

    def to_record(self) -> Dict[str, Any]:
        return {
            "content": self.tree.to_dict(),
            "section_sources": {k: v.to_dict() for k, v in self.provenance.items()},
            "references": [r.to_dict() for r in self.references],
        }

    @classmethod
    def from_record(
        cls,
        content: Optional[Dict[str, Any]],
        section_sources: Optional[Dict[str, Any]] = None,
        references: Optional[Sequence[Dict[str, Any]]] = None,
        known_section_ids: Optional[Iterable[str]] = None,
    ) -> "DraftDocument":
        return cls(
            tree=ContentTree.from_dict(content),
            provenance={
                key: SectionProvenance.from_dict(value)
                for key, value in (section_sources or {}).items()
            },
            known_section_ids=known_section_ids,
            references=[ReferenceRecord.from_dict(r) for r in references or []],
        )

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _check_section_id(self, section_id: str) -> None:
        if not section_id or not isinstance(section_id, str):
            raise TreeConsistencyError("Section id must be a non-empty string")
        if self.known_section_ids is not None and section_id not in self.known_section_ids:
            raise UnknownSectionError(section_id)
