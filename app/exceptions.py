"""Custom exceptions for Draftwright."""


class DraftwrightError(Exception):
    """Base exception for Draftwright operations."""


class TreeConsistencyError(DraftwrightError):
    """A content tree mutation would break the tree's invariants."""


class UnknownSectionError(TreeConsistencyError):
    """Section id is not part of the template bound to the draft."""

    def __init__(self, section_id: str) -> None:
        super().__init__(f"Section {section_id!r} is not part of the draft's template")
        self.section_id = section_id


class DuplicateSectionError(TreeConsistencyError):
    """The same section id appears more than once in a tree."""


class MalformedNodeError(TreeConsistencyError):
    """A serialized node is missing required fields or has an unknown type."""


class TemplateValidationError(DraftwrightError):
    """Template could not be used to drive a draft."""

    def __init__(self, errors) -> None:
        super().__init__(f"Invalid template: {', '.join(errors)}")
        self.errors = list(errors)


class NotFoundError(DraftwrightError):
    """A persisted record (template, draft) does not exist."""

    def __init__(self, kind: str, record_id: str) -> None:
        super().__init__(f"{kind} {record_id} not found.")
        self.kind = kind
        self.record_id = record_id
