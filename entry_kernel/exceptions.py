"""
Typed exception hierarchy for the entry engine.

Every error has a typed class, a machine-readable ``code`` class attribute,
and structured attributes so callers catch by type and never parse
messages.

    EntryEngineError (base)
    |
    +-- DocumentValidationError
    |   +-- PartyRequiredError
    |   +-- MultiplePlaceholderRowsError
    |   +-- NoValidLinesError
    |   +-- SourceDocumentRequiredError
    |
    +-- HoldError
    |   +-- SavedDocumentHoldError
    |   +-- EmptyHoldError
    |   +-- DraftNotFoundError
    |
    +-- LineError
    |   +-- LineNotFoundError
    |   +-- UnitNotFoundError
    |
    +-- SaveInProgressError
    |
    +-- CollaboratorError
    |   +-- DocumentStoreError
    |   |   +-- DocumentNotFoundError
    |
    +-- ProfileError
        +-- UnknownDocumentKindError
        +-- InvalidProfileError

Row commit failures are not exceptions: the row state machine returns a
``RowValidationFailure`` naming the failed check, the field that should
receive focus, and the message to show.

Messages on document-level errors are user-facing and are shown verbatim
by the entry screen.
"""

from __future__ import annotations

from dataclasses import dataclass


class EntryEngineError(Exception):
    """
    Base exception for all entry engine errors.

    All subclasses carry a ``code`` class attribute.
    """

    code: str = "ENTRY_ENGINE_ERROR"


# Document-level validation (save time)


class DocumentValidationError(EntryEngineError):
    """The document as a whole cannot be saved."""

    code: str = "DOCUMENT_VALIDATION_ERROR"


class PartyRequiredError(DocumentValidationError):
    """No supplier / cash account selected."""

    code: str = "PARTY_REQUIRED"

    def __init__(self, document_kind: str):
        self.document_kind = document_kind
        super().__init__("Please select a Cash/Supplier Account before saving")


class MultiplePlaceholderRowsError(DocumentValidationError):
    """More than one row lacks a product code."""

    code: str = "MULTIPLE_PLACEHOLDER_ROWS"

    def __init__(self, placeholder_count: int):
        self.placeholder_count = placeholder_count
        super().__init__(
            "Enter data correctly. Multiple rows without product code found."
        )


class NoValidLinesError(DocumentValidationError):
    """No row carries a product code."""

    code: str = "NO_VALID_LINES"

    def __init__(self) -> None:
        super().__init__("At least one product with Item Code is required")


class SourceDocumentRequiredError(DocumentValidationError):
    """A by-reference return names no source invoice."""

    code: str = "SOURCE_DOCUMENT_REQUIRED"

    def __init__(self) -> None:
        super().__init__(
            "By Ref: please select items from a sales invoice first "
            "(Enter Sales Invoice No)."
        )


# Hold / restore


class HoldError(EntryEngineError):
    """Base for draft queue errors."""

    code: str = "HOLD_ERROR"


class SavedDocumentHoldError(HoldError):
    """A document that already has a stored id cannot be held."""

    code: str = "SAVED_DOCUMENT_HOLD"

    def __init__(self, document_id: str, noun: str = "document"):
        self.document_id = document_id
        super().__init__(f"Cannot hold a saved {noun}")


class EmptyHoldError(HoldError):
    """Nothing filled in; holding would store an empty draft."""

    code: str = "EMPTY_HOLD"

    def __init__(self) -> None:
        super().__init__("Nothing to hold - add at least one product first")


class DraftNotFoundError(HoldError):
    code: str = "DRAFT_NOT_FOUND"

    def __init__(self, draft_id: str):
        self.draft_id = draft_id
        super().__init__(f"Held draft not found: {draft_id}")


# Line editing


class LineError(EntryEngineError):
    code: str = "LINE_ERROR"


class LineNotFoundError(LineError):
    """No row with the given id in the working document."""

    code: str = "LINE_NOT_FOUND"

    def __init__(self, line_id: str):
        self.line_id = line_id
        super().__init__(f"Line not found: {line_id}")


class UnitNotFoundError(LineError):
    """The requested unit is not among the row's unit options."""

    code: str = "UNIT_NOT_FOUND"

    def __init__(self, line_id: str, unit_id: str):
        self.line_id = line_id
        self.unit_id = unit_id
        super().__init__(f"Unit {unit_id} not available on line {line_id}")


class SaveInProgressError(EntryEngineError):
    """A second save was requested while one is still in flight."""

    code: str = "SAVE_IN_PROGRESS"

    def __init__(self) -> None:
        super().__init__("A save is already in progress")


# Collaborators


class CollaboratorError(EntryEngineError):
    """Base for failures raised by external collaborators."""

    code: str = "COLLABORATOR_ERROR"


class DocumentStoreError(CollaboratorError):
    """
    The document store rejected or failed an operation.

    The message is the store's own, surfaced to the user unchanged.
    """

    code: str = "DOCUMENT_STORE_ERROR"

    def __init__(self, message: str, operation: str | None = None):
        self.operation = operation
        super().__init__(message)


class DocumentNotFoundError(DocumentStoreError):
    code: str = "DOCUMENT_NOT_FOUND"

    def __init__(self, document_id: str):
        self.document_id = document_id
        super().__init__(f"Document not found: {document_id}", operation="get_by_id")


# Configuration


class ProfileError(EntryEngineError):
    code: str = "PROFILE_ERROR"


class UnknownDocumentKindError(ProfileError):
    code: str = "UNKNOWN_DOCUMENT_KIND"

    def __init__(self, kind: str):
        self.kind = kind
        super().__init__(f"No entry profile for document kind: {kind}")


class InvalidProfileError(ProfileError):
    """A profile file is missing fields or has invalid values."""

    code: str = "INVALID_PROFILE"

    def __init__(self, source: str, errors: list[str]):
        self.source = source
        self.errors = errors
        super().__init__(f"Invalid entry profile {source}: {'; '.join(errors)}")


# ---------------------------------------------------------------------------
# Row validation outcome (returned, not raised)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RowValidationFailure:
    """
    Why a row could not be committed.

    ``check`` is the name of the failed check, ``focus_field`` the field
    that should receive focus.
    """

    check: str
    focus_field: str
    message: str
