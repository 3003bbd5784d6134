"""ORM models."""

from entry_kernel.models.draft_queue import HeldDraftQueueModel

__all__ = ["HeldDraftQueueModel"]
