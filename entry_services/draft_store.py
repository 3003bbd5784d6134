"""
SqlDraftStore -- SQLAlchemy-backed ``DraftStore``.

Responsibility:
    Persists each held-draft queue as one row (JSON array plus revision
    counter) so the queue survives process restarts and is shared by every
    window working against the same database.

Architecture position:
    Services -- persistence adapter for ``DraftQueue``.  Uses the kernel's
    ``HeldDraftQueueModel`` and ``session_scope``.

Invariants enforced:
    - ``update`` locks the queue row (SELECT ... FOR UPDATE), applies the
      mutator to the whole collection and writes it back in the same
      transaction; concurrent updates serialise instead of losing writes.
    - ``revision`` increases by exactly one per successful update.
    - A mutator that raises rolls the transaction back; the stored
      collection is unchanged.

Failure modes:
    - ``json.JSONDecodeError`` on a corrupted payload propagates; repairing
      local storage is the surrounding application's job.
"""

from __future__ import annotations

import json
from collections.abc import Callable

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from entry_kernel.db.engine import session_scope
from entry_kernel.logging_config import get_logger
from entry_kernel.models.draft_queue import HeldDraftQueueModel
from entry_services.draft_queue import DraftRecords

logger = get_logger("services.draft_store")


class SqlDraftStore:
    """``DraftStore`` over the ``held_draft_queues`` table."""

    def __init__(self, session_factory: sessionmaker[Session] | None = None):
        self._session_factory = session_factory

    def load(self, key: str) -> DraftRecords:
        with session_scope(self._session_factory) as session:
            row = session.execute(
                select(HeldDraftQueueModel).where(HeldDraftQueueModel.queue_key == key)
            ).scalar_one_or_none()
            return json.loads(row.payload) if row is not None else []

    def revision(self, key: str) -> int:
        """Number of successful updates applied to ``key``."""
        with session_scope(self._session_factory) as session:
            row = session.execute(
                select(HeldDraftQueueModel).where(HeldDraftQueueModel.queue_key == key)
            ).scalar_one_or_none()
            return row.revision if row is not None else 0

    def _locked_row(self, session: Session, key: str) -> HeldDraftQueueModel:
        row = session.execute(
            select(HeldDraftQueueModel)
            .where(HeldDraftQueueModel.queue_key == key)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if row is not None:
            return row

        # First write for this key; another writer may create it concurrently.
        savepoint = session.begin_nested()
        try:
            row = HeldDraftQueueModel(queue_key=key, payload="[]", revision=0)
            session.add(row)
            session.flush()
            savepoint.commit()
            return row
        except IntegrityError:
            savepoint.rollback()
            logger.debug("draft_queue_create_race_retry", extra={"queue_key": key})
            return session.execute(
                select(HeldDraftQueueModel)
                .where(HeldDraftQueueModel.queue_key == key)
                .with_for_update()
                .execution_options(populate_existing=True)
            ).scalar_one()

    def update(
        self, key: str, mutator: Callable[[DraftRecords], DraftRecords]
    ) -> DraftRecords:
        with session_scope(self._session_factory) as session:
            row = self._locked_row(session, key)
            updated = mutator(json.loads(row.payload))
            row.payload = json.dumps(updated)
            row.revision += 1
            session.flush()
            logger.debug(
                "draft_queue_written",
                extra={"queue_key": key, "revision": row.revision, "size": len(updated)},
            )
            return updated
