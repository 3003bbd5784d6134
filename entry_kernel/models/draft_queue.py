"""
Module: entry_kernel.models.draft_queue
Responsibility: One row per held-draft queue.  The queue is stored as a
    JSON array so that a hold or restore rewrites it atomically.
Architecture position: Kernel > Models.  Read and written only by
    ``entry_services.draft_store.SqlDraftStore``.

Invariants enforced:
    - ``queue_key`` is unique: one queue per document kind.
    - ``revision`` increases by one on every write.
"""

from datetime import datetime

from sqlalchemy import DateTime, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from entry_kernel.db.base import Base


class HeldDraftQueueModel(Base):
    __tablename__ = "held_draft_queues"

    queue_key: Mapped[str] = mapped_column(String(100), primary_key=True)
    payload: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    revision: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<HeldDraftQueueModel {self.queue_key} rev={self.revision}>"
