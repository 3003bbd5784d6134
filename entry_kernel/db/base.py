"""
Module: entry_kernel.db.base
Responsibility: Declarative base for the SQLAlchemy models that back
    persistent collaborators (today: the held-draft queue).
Architecture position: Kernel > DB.  Lowest-level import target for
    models; MUST NOT import from models/, engines or services.

Invariants enforced:
    - datetime maps to DateTime(timezone=True).
"""

from datetime import datetime
from typing import ClassVar

from sqlalchemy import DateTime
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Declarative base for all entry engine models."""

    type_annotation_map: ClassVar[dict] = {
        datetime: DateTime(timezone=True),
    }
