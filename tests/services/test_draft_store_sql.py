"""
Tests for SqlDraftStore.

Runs against the database given by DATABASE_URL (in-memory SQLite by
default).  Exercises the store directly and through DraftQueue.
"""

from decimal import Decimal

import pytest

from entry_engines.totals import aggregate_totals
from entry_kernel.domain.types import Document, DocumentKind, Line
from entry_kernel.exceptions import DraftNotFoundError
from entry_services.draft_queue import DraftQueue
from entry_services.draft_store import SqlDraftStore
from tests.conftest import make_id_factory


@pytest.fixture
def sql_store(session_factory):
    return SqlDraftStore(session_factory)


def _document() -> Document:
    line = Line(
        id="ln-1",
        product_id="p-pen",
        product_code="PEN01",
        name="Blue Pen",
        quantity=Decimal("3"),
        price=Decimal("10"),
        gross=Decimal("30.00"),
        total=Decimal("30.00"),
        vat_amount=Decimal("1.43"),
    )
    return Document(kind=DocumentKind.PURCHASE, lines=(line, Line.blank("ln-2")))


class TestSqlDraftStore:
    def test_unknown_key_is_empty(self, sql_store):
        assert sql_store.load("nothing") == []
        assert sql_store.revision("nothing") == 0

    def test_update_writes_and_bumps_revision(self, sql_store):
        sql_store.update("k", lambda items: items + [{"id": "a"}])
        sql_store.update("k", lambda items: items + [{"id": "b"}])
        assert sql_store.load("k") == [{"id": "a"}, {"id": "b"}]
        assert sql_store.revision("k") == 2

    def test_failed_mutator_rolls_back(self, sql_store):
        sql_store.update("k", lambda items: items + [{"id": "a"}])

        def boom(items):
            raise RuntimeError("fail")

        with pytest.raises(RuntimeError):
            sql_store.update("k", boom)
        assert sql_store.load("k") == [{"id": "a"}]
        assert sql_store.revision("k") == 1

    def test_keys_are_independent(self, sql_store):
        sql_store.update("a", lambda items: items + [{"id": 1}])
        assert sql_store.load("b") == []

    def test_uses_default_session_factory(self, db_engine):
        store = SqlDraftStore()
        store.update("k", lambda items: items + [{"id": "a"}])
        assert store.load("k") == [{"id": "a"}]


class TestDraftQueueOverSql:
    def test_hold_restore_round_trip(self, sql_store, clock):
        queue = DraftQueue(sql_store, "purchaseEntry_heldInvoices", clock, make_id_factory("d"))
        document = _document()
        draft = queue.hold(document, aggregate_totals(document))

        # a second queue object sees the same persisted draft
        other = DraftQueue(sql_store, "purchaseEntry_heldInvoices", clock, make_id_factory("x"))
        assert [d.id for d in other.list()] == [draft.id]

        restored = other.restore(draft.id)
        assert restored.document == document
        assert restored.held_at == clock.now()
        assert queue.list() == ()

    def test_discard_unknown_leaves_revision(self, sql_store, clock):
        queue = DraftQueue(sql_store, "k", clock, make_id_factory("d"))
        document = _document()
        queue.hold(document, aggregate_totals(document))
        with pytest.raises(DraftNotFoundError):
            queue.discard("missing")
        assert sql_store.revision("k") == 1
        assert len(queue.list()) == 1
