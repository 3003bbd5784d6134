"""
Pytest fixtures for the entry engine test suite.

Provides:
- Structured logging capture
- Deterministic clock and id factory
- Document profiles for every kind
- In-memory async fakes for every collaborator
- A SQLite-backed SQLAlchemy engine for the SQL draft store
- ``make_session`` to build a wired ``EntrySession``

Environment Variables:
- DATABASE_URL: SQLAlchemy URL for the draft store tests.  Defaults to an
  in-memory SQLite database.
"""

import asyncio
import itertools
import json
import logging
import os
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from io import StringIO
from typing import Any

import pytest

from entry_config import clear_profile_cache, get_profile
from entry_engines.units import product_from_record
from entry_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from entry_kernel.domain.clock import DeterministicClock
from entry_kernel.domain.types import (
    DocumentKind,
    DocumentSummary,
    ReferenceInvoice,
    SavePayload,
    SaveReceipt,
    StockBatch,
    StoredBatch,
    StoredDocument,
)
from entry_kernel.exceptions import DocumentNotFoundError, DocumentStoreError
from entry_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from entry_services.draft_queue import InMemoryDraftStore
from entry_services.entry_session import EntrySession


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture entry_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, session):
            ...
            logs = captured_logs()
            assert any(r["message"] == "row_committed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("entry_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


def messages(records: list[dict]) -> list[str]:
    return [r["message"] for r in records]


# =============================================================================
# Time, ids, profiles
# =============================================================================


@pytest.fixture
def clock() -> DeterministicClock:
    return DeterministicClock(datetime(2025, 3, 14, 9, 30, tzinfo=timezone.utc))


def make_id_factory(prefix: str = "id"):
    counter = itertools.count(1)
    return lambda: f"{prefix}-{next(counter)}"


@pytest.fixture
def id_factory():
    return make_id_factory()


@pytest.fixture(autouse=True)
def _fresh_profiles():
    clear_profile_cache()
    yield
    clear_profile_cache()


@pytest.fixture
def purchase_profile():
    return get_profile(DocumentKind.PURCHASE)


@pytest.fixture
def purchase_order_profile():
    return get_profile(DocumentKind.PURCHASE_ORDER)


@pytest.fixture
def sales_return_profile():
    return get_profile(DocumentKind.SALES_RETURN)


# =============================================================================
# Catalog data (catalog wire shape)
# =============================================================================

PEN = {
    "_id": "p-pen",
    "name": "Blue Pen",
    "code": "PEN01",
    "barcode": "8900001",
    "purchasePrice": 10,
    "retailPrice": 12,
    "wholesalePrice": 11,
    "unitOfMeasureId": {"_id": "u-pcs", "shortCode": "Pcs"},
    "lastVendor": "Stationery Co",
}

PHONE = {
    "_id": "p-phone",
    "name": "Phone X",
    "code": "PHX",
    "imei": "IMEI-111",
    "purchasePrice": 500,
    "retailPrice": 600,
    "wholesalePrice": 580,
    "unitOfMeasureId": {"_id": "u-pcs", "shortCode": "Pcs"},
}

SOAP = {
    "_id": "p-soap",
    "name": "Soap Bar",
    "code": "SOAP",
    "imei": "SOAP-PCS",
    "purchasePrice": 2,
    "retailPrice": 3,
    "wholesalePrice": "2.5",
    "allowBatches": False,
    "unitOfMeasureId": {"_id": "u-pcs", "shortCode": "Pcs"},
    "multiUnits": [
        {
            "multiUnitId": "mu-box",
            "unitId": {"_id": "u-box", "shortCode": "Box"},
            "imei": "SOAP-BOX",
            "conversion": 12,
            "retail": 30,
            "wholesale": 27,
            "specialPrice1": 29,
        }
    ],
}

CATALOG = (PEN, PHONE, SOAP)


# =============================================================================
# Collaborator fakes
# =============================================================================


class _Gated:
    """
    Base for fakes whose calls can be held open.

    ``hold(name)`` makes the next calls to ``name`` wait until
    ``release(name)``; ``fail(name)`` makes them raise.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[str, tuple]] = []
        self._gates: dict[str, asyncio.Event] = {}
        self._failures: dict[str, Exception] = {}

    def hold(self, name: str) -> None:
        self._gates[name] = asyncio.Event()

    def release(self, name: str) -> None:
        self._gates.pop(name).set()

    def fail(self, name: str, exc: Exception | None = None) -> None:
        self._failures[name] = exc or ConnectionError(f"{name} unavailable")

    async def _enter(self, name: str, *args: Any) -> None:
        self.calls.append((name, args))
        gate = self._gates.get(name)
        if gate is not None:
            await gate.wait()
        exc = self._failures.get(name)
        if exc is not None:
            raise exc

    def called(self, name: str) -> int:
        return sum(1 for n, _ in self.calls if n == name)


class FakeCatalog(_Gated):
    def __init__(self, records=CATALOG, stock_batches: dict | None = None):
        super().__init__()
        self.records = list(records)
        self.stock_batches = stock_batches or {}

    def _products(self):
        return [product_from_record(r) for r in self.records]

    async def list_products(self):
        await self._enter("list_products")
        return list(self.records)

    async def get_by_id(self, product_id):
        await self._enter("get_by_id", product_id)
        return next((r for r in self.records if r["_id"] == product_id), None)

    async def find_by_serial(self, serial):
        await self._enter("find_by_serial", serial)
        for record, product in zip(self.records, self._products()):
            if serial in product.serials:
                return record
        return None

    async def find_by_barcode(self, barcode):
        await self._enter("find_by_barcode", barcode)
        return next((r for r in self.records if r.get("barcode") == barcode), None)

    async def search(self, text):
        await self._enter("search", text)
        wanted = text.lower()
        return [r for r in self.records if wanted in r["name"].lower()]

    async def list_stock_batches(self, product_id):
        await self._enter("list_stock_batches", product_id)
        return list(self.stock_batches.get(product_id, ()))


class FakeStock(_Gated):
    def __init__(self, levels: dict | None = None):
        super().__init__()
        self.levels = levels or {}

    async def get_stock(self, product_id):
        await self._enter("get_stock", product_id)
        return self.levels.get(product_id, Decimal("0"))


class FakeBatchNumbers(_Gated):
    def __init__(self):
        super().__init__()
        self._seq = itertools.count(1)

    async def next_batch_number(self):
        await self._enter("next_batch_number")
        return f"B{next(self._seq):04d}"


NUMBER_PREFIXES = {
    DocumentKind.PURCHASE: "PE",
    DocumentKind.PURCHASE_ORDER: "PO",
    DocumentKind.SALES_RETURN: "SR",
}


class FakeDocumentNumbers(_Gated):
    def __init__(self, prefix: str = "PE"):
        super().__init__()
        self.prefix = prefix
        self._seq = itertools.count(1)

    async def next_document_number(self, kind):
        await self._enter("next_document_number", kind)
        return f"{self.prefix}-{next(self._seq):04d}"


def stored_from_payload(document_id: str, payload: SavePayload) -> StoredDocument:
    doc = payload.document
    return StoredDocument(
        document_id=document_id,
        document_no=doc.document_no,
        batches=tuple(
            StoredBatch(
                product_id=b.product_id,
                product_code=b.product_code,
                product_name=b.product_name,
                purchase_price=b.purchase_price,
                quantity=b.total_quantity,
                disc_amount=b.disc_amount,
                retail=b.retail,
                wholesale=b.wholesale,
                special_price1=b.special_price1,
                special_price2=b.special_price2,
                expiry_date=b.expiry_date,
                batch_number=b.batch_number,
                multi_unit_id=b.multi_unit_id,
            )
            for b in payload.batches
        ),
        document_date=doc.document_date,
        vat_type=doc.vat_type,
        tax_mode=doc.tax_mode,
        party_id=doc.party_id,
        party_name=doc.party_name,
        payment_type=doc.payment_type,
        cash_account_id=doc.cash_account_id,
        reference_no=doc.reference_no,
        narration=doc.narration,
        other_discount=doc.other_discount,
        other_charges=doc.other_charges,
        freight_charge=doc.freight_charge,
        lend_add_less=doc.lend_add_less,
        round_off=doc.round_off,
        return_mode=doc.return_mode,
        source_document_id=doc.source_document_id,
    )


class FakeDocumentStore(_Gated):
    """Keeps saved documents in creation order."""

    def __init__(self):
        super().__init__()
        self.saved: dict[str, StoredDocument] = {}
        self.payloads: dict[str, SavePayload] = {}
        self._seq = itertools.count(1)

    def seed(self, stored: StoredDocument) -> None:
        self.saved[stored.document_id] = stored

    async def create(self, payload):
        await self._enter("create", payload)
        document_id = f"doc-{next(self._seq)}"
        self.payloads[document_id] = payload
        self.saved[document_id] = stored_from_payload(document_id, payload)
        return SaveReceipt(document_id=document_id, batch_count=len(payload.batches))

    async def update(self, document_id, payload):
        await self._enter("update", document_id, payload)
        if document_id not in self.saved:
            raise DocumentNotFoundError(document_id)
        self.payloads[document_id] = payload
        self.saved[document_id] = stored_from_payload(document_id, payload)
        return SaveReceipt(document_id=document_id, batch_count=len(payload.batches))

    async def get_by_id(self, document_id):
        await self._enter("get_by_id", document_id)
        try:
            return self.saved[document_id]
        except KeyError:
            raise DocumentNotFoundError(document_id) from None

    async def search_by_number(self, document_no):
        await self._enter("search_by_number", document_no)
        return next(
            (d for d in self.saved.values() if d.document_no == document_no), None
        )

    async def delete(self, document_id):
        await self._enter("delete", document_id)
        if self.saved.pop(document_id, None) is None:
            raise DocumentStoreError("Document already deleted", operation="delete")

    async def list_summaries(self):
        await self._enter("list_summaries")
        return [
            DocumentSummary(
                document_id=d.document_id,
                document_no=d.document_no,
                document_date=d.document_date,
                party_name=d.party_name,
            )
            for d in self.saved.values()
        ]


class FakeReferenceSource(_Gated):
    def __init__(self, invoices: dict[str, ReferenceInvoice] | None = None):
        super().__init__()
        self.invoices = invoices or {}

    async def find_by_number(self, invoice_no):
        await self._enter("find_by_number", invoice_no)
        return self.invoices.get(invoice_no)


# =============================================================================
# Session harness
# =============================================================================


@dataclass
class Harness:
    session: EntrySession
    catalog: FakeCatalog
    stock: FakeStock
    batch_numbers: FakeBatchNumbers
    documents: FakeDocumentStore
    document_numbers: FakeDocumentNumbers
    references: FakeReferenceSource
    drafts: Any
    clock: DeterministicClock
    extras: dict = field(default_factory=dict)

    def line_ids(self) -> list[str]:
        return [l.id for l in self.session.document.lines]


@pytest.fixture
def make_session(clock):
    """
    Factory for a wired ``EntrySession`` over in-memory fakes.

    Usage::

        h = make_session(DocumentKind.PURCHASE)
        asyncio.run(h.session.new_entry())
    """

    def _make(
        kind: DocumentKind = DocumentKind.PURCHASE,
        catalog: FakeCatalog | None = None,
        drafts: Any = None,
        references: FakeReferenceSource | None = None,
    ) -> Harness:
        profile = get_profile(kind)
        h = Harness(
            session=None,  # type: ignore[arg-type]
            catalog=catalog or FakeCatalog(),
            stock=FakeStock({"p-pen": Decimal("40"), "p-soap": Decimal("36")}),
            batch_numbers=FakeBatchNumbers(),
            documents=FakeDocumentStore(),
            document_numbers=FakeDocumentNumbers(NUMBER_PREFIXES[kind]),
            references=references or FakeReferenceSource(),
            drafts=drafts if drafts is not None else InMemoryDraftStore(),
            clock=clock,
        )
        h.session = EntrySession(
            profile=profile,
            catalog=h.catalog,
            stock=h.stock,
            batch_numbers=h.batch_numbers,
            documents=h.documents,
            document_numbers=h.document_numbers,
            draft_store=h.drafts,
            reference_source=h.references,
            clock=clock,
            id_factory=make_id_factory("ln"),
        )
        return h

    return _make


# =============================================================================
# Database (SQL draft store)
# =============================================================================

DEFAULT_DATABASE_URL = "sqlite://"


def get_database_url() -> str:
    return os.environ.get("DATABASE_URL", DEFAULT_DATABASE_URL)


@pytest.fixture
def db_engine():
    """Fresh schema per test; the engine is disposed afterwards."""
    engine = init_engine_from_url(get_database_url())
    drop_tables()
    create_tables()
    yield engine
    drop_tables()
    reset_engine()


@pytest.fixture
def session_factory(db_engine):
    return get_session_factory()


@pytest.fixture
def today() -> date:
    return date(2025, 3, 14)
