"""
Batch Grouping Engine.

Responsibility:
    Collapses the committed lines of a document into save-ready inventory
    batches, and merges on-hand stock batches into a single view for
    products that do not track batches.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Called at save time by
    the entry session.

Invariants enforced:
    - Group key: (product, "NO-BATCH") when the line's product disables
      batch tracking, else (product, rate, expiry or "no-expiry").
    - Quantity, discount, VAT, gross and total are summed per group.
    - No-batch groups price at the quantity-weighted average rate,
      recomputed after every merge; the value is not rounded.
    - Batch number, retail, wholesale, special prices and multi-unit id
      come from the first line of a group.
    - Batches are emitted in first-seen group order.
    - Placeholder lines are ignored.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from decimal import Decimal

from entry_engines.tracer import traced_engine
from entry_kernel.domain.types import Batch, Line, StockBatch
from entry_kernel.domain.values import ZERO
from entry_kernel.logging_config import get_logger

logger = get_logger("engines.batching")

NO_BATCH = "NO-BATCH"
NO_EXPIRY = "no-expiry"
MERGED_BATCH_NUMBER = "MERGED"


def batch_key(line: Line) -> tuple:
    """Grouping key for a line. Rates compare by value, so 10 == 10.00."""
    if not line.batch_tracking:
        return (line.product_id, NO_BATCH)
    return (line.product_id, line.price, line.expiry_date or NO_EXPIRY)


@dataclass
class _Group:
    first: Line
    quantity: Decimal
    disc_amount: Decimal
    vat_amount: Decimal
    gross: Decimal
    total: Decimal
    weighted_sum: Decimal
    purchase_price: Decimal
    line_ids: list[str] = field(default_factory=list)

    def merge(self, line: Line) -> None:
        self.quantity += line.quantity
        self.disc_amount += line.disc_amount
        self.vat_amount += line.vat_amount
        self.gross += line.gross
        self.total += line.total
        self.weighted_sum += line.price * line.quantity
        self.line_ids.append(line.id)
        if not self.first.batch_tracking:
            self.purchase_price = (
                self.weighted_sum / self.quantity if self.quantity > ZERO else line.price
            )

    def to_batch(self) -> Batch:
        first = self.first
        return Batch(
            product_id=first.product_id,
            product_code=first.product_code,
            product_name=first.name,
            purchase_price=self.purchase_price,
            expiry_date=first.expiry_date if first.batch_tracking else "",
            total_quantity=self.quantity,
            disc_amount=self.disc_amount,
            vat_amount=self.vat_amount,
            gross=self.gross,
            total=self.total,
            batch_number=first.batch_number.strip(),
            multi_unit_id=first.multi_unit_id,
            retail=first.retail,
            wholesale=first.wholesale,
            special_price1=first.special_price1,
            special_price2=first.special_price2,
            line_ids=tuple(self.line_ids),
        )


@traced_engine("batching", "1.0", fingerprint_fields=("lines",))
def group_into_batches(lines: Iterable[Line]) -> tuple[Batch, ...]:
    """Group filled lines into batches, in first-seen order."""
    groups: dict[tuple, _Group] = {}
    for line in lines:
        if line.is_placeholder:
            continue
        key = batch_key(line)
        group = groups.get(key)
        if group is None:
            groups[key] = _Group(
                first=line,
                quantity=line.quantity,
                disc_amount=line.disc_amount,
                vat_amount=line.vat_amount,
                gross=line.gross,
                total=line.total,
                weighted_sum=line.price * line.quantity,
                purchase_price=line.price,
                line_ids=[line.id],
            )
        else:
            group.merge(line)

    batches = tuple(g.to_batch() for g in groups.values())
    logger.info(
        "lines_grouped_into_batches",
        extra={
            "batch_count": len(batches),
            "line_count": sum(len(b.line_ids) for b in batches),
        },
    )
    return batches


def merge_stock_batches(batches: Sequence[StockBatch]) -> StockBatch | None:
    """
    One stock view for a product that does not track batches.

    Purchase price and retail are the plain means over batches that still
    have stock; when none do, the first batch's figures are used.
    """
    if not batches:
        return None
    in_stock = [b for b in batches if b.quantity > ZERO]
    if in_stock:
        count = Decimal(len(in_stock))
        purchase = sum((b.purchase_price for b in in_stock), ZERO) / count
        retail = sum((b.retail for b in in_stock), ZERO) / count
        quantity = sum((b.quantity for b in in_stock), ZERO)
    else:
        purchase = batches[0].purchase_price
        retail = batches[0].retail
        quantity = sum((b.quantity for b in batches), ZERO)
    wholesale = batches[0].wholesale if batches[0].wholesale is not None else retail
    return StockBatch(
        batch_number=MERGED_BATCH_NUMBER,
        purchase_price=purchase,
        retail=retail,
        wholesale=wholesale,
        quantity=quantity,
        expiry_date="",
    )
