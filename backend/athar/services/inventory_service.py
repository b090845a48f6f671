# Overview: Service-layer operations for the box-ingredient inventory ledger.

"""
Inventory Ledger Invariants (authoritative)

Stock model:
- InventoryItem.current_stock is a materialized balance that must always equal
  SUM(StockTransaction.quantity) for the item.
- current_stock is only written here, in the same commit as the transaction
  that explains it. StockTransaction rows are append-only.
- cost_per_unit is last-purchase price; set_unit_cost() corrects it without a
  transaction because it is not a stock movement.

Production:
- One box needs quantity_per_box of every item.
- produce_units(n) checks every item first and writes nothing unless all items
  cover n boxes; then one usage transaction per item is committed together.
- Rows are locked with SELECT ... FOR UPDATE where the database supports it;
  InventoryItem.version_id turns any remaining stale write into StaleDataError,
  and run_with_retry() repeats the whole check-then-write from a fresh read.

Capacity:
- possible boxes = min over items of floor(current_stock / quantity_per_box).
- The limiting item is the first item reaching that minimum in id (insertion)
  order. No items -> 0 boxes, no limiting item.

Quantities are real numbers. Comparisons and floors use QUANTITY_EPSILON so
that e.g. 0.6 kg at 0.2 kg/box counts as 3 boxes.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import InventoryItem, StockTransaction
from ..models.inventory import TX_ADJUSTMENT, TX_PURCHASE, TX_USAGE, TRANSACTION_TYPES
from .concurrency import lock_for_update, run_with_retry


QUANTITY_EPSILON = 1e-9
QUANTITY_DECIMALS = 6

# One-time seed for an empty catalog. min_stock_alert = 50 boxes' worth.
DEFAULT_CATALOG = (
    {"code": "rice", "name": "أرز مصري", "name_en": "Rice", "quantity_per_box": 2, "unit": "كجم"},
    {"code": "sugar", "name": "سكر أبيض", "name_en": "Sugar", "quantity_per_box": 1, "unit": "كجم"},
    {"code": "oil", "name": "زيت خليط", "name_en": "Oil", "quantity_per_box": 1, "unit": "لتر"},
    {"code": "pasta", "name": "مكرونة 350 جم", "name_en": "Pasta", "quantity_per_box": 3, "unit": "كيس"},
    {"code": "fava", "name": "فول", "name_en": "Fava Beans", "quantity_per_box": 1, "unit": "كجم"},
    {"code": "lentils", "name": "عدس", "name_en": "Lentils", "quantity_per_box": 0.5, "unit": "كجم"},
    {"code": "dates", "name": "تمر", "name_en": "Dates", "quantity_per_box": 0.7, "unit": "كجم"},
    {"code": "tomato", "name": "صلصة", "name_en": "Tomato Paste", "quantity_per_box": 0.3, "unit": "كجم"},
    {"code": "tea", "name": "شاي", "name_en": "Tea", "quantity_per_box": 40, "unit": "جم"},
    {"code": "salt", "name": "ملح", "name_en": "Salt", "quantity_per_box": 1, "unit": "كيس"},
)
LOW_STOCK_BOXES = 50


class InventoryError(ValueError):
    """Inventory business rule violation."""


class InvalidItemError(InventoryError):
    def __init__(self, item_id):
        super().__init__(f"Inventory item {item_id} not found")
        self.item_id = item_id


class InsufficientStockError(InventoryError):
    """
    Production preflight failed. Nothing was written.
    """

    def __init__(self, item: InventoryItem, available: float, required: float):
        super().__init__(
            f"Not enough {item.name}: available {available:g} {item.unit}, required {required:g} {item.unit}"
        )
        self.item_id = item.id
        self.item_name = item.name
        self.available = available
        self.required = required

    def to_dict(self) -> dict:
        return {
            "item_id": self.item_id,
            "item": self.item_name,
            "available": self.available,
            "required": self.required,
        }


def _round_qty(value: float) -> float:
    return round(value, QUANTITY_DECIMALS)


def boxes_from_stock(stock: float, per_box: float) -> int:
    if per_box <= 0:
        return 0
    return max(0, math.floor((stock or 0.0) / per_box + QUANTITY_EPSILON))


@dataclass
class Capacity:
    possible_boxes: int
    limiting_item: InventoryItem | None
    total_value: float
    cost_per_box: float
    needed_for_target: int
    low_stock: list[InventoryItem] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "possible_boxes": self.possible_boxes,
            "limiting_item": self.limiting_item.to_dict() if self.limiting_item else None,
            "total_value": _round_qty(self.total_value),
            "cost_per_box": _round_qty(self.cost_per_box),
            "needed_for_target": self.needed_for_target,
            "low_stock": [item.to_dict() for item in self.low_stock],
        }


def compute_capacity(items, *, target_boxes: int = 0) -> Capacity:
    """
    Binding-constraint calculation over items in the given order.

    Ties for the minimum keep the first item encountered.
    """
    possible = None
    limiting = None
    total_value = 0.0
    cost_per_box = 0.0
    low_stock = []

    for item in items:
        stock = item.current_stock or 0.0
        cost = item.cost_per_unit or 0.0
        from_item = boxes_from_stock(stock, item.quantity_per_box)
        if possible is None or from_item < possible:
            possible = from_item
            limiting = item
        total_value += stock * cost
        cost_per_box += item.quantity_per_box * cost
        if stock <= (item.min_stock_alert or 0.0) + QUANTITY_EPSILON:
            low_stock.append(item)

    possible = possible or 0
    return Capacity(
        possible_boxes=possible,
        limiting_item=limiting,
        total_value=total_value,
        cost_per_box=cost_per_box,
        needed_for_target=max(0, target_boxes - possible),
        low_stock=low_stock,
    )


def ensure_default_catalog() -> bool:
    """
    Seed DEFAULT_CATALOG when there are no items at all. Returns True if seeded.

    A concurrent seeder trips the unique code constraint; that attempt is
    rolled back and the other seeder's catalog stands.
    """
    if db.session.query(InventoryItem.id).first() is not None:
        return False

    for entry in DEFAULT_CATALOG:
        db.session.add(InventoryItem(
            code=entry["code"],
            name=entry["name"],
            name_en=entry["name_en"],
            quantity_per_box=entry["quantity_per_box"],
            unit=entry["unit"],
            current_stock=0.0,
            cost_per_unit=0.0,
            min_stock_alert=entry["quantity_per_box"] * LOW_STOCK_BOXES,
        ))
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return False

    current_app.logger.info("Seeded default inventory catalog (%d items)", len(DEFAULT_CATALOG))
    return True


def list_items() -> list[InventoryItem]:
    """All items in insertion order (the capacity tie-break order)."""
    return InventoryItem.query.order_by(InventoryItem.id.asc()).all()


def get_capacity() -> Capacity:
    return compute_capacity(list_items(), target_boxes=int(current_app.config["TARGET_BOXES"]))


def _get_item(item_id: int, *, lock: bool = False) -> InventoryItem:
    query = db.session.query(InventoryItem).filter_by(id=item_id)
    if lock:
        query = lock_for_update(query)
    item = query.first()
    if item is None:
        raise InvalidItemError(item_id)
    return item


def add_stock(
    *,
    item_id: int,
    quantity: float,
    cost_per_unit: float | None = None,
    supplier: str | None = None,
    notes: str | None = None,
    user: str | None = None,
) -> StockTransaction:
    """
    Record a purchase and raise the item's stock.

    cost_per_unit > 0 becomes the item's current price; 0/None leaves it alone.
    """
    if quantity is None or quantity <= 0:
        raise InventoryError("quantity must be > 0")
    cost = cost_per_unit or 0.0
    if cost < 0:
        raise InventoryError("cost_per_unit must be >= 0")

    def _op():
        item = _get_item(item_id, lock=True)

        tx = StockTransaction(
            item_id=item.id,
            type=TX_PURCHASE,
            quantity=_round_qty(quantity),
            cost_per_unit=cost,
            total_cost=_round_qty(quantity * cost),
            supplier=supplier or None,
            notes=notes or None,
            created_by=user,
        )
        db.session.add(tx)

        item.current_stock = _round_qty((item.current_stock or 0.0) + quantity)
        if cost > 0:
            item.cost_per_unit = cost

        db.session.commit()
        return tx

    tx = run_with_retry(_op)
    current_app.logger.info("Stock purchase: item %s +%s by %s", item_id, quantity, user)
    return tx


def produce_units(count: int, *, user: str | None = None) -> list[StockTransaction]:
    """
    Deduct the ingredients for `count` boxes from every item, all or nothing.

    Raises:
        InventoryError: count is not a positive integer, or there are no items
        InsufficientStockError: first item (in id order) that cannot cover count
    """
    if isinstance(count, bool) or not isinstance(count, int) or count <= 0:
        raise InventoryError("count must be a positive integer")

    def _op():
        items = lock_for_update(
            db.session.query(InventoryItem).order_by(InventoryItem.id.asc())
        ).all()
        if not items:
            raise InventoryError("inventory catalog is empty")

        # Preflight: nothing is written unless every item covers the batch
        needs = []
        for item in items:
            required = _round_qty(item.quantity_per_box * count)
            available = item.current_stock or 0.0
            if available + QUANTITY_EPSILON < required:
                error = InsufficientStockError(item, available, required)
                db.session.rollback()
                raise error
            needs.append((item, required))

        transactions = []
        for item, required in needs:
            tx = StockTransaction(
                item_id=item.id,
                type=TX_USAGE,
                quantity=-required,
                boxes_made=count,
                notes=f"Prepared {count} boxes",
                created_by=user,
            )
            db.session.add(tx)
            transactions.append(tx)
            item.current_stock = max(0.0, _round_qty(item.current_stock - required))

        db.session.commit()
        return transactions

    transactions = run_with_retry(_op)
    current_app.logger.info("Produced %d boxes by %s", count, user)
    return transactions


def adjust_stock(
    *,
    item_id: int,
    quantity_delta: float,
    notes: str | None = None,
    user: str | None = None,
) -> StockTransaction:
    """
    Correct a stock level (spoilage, recount). Cannot take stock below zero.
    """
    if not quantity_delta:
        raise InventoryError("quantity_delta must be non-zero")

    def _op():
        item = _get_item(item_id, lock=True)
        new_stock = _round_qty((item.current_stock or 0.0) + quantity_delta)
        if new_stock < -QUANTITY_EPSILON:
            db.session.rollback()
            raise InventoryError("adjustment would make stock negative")

        tx = StockTransaction(
            item_id=item.id,
            type=TX_ADJUSTMENT,
            quantity=_round_qty(quantity_delta),
            notes=notes or None,
            created_by=user,
        )
        db.session.add(tx)
        item.current_stock = max(0.0, new_stock)

        db.session.commit()
        return tx

    return run_with_retry(_op)


def set_unit_cost(*, item_id: int, cost: float) -> InventoryItem:
    """Price correction; not a stock movement, so no transaction."""
    if cost is None or cost < 0:
        raise InventoryError("cost must be >= 0")

    def _op():
        item = _get_item(item_id, lock=True)
        item.cost_per_unit = cost
        db.session.commit()
        return item

    return run_with_retry(_op)


def list_transactions(*, item_id: int | None = None, tx_type: str | None = None, limit: int = 200):
    q = StockTransaction.query
    if item_id is not None:
        _get_item(item_id)
        q = q.filter_by(item_id=item_id)
    if tx_type is not None:
        if tx_type not in TRANSACTION_TYPES:
            raise InventoryError(f"Invalid transaction type '{tx_type}'")
        q = q.filter_by(type=tx_type)

    return q.order_by(
        StockTransaction.created_at.desc(),
        StockTransaction.id.desc(),
    ).limit(limit).all()


def verify_ledger() -> list[dict]:
    """
    Compare every item's current_stock with the sum of its transactions.

    Returns one entry per mismatching item (empty list means consistent).
    """
    sums = dict(
        db.session.query(
            StockTransaction.item_id,
            func.coalesce(func.sum(StockTransaction.quantity), 0.0),
        ).group_by(StockTransaction.item_id).all()
    )

    mismatches = []
    for item in list_items():
        ledger_total = _round_qty(float(sums.get(item.id, 0.0)))
        stock = _round_qty(item.current_stock or 0.0)
        if abs(ledger_total - stock) > 1e-6:
            mismatches.append({
                "item_id": item.id,
                "code": item.code,
                "current_stock": stock,
                "ledger_total": ledger_total,
            })
    return mismatches
