from __future__ import annotations

from ..extensions import db
from athar.time_utils import utcnow, to_utc_z


TX_PURCHASE = "purchase"
TX_USAGE = "usage"
TX_ADJUSTMENT = "adjustment"
TRANSACTION_TYPES = (TX_PURCHASE, TX_USAGE, TX_ADJUSTMENT)


class InventoryItem(db.Model):
    """
    One ingredient of the charity box.

    current_stock is a materialized balance: it must always equal the sum of
    this item's StockTransaction.quantity values. Only inventory_service writes
    it, and always together with the matching transaction in one commit.

    cost_per_unit tracks the last purchase price (not an average) and may be
    corrected directly without a transaction.

    version_id is SQLAlchemy's optimistic-concurrency counter: an UPDATE
    issued from a stale read raises StaleDataError instead of overwriting.
    """
    __tablename__ = "inventory_items"
    __table_args__ = (
        db.UniqueConstraint("code", name="uq_inventory_items_code"),
        db.CheckConstraint("quantity_per_box > 0", name="ck_inventory_items_per_box_positive"),
        db.CheckConstraint("current_stock >= 0", name="ck_inventory_items_stock_non_negative"),
        db.CheckConstraint("cost_per_unit >= 0", name="ck_inventory_items_cost_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Stable catalog key (rice, sugar, ...); also guards the one-time seed
    code = db.Column(db.String(32), nullable=False)
    name = db.Column(db.String(120), nullable=False)
    name_en = db.Column(db.String(120), nullable=True)

    quantity_per_box = db.Column(db.Float, nullable=False)
    unit = db.Column(db.String(32), nullable=False)

    current_stock = db.Column(db.Float, nullable=False, default=0.0)
    cost_per_unit = db.Column(db.Float, nullable=False, default=0.0)
    min_stock_alert = db.Column(db.Float, nullable=False, default=0.0)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<InventoryItem id={self.id} code={self.code!r} stock={self.current_stock}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "name_en": self.name_en,
            "quantity_per_box": self.quantity_per_box,
            "unit": self.unit,
            "current_stock": self.current_stock,
            "cost_per_unit": self.cost_per_unit,
            "min_stock_alert": self.min_stock_alert,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StockTransaction(db.Model):
    """
    Append-only stock movement. Never updated or deleted.

    quantity is signed: purchases are positive, usage is negative, adjustments
    may be either. cost_per_unit/total_cost are set for purchases only and
    boxes_made for usage only.
    """
    __tablename__ = "stock_transactions"
    __table_args__ = (
        db.CheckConstraint(
            "type IN ('purchase', 'usage', 'adjustment')", name="ck_stock_transactions_type"
        ),
        db.Index("ix_stock_transactions_item_created", "item_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    item_id = db.Column(db.Integer, db.ForeignKey("inventory_items.id"), nullable=False, index=True)

    type = db.Column(db.String(16), nullable=False, index=True)
    quantity = db.Column(db.Float, nullable=False)

    cost_per_unit = db.Column(db.Float, nullable=True)
    total_cost = db.Column(db.Float, nullable=True)
    boxes_made = db.Column(db.Integer, nullable=True)

    supplier = db.Column(db.String(255), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    created_by = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)

    item = db.relationship("InventoryItem", backref=db.backref("transactions", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "item_id": self.item_id,
            "item_name": self.item.name if self.item else None,
            "type": self.type,
            "quantity": self.quantity,
            "cost_per_unit": self.cost_per_unit,
            "total_cost": self.total_cost,
            "boxes_made": self.boxes_made,
            "supplier": self.supplier,
            "notes": self.notes,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
        }
