from __future__ import annotations

import secrets

from ..extensions import db
from athar.time_utils import utcnow, to_utc_z


STATUS_PENDING = "pending"
STATUS_APPROVED = "approved"
STATUS_REJECTED = "rejected"
DONATION_STATUSES = (STATUS_PENDING, STATUS_APPROVED, STATUS_REJECTED)

MANUAL_PAYMENT_METHOD = "manual"


def generate_donation_id() -> str:
    """Opaque 20-character id; may contain '_' and '-'."""
    return secrets.token_urlsafe(15)


class Donation(db.Model):
    """
    A single submitted contribution and its review state.

    STATE MACHINE:
        pending -> approved
        pending -> rejected

    approved and rejected are terminal. Manual entries from the dashboard are
    created approved. Status only changes through donation_service.review_donation(),
    which applies the transition as one conditional UPDATE.

    The channel_* columns point at the bot message that announced the donation,
    so a review from the dashboard can edit that message too.
    """
    __tablename__ = "donations"
    __table_args__ = (
        db.CheckConstraint(
            "status IN ('pending', 'approved', 'rejected')", name="ck_donations_status"
        ),
        db.CheckConstraint("amount > 0", name="ck_donations_amount_positive"),
        db.CheckConstraint("boxes IS NULL OR boxes >= 0", name="ck_donations_boxes_non_negative"),
        db.Index("ix_donations_status_created", "status", "created_at"),
    )

    id = db.Column(db.String(64), primary_key=True, default=generate_donation_id)

    # Whole currency units; transfers happen off-system
    amount = db.Column(db.Integer, nullable=False)
    boxes = db.Column(db.Integer, nullable=True)

    payment_method = db.Column(db.String(64), nullable=False)
    receipt_url = db.Column(db.String(1024), nullable=True)

    status = db.Column(db.String(16), nullable=False, default=STATUS_PENDING, index=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)
    reviewed_at = db.Column(db.DateTime, nullable=True)
    # Operator email, or the channel tag when reviewed from the bot
    reviewed_by = db.Column(db.String(255), nullable=True)

    channel_chat_id = db.Column(db.String(64), nullable=True)
    channel_message_id = db.Column(db.Integer, nullable=True)
    channel_message_kind = db.Column(db.String(8), nullable=True)  # photo | text

    def __repr__(self) -> str:
        return f"<Donation id={self.id!r} amount={self.amount} status={self.status!r}>"

    @property
    def is_manual(self) -> bool:
        return self.payment_method == MANUAL_PAYMENT_METHOD

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "amount": self.amount,
            "boxes": self.boxes,
            "payment_method": self.payment_method,
            "is_manual": self.is_manual,
            "receipt_url": self.receipt_url,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "reviewed_at": to_utc_z(self.reviewed_at),
            "reviewed_by": self.reviewed_by,
            "has_channel_message": self.channel_message_id is not None,
        }
