# Overview: Service-layer operations for the donation lifecycle; encapsulates business logic and database work.

"""
Donation Lifecycle Service

================================================================================
PURPOSE: Enforce pending -> approved | rejected for donation records
================================================================================

STATE MACHINE:
    pending -> approved
    pending -> rejected

    pending:  Submitted from the public form, waiting for review
    approved: Counted on the public progress counter (terminal)
    rejected: Never counted (terminal)

RULES:
1. Only pending donations can be reviewed.
2. approved/rejected are terminal; a second review is AlreadyReviewed, not a fault.
3. Manual dashboard entries are born approved (no review step).
4. The review check and the write are ONE conditional UPDATE
   (WHERE id = :id AND status = 'pending'). The dashboard and the bot callback
   can race on the same donation; exactly one of them gets rowcount == 1.

================================================================================
"""

from __future__ import annotations
from typing import Literal

from flask import current_app
from sqlalchemy import update

from ..extensions import db
from ..models import Donation
from ..models.donations import (
    DONATION_STATUSES,
    MANUAL_PAYMENT_METHOD,
    STATUS_APPROVED,
    STATUS_PENDING,
    STATUS_REJECTED,
)
from athar.time_utils import utcnow
from .concurrency import run_with_retry


Decision = Literal["approve", "reject"]

DECISION_TO_STATUS = {
    "approve": STATUS_APPROVED,
    "reject": STATUS_REJECTED,
}


class LifecycleError(ValueError):
    """
    Raised when a donation lifecycle rule is violated.

    This is a domain error, not a technical error.
    """
    pass


class DonationNotFoundError(LifecycleError):
    def __init__(self, donation_id: str):
        super().__init__(f"Donation {donation_id} not found")
        self.donation_id = donation_id


class AlreadyReviewedError(LifecycleError):
    """
    The donation left 'pending' before this review landed.

    Callers treat this as the benign "someone else already decided" outcome
    and must not repeat any side effects of the review.
    """

    def __init__(self, donation_id: str, status: str):
        super().__init__(f"Donation {donation_id} was already reviewed (status '{status}')")
        self.donation_id = donation_id
        self.status = status


def validate_decision(decision: str) -> str:
    """Return the terminal status for a decision, or raise LifecycleError."""
    try:
        return DECISION_TO_STATUS[decision]
    except (KeyError, TypeError):
        raise LifecycleError(
            f"Invalid decision '{decision}'. Must be one of: {', '.join(sorted(DECISION_TO_STATUS))}"
        )


def derive_amount(amount: int | None, boxes: int | None) -> int:
    """Donations picked by box count are priced at BOX_COST per box."""
    if amount:
        return amount
    if boxes:
        return boxes * int(current_app.config["BOX_COST"])
    raise LifecycleError("amount is required when boxes is not given")


def ensure_payment_method(payment_method: str) -> str:
    """Raise LifecycleError unless the method is one of PAYMENT_METHODS."""
    allowed_methods = current_app.config["PAYMENT_METHODS"]
    if payment_method not in allowed_methods:
        raise LifecycleError(
            f"Unknown payment method '{payment_method}'. Must be one of: {', '.join(allowed_methods)}"
        )
    return payment_method


def submit_donation(
    *,
    amount: int | None,
    boxes: int | None,
    payment_method: str,
    receipt_url: str,
) -> Donation:
    """
    Create a pending donation from the public form.

    The receipt must already be stored; a donation is never recorded with a
    promised-but-missing receipt.
    """
    ensure_payment_method(payment_method)
    if not receipt_url:
        raise LifecycleError("receipt is required")

    donation = Donation(
        amount=derive_amount(amount, boxes),
        boxes=boxes or 0,
        payment_method=payment_method,
        receipt_url=receipt_url,
        status=STATUS_PENDING,
    )
    db.session.add(donation)
    db.session.commit()

    current_app.logger.info("Donation %s submitted (%s)", donation.id, donation.amount)
    return donation


def record_manual_donation(*, amount: int, boxes: int | None, operator: str) -> Donation:
    """
    Record an off-form donation from the dashboard. Born approved.
    """
    if amount is None or amount <= 0:
        raise LifecycleError("amount must be > 0")

    now = utcnow()
    donation = Donation(
        amount=amount,
        boxes=boxes or 0,
        payment_method=MANUAL_PAYMENT_METHOD,
        status=STATUS_APPROVED,
        reviewed_at=now,
        reviewed_by=operator,
    )
    db.session.add(donation)
    db.session.commit()

    current_app.logger.info("Manual donation %s recorded by %s", donation.id, operator)
    return donation


def review_donation(donation_id: str, decision: Decision, *, reviewer: str) -> Donation:
    """
    Move a pending donation to approved/rejected.

    Raises:
        LifecycleError: decision is not approve/reject
        DonationNotFoundError: no such donation
        AlreadyReviewedError: donation is no longer pending (race loser or retry)

    The precondition and the write are one conditional UPDATE, so two
    concurrent reviews cannot both succeed, and a stale in-session copy of the
    donation cannot be used to overwrite a decision.
    """
    new_status = validate_decision(decision)

    def _op():
        result = db.session.execute(
            update(Donation)
            .where(Donation.id == donation_id, Donation.status == STATUS_PENDING)
            .values(status=new_status, reviewed_at=utcnow(), reviewed_by=reviewer)
            .execution_options(synchronize_session=False)
        )

        if result.rowcount != 1:
            db.session.rollback()
            current = db.session.get(Donation, donation_id, populate_existing=True)
            if current is None:
                raise DonationNotFoundError(donation_id)
            raise AlreadyReviewedError(donation_id, current.status)

        db.session.commit()
        return db.session.get(Donation, donation_id, populate_existing=True)

    donation = run_with_retry(_op)
    current_app.logger.info("Donation %s %s by %s", donation_id, new_status, reviewer)
    return donation


def attach_channel_message(donation_id: str, *, chat_id: str, message_id: int, kind: str) -> None:
    """Remember which bot message announced the donation."""
    db.session.execute(
        update(Donation)
        .where(Donation.id == donation_id)
        .values(channel_chat_id=str(chat_id), channel_message_id=message_id, channel_message_kind=kind)
        .execution_options(synchronize_session=False)
    )
    db.session.commit()


def get_donation(donation_id: str) -> Donation:
    donation = db.session.get(Donation, donation_id)
    if donation is None:
        raise DonationNotFoundError(donation_id)
    return donation


def list_donations(*, status: str | None = None, limit: int = 500) -> list[Donation]:
    """
    Newest first. status=None (or 'all') lists every donation.
    """
    q = Donation.query
    if status and status != "all":
        if status not in DONATION_STATUSES:
            raise LifecycleError(
                f"Invalid status '{status}'. Must be one of: all, {', '.join(DONATION_STATUSES)}"
            )
        q = q.filter_by(status=status)

    return q.order_by(Donation.created_at.desc(), Donation.id.desc()).limit(limit).all()
