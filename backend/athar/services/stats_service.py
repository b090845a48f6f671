# Overview: Campaign aggregates derived from donation records.

"""
Donation aggregates (authoritative rules)

- Only approved donations count toward totals.
- Boxes for a donation: its boxes value when present and > 0, otherwise
  floor(amount / BOX_COST). This is the single place the rule lives.
- "Today" is the local calendar day in CAMPAIGN_TIMEZONE (midnight boundary).
- average_donation is 0 when nothing is approved.
- Every number is recomputed from the full record set on each call; nothing
  is accumulated between calls.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime, tzinfo
from typing import Iterable, Protocol

from flask import current_app
from sqlalchemy.orm import Session

from ..extensions import db
from ..models import Donation
from ..models.donations import STATUS_APPROVED, STATUS_PENDING, STATUS_REJECTED
from athar.time_utils import local_day_bounds, resolve_timezone, utcnow


class DonationLike(Protocol):
    amount: int | None
    boxes: int | None
    status: str
    created_at: datetime | None


@dataclass(frozen=True)
class DonationStats:
    total_amount: int
    total_boxes: int
    approved_count: int
    average_donation: float
    today_count: int
    today_amount: int
    families_supported: int
    target_boxes: int
    progress_percent: int
    pending_count: int = 0
    rejected_count: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


def units_for(donation: DonationLike, unit_cost: int) -> int:
    boxes = donation.boxes or 0
    if boxes > 0:
        return boxes
    if unit_cost <= 0:
        return 0
    return (donation.amount or 0) // unit_cost


def progress_percent(boxes: int, target: int) -> int:
    if target <= 0:
        return 100 if boxes > 0 else 0
    # round() is banker's rounding; the counter rounds halves up
    return min(int(boxes * 100 / target + 0.5), 100)


def compute_donation_stats(
    donations: Iterable[DonationLike],
    *,
    unit_cost: int,
    now: datetime,
    tz: tzinfo,
    target_boxes: int,
) -> DonationStats:
    """
    Pure aggregate computation over any iterable of donation-shaped records.

    now is UTC (naive or aware). Records that are not approved only feed the
    pending/rejected counters.
    """
    day_start, day_end = local_day_bounds(now, tz)

    total_amount = 0
    total_boxes = 0
    approved = 0
    today_count = 0
    today_amount = 0
    pending = 0
    rejected = 0

    for donation in donations:
        if donation.status == STATUS_PENDING:
            pending += 1
            continue
        if donation.status == STATUS_REJECTED:
            rejected += 1
            continue
        if donation.status != STATUS_APPROVED:
            continue

        amount = donation.amount or 0
        approved += 1
        total_amount += amount
        total_boxes += units_for(donation, unit_cost)

        created = donation.created_at
        if created is not None and day_start <= created < day_end:
            today_count += 1
            today_amount += amount

    return DonationStats(
        total_amount=total_amount,
        total_boxes=total_boxes,
        approved_count=approved,
        average_donation=(total_amount / approved) if approved else 0.0,
        today_count=today_count,
        today_amount=today_amount,
        families_supported=total_boxes,
        target_boxes=target_boxes,
        progress_percent=progress_percent(total_boxes, target_boxes),
        pending_count=pending,
        rejected_count=rejected,
    )


def _stats_from_config(donations, config) -> DonationStats:
    return compute_donation_stats(
        donations,
        unit_cost=int(config["BOX_COST"]),
        now=utcnow(),
        tz=resolve_timezone(config["CAMPAIGN_TIMEZONE"]),
        target_boxes=int(config["TARGET_BOXES"]),
    )


def current_stats(*, include_review_queue: bool = False, session: Session | None = None) -> DonationStats:
    """
    Read the store and recompute.

    The public counter only reads approved rows; the admin view also needs the
    pending/rejected counts, so it reads everything.
    """
    session = session or db.session
    q = session.query(Donation)
    if not include_review_queue:
        q = q.filter(Donation.status == STATUS_APPROVED)
    return _stats_from_config(q.all(), current_app.config)
