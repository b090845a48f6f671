# Overview: Push recomputed donation aggregates to subscribers whenever donations change.

"""
Live donation feed

The store's change notification is SQLAlchemy's session event stream:

- after_flush / do_orm_execute mark the session when a Donation row is
  inserted, updated or deleted (ORM unit of work or a bulk UPDATE such as the
  conditional review).
- after_commit publishes once per committed transaction that touched donations.
- after_rollback discards the mark.

Publishing recomputes DonationStats from a fresh read in a separate Session
(the committing session cannot emit SQL inside after_commit) and hands the
snapshot to every subscriber. The computation itself lives in stats_service
and knows nothing about subscriptions.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable

from flask import current_app
from sqlalchemy import event
from sqlalchemy.orm import Session

from ..extensions import db
from ..models import Donation
from .stats_service import DonationStats, current_stats


logger = logging.getLogger("athar.feed")

Subscriber = Callable[[DonationStats], None]

EXTENSION_KEY = "athar.donation_feed"
_CHANGED_KEY = "athar.donations_changed"


class DonationFeed:
    """Observer registry for aggregate snapshots."""

    def __init__(self):
        self._subscribers: list[Subscriber] = []
        self._lock = threading.Lock()

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register callback; returns a function that unsubscribes it."""
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def publish(self, snapshot: DonationStats) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(snapshot)
            except Exception:
                logger.exception("Donation feed subscriber failed")

    def refresh(self) -> DonationStats | None:
        """Recompute from the store and publish. No-op without subscribers."""
        if not self.subscriber_count:
            return None
        with Session(db.engine) as session:
            snapshot = current_stats(session=session)
        self.publish(snapshot)
        return snapshot


def get_feed() -> DonationFeed:
    return current_app.extensions[EXTENSION_KEY]


def _is_donation(obj) -> bool:
    return isinstance(obj, Donation)


def _after_flush(session, flush_context) -> None:
    touched = (*session.new, *session.dirty, *session.deleted)
    if any(_is_donation(obj) for obj in touched):
        session.info[_CHANGED_KEY] = True


def _on_orm_execute(orm_execute_state) -> None:
    if not (orm_execute_state.is_update or orm_execute_state.is_delete):
        return
    mapper = orm_execute_state.bind_mapper
    if mapper is not None and mapper.class_ is Donation:
        orm_execute_state.session.info[_CHANGED_KEY] = True


def _after_commit(session) -> None:
    if not session.info.pop(_CHANGED_KEY, False):
        return
    feed = current_app.extensions.get(EXTENSION_KEY)
    if feed is None:
        return
    try:
        feed.refresh()
    except Exception:
        logger.exception("Failed to refresh donation feed")


def _after_rollback(session) -> None:
    session.info.pop(_CHANGED_KEY, None)


def init_app(app) -> DonationFeed:
    """
    Attach a DonationFeed to the app and hook the session events.

    The listeners are registered once on the shared scoped session; they find
    the feed of whichever app is current.
    """
    feed = DonationFeed()
    app.extensions[EXTENSION_KEY] = feed

    for name, fn in (
        ("after_flush", _after_flush),
        ("do_orm_execute", _on_orm_execute),
        ("after_commit", _after_commit),
        ("after_rollback", _after_rollback),
    ):
        if not event.contains(db.session, name, fn):
            event.listen(db.session, name, fn)
    return feed
