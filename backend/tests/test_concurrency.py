"""
Concurrency tests.

Runs real threads against a file-backed SQLite database (each thread gets its
own app context and therefore its own session and connection):

- two reviewers racing on one pending donation: exactly one wins
- two production batches racing for the same stock: stock never goes
  negative and the ledger stays consistent
"""

import threading

import pytest

from athar import create_app
from athar.extensions import db
from athar.models import Donation
from athar.services import donation_service, inventory_service
from athar.services.donation_service import AlreadyReviewedError
from athar.services.inventory_service import InsufficientStockError


@pytest.fixture
def file_app(tmp_path):
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'race.sqlite3'}",
        'SQLALCHEMY_ENGINE_OPTIONS': {"connect_args": {"timeout": 30}},
        'UPLOAD_FOLDER': str(tmp_path / "uploads"),
        'TELEGRAM_BOT_TOKEN': '',
        'TELEGRAM_CHAT_ID': '',
    })
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


def run_in_threads(app, *targets):
    """Start every target at the same moment, each inside its own app context."""
    barrier = threading.Barrier(len(targets))
    errors = []

    def wrap(target):
        def runner():
            with app.app_context():
                try:
                    barrier.wait()
                    target()
                except Exception as exc:  # surfaced below
                    errors.append(exc)
                finally:
                    db.session.remove()
        return runner

    threads = [threading.Thread(target=wrap(t)) for t in targets]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=60)

    assert not any(thread.is_alive() for thread in threads), "worker thread hung"
    assert errors == []


class TestReviewRace:

    @pytest.mark.parametrize("round_", range(3))
    def test_exactly_one_reviewer_wins(self, file_app, round_):
        with file_app.app_context():
            donation = Donation(amount=500, boxes=2, payment_method="InstaPay", status="pending")
            db.session.add(donation)
            db.session.commit()
            donation_id = donation.id

        outcomes = []

        def reviewer(decision, who):
            def review():
                try:
                    reviewed = donation_service.review_donation(donation_id, decision, reviewer=who)
                    outcomes.append(("won", reviewed.status, who))
                except AlreadyReviewedError as exc:
                    outcomes.append(("lost", exc.status, who))
            return review

        run_in_threads(
            file_app,
            reviewer("approve", "operator@athar.test"),
            reviewer("reject", "telegram"),
        )

        winners = [o for o in outcomes if o[0] == "won"]
        losers = [o for o in outcomes if o[0] == "lost"]
        assert len(winners) == 1
        assert len(losers) == 1
        # The loser saw the winner's decision
        assert losers[0][1] == winners[0][1]

        with file_app.app_context():
            stored = db.session.get(Donation, donation_id)
            assert stored.status == winners[0][1]
            assert stored.reviewed_by == winners[0][2]


class TestProductionRace:

    def test_stock_never_oversold(self, file_app):
        with file_app.app_context():
            inventory_service.ensure_default_catalog()
            for item in inventory_service.list_items():
                inventory_service.add_stock(item_id=item.id, quantity=item.quantity_per_box * 3)

        outcomes = []

        def producer():
            try:
                inventory_service.produce_units(2, user="op")
                outcomes.append("produced")
            except InsufficientStockError:
                outcomes.append("short")

        run_in_threads(file_app, producer, producer)

        assert sorted(outcomes) == ["produced", "short"]

        with file_app.app_context():
            assert inventory_service.verify_ledger() == []
            capacity = inventory_service.get_capacity()
            assert capacity.possible_boxes == 1
            assert all(item.current_stock >= 0 for item in inventory_service.list_items())
