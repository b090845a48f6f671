"""
Health endpoint and CLI command tests.
"""

import pytest

from athar.models import InventoryItem, SessionToken, User
from athar.services import inventory_service


@pytest.fixture
def runner(app):
    return app.test_cli_runner()


# =============================================================================
# HEALTH
# =============================================================================


class TestHealth:

    def test_degraded_without_bot(self, client, db_session):
        resp = client.get("/api/health")

        assert resp.status_code == 200
        assert resp.json["status"] == "degraded"
        assert resp.json["checks"]["database"]["status"] == "healthy"
        assert resp.json["checks"]["messaging_channel"]["details"] == {"enabled": False}
        assert resp.json["live_subscribers"] == 0

    def test_healthy_with_channel(self, client, db_session, fake_channel, make_donation):
        make_donation()

        resp = client.get("/api/health")

        assert resp.status_code == 200
        assert resp.json["status"] == "healthy"
        assert resp.json["checks"]["database"]["details"]["donations"] == 1
        assert resp.json["timestamp"].endswith("Z")


# =============================================================================
# CLI
# =============================================================================


class TestUserCommands:

    def test_create_and_list(self, runner, db_session):
        result = runner.invoke(args=[
            "users", "create", "--email", "Lead@Athar.Test", "--password", "Password123!", "--name", "Lead",
        ])
        assert result.exit_code == 0, result.output
        assert "PASS Created operator lead@athar.test" in result.output

        listed = runner.invoke(args=["users", "list"])
        assert "lead@athar.test" in listed.output

    def test_create_rejects_weak_password(self, runner, db_session):
        result = runner.invoke(args=["users", "create", "--email", "a@b.c", "--password", "weak"])
        assert result.exit_code != 0
        assert "Weak password" in result.output
        assert User.query.count() == 0

    def test_deactivate_ends_sessions(self, runner, client, db_session, operator, operator_headers):
        assert client.get("/api/auth/me", headers=operator_headers).status_code == 200

        result = runner.invoke(args=["users", "deactivate", "--email", operator.email])

        assert result.exit_code == 0, result.output
        assert "1 session(s) revoked" in result.output
        db_session.expire_all()
        assert SessionToken.query.filter_by(user_id=operator.id, is_revoked=False).count() == 0
        assert client.get("/api/auth/me", headers=operator_headers).status_code == 401

    def test_deactivate_unknown(self, runner, db_session):
        result = runner.invoke(args=["users", "deactivate", "--email", "ghost@athar.test"])
        assert result.exit_code != 0


class TestInventoryCommands:

    def test_seed_then_skip(self, runner, db_session):
        first = runner.invoke(args=["inventory", "seed"])
        assert "PASS Seeded" in first.output

        second = runner.invoke(args=["inventory", "seed"])
        assert "SKIP" in second.output
        assert InventoryItem.query.count() == len(inventory_service.DEFAULT_CATALOG)

    def test_status(self, runner, db_session, make_item):
        rice = make_item("rice", 2)
        inventory_service.add_stock(item_id=rice.id, quantity=7)

        result = runner.invoke(args=["inventory", "status"])

        assert result.exit_code == 0, result.output
        assert "Possible boxes: 3 (limited by rice)" in result.output

    def test_verify_exit_codes(self, runner, db_session, make_item):
        rice = make_item("rice", 2)
        inventory_service.add_stock(item_id=rice.id, quantity=4)

        assert runner.invoke(args=["inventory", "verify"]).exit_code == 0

        item = db_session.get(InventoryItem, rice.id)
        item.current_stock = 9
        db_session.commit()

        result = runner.invoke(args=["inventory", "verify"])
        assert result.exit_code == 1
        assert "FAIL rice" in result.output


class TestTelegramCommands:

    def test_requires_bot_credentials(self, runner, db_session):
        result = runner.invoke(args=["telegram", "set-webhook", "--url", "https://athar.test/api/telegram/webhook"])
        assert result.exit_code != 0
        assert "TELEGRAM_BOT_TOKEN" in result.output
