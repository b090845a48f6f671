"""
Bot webhook route tests.

The webhook answers 200 {"ok": true} for every input, including malformed
bodies, unknown donations, channel failures and bad secrets.
"""

import pytest

from athar.extensions import db
from athar.models import Donation


WEBHOOK = "/api/telegram/webhook"


def callback(data, callback_id="cb-1"):
    return {
        "update_id": 10,
        "callback_query": {
            "id": callback_id,
            "message": {"message_id": 5, "chat": {"id": -1}, "photo": [{"file_id": "f"}]},
            "data": data,
        },
    }


def status_of(donation_id):
    return db.session.get(Donation, donation_id, populate_existing=True).status


class TestWebhookRoute:

    def test_approve(self, client, db_session, make_donation, fake_channel):
        donation = make_donation()

        resp = client.post(WEBHOOK, json=callback(f"approve_{donation.id}"))

        assert resp.status_code == 200
        assert resp.json == {"ok": True, "outcome": "applied"}
        assert status_of(donation.id) == "approved"

    def test_duplicate_delivery(self, client, db_session, make_donation, fake_channel):
        donation = make_donation()
        client.post(WEBHOOK, json=callback(f"approve_{donation.id}"))

        resp = client.post(WEBHOOK, json=callback(f"approve_{donation.id}"))

        assert resp.status_code == 200
        assert resp.json["outcome"] == "already_reviewed"
        assert fake_channel.methods().count("editMessageCaption") == 1

    @pytest.mark.parametrize("body,outcome", [
        (callback("approve_missing"), "not_found"),
        (callback("nonsense"), "malformed"),
        (callback("archive_abc"), "unknown_action"),
        ({"update_id": 1, "message": {"text": "/start"}}, "ignored"),
    ])
    def test_always_200(self, client, db_session, fake_channel, body, outcome):
        resp = client.post(WEBHOOK, json=body)
        assert resp.status_code == 200
        assert resp.json == {"ok": True, "outcome": outcome}

    def test_non_json_body(self, client, db_session, fake_channel):
        resp = client.post(WEBHOOK, data="not json", content_type="text/plain")
        assert resp.status_code == 200
        assert resp.json["outcome"] == "ignored"

    def test_channel_failure_still_200(self, client, db_session, make_donation, fake_channel):
        fake_channel.raise_methods.update({"editMessageCaption", "answerCallbackQuery"})
        donation = make_donation()

        resp = client.post(WEBHOOK, json=callback(f"reject_{donation.id}"))

        assert resp.status_code == 200
        assert resp.json["outcome"] == "applied"
        assert status_of(donation.id) == "rejected"


class TestWebhookSecret:

    @pytest.fixture
    def secret(self, app):
        app.config["TELEGRAM_WEBHOOK_SECRET"] = "s3cret"
        yield "s3cret"
        app.config["TELEGRAM_WEBHOOK_SECRET"] = ""

    def test_wrong_secret_is_dropped(self, client, db_session, make_donation, fake_channel, secret):
        donation = make_donation()

        resp = client.post(
            WEBHOOK,
            json=callback(f"approve_{donation.id}"),
            headers={"X-Telegram-Bot-Api-Secret-Token": "nope"},
        )

        assert resp.status_code == 200
        assert resp.json["outcome"] == "ignored"
        assert status_of(donation.id) == "pending"
        assert fake_channel.calls == []

    def test_matching_secret(self, client, db_session, make_donation, fake_channel, secret):
        donation = make_donation()

        resp = client.post(
            WEBHOOK,
            json=callback(f"approve_{donation.id}"),
            headers={"X-Telegram-Bot-Api-Secret-Token": secret},
        )

        assert resp.json["outcome"] == "applied"
        assert status_of(donation.id) == "approved"
