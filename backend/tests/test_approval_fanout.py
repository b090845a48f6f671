"""
Approval fan-out tests (service level).

Verifies:
- callback token parsing (first '_' only)
- announce: photo first, text fallback, message ids stored
- bot callback: winner edits + acknowledges, loser only acknowledges
- dashboard review edits the announced message
- channel failures never undo or block a review
"""

import pytest

from athar.extensions import db
from athar.models import Donation
from athar.services import approval_service
from athar.services.approval_service import (
    CallbackOutcome,
    MalformedCallbackError,
    announce_donation,
    handle_callback_update,
    parse_action_token,
    review_from_dashboard,
)
from athar.services.channel_messages import (
    ACK_ALREADY_PROCESSED,
    ACK_APPROVED,
    ACK_MALFORMED,
    ACK_NOT_FOUND,
    ACK_REJECTED,
)
from athar.services.donation_service import AlreadyReviewedError


def callback_update(data, *, callback_id="cb-1", chat_id=-100200300, message_id=77, photo=True):
    message = {"message_id": message_id, "chat": {"id": chat_id}}
    if photo:
        message["photo"] = [{"file_id": "x"}]
    else:
        message["text"] = "New donation"
    return {
        "update_id": 1,
        "callback_query": {
            "id": callback_id,
            "from": {"id": 42, "first_name": "Reviewer"},
            "message": message,
            "data": data,
        },
    }


def reload(donation_id):
    return db.session.get(Donation, donation_id, populate_existing=True)


# =============================================================================
# TOKEN PARSING
# =============================================================================


class TestParseActionToken:

    def test_simple(self):
        assert parse_action_token("approve_abc123") == ("approve", "abc123")

    def test_splits_on_first_separator_only(self):
        assert parse_action_token("reject_abc_def_1") == ("reject", "abc_def_1")

    @pytest.mark.parametrize("token", [None, "", "approve", "_abc", "approve_", 42])
    def test_malformed(self, token):
        with pytest.raises(MalformedCallbackError):
            parse_action_token(token)


# =============================================================================
# ANNOUNCE
# =============================================================================


class TestAnnounceDonation:

    def test_photo_with_buttons(self, db_session, make_donation, fake_channel):
        donation = make_donation()
        result = announce_donation(donation)

        assert result.ok
        assert fake_channel.methods() == ["sendPhoto"]
        sent = fake_channel.calls_to("sendPhoto")[0]
        assert sent["photo"] == donation.receipt_url
        buttons = sent["reply_markup"]["inline_keyboard"][0]
        assert [b["callback_data"] for b in buttons] == [
            f"approve_{donation.id}",
            f"reject_{donation.id}",
        ]

        stored = reload(donation.id)
        assert stored.channel_message_id == result.message_id
        assert stored.channel_message_kind == "photo"
        assert stored.channel_chat_id == fake_channel.default_chat_id

    def test_falls_back_to_text(self, db_session, make_donation, fake_channel):
        fake_channel.fail_methods.add("sendPhoto")
        donation = make_donation()

        result = announce_donation(donation)

        assert result.ok
        assert fake_channel.methods() == ["sendPhoto", "sendMessage"]
        text = fake_channel.calls_to("sendMessage")[0]["text"]
        assert "Receipt" in text
        assert reload(donation.id).channel_message_kind == "text"

    def test_pdf_receipt_goes_straight_to_text(self, db_session, make_donation, fake_channel):
        donation = make_donation(receipt_url="https://athar.test/uploads/screenshots/1_r.pdf")
        announce_donation(donation)
        assert fake_channel.methods() == ["sendMessage"]

    def test_total_failure_is_reported_not_raised(self, db_session, make_donation, fake_channel):
        fake_channel.fail_methods.update({"sendPhoto", "sendMessage"})
        donation = make_donation()

        result = announce_donation(donation)

        assert not result.ok
        stored = reload(donation.id)
        assert stored.status == "pending"
        assert stored.channel_message_id is None

    def test_exception_in_channel_is_contained(self, db_session, make_donation, fake_channel):
        fake_channel.raise_methods.update({"sendPhoto", "sendMessage"})
        donation = make_donation()

        result = announce_donation(donation)

        assert not result.ok
        assert reload(donation.id).status == "pending"

    def test_disabled_channel(self, db_session, make_donation):
        donation = make_donation()
        result = announce_donation(donation)
        assert not result.ok
        assert result.error == "channel not configured"


# =============================================================================
# BOT CALLBACK
# =============================================================================


class TestHandleCallbackUpdate:

    def test_approve_applies_edits_and_acknowledges(self, db_session, make_donation, fake_channel):
        donation = make_donation()

        outcome = handle_callback_update(callback_update(f"approve_{donation.id}"))

        assert outcome == CallbackOutcome.APPLIED
        stored = reload(donation.id)
        assert stored.status == "approved"
        assert stored.reviewed_by == approval_service.CHANNEL_REVIEWER

        assert fake_channel.methods() == ["editMessageCaption", "answerCallbackQuery"]
        edit = fake_channel.calls_to("editMessageCaption")[0]
        assert edit["message_id"] == 77
        assert "Approved" in edit["caption"]
        assert fake_channel.calls_to("answerCallbackQuery")[0]["text"] == ACK_APPROVED

    def test_reject_on_text_message_edits_text(self, db_session, make_donation, fake_channel):
        donation = make_donation()

        outcome = handle_callback_update(callback_update(f"reject_{donation.id}", photo=False))

        assert outcome == CallbackOutcome.APPLIED
        assert reload(donation.id).status == "rejected"
        assert fake_channel.methods() == ["editMessageText", "answerCallbackQuery"]
        assert fake_channel.calls_to("answerCallbackQuery")[0]["text"] == ACK_REJECTED

    def test_id_with_underscore(self, db_session, make_donation, fake_channel):
        donation = make_donation(id="abc_def_123")

        outcome = handle_callback_update(callback_update("approve_abc_def_123"))

        assert outcome == CallbackOutcome.APPLIED
        assert reload("abc_def_123").status == "approved"

    def test_second_callback_only_acknowledges(self, db_session, make_donation, fake_channel):
        donation = make_donation()
        handle_callback_update(callback_update(f"approve_{donation.id}", callback_id="cb-1"))
        fake_channel.calls.clear()

        outcome = handle_callback_update(callback_update(f"reject_{donation.id}", callback_id="cb-2"))

        assert outcome == CallbackOutcome.ALREADY_REVIEWED
        assert reload(donation.id).status == "approved"
        assert fake_channel.methods() == ["answerCallbackQuery"]
        assert fake_channel.calls_to("answerCallbackQuery")[0]["text"] == ACK_ALREADY_PROCESSED

    def test_unknown_donation(self, db_session, fake_channel):
        outcome = handle_callback_update(callback_update("approve_missing"))

        assert outcome == CallbackOutcome.NOT_FOUND
        assert fake_channel.methods() == ["answerCallbackQuery"]
        assert fake_channel.calls_to("answerCallbackQuery")[0]["text"] == ACK_NOT_FOUND

    def test_malformed_token(self, db_session, fake_channel):
        outcome = handle_callback_update(callback_update("garbage"))

        assert outcome == CallbackOutcome.MALFORMED
        assert fake_channel.calls_to("answerCallbackQuery")[0]["text"] == ACK_MALFORMED

    def test_unknown_action_changes_nothing(self, db_session, make_donation, fake_channel):
        donation = make_donation()

        outcome = handle_callback_update(callback_update(f"archive_{donation.id}"))

        assert outcome == CallbackOutcome.UNKNOWN_ACTION
        assert reload(donation.id).status == "pending"
        assert fake_channel.calls == []

    @pytest.mark.parametrize("update", [None, {}, {"message": {"text": "hi"}}, []])
    def test_non_callback_updates_ignored(self, db_session, fake_channel, update):
        assert handle_callback_update(update) == CallbackOutcome.IGNORED
        assert fake_channel.calls == []

    def test_edit_failure_still_applies(self, db_session, make_donation, fake_channel):
        fake_channel.raise_methods.add("editMessageCaption")
        donation = make_donation()

        outcome = handle_callback_update(callback_update(f"approve_{donation.id}"))

        assert outcome == CallbackOutcome.APPLIED
        assert reload(donation.id).status == "approved"
        assert "answerCallbackQuery" in fake_channel.methods()

    def test_acknowledge_failure_is_contained(self, db_session, make_donation, fake_channel):
        fake_channel.raise_methods.add("answerCallbackQuery")
        donation = make_donation()

        outcome = handle_callback_update(callback_update(f"approve_{donation.id}"))

        assert outcome == CallbackOutcome.APPLIED
        assert reload(donation.id).status == "approved"

    @pytest.mark.parametrize("message", ["oops", {"message_id": 77, "chat": "oops"}, ["x"]])
    def test_odd_message_shape_still_acknowledged(self, db_session, make_donation, fake_channel, message):
        donation = make_donation()
        update = {
            "callback_query": {"id": "cb-9", "message": message, "data": f"approve_{donation.id}"},
        }

        outcome = handle_callback_update(update)

        assert outcome == CallbackOutcome.APPLIED
        assert reload(donation.id).status == "approved"
        assert fake_channel.methods() == ["answerCallbackQuery"]
        assert fake_channel.calls_to("answerCallbackQuery")[0]["text"] == ACK_APPROVED


# =============================================================================
# DASHBOARD REVIEW
# =============================================================================


class TestReviewFromDashboard:

    def test_edits_announced_message(self, db_session, make_donation, fake_channel):
        donation = make_donation()
        announce_donation(donation)
        message_id = reload(donation.id).channel_message_id
        fake_channel.calls.clear()

        result = review_from_dashboard(donation.id, "approve", reviewer_email="op@athar.test")

        assert result.donation.status == "approved"
        assert result.donation.reviewed_by == "op@athar.test"
        assert result.notification.ok
        edit = fake_channel.calls_to("editMessageCaption")[0]
        assert edit["message_id"] == message_id
        assert "op@athar.test" in edit["caption"]

    def test_without_announcement_sends_nothing(self, db_session, make_donation, fake_channel):
        donation = make_donation()

        result = review_from_dashboard(donation.id, "reject", reviewer_email="op@athar.test")

        assert result.donation.status == "rejected"
        assert result.notification is None
        assert fake_channel.calls == []

    def test_loser_raises_and_sends_nothing(self, db_session, make_donation, fake_channel):
        donation = make_donation()
        announce_donation(donation)
        handle_callback_update(callback_update(f"approve_{donation.id}"))
        fake_channel.calls.clear()

        with pytest.raises(AlreadyReviewedError):
            review_from_dashboard(donation.id, "reject", reviewer_email="op@athar.test")

        assert fake_channel.calls == []
        assert reload(donation.id).status == "approved"

    def test_edit_failure_keeps_review(self, db_session, make_donation, fake_channel):
        donation = make_donation()
        announce_donation(donation)
        fake_channel.fail_methods.add("editMessageCaption")

        result = review_from_dashboard(donation.id, "approve", reviewer_email="op@athar.test")

        assert result.donation.status == "approved"
        assert not result.notification.ok
        assert reload(donation.id).status == "approved"
