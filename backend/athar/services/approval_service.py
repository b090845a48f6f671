# Overview: Review fan-out for the two entry points (dashboard and bot callback).

"""
Approval fan-out

Both entry points go through donation_service.review_donation(), whose
conditional UPDATE decides the race. Only the winner touches the bot chat:

    bot callback   -> review -> edit the alert message -> answer the callback
    dashboard      -> review -> edit the alert message (if one was sent)

A loser sees AlreadyReviewedError and only gets the "already processed"
acknowledgement; it never edits the message or re-announces the decision.

Everything that talks to the channel is best-effort. Failures are logged and
reported as DeliveryResult values; they never undo a review and never escape
handle_callback_update().
"""

from __future__ import annotations

import enum
from dataclasses import dataclass

from flask import current_app

from ..extensions import channel
from ..models import Donation
from . import channel_messages as texts
from .donation_service import (
    AlreadyReviewedError,
    DonationNotFoundError,
    attach_channel_message,
    review_donation,
)
from .messaging import DeliveryResult, decision_keyboard


# reviewed_by value when the decision came from the bot
CHANNEL_REVIEWER = "telegram"
CALLBACK_ACTIONS = ("approve", "reject")

# Receipts Telegram cannot render as a photo go out as text with a link
_NON_PHOTO_SUFFIXES = (".pdf",)


class MalformedCallbackError(ValueError):
    """Callback payload without a usable {action}_{donationId} token."""


class CallbackOutcome(str, enum.Enum):
    IGNORED = "ignored"
    MALFORMED = "malformed"
    UNKNOWN_ACTION = "unknown_action"
    NOT_FOUND = "not_found"
    ALREADY_REVIEWED = "already_reviewed"
    APPLIED = "applied"
    FAILED = "failed"


@dataclass(frozen=True)
class ReviewResult:
    donation: Donation
    notification: DeliveryResult | None = None


def parse_action_token(token) -> tuple[str, str]:
    """
    Split "{action}_{donationId}" on the FIRST separator only.

    Donation ids may themselves contain '_', so "approve_abc_123" is
    ("approve", "abc_123").
    """
    if not isinstance(token, str) or not token:
        raise MalformedCallbackError("missing callback token")
    action, sep, donation_id = token.partition("_")
    if not sep or not action or not donation_id:
        raise MalformedCallbackError(f"invalid callback token {token!r}")
    return action, donation_id


def _currency() -> str:
    return current_app.config.get("CURRENCY_LABEL", "EGP")


def _best_effort(description: str, func, *args, **kwargs) -> DeliveryResult:
    try:
        result = func(*args, **kwargs)
    except Exception as exc:
        current_app.logger.exception("Messaging channel call failed: %s", description)
        return DeliveryResult.failed(description, str(exc))
    if not result.ok:
        current_app.logger.warning("Messaging channel %s failed: %s", description, result.error)
    return result


def _photo_receipt(url: str | None) -> bool:
    return bool(url) and not url.lower().endswith(_NON_PHOTO_SUFFIXES)


def announce_donation(donation: Donation) -> DeliveryResult:
    """
    Send the new-donation alert with approve/reject buttons.

    Tries the receipt as a photo first and falls back to a text message with
    the receipt link. On success the message ids are stored on the donation.
    """
    try:
        client = channel.client
        chat_id = client.default_chat_id
        keyboard = decision_keyboard(
            donation.id, approve_label=texts.APPROVE_BUTTON, reject_label=texts.REJECT_BUTTON
        )

        kind = "photo"
        result = DeliveryResult.failed("sendPhoto", "no photo receipt")
        if _photo_receipt(donation.receipt_url):
            result = _best_effort(
                "sendPhoto",
                client.send_photo,
                chat_id,
                donation.receipt_url,
                texts.new_donation_text(donation, currency=_currency()),
                keyboard,
            )

        if not result.ok:
            kind = "text"
            result = _best_effort(
                "sendMessage",
                client.send_message,
                chat_id,
                texts.receipt_fallback_text(donation, currency=_currency()),
                keyboard,
            )

        if result.ok and result.message_id is not None:
            attach_channel_message(
                donation.id,
                chat_id=result.chat_id or chat_id,
                message_id=result.message_id,
                kind=kind,
            )
        return result
    except Exception as exc:
        current_app.logger.exception("Failed to announce donation %s", donation.id)
        return DeliveryResult.failed("announce", str(exc))


def _edit_decision_message(donation: Donation, chat_id, message_id: int, kind: str | None) -> DeliveryResult:
    client = channel.client
    text = texts.decision_text(donation, currency=_currency())
    if kind == "text":
        return _best_effort("editMessageText", client.edit_text, chat_id, message_id, text)
    return _best_effort("editMessageCaption", client.edit_caption, chat_id, message_id, text)


def review_from_dashboard(donation_id: str, decision: str, *, reviewer_email: str) -> ReviewResult:
    """
    Dashboard entry point. Lifecycle errors propagate to the route.

    If the donation was announced in the bot chat, that message is updated so
    the buttons disappear there too.
    """
    donation = review_donation(donation_id, decision, reviewer=reviewer_email)

    notification = None
    if donation.channel_message_id is not None and donation.channel_chat_id:
        try:
            notification = _edit_decision_message(
                donation,
                donation.channel_chat_id,
                donation.channel_message_id,
                donation.channel_message_kind,
            )
        except Exception as exc:
            current_app.logger.exception("Failed to update bot message for donation %s", donation_id)
            notification = DeliveryResult.failed("editMessage", str(exc))
    return ReviewResult(donation=donation, notification=notification)


def _object_field(container: dict, key: str) -> dict:
    value = container.get(key)
    return value if isinstance(value, dict) else {}


def _message_kind(message: dict, donation: Donation) -> str | None:
    if message.get("photo"):
        return "photo"
    if "text" in message:
        return "text"
    return donation.channel_message_kind


def handle_callback_update(update) -> CallbackOutcome:
    """
    Process one webhook update from the bot. Never raises.
    """
    callback = update.get("callback_query") if isinstance(update, dict) else None
    if not isinstance(callback, dict):
        return CallbackOutcome.IGNORED

    callback_id = callback.get("id")

    def acknowledge(text: str) -> None:
        if callback_id:
            try:
                _best_effort("answerCallbackQuery", channel.client.answer_callback, callback_id, text)
            except Exception:
                current_app.logger.exception("Failed to answer callback %s", callback_id)

    try:
        action, donation_id = parse_action_token(callback.get("data"))
    except MalformedCallbackError as exc:
        current_app.logger.warning("Malformed bot callback: %s", exc)
        acknowledge(texts.ACK_MALFORMED)
        return CallbackOutcome.MALFORMED

    if action not in CALLBACK_ACTIONS:
        current_app.logger.info("Ignoring unknown bot action %r for donation %s", action, donation_id)
        return CallbackOutcome.UNKNOWN_ACTION

    try:
        donation = review_donation(donation_id, action, reviewer=CHANNEL_REVIEWER)
    except DonationNotFoundError:
        current_app.logger.info("Bot callback for unknown donation %s", donation_id)
        acknowledge(texts.ACK_NOT_FOUND)
        return CallbackOutcome.NOT_FOUND
    except AlreadyReviewedError as exc:
        current_app.logger.info("Bot callback for already reviewed donation %s (%s)", donation_id, exc.status)
        acknowledge(texts.ACK_ALREADY_PROCESSED)
        return CallbackOutcome.ALREADY_REVIEWED
    except Exception:
        current_app.logger.exception("Failed to apply bot review for donation %s", donation_id)
        acknowledge(texts.ACK_ERROR)
        return CallbackOutcome.FAILED

    try:
        message = _object_field(callback, "message")
        chat_id = _object_field(message, "chat").get("id")
        message_id = message.get("message_id")
        if chat_id is not None and message_id is not None:
            _edit_decision_message(donation, chat_id, message_id, _message_kind(message, donation))
    except Exception:
        current_app.logger.exception("Failed to update bot message for donation %s", donation_id)
    finally:
        acknowledge(texts.acknowledgement_for(donation.status))
    return CallbackOutcome.APPLIED
