# backend/athar/routes/telegram.py
"""
Bot webhook.

Always answers 200 with {"ok": true, "outcome": ...}. Duplicate deliveries
of the same callback resolve to "already_reviewed".

When TELEGRAM_WEBHOOK_SECRET is set, updates without the matching
X-Telegram-Bot-Api-Secret-Token header are dropped (still 200).
"""

import hmac

from flask import Blueprint, request, jsonify, current_app

from ..services.approval_service import CallbackOutcome, handle_callback_update


telegram_bp = Blueprint("telegram", __name__, url_prefix="/api/telegram")

SECRET_HEADER = "X-Telegram-Bot-Api-Secret-Token"


def _secret_matches() -> bool:
    expected = current_app.config.get("TELEGRAM_WEBHOOK_SECRET")
    if not expected:
        return True
    supplied = request.headers.get(SECRET_HEADER, "")
    return hmac.compare_digest(supplied.encode("utf-8"), expected.encode("utf-8"))


@telegram_bp.post("/webhook")
def webhook_route():
    if not _secret_matches():
        current_app.logger.warning("Bot webhook call with a bad secret token from %s", request.remote_addr)
        return jsonify({"ok": True, "outcome": CallbackOutcome.IGNORED.value}), 200

    update = request.get_json(silent=True)
    try:
        outcome = handle_callback_update(update)
    except Exception:
        current_app.logger.exception("Bot webhook processing failed")
        outcome = CallbackOutcome.FAILED

    return jsonify({"ok": True, "outcome": outcome.value}), 200
