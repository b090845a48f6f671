# backend/athar/routes/donations.py
"""
Public donation routes (no authentication).

- POST /api/donations          - submit a donation with its transfer receipt
- GET  /api/stats              - public progress counter
- GET  /api/stats/stream       - the same aggregates pushed as Server-Sent Events
- GET  /api/payment-methods    - methods the form may offer
- GET  /uploads/<path>         - stored receipts

ORDER OF SUBMISSION:
1. Validate the form (amount/boxes/payment method) - 400, nothing stored
2. Store the receipt - 502 on failure, no donation is recorded
3. Record the pending donation
4. Announce it in the bot chat (best-effort; a failed alert never fails the request)
"""

import json
import queue

from flask import Blueprint, Response, current_app, jsonify, request, send_from_directory

from ..models import Donation
from ..services import donation_service
from ..services.approval_service import announce_donation
from ..services.blob_store import BlobUploadError, UnsupportedReceiptError, get_blob_store
from ..services.donation_service import LifecycleError
from ..services.live_feed import get_feed
from ..services.stats_service import current_stats
from ..validation import (
    ModelValidationPolicy,
    ValidationError,
    enforce_rules_donation,
    validate_payload,
)


donations_bp = Blueprint("donations", __name__)

DONATION_POLICY = ModelValidationPolicy(
    writable_fields={"amount", "boxes", "payment_method", "receipt_url"},
    required_on_create={"payment_method"},
)

# Seconds between keep-alive comments on an idle stream
STREAM_KEEPALIVE_SECONDS = 15


def _submission_payload() -> dict:
    """Form fields or JSON body, with empty values dropped."""
    if request.mimetype == "multipart/form-data" or request.form:
        raw = request.form.to_dict()
    else:
        raw = request.get_json(silent=True) or {}
        if not isinstance(raw, dict):
            raise ValidationError("Invalid JSON payload")
    return {
        k: v for k, v in raw.items()
        if v is not None and not (isinstance(v, str) and v.strip() == "")
    }


@donations_bp.post("/api/donations")
def submit_donation_route():
    """
    Submit a donation from the public form.

    Multipart: amount?, boxes?, payment_method, receipt (file)
    JSON:      amount?, boxes?, payment_method, receipt_url

    Response 201:
        {"donation": {...}, "notification_sent": bool}
    """
    try:
        patch = validate_payload(
            model=Donation,
            payload=_submission_payload(),
            policy=DONATION_POLICY,
            partial=False,
        )
        enforce_rules_donation(patch)
        donation_service.ensure_payment_method(patch["payment_method"])
    except (ValidationError, LifecycleError) as e:
        return jsonify({"error": str(e)}), 400

    receipt_file = request.files.get("receipt")
    receipt_url = patch.get("receipt_url")
    if receipt_file is not None and receipt_file.filename:
        try:
            receipt_url = get_blob_store().upload(
                receipt_file.stream, receipt_file.filename, receipt_file.mimetype
            )
        except UnsupportedReceiptError as e:
            return jsonify({"error": str(e)}), 400
        except BlobUploadError:
            current_app.logger.exception("Receipt upload failed")
            return jsonify({"error": "Could not store the receipt, please try again"}), 502

    if not receipt_url:
        return jsonify({"error": "receipt is required"}), 400

    try:
        donation = donation_service.submit_donation(
            amount=patch.get("amount"),
            boxes=patch.get("boxes"),
            payment_method=patch["payment_method"],
            receipt_url=receipt_url,
        )
    except LifecycleError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to record donation")
        return jsonify({"error": "Internal server error"}), 500

    notification = announce_donation(donation)

    return jsonify({
        "donation": donation.to_dict(),
        "notification_sent": notification.ok,
    }), 201


@donations_bp.get("/api/stats")
def public_stats_route():
    try:
        return jsonify(current_stats().to_dict()), 200
    except Exception:
        current_app.logger.exception("Failed to compute donation stats")
        return jsonify({"error": "Internal server error"}), 500


def _sse(snapshot) -> str:
    return f"event: stats\ndata: {json.dumps(snapshot.to_dict())}\n\n"


@donations_bp.get("/api/stats/stream")
def stats_stream_route():
    """
    Server-Sent Events: the current aggregates immediately, then a fresh
    snapshot after every committed change to donations.
    """
    updates: "queue.Queue" = queue.Queue()
    unsubscribe = get_feed().subscribe(updates.put)
    try:
        initial = current_stats()
    except Exception:
        unsubscribe()
        current_app.logger.exception("Failed to compute donation stats")
        return jsonify({"error": "Internal server error"}), 500

    def generate():
        try:
            yield _sse(initial)
            while True:
                try:
                    snapshot = updates.get(timeout=STREAM_KEEPALIVE_SECONDS)
                except queue.Empty:
                    yield ": keep-alive\n\n"
                    continue
                yield _sse(snapshot)
        finally:
            unsubscribe()

    response = Response(
        generate(),
        mimetype="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
    # A client that disconnects before the first chunk never enters generate()
    response.call_on_close(unsubscribe)
    return response


@donations_bp.get("/api/payment-methods")
def payment_methods_route():
    config = current_app.config
    return jsonify({
        "payment_methods": list(config["PAYMENT_METHODS"]),
        "box_cost": config["BOX_COST"],
        "currency": config["CURRENCY_LABEL"],
    }), 200


@donations_bp.get("/uploads/<path:filename>")
def uploaded_receipt_route(filename: str):
    return send_from_directory(current_app.config["UPLOAD_FOLDER"], filename)
