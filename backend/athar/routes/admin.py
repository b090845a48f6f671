# backend/athar/routes/admin.py
"""
Dashboard donation routes.

- GET  /api/admin/donations?status=pending|approved|rejected|all
- GET  /api/admin/stats
- POST /api/admin/donations/<id>/review   {"decision": "approve" | "reject"}
- POST /api/admin/donations/manual        {"amount": int, "boxes": int?}

SECURITY:
- All routes require authentication
- The reviewer / operator is g.current_user.email, NOT taken from the request body
"""

from dataclasses import asdict

from flask import Blueprint, request, jsonify, g, current_app

from ..models import Donation
from ..services import donation_service
from ..services.approval_service import review_from_dashboard
from ..services.donation_service import (
    AlreadyReviewedError,
    DonationNotFoundError,
    LifecycleError,
)
from ..services.stats_service import current_stats
from ..validation import (
    ModelValidationPolicy,
    ValidationError,
    enforce_rules_donation,
    json_object,
    validate_payload,
)
from ..decorators import require_auth


admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")

MANUAL_DONATION_POLICY = ModelValidationPolicy(
    writable_fields={"amount", "boxes"},
    required_on_create={"amount"},
)


@admin_bp.get("/donations")
@require_auth
def list_donations_route():
    status = request.args.get("status") or None
    try:
        donations = donation_service.list_donations(status=status)
    except LifecycleError as e:
        return jsonify({"error": str(e)}), 400

    return jsonify({
        "donations": [d.to_dict() for d in donations],
        "count": len(donations),
    }), 200


@admin_bp.get("/stats")
@require_auth
def admin_stats_route():
    try:
        return jsonify(current_stats(include_review_queue=True).to_dict()), 200
    except Exception:
        current_app.logger.exception("Failed to compute donation stats")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.post("/donations/<donation_id>/review")
@require_auth
def review_donation_route(donation_id: str):
    """
    Approve or reject a pending donation.

    Error responses:
        400: decision is not approve/reject
        404: donation not found
        409: donation already reviewed (from the bot or another operator)
    """
    try:
        decision = json_object(request.get_json(silent=True)).get("decision")
        result = review_from_dashboard(
            donation_id,
            decision,
            reviewer_email=g.current_user.email,
        )
    except DonationNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except AlreadyReviewedError as e:
        return jsonify({"error": str(e), "status": e.status}), 409
    except LifecycleError as e:
        return jsonify({"error": str(e)}), 400
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to review donation")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({
        "donation": result.donation.to_dict(),
        "notification": asdict(result.notification) if result.notification else None,
    }), 200


@admin_bp.post("/donations/manual")
@require_auth
def manual_donation_route():
    """Record an off-form donation; it is approved immediately."""
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(
            model=Donation,
            payload=payload,
            policy=MANUAL_DONATION_POLICY,
            partial=False,
        )
        enforce_rules_donation(patch)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    try:
        donation = donation_service.record_manual_donation(
            amount=patch["amount"],
            boxes=patch.get("boxes"),
            operator=g.current_user.email,
        )
    except LifecycleError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to record manual donation")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"donation": donation.to_dict()}), 201
