# backend/athar/routes/inventory.py
"""
Box-ingredient inventory routes.

SECURITY: All routes require authentication. created_by on every stock
transaction is the authenticated operator's email.

- GET   /api/inventory/items                    - items + capacity (seeds an empty catalog)
- POST  /api/inventory/items/<id>/purchase      - {quantity, cost_per_unit?, supplier?, notes?}
- POST  /api/inventory/items/<id>/adjust        - {quantity, notes?}  (signed delta)
- PATCH /api/inventory/items/<id>/cost          - {cost_per_unit}
- POST  /api/inventory/produce                  - {boxes}
- GET   /api/inventory/transactions?item_id=&type=&limit=
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..models import StockTransaction
from ..services import inventory_service
from ..services.inventory_service import (
    InsufficientStockError,
    InvalidItemError,
    InventoryError,
)
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    ValidationError,
    enforce_rules_stock_purchase,
    enforce_rules_stock_adjustment,
    parse_positive_int,
    parse_non_negative_float,
    json_object,
)
from ..decorators import require_auth


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")

STOCK_PURCHASE_POLICY = ModelValidationPolicy(
    writable_fields={"quantity", "cost_per_unit", "supplier", "notes"},
    required_on_create={"quantity"},
)

STOCK_ADJUST_POLICY = ModelValidationPolicy(
    writable_fields={"quantity", "notes"},
    required_on_create={"quantity"},
)

MAX_TRANSACTIONS_LIMIT = 1000


def _inventory_error_response(e: InventoryError):
    if isinstance(e, InvalidItemError):
        return jsonify({"error": str(e)}), 404
    if isinstance(e, InsufficientStockError):
        return jsonify({"error": str(e), **e.to_dict()}), 409
    return jsonify({"error": str(e)}), 400


def _inventory_summary() -> dict:
    items = inventory_service.list_items()
    capacity = inventory_service.compute_capacity(
        items, target_boxes=int(current_app.config["TARGET_BOXES"])
    )
    return {
        "items": [item.to_dict() for item in items],
        "capacity": capacity.to_dict(),
    }


@inventory_bp.get("/items")
@require_auth
def list_items_route():
    try:
        inventory_service.ensure_default_catalog()
        return jsonify(_inventory_summary()), 200
    except Exception:
        current_app.logger.exception("Failed to load inventory")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("/items/<int:item_id>/purchase")
@require_auth
def purchase_route(item_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(
            model=StockTransaction,
            payload=payload,
            policy=STOCK_PURCHASE_POLICY,
            partial=False,
        )
        enforce_rules_stock_purchase(patch)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    try:
        tx = inventory_service.add_stock(
            item_id=item_id,
            quantity=patch["quantity"],
            cost_per_unit=patch.get("cost_per_unit"),
            supplier=patch.get("supplier"),
            notes=patch.get("notes"),
            user=g.current_user.email,
        )
    except InventoryError as e:
        return _inventory_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record stock purchase")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"transaction": tx.to_dict(), "item": tx.item.to_dict()}), 201


@inventory_bp.post("/items/<int:item_id>/adjust")
@require_auth
def adjust_route(item_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(
            model=StockTransaction,
            payload=payload,
            policy=STOCK_ADJUST_POLICY,
            partial=False,
        )
        enforce_rules_stock_adjustment(patch)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    try:
        tx = inventory_service.adjust_stock(
            item_id=item_id,
            quantity_delta=patch["quantity"],
            notes=patch.get("notes"),
            user=g.current_user.email,
        )
    except InventoryError as e:
        return _inventory_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to adjust stock")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"transaction": tx.to_dict(), "item": tx.item.to_dict()}), 201


@inventory_bp.patch("/items/<int:item_id>/cost")
@require_auth
def set_cost_route(item_id: int):
    try:
        payload = json_object(request.get_json(silent=True))
        cost = parse_non_negative_float(payload.get("cost_per_unit"), "cost_per_unit")
        item = inventory_service.set_unit_cost(item_id=item_id, cost=cost)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except InventoryError as e:
        return _inventory_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update unit cost")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"item": item.to_dict()}), 200


@inventory_bp.post("/produce")
@require_auth
def produce_route():
    """
    Prepare boxes: deducts quantity_per_box * boxes from every item, all or nothing.

    Error responses:
        400: boxes missing / not a positive integer, or empty catalog
        409: an item cannot cover the batch (item, available, required)
    """
    try:
        payload = json_object(request.get_json(silent=True))
        count = parse_positive_int(payload.get("boxes"), "boxes")
        transactions = inventory_service.produce_units(count, user=g.current_user.email)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except InventoryError as e:
        return _inventory_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to produce boxes")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({
        "boxes": count,
        "transactions": [tx.to_dict() for tx in transactions],
        **_inventory_summary(),
    }), 201


@inventory_bp.get("/transactions")
@require_auth
def list_transactions_route():
    try:
        item_id = request.args.get("item_id", type=int)
        tx_type = request.args.get("type") or None
        limit = max(1, min(request.args.get("limit", default=200, type=int), MAX_TRANSACTIONS_LIMIT))

        transactions = inventory_service.list_transactions(
            item_id=item_id, tx_type=tx_type, limit=limit
        )
    except InventoryError as e:
        return _inventory_error_response(e)

    return jsonify({
        "transactions": [tx.to_dict() for tx in transactions],
        "count": len(transactions),
    }), 200
