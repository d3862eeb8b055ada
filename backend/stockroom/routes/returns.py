# Overview: Flask API routes for returns operations; parses input and returns JSON responses.

# backend/stockroom/routes/returns.py
"""
Return Processing API Routes

DESIGN:
- Create returns in 'pending' (no stock effect)
- Process to approved / rejected / completed; only completion moves stock
- Completing a pending return auto-approves it first (recorded in history)
- Edit while not completed; delete only while pending
"""

from flask import Blueprint, request, jsonify, g

from ..models import Return
from ..services.return_service import ReturnWorkflow
from ..validation import ModelValidationPolicy, validate_payload, ValidationError
from ..decorators import with_actor, handle_domain_errors


returns_bp = Blueprint("returns", __name__, url_prefix="/api/returns")

RETURN_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={
        "product_id", "type", "quantity", "reason", "customer_name", "customer_contact",
        "supplier_id", "original_transaction_id", "refund_amount", "notes",
    },
    required_on_create={"product_id", "type", "quantity"},
)

RETURN_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={
        "quantity", "reason", "customer_name", "customer_contact",
        "supplier_id", "refund_amount", "notes",
    },
)


def _list_response(items) -> dict:
    return {"data": [r.to_dict() for r in items], "count": len(items)}


# =============================================================================
# QUERIES
# =============================================================================

@returns_bp.get("")
@handle_domain_errors("list returns")
def list_returns_route():
    returns = ReturnWorkflow().list_returns(
        type=request.args.get("type"),
        status=request.args.get("status"),
        product_id=request.args.get("product_id"),
        limit=request.args.get("limit", type=int),
        offset=request.args.get("offset", default=0, type=int),
    )
    return _list_response(returns)


@returns_bp.get("/recent")
@handle_domain_errors("list recent returns")
def recent_returns_route():
    limit = request.args.get("limit", default=10, type=int)
    return _list_response(ReturnWorkflow().recent(limit=limit))


@returns_bp.get("/stats")
@handle_domain_errors("load return stats")
def return_stats_route():
    stats = ReturnWorkflow().return_stats(
        start_date=request.args.get("start_date"),
        end_date=request.args.get("end_date"),
    )
    return {"data": stats}


@returns_bp.get("/product/<product_id>")
@handle_domain_errors("list product returns")
def product_returns_route(product_id: str):
    limit = request.args.get("limit", default=50, type=int)
    return _list_response(ReturnWorkflow().list_for_product(product_id, limit=limit))


@returns_bp.get("/<return_id>")
@handle_domain_errors("load return")
def get_return_route(return_id: str):
    return_doc = ReturnWorkflow().get_return(return_id)
    return {"data": return_doc.to_dict(include_history=True)}


# =============================================================================
# WRITES
# =============================================================================

@returns_bp.post("")
@with_actor
@handle_domain_errors("create return")
def create_return_route():
    """
    Request body:
    {
        "product_id": "prod_1a2b3c4d",
        "type": "return_in" | "return_out",
        "quantity": 2,
        "reason": "Damaged in transit",  (optional)
        "customer_name" / "customer_contact",  (return_in, optional)
        "supplier_id",  (return_out, optional)
        "original_transaction_id", "refund_amount", "notes"  (optional)
    }

    Returns:
        201: return in 'pending'
        400: invalid input
        404: product not found
        409: return_out larger than current stock
    """
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=Return, payload=payload, policy=RETURN_CREATE_POLICY, partial=False)

    return_doc = ReturnWorkflow().create_return(patch, user_id=g.user_id)
    return jsonify({"data": return_doc.to_dict(include_history=True)}), 201


@returns_bp.put("/<return_id>")
@with_actor
@handle_domain_errors("update return")
def update_return_route(return_id: str):
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=Return, payload=payload, policy=RETURN_UPDATE_POLICY, partial=True)

    return_doc = ReturnWorkflow().update_return(return_id, patch)
    return {"data": return_doc.to_dict()}


@returns_bp.post("/<return_id>/process")
@with_actor
@handle_domain_errors("process return")
def process_return_route(return_id: str):
    """
    Request body:
    {
        "status": "approved" | "rejected" | "completed",
        "notes": "..."  (optional)
    }

    Returns:
        200: updated return with history
        400: invalid status
        404: return not found
        409: already completed / rejected, or insufficient stock on completion
    """
    payload = request.get_json(silent=True) or {}
    status = payload.get("status")
    if not status:
        raise ValidationError("status must be approved, rejected, or completed")

    return_doc = ReturnWorkflow().process_return(
        return_id,
        status,
        processed_by=g.user_id,
        notes=payload.get("notes") or None,
    )
    return {"data": return_doc.to_dict(include_history=True)}


@returns_bp.delete("/<return_id>")
@with_actor
@handle_domain_errors("delete return")
def delete_return_route(return_id: str):
    ReturnWorkflow().delete_return(return_id)
    return {"data": {"id": return_id, "deleted": True}}
