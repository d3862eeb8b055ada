# Overview: Flask API routes for the stock ledger (read-only); parses input and returns JSON responses.

from flask import Blueprint, request

from ..services.ledger_service import Ledger
from ..decorators import handle_domain_errors

"""
Date semantics:
- start_date / end_date accept ISO-8601 dates or datetimes (Z/offsets allowed).
- Ranges are inclusive; a bare end date covers that whole day.
"""

transactions_bp = Blueprint("transactions", __name__, url_prefix="/api/transactions")


def _list_response(items) -> dict:
    return {"data": [t.to_dict() for t in items], "count": len(items)}


@transactions_bp.get("")
@handle_domain_errors("list transactions")
def list_transactions_route():
    rows = Ledger().list_transactions(
        product_id=request.args.get("product_id"),
        type=request.args.get("type"),
        start_date=request.args.get("start_date"),
        end_date=request.args.get("end_date"),
        limit=request.args.get("limit", type=int),
        offset=request.args.get("offset", default=0, type=int),
    )
    return _list_response(rows)


@transactions_bp.get("/recent")
@handle_domain_errors("list recent transactions")
def recent_transactions_route():
    limit = request.args.get("limit", default=10, type=int)
    return _list_response(Ledger().recent(limit=limit))


@transactions_bp.get("/summary")
@handle_domain_errors("summarize transactions")
def transaction_summary_route():
    summary = Ledger().summarize(request.args.get("start_date"), request.args.get("end_date"))
    return {"data": summary}


@transactions_bp.get("/product/<product_id>")
@handle_domain_errors("list product transactions")
def product_transactions_route(product_id: str):
    limit = request.args.get("limit", default=50, type=int)
    return _list_response(Ledger().list_for_product(product_id, limit=limit))


@transactions_bp.get("/<transaction_id>")
@handle_domain_errors("load transaction")
def get_transaction_route(transaction_id: str):
    return {"data": Ledger().get_transaction(transaction_id).to_dict()}
