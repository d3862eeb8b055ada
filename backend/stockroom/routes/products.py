# Overview: Flask API routes for products and stock adjustments; parses input and returns JSON responses.

# backend/stockroom/routes/products.py
"""
Product registry routes.

The acting user (X-User-Id) is stamped on created products and on the ledger
row written by POST /<id>/stock.
"""
from flask import Blueprint, request, g

from ..models import Product, StockTransaction
from ..services.products_service import ProductRegistry
from ..services.stock_service import adjust_stock
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    coerce_int,
    enforce_rules_product,
    enforce_rules_stock_adjustment,
    ValidationError,
)
from ..decorators import with_actor, handle_domain_errors

_PRODUCT_FIELDS = {
    "name", "description", "sku", "barcode", "category_id", "supplier_id",
    "price", "cost_price", "min_stock", "unit", "location", "image_url", "is_active",
}

PRODUCT_CREATE_POLICY = ModelValidationPolicy(
    writable_fields=_PRODUCT_FIELDS | {"quantity"},  # opening stock, booked as stock_in
    required_on_create={"name"},
)

PRODUCT_UPDATE_POLICY = ModelValidationPolicy(writable_fields=_PRODUCT_FIELDS)

STOCK_ADJUST_POLICY = ModelValidationPolicy(
    writable_fields={"type", "reference_no", "notes", "unit_price"},
    required_on_create={"type"},
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


def _list_response(items) -> dict:
    return {"data": [i.to_dict() for i in items], "count": len(items)}


@products_bp.get("")
@with_actor
@handle_domain_errors("list products")
def list_products_route():
    """
    Query params:
    - search: matches name, sku or barcode
    - category_id
    - is_active: "0" lists deactivated products (default "1")
    - limit / offset
    """
    products = ProductRegistry().list_products(
        search=request.args.get("search"),
        category_id=request.args.get("category_id"),
        is_active=request.args.get("is_active", "1") not in ("0", "false"),
        limit=request.args.get("limit", type=int),
        offset=request.args.get("offset", default=0, type=int),
    )
    return _list_response(products)


@products_bp.get("/stats")
@handle_domain_errors("load inventory stats")
def product_stats_route():
    return {"data": ProductRegistry().inventory_stats()}


@products_bp.get("/low-stock")
@handle_domain_errors("list low-stock products")
def low_stock_route():
    return _list_response(ProductRegistry().list_low_stock())


@products_bp.get("/out-of-stock")
@handle_domain_errors("list out-of-stock products")
def out_of_stock_route():
    return _list_response(ProductRegistry().list_out_of_stock())


@products_bp.get("/barcode/<barcode>")
@handle_domain_errors("look up product by barcode")
def product_by_barcode_route(barcode: str):
    return {"data": ProductRegistry().get_product_by_barcode(barcode).to_dict()}


@products_bp.get("/<product_id>")
@handle_domain_errors("load product")
def get_product_route(product_id: str):
    return {"data": ProductRegistry().get_product(product_id).to_dict()}


@products_bp.post("")
@with_actor
@handle_domain_errors("create product")
def create_product_route():
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_CREATE_POLICY, partial=False)
    enforce_rules_product(patch)

    created = ProductRegistry().create_product(patch, user_id=g.user_id)
    return {"data": created.to_dict()}, 201


@products_bp.put("/<product_id>")
@with_actor
@handle_domain_errors("update product")
def update_product_route(product_id: str):
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_UPDATE_POLICY, partial=True)
    enforce_rules_product(patch)

    updated = ProductRegistry().update_product(product_id, patch)
    return {"data": updated.to_dict()}


@products_bp.delete("/<product_id>")
@with_actor
@handle_domain_errors("delete product")
def delete_product_route(product_id: str):
    ProductRegistry().delete_product(product_id)
    return {"data": {"id": product_id, "is_active": False}}


@products_bp.post("/<product_id>/stock")
@with_actor
@handle_domain_errors("adjust stock")
def adjust_stock_route(product_id: str):
    """
    Apply a signed stock change.

    Request body:
    {
        "quantity_change": -3,
        "type": "stock_out",
        "reference_no": "PO-1001",  (optional)
        "notes": "...",  (optional)
        "unit_price": 9.5  (optional, defaults to product price)
    }

    Returns:
        200: {"data": {"product": ..., "transaction": ...}}
        400: invalid input or type
        404: product not found
        409: insufficient stock
    """
    payload = dict(request.get_json(silent=True) or {})
    if "quantity_change" not in payload:
        raise ValidationError("quantity_change and type are required")
    quantity_change = coerce_int("quantity_change", payload.pop("quantity_change"))

    patch = validate_payload(model=StockTransaction, payload=payload, policy=STOCK_ADJUST_POLICY, partial=False)
    patch["quantity_change"] = quantity_change
    enforce_rules_stock_adjustment(patch)

    result = adjust_stock(
        product_id,
        patch["quantity_change"],
        patch["type"],
        reference_no=patch.get("reference_no"),
        notes=patch.get("notes"),
        unit_price=patch.get("unit_price"),
        user_id=g.user_id,
    )
    return {"data": result.to_dict()}
