"""HTTP interface of the product service."""

from __future__ import annotations

import json
import logging
from typing import Any

from flask import Flask, Response, jsonify, request

from .product_usecase import CreateProductCategoryInput, CreateProductInput, ProductUsecase
from .server import INTERNAL_ERROR_MESSAGE, SENSITIVE_FIELDS, redact_sensitive

logger = logging.getLogger(__name__)

PRODUCTS_PATH = "/api/v1/products"
PRODUCT_CATEGORIES_PATH = "/api/v1/product-categories"

_PRODUCT_FIELDS = {
    "categoryId": int,
    "name": str,
    "description": str,
    "price": float,
    "stock": int,
    "sku": str,
    "isActive": bool,
}
_CATEGORY_FIELDS = {"name": str, "description": str}


class _BindError(ValueError):
    def __init__(self, errors: dict[str, str]) -> None:
        super().__init__("invalid request body")
        self.errors = errors


def _matches(value: Any, kind: type) -> bool:
    if kind is bool:
        return isinstance(value, bool)
    if isinstance(value, bool):
        return False
    if kind is float:
        return isinstance(value, (int, float))
    return isinstance(value, kind)


def _bind(fields: dict[str, type]) -> dict[str, Any]:
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        raise _BindError({"body": "must be a JSON object"})
    errors = {
        name: "required" if name not in body else f"must be of type {kind.__name__}"
        for name, kind in fields.items()
        if name not in body or not _matches(body[name], kind)
    }
    if errors:
        raise _BindError(errors)
    return body


def create_app(usecase: ProductUsecase) -> Flask:
    """Build the product service application around a use case."""
    app = Flask(__name__)

    @app.errorhandler(_BindError)
    def _bad_request(exc: _BindError):
        return jsonify(message=str(exc), errors=exc.errors), 400

    @app.after_request
    def _log_request(response: Response) -> Response:
        body = redact_sensitive(request.get_json(silent=True), SENSITIVE_FIELDS)
        logger.info(
            "%s %s -> %d body=%s",
            request.method,
            request.path,
            response.status_code,
            json.dumps(body),
        )
        return response

    @app.post(PRODUCTS_PATH)
    def create_product():
        body = _bind(_PRODUCT_FIELDS)
        try:
            product_id = usecase.create_product(
                CreateProductInput(
                    category_id=body["categoryId"],
                    name=body["name"],
                    description=body["description"],
                    price=float(body["price"]),
                    stock=body["stock"],
                    sku=body["sku"],
                    is_active=body["isActive"],
                )
            )
        except Exception:
            logger.exception("create product failed")
            return jsonify(message=INTERNAL_ERROR_MESSAGE), 500
        return jsonify(id=product_id), 201

    @app.post(PRODUCT_CATEGORIES_PATH)
    def create_product_category():
        body = _bind(_CATEGORY_FIELDS)
        try:
            category_id = usecase.create_product_category(
                CreateProductCategoryInput(name=body["name"], description=body["description"])
            )
        except Exception:
            logger.exception("create product category failed")
            return jsonify(message=INTERNAL_ERROR_MESSAGE), 500
        return jsonify(id=category_id), 201

    return app