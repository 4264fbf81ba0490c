"""HTTP interfaces of the user service and the shipment service."""

from __future__ import annotations

import json
import logging
from typing import Any

from flask import Flask, Response, jsonify, request

from .server import INTERNAL_ERROR_MESSAGE, SENSITIVE_FIELDS, redact_sensitive
from .user_service import BadRequestError, RegisterInput, UserService

logger = logging.getLogger(__name__)

REGISTRATION_PATH = "/api/v1/auth/registration"

_REGISTRATION_FIELDS = {"name": str, "email": str, "phoneNumber": str, "password": str}


class _BindError(ValueError):
    def __init__(self, errors: dict[str, str]) -> None:
        super().__init__("invalid request body")
        self.errors = errors


def _bind(fields: dict[str, type]) -> dict[str, Any]:
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        raise _BindError({"body": "must be a JSON object"})
    errors = {
        name: "required" if name not in body else f"must be of type {kind.__name__}"
        for name, kind in fields.items()
        if name not in body or not isinstance(body[name], kind)
    }
    if errors:
        raise _BindError(errors)
    return body


def _new_app() -> Flask:
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

    return app


def create_app(service: UserService) -> Flask:
    """Build the user service application around a user service."""
    app = _new_app()

    @app.post(REGISTRATION_PATH)
    def auth_registration():
        body = _bind(_REGISTRATION_FIELDS)
        try:
            user_id = service.register(
                RegisterInput(
                    name=body["name"],
                    email=body["email"],
                    phone_number=body["phoneNumber"],
                    password=body["password"],
                )
            )
        except BadRequestError as exc:
            return jsonify(message=str(exc)), 400
        except Exception:
            logger.exception("registration failed")
            return jsonify(message=INTERNAL_ERROR_MESSAGE), 500
        return jsonify(id=user_id), 201

    return app


def create_shipment_app() -> Flask:
    """Build the shipment service application, which serves no routes yet."""
    return _new_app()