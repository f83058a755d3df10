"""
app/__init__.py — Flask application factory.

create_app(config_name) builds a fully configured app. Nothing is initialised
at import time, so tests can create isolated apps and `flask db migrate` can
load metadata without starting a server.

Responsibilities:
  1. Load configuration from config_by_name[config_name]
  2. Configure logging from LOG_LEVEL
  3. Initialise extensions and store the transaction RetryPolicy
  4. Register route blueprints under /api/v1
  5. Register global error handlers (AppError, ValidationError, Exception)
  6. Serialise Decimal as string in every JSON response
"""

from __future__ import annotations

import logging
import sys
import traceback
from decimal import Decimal

from flask import Flask, jsonify, request
from flask.json.provider import DefaultJSONProvider
from marshmallow import ValidationError

from billsplit.config import config_by_name, validate_production_config

_LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


class DecimalJSONProvider(DefaultJSONProvider):
    """
    Serialises Decimal as str so amounts never pass through a float.

    Decimal("10.50") → "10.50" (not 10.5)
    """

    def default(self, o):
        if isinstance(o, Decimal):
            return str(o)
        return super().default(o)


def create_app(config_name: str = "development") -> Flask:
    """
    Creates and returns a configured Flask application instance.

    Args:
        config_name: "development", "testing" or "production".
                     Unknown names fall back to development.
    """
    app = Flask(__name__)
    app.json_provider_class = DecimalJSONProvider
    app.json = DecimalJSONProvider(app)

    config_class = config_by_name.get(config_name, config_by_name["development"])
    app.config.from_object(config_class)

    if config_name == "production":
        validate_production_config(app)  # raises ValueError if misconfigured

    _configure_logging(app)

    from billsplit.app.extensions import db, ma
    from billsplit.app.transactions import RetryPolicy
    db.init_app(app)
    ma.init_app(app)
    app.extensions["retry_policy"] = RetryPolicy.from_config(app.config)

    # Populate MetaData for create_all() and Alembic autogenerate.
    with app.app_context():
        from billsplit.app.models import (  # noqa: F401
            expense,
            group,
            group_balance,
            membership,
            refresh_token,
            settlement,
            split,
            user,
        )

    _register_blueprints(app)
    _register_error_handlers(app)
    _register_cors(app)

    return app


def _configure_logging(app: Flask) -> None:
    """Sends billsplit.* records to stderr at LOG_LEVEL."""
    level = logging.getLevelName(str(app.config.get("LOG_LEVEL", "INFO")).upper())
    if not isinstance(level, int):
        level = logging.INFO

    package_logger = logging.getLogger("billsplit")
    package_logger.setLevel(level)
    if not package_logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(_LOG_FORMAT))
        package_logger.addHandler(handler)

    app.logger.setLevel(level)


def _register_blueprints(app: Flask) -> None:
    """
    Registers all route blueprints.

    expenses_bp and settlements_bp sit at /api/v1 because each owns both
    group-scoped paths (/groups/<id>/expenses) and top-level ones (/expenses/<id>).
    """
    from billsplit.app.routes.auth import auth_bp
    from billsplit.app.routes.balances import balances_bp
    from billsplit.app.routes.expenses import expenses_bp
    from billsplit.app.routes.groups import groups_bp
    from billsplit.app.routes.settlements import settlements_bp
    from billsplit.app.routes.users import users_bp

    app.register_blueprint(auth_bp,        url_prefix="/api/v1/auth")
    app.register_blueprint(users_bp,       url_prefix="/api/v1/users")
    app.register_blueprint(groups_bp,      url_prefix="/api/v1/groups")
    app.register_blueprint(balances_bp,    url_prefix="/api/v1/groups")
    app.register_blueprint(expenses_bp,    url_prefix="/api/v1")
    app.register_blueprint(settlements_bp, url_prefix="/api/v1")


def _register_error_handlers(app: Flask) -> None:
    """
    AppError        → its own envelope and status
    ValidationError → 400, first field error only
    Exception       → 500 INTERNAL_ERROR; traceback logged, never returned
    """
    from billsplit.app.errors import AppError, ErrorCode

    known_codes = set(
        value for name, value in vars(ErrorCode).items() if not name.startswith("_")
    )

    @app.errorhandler(AppError)
    def handle_app_error(error: AppError):
        return jsonify(error.to_dict()), error.http_status

    @app.errorhandler(ValidationError)
    def handle_validation_error(error: ValidationError):
        field, raw_message = _first_validation_error(error.messages)

        if raw_message in known_codes:
            code = raw_message
            message = _code_to_message(code)
        elif raw_message.startswith("Missing data for required field"):
            code = ErrorCode.MISSING_FIELD
            message = raw_message
        else:
            code = ErrorCode.INVALID_FIELD
            message = raw_message

        body = {"error": {"code": code, "message": message}}
        if field is not None:
            body["error"]["field"] = field
        return jsonify(body), 400

    @app.errorhandler(Exception)
    def handle_unexpected_error(error: Exception):
        # Let Flask render its own 404/405 etc.
        from werkzeug.exceptions import HTTPException
        if isinstance(error, HTTPException):
            return error

        app.logger.error(
            "Unhandled exception: %s\n%s",
            str(error),
            traceback.format_exc(),
        )
        return jsonify({
            "error": {
                "code": ErrorCode.INTERNAL_ERROR,
                "message": "An unexpected error occurred. Please try again later.",
            }
        }), 500


def _first_validation_error(messages, prefix: str | None = None) -> tuple[str | None, str]:
    """
    Walks marshmallow's nested messages and returns (field_path, message)
    for the first leaf. Nested list indices are joined with dots:
    {"splits": {0: {"amount": [...]}}} → ("splits.0.amount", ...).
    """
    if isinstance(messages, dict):
        for key, value in messages.items():
            if key == "_schema":
                path = prefix
            else:
                path = f"{prefix}.{key}" if prefix else str(key)
            return _first_validation_error(value, path)
        return prefix, "Invalid input."
    if isinstance(messages, list):
        if not messages:
            return prefix, "Invalid value."
        return _first_validation_error(messages[0], prefix)
    return prefix, str(messages)


def _register_cors(app: Flask) -> None:
    """Permissive CORS in DEBUG/TESTING so a local frontend can call the API."""

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        if app.config.get("DEBUG") or app.config.get("TESTING"):
            response.headers["Access-Control-Allow-Origin"] = origin if origin else "*"
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Methods"] = "GET, POST, PATCH, DELETE, OPTIONS"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
        return response


def _code_to_message(code: str) -> str:
    """Default message when a schema raised the bare error code."""
    _messages = {
        "MISSING_FIELD": "A required field is missing.",
        "INVALID_AMOUNT_PRECISION": "Amount has more decimal places than the currency allows.",
        "INVALID_CURRENCY": "The currency code is not supported.",
        "INVALID_CATEGORY": "The category value is not valid.",
        "INVALID_SPLIT_TYPE": "split_type must be 'equal', 'exact' or 'percentage'.",
        "SPLITS_SENT_FOR_EQUAL_SPLIT": "Do not send a splits array when split_type is 'equal'.",
        "DUPLICATE_SPLIT_USER": "The same user_id appears more than once.",
    }
    return _messages.get(code, "Invalid input.")
