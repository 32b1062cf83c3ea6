"""
app/__init__.py — Flask application factory.

Pattern: create_app(config_name) creates and returns a configured Flask app.
         Nothing is initialised at import time, so tests can build isolated
         app instances and Alembic can import the models without a server.

Responsibilities:
  1. Load configuration from config_by_name[config_name]
  2. Configure logging from LOG_LEVEL
  3. Bind the storage handle and marshmallow via init_app()
  4. Install the ledger immutability guard on every Session
  5. Register all route blueprints under /api/v1
  6. Register global error handlers (AppError → JSON, Exception → 500)
  7. Add CORS headers in development and testing
  8. Serialise Decimal as string (monetary amounts are never JSON numbers)
"""

from __future__ import annotations

import logging
import traceback
from decimal import Decimal

from flask import Flask, jsonify, request
from flask.json.provider import DefaultJSONProvider
from marshmallow import ValidationError
from sqlalchemy.exc import DBAPIError

from groupledger.config import config_by_name, validate_production_config


# ── Custom JSON provider ───────────────────────────────────────────────────

class DecimalJSONProvider(DefaultJSONProvider):
    """
    Extends Flask's default JSON provider to serialise Decimal as str.

    Example: Decimal("10.50") → "10.50" (not 10.5 or 10.500000001)
    """

    def default(self, o):
        if isinstance(o, Decimal):
            return str(o)
        return super().default(o)


# ── Application factory ────────────────────────────────────────────────────

def create_app(config_name: str = "development") -> Flask:
    """
    Creates and returns a configured Flask application instance.

    Args:
        config_name: One of "development", "testing", "production".
                     Defaults to "development".
    """
    app = Flask(__name__)
    app.json_provider_class = DecimalJSONProvider
    app.json = DecimalJSONProvider(app)

    # ── Configuration ──────────────────────────────────────────────────────
    config_class = config_by_name.get(config_name, config_by_name["development"])
    app.config.from_object(config_class)

    if config_name == "production":
        validate_production_config(app)  # raises ValueError if misconfigured

    _configure_logging(app)

    # ── Extensions ─────────────────────────────────────────────────────────
    from groupledger.app.extensions import db, ma
    db.init_app(app)
    ma.init_app(app)

    # ── Model registration ─────────────────────────────────────────────────
    # Populates db.metadata for create_all() and Alembic autogenerate.
    with app.app_context():
        from groupledger.app.models import (  # noqa: F401
            expense,
            group,
            ledger_entry,
            member,
            membership,
            receipt,
            settlement,
            split,
        )

    from groupledger.app.services.ledger_store import install_ledger_guard
    install_ledger_guard()

    _register_blueprints(app)
    _register_error_handlers(app)
    _register_cors(app)

    return app


def _configure_logging(app: Flask) -> None:
    """Applies LOG_LEVEL to the app logger and the groupledger package loggers."""
    level = logging.getLevelName(str(app.config.get("LOG_LEVEL", "INFO")).upper())
    if not isinstance(level, int):
        level = logging.INFO

    app.logger.setLevel(level)
    package_logger = logging.getLogger("groupledger")
    package_logger.setLevel(level)
    if not package_logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s [%(name)s] %(message)s"
        ))
        package_logger.addHandler(handler)


def _register_blueprints(app: Flask) -> None:
    """
    Registers all route blueprints under /api/v1.

    Every resource is group-scoped, so all blueprints share the
    /api/v1/groups prefix and declare paths relative to it.
    """
    from groupledger.app.routes.balances import balances_bp
    from groupledger.app.routes.expenses import expenses_bp
    from groupledger.app.routes.groups import groups_bp
    from groupledger.app.routes.receipts import receipts_bp
    from groupledger.app.routes.settlements import settlements_bp

    app.register_blueprint(groups_bp,      url_prefix="/api/v1/groups")
    app.register_blueprint(expenses_bp,    url_prefix="/api/v1/groups")
    app.register_blueprint(settlements_bp, url_prefix="/api/v1/groups")
    app.register_blueprint(balances_bp,    url_prefix="/api/v1/groups")
    app.register_blueprint(receipts_bp,    url_prefix="/api/v1/groups")


def _register_error_handlers(app: Flask) -> None:
    """
    Registers global error handlers.

      AppError        → structured JSON error envelope with its HTTP status
      ValidationError → first marshmallow error as MISSING_FIELD / INVALID_FIELD
                        or the registered code the validator raised (400)
      DBAPIError      → LEDGER_IMMUTABLE (500) when the PostgreSQL ledger trigger
                        refused the statement, otherwise as Exception
      Exception       → generic INTERNAL_ERROR (500); traceback logged only

    Stack traces never leave the server.
    """
    from groupledger.app.errors import AppError, ErrorCode
    from groupledger.app.services.ledger_store import is_trigger_rejection

    known_codes = set(vars(ErrorCode).values())

    @app.errorhandler(AppError)
    def handle_app_error(error: AppError):
        if error.http_status >= 500:
            app.logger.error("%r", error)
        return jsonify(error.to_dict()), error.http_status

    @app.errorhandler(ValidationError)
    def handle_validation_error(error: ValidationError):
        field, raw_message = _first_validation_message(error.messages)

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

    @app.errorhandler(DBAPIError)
    def handle_database_error(error: DBAPIError):
        if not is_trigger_rejection(error):
            return handle_unexpected_error(error)
        app.logger.error("Ledger trigger rejected a statement: %s", error.orig)
        return jsonify(AppError(
            ErrorCode.LEDGER_IMMUTABLE,
            "Ledger entries are append-only; update or delete is not allowed.",
            500,
        ).to_dict()), 500

    @app.errorhandler(Exception)
    def handle_unexpected_error(error: Exception):
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


def _register_cors(app: Flask) -> None:
    """
    Adds CORS headers for browser-based local development.

    Enabled only when DEBUG or TESTING is true.
    """

    @app.after_request
    def add_cors_headers(response):
        if app.config.get("DEBUG") or app.config.get("TESTING"):
            origin = request.headers.get("Origin")
            response.headers["Access-Control-Allow-Origin"] = origin if origin else "*"
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Methods"] = "GET, POST, DELETE, OPTIONS"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
        return response


def _first_validation_message(messages, field: str | None = None) -> tuple[str | None, str]:
    """
    Walks marshmallow's nested messages to the first leaf.

    {"participants": {0: {"share_amount": ["INVALID_AMOUNT_PRECISION"]}}}
        → ("participants", "INVALID_AMOUNT_PRECISION")

    The top-level key is reported as the field.
    """
    if isinstance(messages, dict):
        for key, value in messages.items():
            if field is None and key != "_schema":
                field = str(key)
            return _first_validation_message(value, field)
        return field, "Invalid input."
    if isinstance(messages, list):
        if not messages:
            return field, "Invalid value."
        return _first_validation_message(messages[0], field)
    return field, str(messages)


def _code_to_message(code: str) -> str:
    """Default message for a validator that raised a bare registered code."""
    _messages = {
        "INVALID_AMOUNT_PRECISION": "Amount has more decimal places than allowed.",
        "DUPLICATE_PARTICIPANT": "The same member_id appears more than once in participants.",
    }
    return _messages.get(code, "Invalid input.")
