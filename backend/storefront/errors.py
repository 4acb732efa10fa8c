# Overview: Domain error types shared by services and mapped to HTTP responses.

from __future__ import annotations

from flask import current_app, jsonify
from sqlalchemy.exc import DBAPIError, OperationalError
from werkzeug.exceptions import HTTPException

from .extensions import db


class StorefrontError(Exception):
    """Base class for errors surfaced to the initiating action."""
    status_code = 400

    def __init__(self, message: str = "", **details):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        payload = {"error": self.message or self.__class__.__name__}
        payload.update(self.details)
        return payload


class AccessDenied(StorefrontError):
    """Authorization guard rejected the caller. Nothing was written."""
    status_code = 403


class ValidationError(StorefrontError, ValueError):
    """400-level input problem."""
    status_code = 400


class ConflictError(StorefrontError, ValueError):
    """409-level business rule conflict (duplicate grant, reply race, illegal transition)."""
    status_code = 409


class NotFound(StorefrontError):
    status_code = 404


class BackendUnavailable(StorefrontError):
    """Transient persistence failure."""
    status_code = 503


def register_error_handlers(app) -> None:
    @app.errorhandler(StorefrontError)
    def handle_storefront_error(exc: StorefrontError):
        if isinstance(exc, BackendUnavailable):
            current_app.logger.exception("Backend unavailable")
        return jsonify(exc.to_dict()), exc.status_code

    @app.errorhandler(OperationalError)
    @app.errorhandler(DBAPIError)
    def handle_database_error(exc):
        db.session.rollback()
        current_app.logger.exception("Database error while handling request")
        return jsonify(BackendUnavailable("Service temporarily unavailable").to_dict()), 503

    @app.errorhandler(Exception)
    def handle_unexpected_error(exc):
        # Routing errors (404, 405) keep their own responses
        if isinstance(exc, HTTPException):
            return exc
        db.session.rollback()
        current_app.logger.exception("Unhandled error while handling request")
        return jsonify({"error": "Internal server error"}), 500
