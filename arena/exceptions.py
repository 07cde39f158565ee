"""
Typed errors raised by services and rendered as JSON by the HTTP layer.
"""
import logging

from flask import Flask, jsonify
from sqlalchemy.exc import IntegrityError
from werkzeug.exceptions import HTTPException

from .models import db

logger = logging.getLogger(__name__)


class ArenaError(Exception):
    """Base exception for the platform API."""

    status_code = 500

    def __init__(self, message: str, status_code: int = None, details: dict = None):
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        payload = {'error': self.message}
        payload.update(self.details)
        return payload


class NotFoundError(ArenaError):
    status_code = 404

    def __init__(self, resource: str = 'Resource', message: str = None):
        super().__init__(message or f'{resource} not found')


class InvalidArgumentError(ArenaError):
    status_code = 400

    def __init__(self, message: str, field: str = None):
        super().__init__(message, details={'field': field} if field else None)


class UnauthorizedError(ArenaError):
    status_code = 401

    def __init__(self, message: str = 'Unauthorized'):
        super().__init__(message)


class ForbiddenError(ArenaError):
    status_code = 403

    def __init__(self, message: str = 'Forbidden'):
        super().__init__(message)


class ConflictError(ArenaError):
    status_code = 409

    def __init__(self, message: str):
        super().__init__(message)


def register_error_handlers(app: Flask):
    """Render every error as ``{"error": ...}`` with the matching status code."""

    @app.errorhandler(ArenaError)
    def handle_arena_error(exc: ArenaError):
        if exc.status_code >= 500:
            logger.error(f"{type(exc).__name__}: {exc.message}")
        else:
            logger.info(f"{type(exc).__name__}: {exc.message} (status: {exc.status_code})")
        return jsonify(exc.to_dict()), exc.status_code

    @app.errorhandler(IntegrityError)
    def handle_integrity_error(exc: IntegrityError):
        db.session.rollback()
        logger.warning(f"IntegrityError: {exc.orig}")
        return jsonify({'error': 'Resource already exists'}), 409

    @app.errorhandler(HTTPException)
    def handle_http_exception(exc: HTTPException):
        return jsonify({'error': exc.description}), exc.code

    @app.errorhandler(Exception)
    def handle_unexpected(exc: Exception):
        db.session.rollback()
        logger.error(f"Unhandled exception: {type(exc).__name__}: {exc}", exc_info=True)
        return jsonify({'error': 'An unexpected error occurred'}), 500
