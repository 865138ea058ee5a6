import logging
from flask import jsonify
from sqlalchemy.exc import IntegrityError
from werkzeug.exceptions import HTTPException
from wbsmaster.models import db

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """Abort the current request with ``{'error': message}`` and ``status``."""

    def __init__(self, message, status=400):
        super().__init__(message)
        self.message = message
        self.status = status


def register_error_handlers(app):
    @app.errorhandler(ApiError)
    def handle_api_error(err):
        return jsonify(error=err.message), err.status

    @app.errorhandler(ValueError)
    def handle_value_error(err):
        # Parsing helpers (scheduling, excel, llm) raise ValueError subclasses
        return jsonify(error=str(err)), 400

    @app.errorhandler(IntegrityError)
    def handle_integrity_error(err):
        db.session.rollback()
        logger.warning('integrity error: %s', err.orig)
        return jsonify(error='duplicate or conflicting record'), 409

    @app.errorhandler(HTTPException)
    def handle_http_error(err):
        return jsonify(error=err.description or err.name), err.code

    @app.errorhandler(Exception)
    def handle_unexpected(err):
        db.session.rollback()
        logger.exception('unhandled error')
        return jsonify(error='internal server error'), 500
