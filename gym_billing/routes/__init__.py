"""
Shared helpers for the JSON blueprints.

Routes translate service failures to HTTP status codes; the services
themselves know nothing about HTTP.
"""

from flask import jsonify, request

from gym_billing.logging_config import get_logger
from gym_billing.services.errors import (
    BillingError, NotFoundError, ConstraintViolationError
)

logger = get_logger("routes")

STATUS_BY_ERROR = (
    (NotFoundError, 404),
    (ConstraintViolationError, 409),
    (BillingError, 400),
)


def error_response(message, code, status):
    return jsonify({'error': message, 'code': code}), status


def register_error_handlers(app):

    @app.errorhandler(BillingError)
    def handle_billing_error(error):
        for error_type, status in STATUS_BY_ERROR:
            if isinstance(error, error_type):
                return error_response(str(error), error.code, status)
        return error_response(str(error), error.code, 400)


def json_body():
    """Request JSON as a dict; an empty or non-JSON body gives {}."""
    return request.get_json(silent=True) or {}


def number(data, key, default=None):
    """Read a numeric field, rejecting non-numeric input with a BillingError."""
    value = data.get(key, default)
    if value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        raise BillingError(f"'{key}' must be a number")


def integer_arg(name, default=None):
    """Read an integer query-string argument."""
    value = request.args.get(name)
    if value in (None, ''):
        return default
    try:
        return int(value)
    except ValueError:
        raise BillingError(f"'{name}' must be an integer")
