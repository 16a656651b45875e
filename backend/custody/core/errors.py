"""Centralized JSON (RFC 7807) error handling for the API."""

from __future__ import annotations

import logging
from http import HTTPStatus
from typing import Any

from flask import Flask, Response, current_app, jsonify, request
from marshmallow import ValidationError
from sqlalchemy.exc import OperationalError
from werkzeug.exceptions import HTTPException

from custody.core.logger import ensure_request_id
from custody.services._shared.errors import ErrorKind, ServiceError

log = logging.getLogger(__name__)

# Service error kinds → HTTP status.
KIND_TO_STATUS: dict[ErrorKind, int] = {
    ErrorKind.INVALID_CREDENTIAL: HTTPStatus.UNAUTHORIZED,
    ErrorKind.REFRESH_REUSED: HTTPStatus.UNAUTHORIZED,
    ErrorKind.REFRESH_EXPIRED: HTTPStatus.UNAUTHORIZED,
    ErrorKind.IDEMPOTENCY_CONFLICT: HTTPStatus.CONFLICT,
    ErrorKind.ALREADY_EXISTS: HTTPStatus.CONFLICT,
    ErrorKind.NOT_FOUND: HTTPStatus.NOT_FOUND,
    ErrorKind.INSUFFICIENT_BALANCE: HTTPStatus.BAD_REQUEST,
    ErrorKind.INVALID_RECEIVER: HTTPStatus.BAD_REQUEST,
    ErrorKind.INSUFFICIENT_ALLOWANCE: HTTPStatus.BAD_REQUEST,
    ErrorKind.TRANSFER_REJECTED: HTTPStatus.BAD_REQUEST,
    ErrorKind.BAD_REQUEST: HTTPStatus.BAD_REQUEST,
    ErrorKind.TRANSPORT_RETRYABLE: HTTPStatus.SERVICE_UNAVAILABLE,
    ErrorKind.INTERNAL: HTTPStatus.INTERNAL_SERVER_ERROR,
}


def http_status_code(status: int) -> str:
    """Return the snake_case code for a bare HTTP status (``404`` → ``not_found``)."""
    try:
        return HTTPStatus(status).phrase.lower().replace(" ", "_").replace("-", "_")
    except ValueError:
        return "error"


def service_error_status(err: ServiceError) -> int:
    return int(KIND_TO_STATUS.get(err.kind, HTTPStatus.INTERNAL_SERVER_ERROR))


def problem(
    status: int,
    code: str,
    message: str,
    *,
    details: dict[str, Any] | None = None,
    exc_info: bool = False,
) -> tuple[Response, int]:
    """
    Build an ``application/problem+json`` response and log it.

    5xx responses are logged as errors (with ``exc_info`` when requested),
    everything else as warnings. The ``request_id`` in the body matches the
    ``X-Request-ID`` response header.

    :param status: HTTP status code.
    :param code: Stable machine-readable error code.
    :param message: Client-safe summary; never carries secrets or stack traces.
    :param details: Optional structured details (validation messages).
    """
    body: dict[str, Any] = {
        "type": "about:blank",
        "title": HTTPStatus(status).phrase,
        "status": status,
        "detail": message,
        "instance": request.path,
        "code": code,
        "request_id": ensure_request_id(),
    }
    if details:
        body["details"] = details

    if status >= HTTPStatus.INTERNAL_SERVER_ERROR:
        log.error("api.error status=%s code=%s detail=%s", status, code, message, exc_info=exc_info)
    else:
        log.warning("api.error status=%s code=%s detail=%s", status, code, message)

    resp = jsonify(body)
    resp.mimetype = "application/problem+json"
    return resp, status


class APIError(Exception):
    """
    Error raised by the HTTP layer itself (not by services).

    Parameters
    ----------
    message : str
        Human-readable description presented to clients.
    status_code : int, optional
        HTTP status code to return. Defaults to ``400``.
    code : str, optional
        Machine-readable identifier, typically snake_case.
    """

    def __init__(self, message: str, status_code: int = 400, code: str = "bad_request") -> None:
        super().__init__(message)
        self.message = message
        self.status_code = int(status_code)
        self.code = code


class Unauthorized(APIError):
    """401 when the request carries no usable credentials."""

    def __init__(self, message: str = "Unauthorized") -> None:
        super().__init__(message, status_code=HTTPStatus.UNAUTHORIZED, code="unauthorized")


def init_app(app: Flask) -> None:
    """
    Attach problem+json handlers to the Flask app.

    ``ServiceError.kind`` becomes the problem ``code``; a retryable transport
    failure additionally gets a ``Retry-After`` header.
    """

    @app.errorhandler(ServiceError)
    def handle_service_error(err: ServiceError):
        status = service_error_status(err)
        resp, status = problem(
            status,
            str(err.kind),
            err.message,
            exc_info=status >= HTTPStatus.INTERNAL_SERVER_ERROR,
        )
        if err.kind is ErrorKind.TRANSPORT_RETRYABLE:
            resp.headers["Retry-After"] = str(current_app.config.get("RETRY_AFTER_SECONDS", 5))
        return resp, status

    @app.errorhandler(APIError)
    def handle_api_error(err: APIError):
        return problem(err.status_code, err.code, err.message)

    @app.errorhandler(ValidationError)
    def handle_validation_error(err: ValidationError):
        return problem(
            HTTPStatus.UNPROCESSABLE_ENTITY,
            "validation_error",
            "Validation failed",
            details={"errors": err.messages},
        )

    @app.errorhandler(HTTPException)
    def handle_http_exception(err: HTTPException):
        status = int(err.code or HTTPStatus.INTERNAL_SERVER_ERROR)
        message = (err.description or "").strip() or HTTPStatus(status).phrase
        if status == HTTPStatus.NOT_FOUND:
            message = f"Route '{request.path}' not found"
        return problem(status, http_status_code(status), message)

    @app.errorhandler(OperationalError)
    def handle_operational_error(err: OperationalError):
        return problem(
            HTTPStatus.SERVICE_UNAVAILABLE,
            "service_unavailable",
            "Service temporarily unavailable",
            exc_info=True,
        )

    @app.errorhandler(Exception)
    def handle_unexpected_error(err: Exception):
        return problem(
            HTTPStatus.INTERNAL_SERVER_ERROR,
            "internal_server_error",
            "Unexpected error",
            exc_info=True,
        )
