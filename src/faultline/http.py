"""HTTP status codes and classification helpers."""

from __future__ import annotations

from enum import IntEnum
from http import HTTPStatus as _HTTPStatus


class Status(IntEnum):
    """Closed set of transport status codes a handler may answer with."""

    OK = 200
    CREATED = 201
    ACCEPTED = 202
    NO_CONTENT = 204
    BAD_REQUEST = 400
    UNAUTHORIZED = 401
    FORBIDDEN = 403
    NOT_FOUND = 404
    METHOD_NOT_ALLOWED = 405
    NOT_ACCEPTABLE = 406
    REQUEST_TIMEOUT = 408
    CONFLICT = 409
    GONE = 410
    PAYLOAD_TOO_LARGE = 413
    UNPROCESSABLE_ENTITY = 422
    TOO_MANY_REQUESTS = 429
    INTERNAL_SERVER_ERROR = 500
    NOT_IMPLEMENTED = 501
    BAD_GATEWAY = 502
    SERVICE_UNAVAILABLE = 503
    GATEWAY_TIMEOUT = 504


def ensure_status(status: int | Status) -> int:
    """Normalize ``status`` to an ``int`` and ensure it is within the HTTP range."""

    code = int(status)
    if code < 100 or code > 599:
        raise ValueError(f"Invalid HTTP status code: {status}")
    return code


def ensure_error_status(status: int | Status) -> Status:
    """Return ``status`` as a :class:`Status` member describing a failure.

    Codes outside the enumeration, and codes that do not signal an error,
    raise :class:`ValueError`.
    """

    code = ensure_status(status)
    try:
        member = Status(code)
    except ValueError:
        raise ValueError(f"Unsupported HTTP status code: {code}") from None
    if not is_error(member):
        raise ValueError(f"Status {code} does not describe an error")
    return member


def reason_phrase(status: int | Status) -> str:
    """Return the HTTP reason phrase for ``status`` if known."""

    try:
        code = ensure_status(status)
    except ValueError:
        return "Unknown Status"
    try:
        return _HTTPStatus(code).phrase
    except ValueError:  # pragma: no cover - non-standard status codes
        return "Unknown Status"


def is_error(status: int | Status) -> bool:
    """Return ``True`` if ``status`` is either a client or server error."""

    code = ensure_status(status)
    return code >= 400


__all__ = [
    "Status",
    "ensure_error_status",
    "ensure_status",
    "is_error",
    "reason_phrase",
]
