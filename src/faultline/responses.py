"""Response primitives."""

from __future__ import annotations

from typing import Any, Iterable

import msgspec

from .http import Status, ensure_status
from .serialization import json_encode

DEFAULT_SECURITY_HEADERS: tuple[tuple[str, str], ...] = (
    ("content-security-policy", "default-src 'self'"),
    ("x-content-type-options", "nosniff"),
    ("referrer-policy", "no-referrer"),
    ("x-frame-options", "DENY"),
)

Headers = tuple[tuple[str, str], ...]

TEXT_CONTENT_TYPE = "text/plain; charset=utf-8"
JSON_CONTENT_TYPE = "application/json"

# Headers that describe the failure itself and survive onto error responses.
ERROR_HEADER_ALLOWLIST = frozenset({"allow", "retry-after", "www-authenticate"})


class Response(msgspec.Struct, frozen=True):
    """Immutable response payload."""

    status: int = int(Status.OK)
    headers: Headers = ()
    body: bytes = b""

    def with_headers(self, headers: Iterable[tuple[str, str]]) -> "Response":
        """Return a new response with ``headers`` appended."""

        return Response(status=self.status, headers=self.headers + tuple(headers), body=self.body)

    def header(self, name: str) -> str | None:
        lowered = name.lower()
        for key, value in self.headers:
            if key.lower() == lowered:
                return value
        return None

    def text(self) -> str:
        return self.body.decode("utf-8")


def apply_default_security_headers(
    response: Response,
    *,
    headers: Iterable[tuple[str, str]] | None = None,
) -> Response:
    """Append default security headers to ``response`` when missing."""

    baseline = tuple(headers or DEFAULT_SECURITY_HEADERS)
    if not baseline:
        return response
    existing = {name.lower() for name, _ in response.headers}
    additions = tuple((name, value) for name, value in baseline if name.lower() not in existing)
    if not additions:
        return response
    return response.with_headers(additions)


def PlainTextResponse(
    text: str,
    *,
    status: int = int(Status.OK),
    headers: Iterable[tuple[str, str]] | None = None,
) -> Response:
    """Create a plain text response."""

    combined = (("content-type", TEXT_CONTENT_TYPE),) + tuple(headers or ())
    response = Response(status=status, headers=combined, body=text.encode("utf-8"))
    return apply_default_security_headers(response)


def JSONResponse(
    data: Any,
    *,
    status: int = int(Status.OK),
    headers: Iterable[tuple[str, str]] | None = None,
) -> Response:
    """Create a JSON response encoded via :mod:`msgspec`."""

    combined = (("content-type", JSON_CONTENT_TYPE),) + tuple(headers or ())
    response = Response(status=status, headers=combined, body=json_encode(data))
    return apply_default_security_headers(response)


class ResponseWriter:
    """Writable response target handed to handlers.

    Handlers write their successful output here. On failure the dispatcher
    replaces whatever body was pending with exactly one status and one message
    via :meth:`write_error`. ``writes`` counts every mutation so callers can
    tell whether anything touched the response.
    """

    __slots__ = ("_body", "_headers", "_status", "writes")

    def __init__(self) -> None:
        self._status: int | None = None
        self._headers: dict[str, str] = {}
        self._body = bytearray()
        self.writes = 0

    @property
    def status(self) -> int | None:
        return self._status

    @property
    def headers_written(self) -> bool:
        return self._status is not None

    def set_header(self, name: str, value: str) -> None:
        self._headers[name.lower()] = value
        self.writes += 1

    def write_header(self, status: int | Status) -> None:
        if self._status is not None:
            raise RuntimeError(f"Status already written ({self._status})")
        self._status = ensure_status(status)
        self.writes += 1

    def write(self, data: bytes | str) -> int:
        chunk = data.encode("utf-8") if isinstance(data, str) else bytes(data)
        if self._status is None:
            self._status = int(Status.OK)
        self._body.extend(chunk)
        self.writes += 1
        return len(chunk)

    def write_text(self, text: str, *, status: int | Status = Status.OK) -> None:
        self.set_header("content-type", TEXT_CONTENT_TYPE)
        self.write_header(status)
        self.write(text)

    def write_json(self, data: Any, *, status: int | Status = Status.OK) -> None:
        self.set_header("content-type", JSON_CONTENT_TYPE)
        self.write_header(status)
        self.write(json_encode(data))

    def write_error(self, status: int | Status, message: str) -> None:
        """Discard pending output and write a single failure status and message.

        Only headers in :data:`ERROR_HEADER_ALLOWLIST` are kept.
        """

        self._status = None
        self._body.clear()
        self._headers = {
            name: value for name, value in self._headers.items() if name in ERROR_HEADER_ALLOWLIST
        }
        self._headers["content-type"] = TEXT_CONTENT_TYPE
        self.write_header(status)
        self.write(message)

    def finish(self) -> Response:
        status = self._status if self._status is not None else int(Status.OK)
        response = Response(
            status=status,
            headers=tuple(self._headers.items()),
            body=bytes(self._body),
        )
        return apply_default_security_headers(response)


__all__ = [
    "DEFAULT_SECURITY_HEADERS",
    "ERROR_HEADER_ALLOWLIST",
    "JSONResponse",
    "PlainTextResponse",
    "Response",
    "ResponseWriter",
    "apply_default_security_headers",
]
