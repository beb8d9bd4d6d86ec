"""Request primitives."""

from __future__ import annotations

import asyncio
import re
import time
from typing import Any, Awaitable, Callable, Mapping, MutableMapping, TypeVar
from urllib.parse import parse_qsl

import msgspec

from .errors import DecodeError, StructuredError
from .http import Status
from .serialization import json_decode

T = TypeVar("T")

BodyLoader = Callable[[], Awaitable[bytes]]

_MAX_QUERY_PARAMS = 256
_BYTE_OFFSET = re.compile(r"\(byte (\d+)\)")


def _offset_from(exc: Exception) -> int | None:
    match = _BYTE_OFFSET.search(str(exc))
    if match is None:
        return None
    return int(match.group(1))


class Request:
    """Immutable view of an incoming request.

    ``deadline`` is an opaque monotonic timestamp supplied by the transport.
    Handlers may consult it through :meth:`time_remaining`; the dispatcher
    never interprets it.
    """

    __slots__ = (
        "_body",
        "_body_loader",
        "_body_lock",
        "_json_cache",
        "_max_body_bytes",
        "_query_params",
        "_raw_query",
        "deadline",
        "headers",
        "method",
        "path",
        "path_params",
    )

    def __init__(
        self,
        *,
        method: str,
        path: str,
        headers: Mapping[str, str] | None = None,
        path_params: Mapping[str, str] | None = None,
        query_string: str | None = None,
        body: bytes | None = None,
        body_loader: BodyLoader | None = None,
        deadline: float | None = None,
        max_body_bytes: int | None = None,
    ) -> None:
        if body is not None and body_loader is not None:
            raise ValueError("Request body and body_loader are mutually exclusive")
        self.method = method.upper()
        self.path = path
        self.headers = {k.lower(): v for k, v in (headers or {}).items()}
        self.path_params = dict(path_params or {})
        self.deadline = deadline
        self._raw_query = query_string or ""
        self._body: bytes | None = body
        self._body_loader = body_loader
        self._body_lock = asyncio.Lock()
        self._json_cache: Any = msgspec.UNSET
        self._max_body_bytes = max_body_bytes
        self._query_params: MutableMapping[str, list[str]] | None = None

    @staticmethod
    def _parse_query(raw: str) -> MutableMapping[str, list[str]]:
        parsed: MutableMapping[str, list[str]] = {}
        try:
            pairs = parse_qsl(raw, keep_blank_values=True, max_num_fields=_MAX_QUERY_PARAMS)
        except ValueError as exc:
            raise StructuredError(exc, "Too many query parameters", Status.BAD_REQUEST) from exc
        for key, value in pairs:
            parsed.setdefault(key, []).append(value)
        return parsed

    @property
    def query_params(self) -> MutableMapping[str, list[str]]:
        if self._query_params is None:
            self._query_params = self._parse_query(self._raw_query)
        return self._query_params

    @property
    def raw_query(self) -> str:
        return self._raw_query

    def header(self, name: str, default: str | None = None) -> str | None:
        return self.headers.get(name.lower(), default)

    def time_remaining(self) -> float | None:
        """Seconds left before ``deadline``; ``None`` when the request has none."""

        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    @property
    def expired(self) -> bool:
        remaining = self.time_remaining()
        return remaining is not None and remaining <= 0.0

    async def _ensure_body(self) -> bytes:
        if self._body is None:
            loader = self._body_loader
            if loader is None:
                self._body = b""
            else:
                async with self._body_lock:
                    if self._body is None:
                        raw = await loader()
                        self._body = bytes(raw) if raw else b""
                        self._body_loader = None
        body = self._body
        limit = self._max_body_bytes
        if limit is not None and len(body) > limit:
            cause = DecodeError(f"body of {len(body)} bytes exceeds limit of {limit}")
            raise StructuredError(cause, "Request body too large", Status.PAYLOAD_TOO_LARGE)
        return body

    async def json(self, model: type[T] | None = None) -> T | Any:
        """Decode the JSON body using :mod:`msgspec`.

        Malformed input raises :class:`~faultline.errors.DecodeError` with the
        byte offset reported by the decoder.
        """

        if self._json_cache is msgspec.UNSET:
            body = await self._ensure_body()
            if not body:
                self._json_cache = None
            else:
                try:
                    self._json_cache = json_decode(body)
                except msgspec.DecodeError as exc:
                    raise DecodeError(str(exc), offset=_offset_from(exc)) from exc
        if model is None:
            return self._json_cache
        try:
            return msgspec.convert(self._json_cache, type=model)
        except msgspec.ValidationError as exc:
            raise DecodeError(str(exc)) from exc

    async def text(self) -> str:
        body = await self._ensure_body()
        return body.decode()

    async def body(self) -> bytes:
        return await self._ensure_body()
