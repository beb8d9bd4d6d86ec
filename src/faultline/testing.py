"""In-process ASGI client for exercising an :class:`Application` in tests.

Requests travel through the same ASGI interface a server would use, so every
exchange is checked for exactly one ``http.response.start`` and one
``http.response.body`` message.
"""

from __future__ import annotations

import asyncio
from typing import Any, Mapping
from urllib.parse import urlencode

from .application import TIMEOUT_EXTENSION, Application
from .responses import Response
from .serialization import json_encode


class TestClient:
    """Drive ``app`` through its lifespan and HTTP ASGI scopes."""

    __test__ = False

    def __init__(self, app: Application, *, chunk_size: int | None = None) -> None:
        self.app = app
        self.chunk_size = chunk_size
        self.messages: list[Mapping[str, Any]] = []
        self._lifespan: asyncio.Task[None] | None = None
        self._lifespan_inbox: asyncio.Queue[Mapping[str, Any]] = asyncio.Queue()
        self._lifespan_outbox: asyncio.Queue[Mapping[str, Any]] = asyncio.Queue()

    async def __aenter__(self) -> "TestClient":
        self._lifespan = asyncio.create_task(
            self.app({"type": "lifespan"}, self._lifespan_inbox.get, self._lifespan_outbox.put)
        )
        await self._lifespan_step("lifespan.startup")
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self._lifespan_step("lifespan.shutdown")
        if self._lifespan is not None:
            await self._lifespan
            self._lifespan = None

    async def _lifespan_step(self, event: str) -> None:
        await self._lifespan_inbox.put({"type": event})
        reply = await self._lifespan_outbox.get()
        if reply.get("type") != f"{event}.complete":
            raise RuntimeError(f"Unexpected lifespan reply to {event}: {reply!r}")

    async def request(
        self,
        method: str,
        path: str,
        *,
        json: Any | None = None,
        content: bytes | None = None,
        query: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
        timeout: float | None = None,
    ) -> Response:
        payload = content or b""
        request_headers = dict(headers or {})
        if json is not None:
            payload = json_encode(json)
            request_headers.setdefault("content-type", "application/json")
        scope: dict[str, Any] = {
            "type": "http",
            "method": method.upper(),
            "path": path,
            "query_string": urlencode(query or {}, doseq=True).encode(),
            "headers": [(k.lower().encode("latin-1"), v.encode("latin-1")) for k, v in request_headers.items()],
        }
        if timeout is not None:
            scope["extensions"] = {TIMEOUT_EXTENSION: {"seconds": timeout}}

        inbox = self._body_messages(payload)
        sent: list[Mapping[str, Any]] = []

        async def receive() -> Mapping[str, Any]:
            if inbox:
                return inbox.pop(0)
            return {"type": "http.disconnect"}

        async def send(message: Mapping[str, Any]) -> None:
            sent.append(message)

        await self.app(scope, receive, send)
        self.messages = sent
        return _collect(sent)

    def _body_messages(self, payload: bytes) -> list[Mapping[str, Any]]:
        size = self.chunk_size or len(payload) or 1
        chunks = [payload[i : i + size] for i in range(0, len(payload), size)] or [b""]
        return [
            {"type": "http.request", "body": chunk, "more_body": index < len(chunks) - 1}
            for index, chunk in enumerate(chunks)
        ]

    async def get(
        self,
        path: str,
        *,
        query: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
        timeout: float | None = None,
    ) -> Response:
        return await self.request("GET", path, query=query, headers=headers, timeout=timeout)

    async def post(
        self,
        path: str,
        *,
        json: Any | None = None,
        content: bytes | None = None,
        headers: Mapping[str, str] | None = None,
        timeout: float | None = None,
    ) -> Response:
        return await self.request("POST", path, json=json, content=content, headers=headers, timeout=timeout)


def _collect(messages: list[Mapping[str, Any]]) -> Response:
    starts = [m for m in messages if m.get("type") == "http.response.start"]
    bodies = [m for m in messages if m.get("type") == "http.response.body"]
    if len(starts) != 1 or len(bodies) != 1:
        raise AssertionError(
            f"expected one status and one body, got {len(starts)} start and {len(bodies)} body messages"
        )
    start = starts[0]
    headers = tuple((k.decode("latin-1"), v.decode("latin-1")) for k, v in start.get("headers", []))
    return Response(status=start["status"], headers=headers, body=bytes(bodies[0].get("body", b"")))


__all__ = ["TestClient"]
