from __future__ import annotations

from typing import Any, Mapping

import pytest

from faultline.application import Application
from faultline.config import AppConfig
from faultline.dispatch import HandlerKind
from faultline.errors import Error, RegistryFrozenError, StructuredError, new_error
from faultline.http import Status
from faultline.requests import Request
from faultline.responses import ResponseWriter
from faultline.testing import TestClient


def _app(**overrides: Any) -> Application:
    return Application(AppConfig(**overrides))


@pytest.mark.asyncio
async def test_application_routes_through_dispatcher() -> None:
    app = _app()

    @app.get("/hello/{name}")
    async def hello(request: Request, writer: ResponseWriter) -> None:
        writer.write_text(f"hello {request.path_params['name']}")

    @app.get("/broken", kind=HandlerKind.PLAIN)
    async def broken(request: Request, writer: ResponseWriter) -> Error | None:
        return new_error("broken on purpose")

    async with TestClient(app) as client:
        ok = await client.get("/hello/world")
        failed = await client.get("/broken")
    assert ok.status == 200
    assert ok.text() == "hello world"
    assert failed.status == 500
    assert failed.text() == "broken on purpose"


@pytest.mark.asyncio
async def test_unknown_route_is_not_found() -> None:
    app = _app()
    async with TestClient(app) as client:
        response = await client.get("/nowhere")
    assert response.status == 404
    assert response.text() == "Not found"


@pytest.mark.asyncio
async def test_wrong_method_is_not_allowed() -> None:
    app = _app()

    @app.post("/records")
    async def create(request: Request, writer: ResponseWriter) -> None:
        return None

    async with TestClient(app) as client:
        response = await client.get("/records")
    assert response.status == 405
    assert response.header("allow") == "POST"


@pytest.mark.asyncio
async def test_startup_freezes_registry_and_runs_hooks() -> None:
    app = _app()
    events: list[str] = []

    @app.on_startup
    async def started() -> None:
        events.append("startup")

    @app.on_shutdown
    def stopped() -> None:
        events.append("shutdown")

    await app.startup()
    with pytest.raises(RegistryFrozenError):
        app.registry.add("/late", started)  # type: ignore[arg-type]
    await app.shutdown()
    assert events == ["startup", "shutdown"]


@pytest.mark.asyncio
async def test_oversized_body_is_rejected_by_dispatcher() -> None:
    app = _app(max_request_body_bytes=8)

    @app.post("/upload")
    async def upload(request: Request, writer: ResponseWriter) -> None:
        await request.body()

    async with TestClient(app) as client:
        response = await client.post("/upload", content=b"x" * 64)
    assert response.status == 413
    assert response.text() == "Request body too large"


@pytest.mark.asyncio
async def test_request_timeout_sets_deadline() -> None:
    app = _app(request_timeout=30.0)
    seen: list[float | None] = []

    @app.get("/deadline")
    async def deadline(request: Request, writer: ResponseWriter) -> None:
        seen.append(request.time_remaining())

    async with TestClient(app) as client:
        await client.get("/deadline")
    assert seen[0] is not None and 0 < seen[0] <= 30.0


@pytest.mark.asyncio
async def test_client_timeout_overrides_configured_deadline() -> None:
    app = _app(request_timeout=30.0)
    seen: list[float | None] = []

    @app.get("/deadline")
    async def deadline(request: Request, writer: ResponseWriter) -> None:
        seen.append(request.time_remaining())

    async with TestClient(app) as client:
        await client.get("/deadline", timeout=0.5)
    assert seen[0] is not None and 0 < seen[0] <= 0.5


@pytest.mark.asyncio
async def test_client_streams_body_in_chunks() -> None:
    app = _app()

    @app.post("/echo")
    async def echo(request: Request, writer: ResponseWriter) -> None:
        writer.write(await request.body())

    async with TestClient(app, chunk_size=3) as client:
        response = await client.post("/echo", content=b"pingpong")
        messages = list(client.messages)
    assert response.body == b"pingpong"
    assert [message["type"] for message in messages] == ["http.response.start", "http.response.body"]


@pytest.mark.asyncio
async def test_client_rejects_more_than_one_status() -> None:
    async def chatty(scope: Mapping[str, Any], receive: Any, send: Any) -> None:
        await send({"type": "http.response.start", "status": 200, "headers": []})
        await send({"type": "http.response.start", "status": 500, "headers": []})
        await send({"type": "http.response.body", "body": b"oops"})

    client = TestClient(chatty)  # type: ignore[arg-type]
    with pytest.raises(AssertionError):
        await client.get("/")


@pytest.mark.asyncio
async def test_failed_startup_is_reported_over_lifespan() -> None:
    app = _app()

    @app.on_startup
    def explode() -> None:
        raise RuntimeError("database unreachable")

    with pytest.raises(RuntimeError, match="database unreachable"):
        async with TestClient(app):
            pass
    assert not app.registry.frozen


@pytest.mark.asyncio
async def test_asgi_interface_handles_request() -> None:
    app = _app()

    @app.post("/echo")
    async def echo(request: Request, writer: ResponseWriter) -> StructuredError | None:
        body = await request.body()
        if not body:
            return StructuredError("empty body", "Body required", Status.BAD_REQUEST)
        writer.write(body)
        return None

    messages: list[dict[str, object]] = []
    incoming = [
        {"type": "http.request", "body": b"ping", "more_body": True},
        {"type": "http.request", "body": b"pong", "more_body": False},
    ]

    async def receive() -> Mapping[str, object]:
        return incoming.pop(0) if incoming else {"type": "http.disconnect"}

    async def send(message: Mapping[str, object]) -> None:
        messages.append(dict(message))

    await app.startup()
    await app(
        {
            "type": "http",
            "method": "POST",
            "path": "/echo",
            "query_string": b"",
            "headers": [(b"host", b"example.com")],
        },
        receive,
        send,
    )
    await app.shutdown()
    assert len(messages) == 2
    assert messages[0]["type"] == "http.response.start"
    assert messages[0]["status"] == 200
    assert messages[1]["body"] == b"pingpong"


@pytest.mark.asyncio
async def test_asgi_lifespan_runs_hooks() -> None:
    app = _app()
    events: list[str] = []
    app.on_startup(lambda: events.append("up"))
    app.on_shutdown(lambda: events.append("down"))
    incoming = [{"type": "lifespan.startup"}, {"type": "lifespan.shutdown"}]
    sent: list[Mapping[str, object]] = []

    async def receive() -> Mapping[str, object]:
        return incoming.pop(0)

    async def send(message: Mapping[str, object]) -> None:
        sent.append(message)

    await app({"type": "lifespan"}, receive, send)
    assert events == ["up", "down"]
    assert [message["type"] for message in sent] == [
        "lifespan.startup.complete",
        "lifespan.shutdown.complete",
    ]
    assert app.registry.frozen


@pytest.mark.asyncio
async def test_asgi_rejects_unknown_scope() -> None:
    app = _app()

    async def receive() -> Mapping[str, object]:
        return {}

    async def send(message: Mapping[str, object]) -> None:
        return None

    with pytest.raises(RuntimeError):
        await app({"type": "websocket"}, receive, send)
