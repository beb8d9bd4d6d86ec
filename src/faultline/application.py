"""Application core."""

from __future__ import annotations

import inspect
import time
from typing import Any, Awaitable, Callable, Mapping, Sequence

from .config import AppConfig
from .dispatch import Dispatcher, Handler, HandlerKind
from .errors import StructuredError, new_error
from .http import Status
from .observability import Observability
from .registry import HandlerRegistry
from .requests import BodyLoader, Request
from .responses import Response, ResponseWriter

Hook = Callable[[], Awaitable[None] | None]

# ASGI scope extension carrying a per-request timeout: {"seconds": float}.
TIMEOUT_EXTENSION = "faultline.request_timeout"


class Application:
    """Own a :class:`HandlerRegistry` and serve it to an ASGI transport.

    Routes are registered before :meth:`startup`; startup freezes the registry.
    """

    def __init__(
        self,
        config: AppConfig | None = None,
        *,
        registry: HandlerRegistry | None = None,
        observability: Observability | None = None,
    ) -> None:
        self.config = config or AppConfig()
        self.observability = observability or Observability(self.config.observability)
        self.observability.configure_logging()
        self.registry = registry or HandlerRegistry(
            observability=self.observability,
            default_status=self.config.default_status,
        )
        self._startup_hooks: list[Hook] = []
        self._shutdown_hooks: list[Hook] = []
        self._fallback = Dispatcher(
            self._unroutable,
            kind=HandlerKind.STRUCTURED,
            observability=self.observability,
            default_status=self.config.default_status,
        )

    # ------------------------------------------------------------------ routing
    def route(
        self,
        path: str,
        *,
        methods: Sequence[str],
        kind: HandlerKind = HandlerKind.STRUCTURED,
        name: str | None = None,
    ) -> Callable[[Handler], Handler]:
        return self.registry.route(path, methods=methods, kind=kind, name=name)

    def get(
        self, path: str, *, kind: HandlerKind = HandlerKind.STRUCTURED, name: str | None = None
    ) -> Callable[[Handler], Handler]:
        return self.registry.get(path, kind=kind, name=name)

    def post(
        self, path: str, *, kind: HandlerKind = HandlerKind.STRUCTURED, name: str | None = None
    ) -> Callable[[Handler], Handler]:
        return self.registry.post(path, kind=kind, name=name)

    # ------------------------------------------------------------------ lifecycle
    def on_startup(self, func: Hook) -> Hook:
        self._startup_hooks.append(func)
        return func

    def on_shutdown(self, func: Hook) -> Hook:
        self._shutdown_hooks.append(func)
        return func

    async def startup(self) -> None:
        for hook in self._startup_hooks:
            result = hook()
            if inspect.isawaitable(result):
                await result
        self.registry.freeze()

    async def shutdown(self) -> None:
        for hook in self._shutdown_hooks:
            result = hook()
            if inspect.isawaitable(result):
                await result

    # ------------------------------------------------------------------ request handling
    async def dispatch(
        self,
        method: str,
        path: str,
        *,
        query_string: str | None = None,
        headers: Mapping[str, str] | None = None,
        body: bytes | None = None,
        body_loader: BodyLoader | None = None,
        timeout: float | None = None,
    ) -> Response:
        """Route one request and return the finished response.

        ``timeout`` overrides ``config.request_timeout`` for this request only.
        """

        if timeout is None:
            timeout = self.config.request_timeout
        deadline = time.monotonic() + timeout if timeout is not None else None
        try:
            match = self.registry.find(method, path)
        except LookupError:
            params: Mapping[str, str] = {}
            dispatcher = self._fallback
        else:
            params = match.params
            dispatcher = match.route.dispatcher
        request = Request(
            method=method,
            path=path,
            headers=headers or {},
            path_params=params,
            query_string=query_string or "",
            body=body,
            body_loader=None if body is not None else body_loader,
            deadline=deadline,
            max_body_bytes=self.config.max_request_body_bytes,
        )
        return await dispatcher(request, ResponseWriter())

    async def _unroutable(self, request: Request, writer: ResponseWriter) -> StructuredError:
        allowed = self.registry.allowed_methods(request.path)
        if allowed:
            writer.set_header("allow", ", ".join(allowed))
            cause = new_error(f"{request.method} not allowed for {request.path}")
            return StructuredError(cause, "Method not allowed", Status.METHOD_NOT_ALLOWED)
        cause = new_error(f"no route for {request.method} {request.path}")
        return StructuredError(cause, "Not found", Status.NOT_FOUND)

    # ------------------------------------------------------------------ interface adapters
    async def __call__(
        self,
        scope: Mapping[str, Any],
        receive: Callable[[], Awaitable[Mapping[str, Any]]],
        send: Callable[[Mapping[str, Any]], Awaitable[None]],
    ) -> None:
        scope_type = scope.get("type")
        if scope_type == "http":
            await self._handle_http(scope, receive, send)
            return
        if scope_type == "lifespan":
            await self._handle_lifespan(receive, send)
            return
        raise RuntimeError("Application only supports HTTP and lifespan scopes")

    async def _handle_lifespan(
        self,
        receive: Callable[[], Awaitable[Mapping[str, Any]]],
        send: Callable[[Mapping[str, Any]], Awaitable[None]],
    ) -> None:
        while True:
            message = await receive()
            message_type = message.get("type")
            if message_type == "lifespan.startup":
                try:
                    await self.startup()
                except Exception as exc:
                    await send({"type": "lifespan.startup.failed", "message": str(exc)})
                    return
                await send({"type": "lifespan.startup.complete"})
            elif message_type == "lifespan.shutdown":
                await self.shutdown()
                await send({"type": "lifespan.shutdown.complete"})
                return

    async def _handle_http(
        self,
        scope: Mapping[str, Any],
        receive: Callable[[], Awaitable[Mapping[str, Any]]],
        send: Callable[[Mapping[str, Any]], Awaitable[None]],
    ) -> None:
        headers = {key.decode().lower(): value.decode() for key, value in scope.get("headers", [])}
        body_state: dict[str, Any] = {"buffer": bytearray(), "cached": None, "done": False}

        async def load_body() -> bytes:
            cached = body_state["cached"]
            if cached is not None:
                return cached
            while not body_state["done"]:
                message = await receive()
                message_type = message.get("type")
                if message_type == "http.disconnect":
                    body_state["done"] = True
                    continue
                if message_type != "http.request":
                    continue
                chunk = message.get("body", b"")
                if chunk:
                    body_state["buffer"].extend(chunk)
                if not message.get("more_body", False):
                    body_state["done"] = True
            body_bytes = bytes(body_state["buffer"])
            body_state["cached"] = body_bytes
            body_state["buffer"] = bytearray()
            return body_bytes

        response = await self.dispatch(
            scope["method"],
            scope["path"],
            query_string=(scope.get("query_string") or b"").decode(),
            headers=headers,
            body_loader=load_body,
            timeout=_scope_timeout(scope),
        )
        await send(
            {
                "type": "http.response.start",
                "status": response.status,
                "headers": [(k.encode("latin-1"), v.encode("latin-1")) for k, v in response.headers],
            }
        )
        await send({"type": "http.response.body", "body": response.body})


def _scope_timeout(scope: Mapping[str, Any]) -> float | None:
    extension = (scope.get("extensions") or {}).get(TIMEOUT_EXTENSION)
    if not extension:
        return None
    return float(extension["seconds"])


__all__ = ["TIMEOUT_EXTENSION", "Application"]
