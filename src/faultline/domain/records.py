"""Record viewing handlers built on the dispatcher contract.

Storage and template rendering are collaborators behind small protocols; the
in-memory implementations here back the demo application and the tests.
"""

from __future__ import annotations

from string import Template
from typing import Any, Awaitable, Callable, Mapping, Protocol, TypeVar

from msgspec import Struct, to_builtins

from ..application import Application
from ..config import AppConfig
from ..dispatch import HandlerKind
from ..errors import DecodeError, Error, StructuredError, TransientError, is_timeout
from ..http import Status
from ..requests import Request
from ..responses import ResponseWriter
from ..retry import RetryPolicy, Sleep, retry

T = TypeVar("T")


class Record(Struct, frozen=True):
    id: str
    title: str
    body: str = ""


class RecordInput(Struct, frozen=True):
    id: str
    title: str
    body: str = ""


class RecordNotFound(Error):
    def __init__(self, record_id: str) -> None:
        super().__init__(f"record {record_id!r} not found")
        self.record_id = record_id


class RenderError(Error):
    """Template could not be rendered with the supplied context."""


class RecordStore(Protocol):
    async def fetch(self, record_id: str) -> Record: ...

    async def save(self, record: Record) -> None: ...


class Renderer(Protocol):
    def render(self, template: str, context: Mapping[str, Any]) -> str: ...


class InMemoryRecordStore:
    """Dictionary-backed store that can be primed to fail."""

    def __init__(self, records: Mapping[str, Record] | None = None) -> None:
        self._records: dict[str, Record] = dict(records or {})
        self._failures: list[Exception] = []
        self.fetch_calls = 0

    def fail_next(self, *errors: Exception) -> None:
        self._failures.extend(errors)

    async def fetch(self, record_id: str) -> Record:
        self.fetch_calls += 1
        if self._failures:
            raise self._failures.pop(0)
        try:
            return self._records[record_id]
        except KeyError:
            raise RecordNotFound(record_id) from None

    async def save(self, record: Record) -> None:
        if self._failures:
            raise self._failures.pop(0)
        self._records[record.id] = record


class TemplateRenderer:
    """``string.Template`` renderer keyed by template name."""

    def __init__(self, templates: Mapping[str, str]) -> None:
        self._templates = {name: Template(source) for name, source in templates.items()}

    def render(self, template: str, context: Mapping[str, Any]) -> str:
        try:
            compiled = self._templates[template]
        except KeyError:
            raise RenderError(f"unknown template {template!r}") from None
        try:
            return compiled.substitute(context)
        except KeyError as exc:
            raise RenderError(f"template {template!r} missing field {exc.args[0]!r}") from exc
        except ValueError as exc:
            raise RenderError(f"template {template!r} is malformed: {exc}") from exc


DEFAULT_TEMPLATES = {
    "record": "<h1>$title</h1>\n<p>$body</p>\n",
}


class RecordHandlers:
    def __init__(
        self,
        store: RecordStore,
        renderer: Renderer,
        *,
        retry_policy: RetryPolicy | None = None,
        sleep: Sleep | None = None,
        app: Application | None = None,
    ) -> None:
        self.store = store
        self.renderer = renderer
        self.retry_policy = retry_policy or RetryPolicy()
        self._sleep = sleep
        self._observability = app.observability if app is not None else None

    async def _retry(self, operation: Callable[[], Awaitable[T]]) -> T:
        if self._sleep is None:
            return await retry(operation, self.retry_policy, observability=self._observability)
        return await retry(operation, self.retry_policy, sleep=self._sleep, observability=self._observability)

    async def _fetch(self, record_id: str) -> Record:
        return await self._retry(lambda: self.store.fetch(record_id))

    async def view(self, request: Request, writer: ResponseWriter) -> StructuredError | None:
        record_id = request.path_params["record_id"]
        if request.expired:
            cause = TransientError(f"deadline passed before fetching {record_id!r}", timeout=True)
            return StructuredError(cause, "Request timed out", Status.GATEWAY_TIMEOUT)
        try:
            record = await self._fetch(record_id)
        except RecordNotFound as exc:
            return StructuredError(exc, "Record not found", Status.NOT_FOUND)
        except Exception as exc:
            if is_timeout(exc) or isinstance(exc, TimeoutError):
                return StructuredError(exc, "Record store timed out", Status.GATEWAY_TIMEOUT)
            return StructuredError(exc, "Record store unavailable", Status.SERVICE_UNAVAILABLE)
        try:
            page = self.renderer.render("record", to_builtins(record))
        except RenderError as exc:
            return StructuredError(exc, "Can't display record", Status.INTERNAL_SERVER_ERROR)
        writer.set_header("content-type", "text/html; charset=utf-8")
        writer.write(page)
        return None

    async def create(self, request: Request, writer: ResponseWriter) -> StructuredError | None:
        try:
            payload = await request.json(RecordInput)
        except DecodeError as exc:
            if exc.offset is not None:
                message = f"Malformed record at byte {exc.offset}"
            else:
                message = "Malformed record"
            return StructuredError(exc, message, Status.BAD_REQUEST)
        record = Record(id=payload.id, title=payload.title, body=payload.body)
        try:
            await self._retry(lambda: self.store.save(record))
        except Exception as exc:
            return StructuredError(exc, "Record store unavailable", Status.SERVICE_UNAVAILABLE)
        writer.write_json(to_builtins(record), status=Status.CREATED)
        return None

    async def raw(self, request: Request, writer: ResponseWriter) -> Exception | None:
        try:
            record = await self._fetch(request.path_params["record_id"])
        except Exception as exc:
            return exc
        writer.write_json(to_builtins(record))
        return None


def build_app(
    store: RecordStore | None = None,
    renderer: Renderer | None = None,
    *,
    config: AppConfig | None = None,
    sleep: Sleep | None = None,
) -> Application:
    """Wire the record handlers into an :class:`Application`."""

    app = Application(config)
    handlers = RecordHandlers(
        store or InMemoryRecordStore(),
        renderer or TemplateRenderer(DEFAULT_TEMPLATES),
        retry_policy=app.config.retry,
        sleep=sleep,
        app=app,
    )
    app.registry.add("/records/{record_id}", handlers.view, methods=("GET",), name="view_record")
    app.registry.add("/records", handlers.create, methods=("POST",), name="create_record")
    app.registry.add(
        "/raw/records/{record_id}",
        handlers.raw,
        methods=("GET",),
        kind=HandlerKind.PLAIN,
        name="raw_record",
    )
    return app


__all__ = [
    "DEFAULT_TEMPLATES",
    "InMemoryRecordStore",
    "Record",
    "RecordHandlers",
    "RecordInput",
    "RecordNotFound",
    "RecordStore",
    "RenderError",
    "Renderer",
    "TemplateRenderer",
    "build_app",
]
