"""Handler adaptation: the single place where errors become responses.

Handlers are written against one contract::

    async def handler(request: Request, writer: ResponseWriter) -> Error | None

Returning ``None`` means success and the handler owns whatever it wrote.
Returning (or raising) an :class:`~faultline.errors.Error` hands the failure
to :class:`Dispatcher`, which logs the internal cause and writes exactly one
status and one message. Handlers never write error responses themselves.
"""

from __future__ import annotations

import inspect
from enum import Enum
from typing import Awaitable, Callable, Union

from .errors import Error, HandlerContractError, StructuredError, describe, is_populated
from .http import Status, ensure_error_status, reason_phrase
from .observability import Observability
from .requests import Request
from .responses import Response, ResponseWriter

Outcome = Union[BaseException, None]
Handler = Callable[[Request, ResponseWriter], Union[Awaitable[Outcome], Outcome]]


class HandlerKind(str, Enum):
    """Which error shape a handler's contract promises."""

    PLAIN = "plain"
    STRUCTURED = "structured"

    def __str__(self) -> str:  # pragma: no cover - trivial
        return self.value


class Dispatcher:
    """Wrap ``handler`` and translate its failures into responses.

    ``PLAIN`` handlers promise nothing beyond a description, so failures are
    enriched locally with ``default_status`` and the description becomes the
    body. ``STRUCTURED`` handlers return :class:`StructuredError` values whose
    status and message are used verbatim while the cause goes to the log.

    The dispatcher keeps no per-request state and may be shared by concurrent
    requests.
    """

    __slots__ = ("default_status", "handler", "kind", "observability")

    def __init__(
        self,
        handler: Handler,
        *,
        kind: HandlerKind = HandlerKind.STRUCTURED,
        observability: Observability | None = None,
        default_status: int | Status = Status.INTERNAL_SERVER_ERROR,
    ) -> None:
        if not callable(handler):
            raise TypeError(f"Handler {handler!r} is not callable")
        self.handler = handler
        self.kind = HandlerKind(kind)
        self.observability = observability or Observability()
        self.default_status = ensure_error_status(default_status)

    @property
    def name(self) -> str:
        return getattr(self.handler, "__qualname__", repr(self.handler))

    async def __call__(self, request: Request, writer: ResponseWriter | None = None) -> Response:
        writer = writer if writer is not None else ResponseWriter()
        outcome = await self.invoke(request, writer)
        self.translate(request, writer, outcome)
        return writer.finish()

    async def invoke(self, request: Request, writer: ResponseWriter) -> Outcome:
        """Run the handler and return its outcome, folding raised errors into it."""

        try:
            result = self.handler(request, writer)
            if inspect.isawaitable(result):
                result = await result
        except Error as exc:
            result = exc
        if result is None:
            return None
        if isinstance(result, BaseException):
            if not is_populated(result):
                raise HandlerContractError(f"{self.name} returned an unpopulated {type(result).__name__}")
            return result
        raise HandlerContractError(
            f"{self.name} returned {type(result).__name__}; "
            "handlers must return None on success or an error value on failure"
        )

    def translate(self, request: Request, writer: ResponseWriter, outcome: Outcome) -> None:
        """Write the response for ``outcome``; success leaves ``writer`` untouched."""

        if outcome is None:
            return
        if self.kind is HandlerKind.PLAIN:
            self._write_plain(request, writer, outcome)
            return
        if isinstance(outcome, StructuredError):
            self.observability.record_structured_error(request, outcome)
            writer.write_error(outcome.status, outcome.message)
            return
        # A structured handler gave back a bare error: keep its text out of the body.
        enriched = StructuredError(outcome, reason_phrase(self.default_status), self.default_status)
        self.observability.record_structured_error(request, enriched)
        writer.write_error(enriched.status, enriched.message)

    def _write_plain(self, request: Request, writer: ResponseWriter, error: BaseException) -> None:
        status = self.default_status
        self.observability.record_plain_error(request, error, int(status))
        writer.write_error(status, describe(error))


def handles_errors(
    observability: Observability | None = None,
    *,
    default_status: int | Status = Status.INTERNAL_SERVER_ERROR,
) -> Callable[[Handler], Dispatcher]:
    """Decorate a handler whose failures are bare error values."""

    def decorator(func: Handler) -> Dispatcher:
        return Dispatcher(func, kind=HandlerKind.PLAIN, observability=observability, default_status=default_status)

    return decorator


def handles_structured_errors(
    observability: Observability | None = None,
    *,
    default_status: int | Status = Status.INTERNAL_SERVER_ERROR,
) -> Callable[[Handler], Dispatcher]:
    """Decorate a handler whose failures are :class:`StructuredError` values."""

    def decorator(func: Handler) -> Dispatcher:
        return Dispatcher(
            func,
            kind=HandlerKind.STRUCTURED,
            observability=observability,
            default_status=default_status,
        )

    return decorator


__all__ = [
    "Dispatcher",
    "Handler",
    "HandlerKind",
    "Outcome",
    "handles_errors",
    "handles_structured_errors",
]
