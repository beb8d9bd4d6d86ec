"""Operator-facing sink for errors translated by the dispatcher."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import msgspec

from .errors import StructuredError, describe

if TYPE_CHECKING:
    from .requests import Request


class ObservabilityConfig(msgspec.Struct, frozen=True):
    """Logging, error tracking and metrics configuration."""

    enabled: bool = True
    logger_name: str = "faultline"
    log_level: str = "INFO"
    sentry_enabled: bool = True
    sentry_capture_exceptions: bool = True
    sentry_breadcrumb_category: str = "faultline"
    datadog_enabled: bool = True
    datadog_tags: tuple[tuple[str, str], ...] = ()
    datadog_metric_error: str = "faultline.request.errors"
    datadog_metric_retry: str = "faultline.retry.attempts"


class Observability:
    """Route error records to the log, Sentry and Datadog when available."""

    def __init__(self, config: ObservabilityConfig | None = None) -> None:
        self.config = config or ObservabilityConfig()
        self.logger = logging.getLogger(self.config.logger_name)
        self._sentry_hub: Any | None = None
        self._statsd: Any | None = None
        self._base_datadog_tags = tuple(f"{key}:{value}" for key, value in self.config.datadog_tags)
        if self.config.enabled:
            self._prepare_sentry()
            self._prepare_datadog()

    @property
    def enabled(self) -> bool:
        return self.config.enabled

    def configure_logging(self) -> None:
        """Apply the configured level to the shared logger.

        Called once by the owning application; other instances leave the level alone.
        """

        self.logger.setLevel(self.config.log_level.upper())

    def _prepare_sentry(self) -> None:
        if not self.config.sentry_enabled:
            return
        try:
            import sentry_sdk  # type: ignore[import-not-found]
        except ImportError:  # pragma: no cover - optional dependency
            return
        self._sentry_hub = sentry_sdk.Hub.current

    def _prepare_datadog(self) -> None:
        if not self.config.datadog_enabled:
            return
        statsd = None
        try:
            from datadog import statsd as datadog_statsd  # type: ignore[import-not-found]
        except ImportError:  # pragma: no cover - optional dependency
            try:
                from ddtrace import statsd as ddtrace_statsd  # type: ignore[import-not-found]
            except ImportError:  # pragma: no cover - optional dependency
                ddtrace_statsd = None
            statsd = ddtrace_statsd
        else:
            statsd = datadog_statsd
        if statsd is not None:
            self._statsd = statsd

    def _tags(self, request: "Request | None", status: int | None = None) -> list[str]:
        tags = list(self._base_datadog_tags)
        if request is not None:
            tags.append(f"method:{request.method}")
        if status is not None:
            tags.append(f"status:{status}")
        return tags

    def _capture(self, error: BaseException, message: str, data: dict[str, Any]) -> None:
        hub = self._sentry_hub
        if hub is None:
            return
        hub.add_breadcrumb(
            category=self.config.sentry_breadcrumb_category,
            level="error",
            message=message,
            data=data,
        )
        if self.config.sentry_capture_exceptions:
            hub.capture_exception(error)

    def record_structured_error(self, request: "Request | None", error: StructuredError) -> None:
        """Log the retained root cause of ``error``; the client only sees its message."""

        status = int(error.status)
        cause = error.cause
        target = f"{request.method} {request.path}" if request is not None else "<no request>"
        exc_info = cause if cause.__traceback__ is not None else None
        self.logger.error(
            "%s failed with %d (%s): %s",
            target,
            status,
            error.message,
            error.cause_description,
            exc_info=exc_info,
        )
        if self._statsd is not None:
            self._statsd.increment(self.config.datadog_metric_error, tags=self._tags(request, status))
        self._capture(
            cause,
            error.cause_description,
            {"status": status, "message": error.message, "target": target},
        )

    def record_plain_error(self, request: "Request | None", error: BaseException, status: int) -> None:
        self.logger.debug("handler returned bare error with %d: %s", status, describe(error))
        if self._statsd is not None:
            self._statsd.increment(self.config.datadog_metric_error, tags=self._tags(request, status))

    def record_retry(self, error: BaseException, *, attempt: int, attempts: int, delay: float) -> None:
        self.logger.warning(
            "temporary failure on attempt %d/%d, retrying in %.2fs: %s",
            attempt,
            attempts,
            delay,
            describe(error),
        )
        if self._statsd is not None:
            self._statsd.increment(self.config.datadog_metric_retry, tags=self._tags(None))


__all__ = ["Observability", "ObservabilityConfig"]
