"""Application configuration objects."""

from __future__ import annotations

import os
from typing import Any, Mapping

import msgspec
from msgspec import Struct, structs

from .http import Status, ensure_error_status
from .observability import ObservabilityConfig
from .retry import RetryPolicy

ENV_PREFIX = "FAULTLINE_"


class AppConfig(Struct, frozen=True):
    """Typed configuration for an :class:`~faultline.application.Application`."""

    default_status: int = int(Status.INTERNAL_SERVER_ERROR)
    max_request_body_bytes: int | None = 1_048_576
    request_timeout: float | None = None
    retry: RetryPolicy = RetryPolicy()
    observability: ObservabilityConfig = ObservabilityConfig()

    def __post_init__(self) -> None:
        ensure_error_status(self.default_status)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "AppConfig":
        return msgspec.convert(dict(data), type=cls)


def _env(environ: Mapping[str, str], name: str) -> str | None:
    value = environ.get(f"{ENV_PREFIX}{name}")
    if value is None or not value.strip():
        return None
    return value.strip()


def load_config(environ: Mapping[str, str] | None = None, *, base: AppConfig | None = None) -> AppConfig:
    """Overlay ``FAULTLINE_*`` environment variables on ``base``.

    Recognised variables: ``DEFAULT_STATUS``, ``REQUEST_TIMEOUT``,
    ``RETRY_ATTEMPTS``, ``RETRY_BACKOFF`` and ``LOG_LEVEL``. Invalid values
    raise :class:`ValueError`.
    """

    env = os.environ if environ is None else environ
    config = base or AppConfig()

    raw_status = _env(env, "DEFAULT_STATUS")
    raw_timeout = _env(env, "REQUEST_TIMEOUT")
    raw_attempts = _env(env, "RETRY_ATTEMPTS")
    raw_backoff = _env(env, "RETRY_BACKOFF")
    log_level = _env(env, "LOG_LEVEL")

    retry_policy = config.retry
    if raw_attempts is not None or raw_backoff is not None:
        retry_policy = RetryPolicy(
            attempts=int(raw_attempts) if raw_attempts is not None else config.retry.attempts,
            backoff=float(raw_backoff) if raw_backoff is not None else config.retry.backoff,
        )
    observability = config.observability
    if log_level is not None:
        observability = structs.replace(observability, log_level=log_level.upper())

    return AppConfig(
        default_status=int(raw_status) if raw_status is not None else config.default_status,
        max_request_body_bytes=config.max_request_body_bytes,
        request_timeout=float(raw_timeout) if raw_timeout is not None else config.request_timeout,
        retry=retry_policy,
        observability=observability,
    )


__all__ = ["AppConfig", "ENV_PREFIX", "load_config"]
