"""Faultline: structured error handling for asynchronous request handlers."""

from .application import Application
from .config import AppConfig, load_config
from .dispatch import Dispatcher, HandlerKind, handles_errors, handles_structured_errors
from .errors import (
    DecodeError,
    Error,
    HandlerContractError,
    RegistryFrozenError,
    StructuredError,
    Transient,
    TransientError,
    as_transient,
    describe,
    is_temporary,
    is_timeout,
    new_error,
)
from .http import Status
from .observability import Observability, ObservabilityConfig
from .registry import HandlerRegistry
from .requests import Request
from .responses import JSONResponse, PlainTextResponse, Response, ResponseWriter
from .retry import RetryPolicy, retry
from .testing import TestClient

__all__ = [
    "AppConfig",
    "Application",
    "DecodeError",
    "Dispatcher",
    "Error",
    "HandlerContractError",
    "HandlerKind",
    "HandlerRegistry",
    "JSONResponse",
    "Observability",
    "ObservabilityConfig",
    "PlainTextResponse",
    "RegistryFrozenError",
    "Request",
    "Response",
    "ResponseWriter",
    "RetryPolicy",
    "Status",
    "StructuredError",
    "TestClient",
    "Transient",
    "TransientError",
    "as_transient",
    "describe",
    "handles_errors",
    "handles_structured_errors",
    "is_temporary",
    "is_timeout",
    "load_config",
    "new_error",
    "retry",
]
