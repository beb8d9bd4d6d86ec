"""Error values returned (or raised) by request handlers.

Three shapes of failure flow out of handler code:

* :class:`Error` carries nothing but a description.
* :class:`StructuredError` pairs a retained root cause with the status code and
  user-facing message the client should see.
* Errors supporting the :class:`Transient` capability additionally report
  whether the failure is temporary or a timeout, so callers can decide to
  retry before the error ever reaches a dispatcher.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from .http import Status, ensure_error_status, reason_phrase


UNKNOWN_ERROR = "unknown error"


class Error(Exception):
    """Base error value: a non-empty, immutable description."""

    __slots__ = ("_description",)

    def __init__(self, description: str) -> None:
        description = description or UNKNOWN_ERROR
        super().__init__(description)
        self._description = description

    @property
    def description(self) -> str:
        return self._description

    def __str__(self) -> str:
        return self.description

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.description!r})"

    def _constructor_args(self) -> tuple[Any, ...]:
        return (self._description,)

    def __reduce__(self) -> tuple[Any, ...]:
        # Slot values are not part of ``__dict__``, so copy and pickle need them spelled out.
        state = dict(getattr(self, "__dict__", None) or {})
        for klass in type(self).__mro__:
            for name in getattr(klass, "__slots__", ()):
                if hasattr(self, name):
                    state[name] = getattr(self, name)
        return (type(self), self._constructor_args(), state)

    __hash__ = Exception.__hash__

    def __eq__(self, other: object) -> bool:
        # Error values are only tested for presence, never compared.
        return self is other


def new_error(text: str) -> Error:
    """Return a plain :class:`Error` describing ``text``."""

    return Error(text)


def describe(error: BaseException) -> str:
    """Return the human-readable description of ``error``."""

    if isinstance(error, Error):
        return error.description
    text = str(error)
    return text or type(error).__name__


class StructuredError(Error):
    """Failure with an explicit status, a client message and a retained cause.

    ``description`` is the user-facing message. The cause is kept for operators
    and is never sent to the client.
    """

    __slots__ = ("cause", "status")

    def __init__(self, cause: BaseException | str, message: str, status: int | Status) -> None:
        if cause is None:
            raise ValueError("StructuredError requires a root cause")
        if isinstance(cause, str):
            cause = Error(cause)
        member = ensure_error_status(status)
        super().__init__(message or reason_phrase(member))
        self.cause: BaseException = cause
        self.status: Status = member
        self.__cause__ = cause

    def _constructor_args(self) -> tuple[Any, ...]:
        return (self.cause, self.message, self.status)

    @property
    def message(self) -> str:
        return self.description

    @property
    def cause_description(self) -> str:
        return describe(self.cause)

    def __repr__(self) -> str:
        return (
            f"StructuredError(cause={self.cause_description!r}, "
            f"message={self.message!r}, status={int(self.status)})"
        )


def not_found(cause: BaseException | str, message: str = "Not found") -> StructuredError:
    return StructuredError(cause, message, Status.NOT_FOUND)


def bad_request(cause: BaseException | str, message: str = "Bad request") -> StructuredError:
    return StructuredError(cause, message, Status.BAD_REQUEST)


def internal(cause: BaseException | str, message: str | None = None) -> StructuredError:
    status = Status.INTERNAL_SERVER_ERROR
    return StructuredError(cause, message or reason_phrase(status), status)


class DecodeError(Error):
    """Body decoding failure with the byte ``offset`` where it was detected."""

    __slots__ = ("offset",)

    def __init__(self, description: str, offset: int | None = None) -> None:
        super().__init__(description)
        self.offset = offset

    def _constructor_args(self) -> tuple[Any, ...]:
        return (self.description, self.offset)


@runtime_checkable
class Transient(Protocol):
    """Capability of errors that can classify themselves for retry decisions."""

    def temporary(self) -> bool: ...

    def timeout(self) -> bool: ...


class TransientError(Error):
    """Error value supporting the :class:`Transient` capability."""

    __slots__ = ("_temporary", "_timeout")

    def __init__(self, description: str, *, temporary: bool = True, timeout: bool = False) -> None:
        super().__init__(description)
        self._temporary = temporary
        self._timeout = timeout

    def temporary(self) -> bool:
        return self._temporary

    def timeout(self) -> bool:
        return self._timeout


def as_transient(error: BaseException | None) -> Transient | None:
    """View ``error`` through the :class:`Transient` capability, if it has it."""

    if error is None or not isinstance(error, Transient):
        return None
    # Protocol checks only see attribute names; a plain ``timeout`` value is not the capability.
    if not (callable(error.temporary) and callable(error.timeout)):
        return None
    return error


def is_temporary(error: BaseException | None) -> bool:
    refined = as_transient(error)
    return refined is not None and bool(refined.temporary())


def is_timeout(error: BaseException | None) -> bool:
    refined = as_transient(error)
    return refined is not None and bool(refined.timeout())


def is_populated(error: BaseException) -> bool:
    """Return ``False`` for error objects created without running their constructor."""

    if not isinstance(error, Error):
        return True
    if not getattr(error, "_description", None):
        return False
    if isinstance(error, StructuredError):
        return getattr(error, "status", None) is not None and getattr(error, "cause", None) is not None
    return True


class HandlerContractError(Error):
    """A handler returned something other than ``None`` or an error value."""


class RegistryFrozenError(Error):
    """Routes were registered after the registry was frozen."""


__all__ = [
    "UNKNOWN_ERROR",
    "DecodeError",
    "Error",
    "HandlerContractError",
    "RegistryFrozenError",
    "StructuredError",
    "Transient",
    "TransientError",
    "as_transient",
    "bad_request",
    "describe",
    "internal",
    "is_populated",
    "is_temporary",
    "is_timeout",
    "new_error",
    "not_found",
]
