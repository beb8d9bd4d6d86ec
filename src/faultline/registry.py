"""Explicit route registry.

The registry is built at startup, frozen, and read-only afterwards. Each route
stores a :class:`~faultline.dispatch.Dispatcher` so the error-translation kind
declared at registration travels with the handler.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Mapping, MutableMapping, Sequence

import rure
from rure.regex import RegexObject

from .dispatch import Dispatcher, Handler, HandlerKind
from .errors import RegistryFrozenError
from .http import Status
from .observability import Observability

_PATH_PARAM_PATTERN = re.compile(r"{([a-zA-Z_][a-zA-Z0-9_]*)(?::([a-zA-Z_][a-zA-Z0-9_]*))?}")


@dataclass(slots=True, frozen=True)
class RouteSpec:
    path: str
    methods: tuple[str, ...]
    handler: Handler
    kind: HandlerKind = HandlerKind.STRUCTURED
    name: str | None = None


@dataclass(slots=True)
class Route:
    spec: RouteSpec
    pattern: RegexObject
    param_names: tuple[str, ...]
    dispatcher: Dispatcher


@dataclass(slots=True)
class RouteMatch:
    route: Route
    params: Mapping[str, str]


class HandlerRegistry:
    def __init__(
        self,
        *,
        observability: Observability | None = None,
        default_status: int | Status = Status.INTERNAL_SERVER_ERROR,
    ) -> None:
        self._routes: list[Route] = []
        self._routes_by_method: dict[str, list[Route]] = {}
        self._names: set[str] = set()
        self._frozen = False
        self.observability = observability or Observability()
        self.default_status = default_status

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def routes(self) -> tuple[Route, ...]:
        return tuple(self._routes)

    def freeze(self) -> None:
        self._frozen = True

    def add(
        self,
        path: str,
        handler: Handler,
        *,
        methods: Sequence[str] = ("GET",),
        kind: HandlerKind = HandlerKind.STRUCTURED,
        name: str | None = None,
    ) -> Route:
        if self._frozen:
            raise RegistryFrozenError(f"Cannot register {path!r}: registry is frozen")
        if name is not None and name in self._names:
            raise ValueError(f"Route name {name!r} already registered")
        pattern, param_names = _compile_path(path)
        normalized_methods = tuple(dict.fromkeys(m.upper() for m in methods))
        if not normalized_methods:
            raise ValueError(f"Route {path!r} declares no methods")
        for method in normalized_methods:
            if not method.isalpha():
                raise ValueError(f"Route {path!r} declares invalid method {method!r}")
        spec = RouteSpec(path=path, methods=normalized_methods, handler=handler, kind=HandlerKind(kind), name=name)
        dispatcher = Dispatcher(
            handler,
            kind=spec.kind,
            observability=self.observability,
            default_status=self.default_status,
        )
        route = Route(spec=spec, pattern=pattern, param_names=param_names, dispatcher=dispatcher)
        self._routes.append(route)
        for method in normalized_methods:
            self._routes_by_method.setdefault(method, []).append(route)
        if name is not None:
            self._names.add(name)
        return route

    def find(self, method: str, path: str) -> RouteMatch:
        method = method.upper()
        for route in self._routes_by_method.get(method, ()):
            captures = route.pattern.match(path)
            if captures is None:
                continue
            params: MutableMapping[str, str] = {}
            for name in route.param_names:
                group = captures.group(name)
                if group is None:
                    continue
                params[name] = group
            return RouteMatch(route=route, params=params)
        raise LookupError(f"No route matches {method} {path}")

    def allowed_methods(self, path: str) -> tuple[str, ...]:
        """Methods registered for ``path`` under any verb."""

        allowed: list[str] = []
        for route in self._routes:
            if route.pattern.match(path) is not None:
                allowed.extend(m for m in route.spec.methods if m not in allowed)
        return tuple(allowed)

    def route(
        self,
        path: str,
        *,
        methods: Sequence[str],
        kind: HandlerKind = HandlerKind.STRUCTURED,
        name: str | None = None,
    ) -> Callable[[Handler], Handler]:
        def decorator(func: Handler) -> Handler:
            self.add(path, func, methods=methods, kind=kind, name=name)
            return func

        return decorator

    def get(
        self, path: str, *, kind: HandlerKind = HandlerKind.STRUCTURED, name: str | None = None
    ) -> Callable[[Handler], Handler]:
        return self.route(path, methods=("GET",), kind=kind, name=name)

    def post(
        self, path: str, *, kind: HandlerKind = HandlerKind.STRUCTURED, name: str | None = None
    ) -> Callable[[Handler], Handler]:
        return self.route(path, methods=("POST",), kind=kind, name=name)


def _compile_path(path: str) -> tuple[RegexObject, tuple[str, ...]]:
    param_names: list[str] = []

    def replace(match: re.Match[str]) -> str:
        name = match.group(1)
        converter = match.group(2)
        param_names.append(name)
        if converter is None:
            return f"(?P<{name}>[^/]+)"
        if converter == "path":
            return f"(?P<{name}>.*)"
        raise ValueError(f"Unsupported path converter: {converter}")

    pattern = "^" + _PATH_PARAM_PATTERN.sub(replace, path) + "$"
    return rure.compile(pattern), tuple(param_names)


__all__ = ["HandlerRegistry", "Route", "RouteMatch", "RouteSpec"]
