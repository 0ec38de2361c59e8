from typing import Callable, Optional, Any, Iterable
from inspect import iscoroutine

from .decorators import Extra
from .http.model import HTTPRequest, HTTPRequestError, HTTPResponse
from .utils.logging import debug


async def awaited(value: Any) -> Any:
    if iscoroutine(value):
        return await value
    else:
        return value


# -----------------------------------------------------------------------------
#
# ROUTE
#
# -----------------------------------------------------------------------------


class Route:
    """A route matches the paths starting with its prefix, its handler
    is given the rest of the path."""

    def __init__(self, prefix: str, handler: Optional["Handler"] = None):
        self.prefix: str = prefix if prefix.startswith("/") else f"/{prefix}"
        self.handler: Handler | None = handler

    def match(self, path: str) -> str | None:
        return path[len(self.prefix) :] if path.startswith(self.prefix) else None

    def __repr__(self) -> str:
        return f'(Route "{self.prefix}")'


# -----------------------------------------------------------------------------
#
# HANDLER
#
# -----------------------------------------------------------------------------


class Handler:
    """Wraps a function decorated with `@on`, mapping HTTP methods to
    path prefixes."""

    @classmethod
    def Has(cls, value: Any) -> bool:
        return hasattr(value, Extra.ON)

    @classmethod
    def Get(cls, value: Any) -> Optional["Handler"]:
        return (
            Handler(functor=value, methods=getattr(value, Extra.ON))
            if cls.Has(value)
            else None
        )

    def __init__(
        self,
        functor: Callable[..., Any],
        methods: list[tuple[str, str]],
    ):
        self.functor = functor
        self.methods: dict[str, list[str]] = {}
        for method, prefix in methods:
            self.methods.setdefault(method, []).append(prefix)

    async def __call__(self, request: HTTPRequest, path: str) -> HTTPResponse:
        try:
            return await awaited(self.functor(request, path))
        except HTTPRequestError as error:
            return request.error(error.status or 500, error.message)

    def __repr__(self) -> str:
        return f"(Handler {' '.join(self.methods)} '{self.functor}')"


# -----------------------------------------------------------------------------
#
# DISPATCHER
#
# -----------------------------------------------------------------------------


class Dispatcher:
    """Maps HTTP methods to routes, tried in registration order."""

    def __init__(self) -> None:
        self.routes: dict[str, list[Route]] = {}

    def register(self, handler: Handler) -> "Dispatcher":
        for method, prefixes in handler.methods.items():
            for prefix in prefixes:
                route: Route = Route(prefix, handler)
                debug("Registered route", Method=method, Prefix=route.prefix)
                self.routes.setdefault(method, []).append(route)
        return self

    def match(self, method: str, path: str) -> tuple[Route | None, str | None]:
        """Returns the first route of `method` matching `path`, along with
        the rest of the path."""
        for route in self.routes.get(method, ()):
            rest = route.match(path)
            if rest is not None:
                return route, rest
        return None, None

    def methods(self, path: str) -> Iterable[str]:
        """Returns the methods that have a route matching the path."""
        for method, routes in self.routes.items():
            if any(_.match(path) is not None for _ in routes):
                yield method


# EOF
