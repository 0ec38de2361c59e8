from typing import ClassVar, Callable, TypeVar, Any

T = TypeVar("T")


class Extra:
    """Defines the attributes used by decorators"""

    ON: ClassVar[str] = "_staticd_on"


def on(**methods: str) -> Callable[[T], T]:
    """The @on decorator marks a service method as processing HTTP
    requests. It takes HTTP methods as keyword arguments (several methods
    can be joined with `_`, like `GET_HEAD`), each with a path prefix.

    For instance:

    >    @on(GET_HEAD="/")

    implies that the wrapped method is like

    >    def read(self, request, path):
    >        return request.respond(...)

    where `path` is the request path after the prefix."""

    def decorator(function: T) -> T:
        handlers: list[tuple[str, str]] = getattr(function, Extra.ON, [])
        for http_methods, prefix in methods.items():
            for http_method in http_methods.upper().split("_"):
                handlers.append((http_method, prefix))
        setattr(function, Extra.ON, handlers)
        return function

    return decorator


# EOF
