from typing import Optional, Iterable, ClassVar, Any, Coroutine

from .routing import Handler, Dispatcher
from .http.model import HTTPRequest, HTTPResponse

# -----------------------------------------------------------------------------
#
# SERVICE
#
# -----------------------------------------------------------------------------


class Service:
    NO_HANDLER: ClassVar[list[str]] = [
        "name",
        "app",
        "_handlers",
        "isMounted",
        "handlers",
        "start",
        "stop",
    ]

    def __init__(self, name: Optional[str] = None) -> None:
        self.name: str = name or self.__class__.__name__
        self.app: Optional[Application] = None
        self._handlers: Optional[list[Handler]] = None

    async def start(self) -> None:
        """Can be overridden to do asynchronous pre-start work"""
        pass

    async def stop(self) -> None:
        """Can be overridden to do asynchronous post-stop work"""
        pass

    @property
    def isMounted(self) -> bool:
        return self.app is not None

    @property
    def handlers(self) -> list[Handler]:
        if self._handlers is None:
            self._handlers = list(self.iterHandlers())
        return self._handlers

    def iterHandlers(self) -> Iterable[Handler]:
        for value in (getattr(self, _) for _ in dir(self) if _ not in self.NO_HANDLER):
            handler = Handler.Get(value)
            if handler:
                yield handler

    def __repr__(self) -> str:
        return f"(Service {self.name}{' :mounted' if self.isMounted else ''})"


# -----------------------------------------------------------------------------
#
# APPLICATION
#
# -----------------------------------------------------------------------------


class Application:
    """Dispatches requests to the handlers of the mounted services."""

    def __init__(self, services: list[Service] | None = None) -> None:
        self.dispatcher: Dispatcher = Dispatcher()
        self.services: list[Service] = []
        for service in services or ():
            self.mount(service)

    async def start(self) -> "Application":
        for srv in self.services:
            await srv.start()
        return self

    async def stop(self) -> "Application":
        for srv in self.services:
            await srv.stop()
        return self

    def process(
        self, request: HTTPRequest
    ) -> HTTPResponse | Coroutine[Any, Any, HTTPResponse]:
        route, rest = self.dispatcher.match(request.method, request.path or "/")
        if route and route.handler and rest is not None:
            return route.handler(request, rest)
        elif allowed := set(self.dispatcher.methods(request.path or "/")):
            return request.methodNotAllowed(allowed)
        else:
            return request.notFound()

    def mount(self, service: Service) -> Service:
        if service.isMounted:
            raise RuntimeError(
                f"Cannot mount service, it is already mounted: {service}"
            )
        for handler in service.handlers:
            self.dispatcher.register(handler)
        service.app = self
        self.services.append(service)
        return service


def mount(*components: Application | Service) -> Application:
    """Mounts the given services into an application, the first given
    application is reused, otherwise a new one is created."""
    apps: list[Application] = [_ for _ in components if isinstance(_, Application)]
    app: Application = apps[0] if apps else Application()
    for item in components:
        if isinstance(item, Service):
            app.mount(item)
        elif not isinstance(item, Application):
            raise RuntimeError(f"Unsupported component type {type(item)}: {item}")
    return app


# EOF
