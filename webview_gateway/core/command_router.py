from collections import defaultdict
from dataclasses import dataclass, field
import inspect
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Type, get_type_hints
from webview_gateway.core.event_envelope import EventEnvelope
from webview_gateway.core.logging_context import get_correlation_id


class CommandRouterError(Exception):
    """Base exception class for CommandRouter errors."""
    pass


class RouteNotFoundError(CommandRouterError):
    """Raised when no handler is registered for a given command type and version."""

    def __init__(self, command_type: str, version: int):
        super().__init__(
            f"No handler for command '{command_type}' version {version}")
        self.command_type = command_type
        self.version = version


class MiddlewareRegistrationError(CommandRouterError):
    """Raised when middleware registration fails (e.g. duplicate name or invalid signature)."""

    def __init__(self, name: str, message: str):
        super().__init__(f"Middleware '{name}' registration error: {message}")
        self.name = name


class MiddlewareExecutionError(CommandRouterError):
    """Raised when a middleware returns a falsy value."""

    def __init__(self, name: str, phase: str):
        super().__init__(
            f"Middleware '{name}' failed during {phase} phase. It must return a truthy value.")
        self.name = name
        self.phase = phase


class HandlerSignatureError(CommandRouterError):
    """Raised when a handler does not accept the envelope."""

    def __init__(self, command_type: str):
        super().__init__(
            f"Handler for command '{command_type}' must accept an 'envelope' parameter")
        self.command_type = command_type


class MissingDependencyError(CommandRouterError):
    """Raised when a handler asks for a type nobody registered."""

    def __init__(self, dependency: Any):
        super().__init__(f"No registered instance for type {dependency}")
        self.dependency = dependency


def has_params(func: Callable, required_params: list[str]) -> bool:
    """checks that a function accepts the given keyword parameters"""
    try:
        params = inspect.signature(func).parameters.keys()
        return all(p in params for p in required_params)
    except (ValueError, TypeError):
        return False


HandlerFunc = Callable[..., Awaitable[Optional[Any]]]
MiddlewareFunc = Callable[..., Awaitable[Optional[Any]]]


@dataclass
class RouteOption:
    middleware_before: List[str] = field(default_factory=list)
    middleware_after: List[str] = field(default_factory=list)


@dataclass
class DispatchResult:
    command_type: str
    correlation_id: str
    handler_result: Any = None
    middlewares_before_result: Dict[str, Any] = field(default_factory=dict)
    middlewares_after_result: Dict[str, Any] = field(default_factory=dict)


class CommandRouter:
    """
    Routes bus commands to handlers by (type, version).

    Handlers and middleware always receive the `envelope`; any other annotated
    parameter is filled from instances registered with `register()`, looked up by
    exact type. Middleware must return a truthy value or the dispatch aborts.

    Keep this module free of handler imports; wire routes from the entrypoint.
    """

    logger: logging.Logger
    routes: Dict[str, Dict[int, HandlerFunc]]
    route_options: Dict[str, Dict[int, RouteOption]]
    middlewares: Dict[str, MiddlewareFunc]
    middlewares_before: List[str]
    middlewares_after: List[str]
    registry: Dict[Type[Any], Any]

    def __init__(self):
        self.routes = defaultdict(dict)
        self.route_options = defaultdict(dict)
        self.middlewares = {}
        self.middlewares_before = []
        self.middlewares_after = []
        self.logger = logging.getLogger(__name__)
        self.registry = {}

    def set_logger(self, logger: logging.Logger):
        self.logger = logger

    def route(self, command_type: str, version: int = 1,
              middleware_before: Optional[List[str]] = None,
              middleware_after: Optional[List[str]] = None) -> Callable[[HandlerFunc], HandlerFunc]:
        options = RouteOption(
            middleware_before=list(middleware_before or []),
            middleware_after=list(middleware_after or []),
        )

        def decorator(func: HandlerFunc) -> HandlerFunc:
            if not has_params(func, ["envelope"]):
                raise HandlerSignatureError(command_type)
            self.routes[command_type][version] = func
            self.route_options[command_type][version] = options
            return func
        return decorator

    def _register_middleware(self, name: str, func: MiddlewareFunc) -> None:
        if not name:
            raise MiddlewareRegistrationError(name, "name must not be empty")
        if name in self.middlewares:
            raise MiddlewareRegistrationError(name, "already registered")
        if not has_params(func, ["envelope"]):
            raise MiddlewareRegistrationError(name, "must accept an 'envelope' parameter")
        self.middlewares[name] = func

    def register_middleware(self, name: str) -> Callable[[MiddlewareFunc], MiddlewareFunc]:
        """Registered but inactive; enable it per route through `middleware_before`/`middleware_after`."""
        def decorator(func: MiddlewareFunc) -> MiddlewareFunc:
            self._register_middleware(name, func)
            return func
        return decorator

    def register_before_middleware(self, name: str) -> Callable[[MiddlewareFunc], MiddlewareFunc]:
        """Runs before every handler."""
        def decorator(func: MiddlewareFunc) -> MiddlewareFunc:
            self._register_middleware(name, func)
            self.middlewares_before.append(name)
            return func
        return decorator

    def register_after_middleware(self, name: str) -> Callable[[MiddlewareFunc], MiddlewareFunc]:
        """Runs after every handler."""
        def decorator(func: MiddlewareFunc) -> MiddlewareFunc:
            self._register_middleware(name, func)
            self.middlewares_after.append(name)
            return func
        return decorator

    def register(self, instance: Any, as_type: Optional[Type[Any]] = None):
        """register an injectable dependency"""
        self.registry[as_type or type(instance)] = instance

    async def call_with_injected_deps(self, fn: Callable, **kwargs):
        hints = get_type_hints(fn)
        for name, dep_type in hints.items():
            if name == "return" or name in kwargs:
                continue
            if dep_type not in self.registry:
                raise MissingDependencyError(dep_type)
            kwargs[name] = self.registry[dep_type]
        return await fn(**kwargs)

    def get_route(self, envelope: EventEnvelope) -> Optional[HandlerFunc]:
        return self.routes.get(envelope.type, {}).get(envelope.version)

    async def _run_middlewares(self, names: List[str], phase: str, envelope: EventEnvelope) -> Dict[str, Any]:
        results = {}
        for name in names:
            middleware = self.middlewares.get(name)
            if not middleware:
                raise MiddlewareRegistrationError(name, f"no {phase} middleware registered")

            result = await self.call_with_injected_deps(middleware, envelope=envelope)
            if not result:
                raise MiddlewareExecutionError(name, phase)
            results[name] = result
        return results

    async def dispatch(self, envelope: EventEnvelope) -> DispatchResult:
        handler = self.get_route(envelope)
        if not handler:
            self.logger.warning(f"No handler registered for {envelope.type}")
            raise RouteNotFoundError(envelope.type, envelope.version)

        options = self.route_options[envelope.type].get(envelope.version) or RouteOption()
        before = list(dict.fromkeys(self.middlewares_before + options.middleware_before))
        after = list(dict.fromkeys(self.middlewares_after + options.middleware_after))

        result = DispatchResult(command_type=envelope.type, correlation_id=get_correlation_id())
        result.middlewares_before_result = await self._run_middlewares(before, "before", envelope)
        result.handler_result = await self.call_with_injected_deps(handler, envelope=envelope)
        result.middlewares_after_result = await self._run_middlewares(after, "after", envelope)
        return result
