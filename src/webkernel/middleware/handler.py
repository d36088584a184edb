"""
=============================================================================
REQUEST HANDLER (MIDDLEWARE CHAIN)
=============================================================================

An immutable cursor over an ordered tuple of middleware ids.

    stack:     (StartSession, ExtractRouteInfo, RouterDispatch)
    position:        0

    handle(request)
        │
        ├── container.get(stack[position])  → StartSession instance
        └── instance.process(request, <handler at position + 1>)

Each step creates a NEW handler one position further; nothing is mutated,
so one handler can serve any number of requests, concurrently or nested.

=============================================================================
PER-ROUTE MIDDLEWARE
=============================================================================

ExtractRouteInfo splices the matched route's middleware in directly before
the terminal RouterDispatch, so it runs after every global middleware:

    global:     StartSession → ExtractRouteInfo → AppMiddleware → RouterDispatch
    route:      [Authenticate]

    effective:  StartSession → ExtractRouteInfo → AppMiddleware → Authenticate
                → RouterDispatch

With no RouterDispatch left in the stack the route middleware goes at the
cursor.

=============================================================================
"""

from typing import Any, Iterable, Optional, Sequence, Tuple
import copy
import inspect
import logging

from ..container import Container
from ..http.request import Request
from ..http.response import Response
from .base import FunctionMiddleware, Middleware, RequestHandlerInterface
from .routing import ExtractRouteInfo, RouterDispatch
from .session import StartSession


logger = logging.getLogger(__name__)


DEFAULT_MIDDLEWARE: Tuple[Any, ...] = (StartSession, ExtractRouteInfo, RouterDispatch)

# Body of the response returned when the chain runs out without an answer
EXHAUSTED_CHAIN_MESSAGE = "Misconfigured middleware chain: no middleware produced a response"


class RequestHandler(RequestHandlerInterface):
    """
    Runs the middleware chain.

    Entries of `middleware` are anything the container can resolve to a
    Middleware (class, dotted path, service name), Middleware instances,
    or plain functions with the (request, handler) signature.
    """

    def __init__(self, container: Container, middleware: Optional[Sequence[Any]] = None):
        self.container = container
        self._stack: Tuple[Any, ...] = tuple(DEFAULT_MIDDLEWARE if middleware is None else middleware)
        self._position = 0

    @property
    def remaining(self) -> Tuple[Any, ...]:
        """Middleware ids not yet run by this cursor."""
        return self._stack[self._position:]

    def handle(self, request: Request) -> Response:
        if self._position >= len(self._stack):
            logger.error(
                "Middleware chain exhausted without a response for %s %s",
                request.method,
                request.path,
            )
            return Response(EXHAUSTED_CHAIN_MESSAGE, 500)

        middleware = self._resolve(self._stack[self._position])
        logger.debug("-> %s", middleware.name)
        return middleware.process(request, self._advance(1))

    def with_middleware(self, middleware: Iterable[Any]) -> "RequestHandler":
        ids = tuple(middleware)
        if not ids:
            return self

        at = self._dispatch_index()
        spliced = copy.copy(self)
        spliced._stack = self._stack[:at] + ids + self._stack[at:]
        return spliced

    def _dispatch_index(self) -> int:
        """Index of the last RouterDispatch not yet run, else the cursor."""
        for index in range(len(self._stack) - 1, self._position - 1, -1):
            entry = self._stack[index]
            if entry is RouterDispatch or isinstance(entry, RouterDispatch):
                return index
        return self._position

    def _advance(self, steps: int) -> "RequestHandler":
        advanced = copy.copy(self)
        advanced._position = self._position + steps
        return advanced

    def _resolve(self, entry: Any) -> Middleware:
        if isinstance(entry, Middleware):
            return entry
        if inspect.isfunction(entry):
            return FunctionMiddleware(entry)

        middleware = self.container.get(entry)
        if not isinstance(middleware, Middleware):
            raise TypeError(f"{entry!r} resolved to {type(middleware).__name__}, not a Middleware")
        return middleware
