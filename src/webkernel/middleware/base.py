"""
=============================================================================
MIDDLEWARE CONTRACTS
=============================================================================

A middleware sees the request on the way in and the response on the way
out. It receives the rest of the chain as a handler and decides whether to
call it:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                ONION ORDERING - REQUEST FLOW                        │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Request ────────────────────────────────────────────────►         │
    │                                                                      │
    │   ┌──────────┐    ┌──────────┐    ┌──────────┐    ┌──────────┐     │
    │   │  Start   │───►│ Extract  │───►│  Authen- │───►│  Router  │     │
    │   │ Session  │    │  Route   │    │ ticate   │    │ Dispatch │     │
    │   └────┬─────┘    └────┬─────┘    └────┬─────┘    └────┬─────┘     │
    │        │               │               │               │            │
    │        ▼               ▼               ▼               ▼            │
    │   [before]        [before]        [before]         [exec]          │
    │   attach          match route,    no auth_id?      call route      │
    │   session         splice route    → 401 here       handler         │
    │                   middleware      (short-circuit)                   │
    │        ▲               ▲               ▲               │            │
    │        │               │               │               ▼            │
    │   [after]         [after]         [after]          [done]          │
    │                                                                      │
    │   ◄──────────────────────────────────────────────── Response        │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
INTERVIEW INSIGHT: CHAIN OF RESPONSIBILITY
=============================================================================

Q: "What design pattern would you use for middleware?"
A: "Chain of Responsibility. Each middleware either answers the request
   itself or delegates to the next handler, and can post-process the
   response on the way back."

Q: "Why pass a handler object instead of a `next` function?"
A: "The handler is an immutable cursor into the chain. It can be
   extended (per-route middleware) without touching the chain other
   requests are using."

=============================================================================
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Iterable, Optional

from ..http.request import Request
from ..http.response import Response


class RequestHandlerInterface(ABC):
    """Anything that turns a request into a response."""

    @abstractmethod
    def handle(self, request: Request) -> Response:
        """Produce the response for `request`."""

    def with_middleware(self, middleware: Iterable[Any]) -> "RequestHandlerInterface":
        """
        A handler that runs `middleware` before continuing.

        Handlers that cannot splice middleware only accept an empty list.
        """
        if tuple(middleware):
            raise TypeError(f"{type(self).__name__} does not support per-route middleware")
        return self


class Middleware(ABC):
    """
    Abstract base class for middleware.

    =========================================================================
    MIDDLEWARE ANATOMY
    =========================================================================

        class Timing(Middleware):
            def process(self, request, handler):
                # PRE-PROCESSING: validate, annotate, or short-circuit
                if request.get_header("X-Block"):
                    return Response("Blocked", 403)     # Short-circuit!

                response = handler.handle(request)      # Continue the chain

                # POST-PROCESSING: headers, logging
                response.set_header("X-Processed-By", self.name)
                return response

    =========================================================================
    """

    @abstractmethod
    def process(self, request: Request, handler: RequestHandlerInterface) -> Response:
        """
        Handle the request or delegate to `handler`.

        Returns:
            Response, either from handler.handle() or short-circuited
        """

    @property
    def name(self) -> str:
        """Middleware name for logging."""
        return self.__class__.__name__


# =============================================================================
# FUNCTION MIDDLEWARE
# =============================================================================

class FunctionMiddleware(Middleware):
    """
    Wraps a plain function as middleware.

    Usage:
        @function_middleware
        def add_header(request, handler):
            response = handler.handle(request)
            response.set_header("X-Custom", "value")
            return response

        RequestHandler(container, [add_header, StartSession, ...])
    """

    def __init__(
        self,
        func: Callable[[Request, RequestHandlerInterface], Response],
        name: Optional[str] = None,
    ):
        self._func = func
        self._name = name or func.__name__

    def process(self, request: Request, handler: RequestHandlerInterface) -> Response:
        return self._func(request, handler)

    @property
    def name(self) -> str:
        return self._name


def function_middleware(
    func: Callable[[Request, RequestHandlerInterface], Response]
) -> FunctionMiddleware:
    """Decorator form of FunctionMiddleware."""
    return FunctionMiddleware(func)
