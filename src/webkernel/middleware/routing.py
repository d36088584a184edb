"""
Routing stages of the middleware chain.

ExtractRouteInfo matches the request and splices the route's own middleware
into the chain. RouterDispatch is the terminal stage: it resolves the
handler and calls it with the path parameters.
"""

from typing import Any, Callable, Dict
import inspect
import logging
import typing

from ..container import Container
from ..http.exceptions import NotFoundError
from ..http.request import Request, RequestState
from ..http.response import Response
from ..http.router import Router
from .base import Middleware, RequestHandlerInterface


logger = logging.getLogger(__name__)


class ExtractRouteInfo(Middleware):
    """
    Match the route and run its middleware before dispatch.

    NotFoundError and MethodNotAllowedError propagate to the Kernel.
    """

    def __init__(self, router: Router):
        self.router = router

    def process(self, request: Request, handler: RequestHandlerInterface) -> Response:
        found = self.router.resolve(request)
        return handler.with_middleware(found.route.middleware).handle(request)


class RouterDispatch(Middleware):
    """
    Terminal stage: call the route handler.

    In a chain without ExtractRouteInfo it matches the route itself, and
    a route with its own middleware is sent through that middleware first
    (ending in this stage again). Otherwise it never delegates further.
    """

    def __init__(self, router: Router, container: Container):
        self.router = router
        self.container = container

    def process(self, request: Request, handler: RequestHandlerInterface) -> Response:
        if request.route is None:
            route = self.router.resolve(request).route
            if route.middleware:
                return handler.with_middleware(route.middleware + (self,)).handle(request)

        action, params = self.router.dispatch(request, self.container)
        request.transition(RequestState.DISPATCHED)

        result = call_handler(action, request, params)

        if isinstance(result, Response):
            return result
        if isinstance(result, str):
            return Response(result)
        raise TypeError(
            f"Handler {getattr(action, '__qualname__', action)!r} returned "
            f"{type(result).__name__}, expected Response or str"
        )


def call_handler(action: Callable[..., Any], request: Request, params: Dict[str, str]) -> Any:
    """
    Call a route handler with path parameters as keyword arguments.

    =====================================================================
    ARGUMENT BINDING
    =====================================================================

        Route:    /post/{id:\\d+}
        Path:     /post/42
        Handler:  def show(self, id: int, request: Request)

        Call:     show(id=42, request=<Request>)

    - A parameter named `request`, or annotated Request, gets the request
    - Path parameters annotated int/float are converted; a value that
      does not convert is a 404, since the URL names nothing
    - Handlers taking **kwargs receive every remaining path parameter

    =====================================================================
    """
    try:
        signature = inspect.signature(action)
    except (TypeError, ValueError):
        return action(**params)

    try:
        hints = typing.get_type_hints(action)
    except (NameError, TypeError):
        hints = {}

    kwargs: Dict[str, Any] = {}
    accepts_extra = False

    for name, parameter in signature.parameters.items():
        if parameter.kind is inspect.Parameter.VAR_KEYWORD:
            accepts_extra = True
            continue
        if parameter.kind is inspect.Parameter.VAR_POSITIONAL:
            continue

        annotation = hints.get(name, parameter.annotation)
        if name == "request" or annotation is Request:
            kwargs[name] = request
        elif name in params:
            kwargs[name] = _coerce(name, params[name], annotation)

    if accepts_extra:
        for name, value in params.items():
            kwargs.setdefault(name, value)

    return action(**kwargs)


def _coerce(name: str, value: str, annotation: Any) -> Any:
    if annotation in (int, float):
        try:
            return annotation(value)
        except ValueError:
            raise NotFoundError(f"Invalid value for path parameter '{name}'") from None
    return value
