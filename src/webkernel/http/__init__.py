"""
HTTP layer: request and response values, routing, and the kernel.
"""

from .exceptions import AuthenticationError, HttpException, MethodNotAllowedError, NotFoundError
from .request import Request, RequestState
from .response import RedirectResponse, Response, json_response, redirect, unauthorized
from .router import Route, RouteMatch, Router, RouteTable
from .kernel import Kernel

__all__ = [
    "Request",
    "RequestState",
    "Response",
    "RedirectResponse",
    "json_response",
    "redirect",
    "unauthorized",

    # Routing
    "Route",
    "RouteMatch",
    "RouteTable",
    "Router",

    "Kernel",

    # Errors
    "HttpException",
    "NotFoundError",
    "MethodNotAllowedError",
    "AuthenticationError",
]
