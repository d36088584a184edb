"""
=============================================================================
MIDDLEWARE
=============================================================================

Default chain, in order:

    StartSession → ExtractRouteInfo → [route middleware] → RouterDispatch

Built-in middleware for routes and global use:

    Authenticate          401 unless a user is logged in
    Guest                 redirect logged-in users away
    AccessLogMiddleware   one access log line per request

=============================================================================
"""

from .base import FunctionMiddleware, Middleware, RequestHandlerInterface, function_middleware
from .session import StartSession
from .auth import Authenticate, Guest
from .routing import ExtractRouteInfo, RouterDispatch
from .handler import DEFAULT_MIDDLEWARE, RequestHandler
from .logging import AccessLogMiddleware

__all__ = [
    # Contracts
    "Middleware",
    "RequestHandlerInterface",
    "FunctionMiddleware",
    "function_middleware",

    # Chain
    "RequestHandler",
    "DEFAULT_MIDDLEWARE",

    # Built-in middleware
    "StartSession",
    "ExtractRouteInfo",
    "RouterDispatch",
    "Authenticate",
    "Guest",
    "AccessLogMiddleware",
]
