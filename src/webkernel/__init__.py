"""
=============================================================================
WEBKERNEL - Front-Controller Web Micro-Framework
=============================================================================

Every request enters through one kernel, is matched against a route table,
runs through an ordered middleware chain, and reaches a handler whose
dependencies the container builds by reading constructor type hints.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        REQUEST PIPELINE                             │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   WSGI server                                                        │
    │       │                                                              │
    │       ▼                                                              │
    │   Kernel.handle ──► StartSession ──► ExtractRouteInfo               │
    │       ▲                                    │                         │
    │       │                          [Authenticate, Guest, ...]          │
    │       │                                    │                         │
    │       │                                    ▼                         │
    │       └──────── Response ◄──────── RouterDispatch ──► handler       │
    │                                                          ▲           │
    │                                           Container builds it       │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    webkernel/
    ├── __init__.py          # This file - package exports
    ├── __main__.py          # CLI entry point (python -m webkernel)
    ├── application.py       # Bootstrap: default bindings, dev server
    ├── config.py            # AppConfig dataclass
    ├── wsgi.py              # WSGI front controller
    ├── session.py           # Session, SessionStore, RequestSession
    ├── authentication.py    # SessionAuthentication, password hashing
    ├── controller.py        # AbstractController, TemplateRenderer
    ├── container/           # Dependency injection
    ├── http/                # Request, Response, Router, Kernel
    └── middleware/          # Chain and built-in middleware

=============================================================================
QUICK START
=============================================================================

    from webkernel import Application, AppConfig, Authenticate

    def hello(name: str) -> str:
        return f"Hello {name}"

    ROUTES = [
        ("GET", "/hello/{name:.+}", hello),
        ("GET", "/dashboard", (DashboardController, "index"), [Authenticate]),
    ]

    app = Application(ROUTES, AppConfig(app_env="dev"))
    app.run()

=============================================================================
"""

__version__ = "1.0.0"

from .config import AppConfig
from .container import Container, LiteralArgument
from .http import (
    HttpException,
    Kernel,
    MethodNotAllowedError,
    NotFoundError,
    RedirectResponse,
    Request,
    Response,
    Router,
)
from .middleware import Authenticate, Guest, Middleware, RequestHandler
from .session import Session, SessionInterface, SessionStore
from .authentication import SessionAuthentication
from .controller import AbstractController
from .application import Application, create_container

__all__ = [
    "Application",
    "AppConfig",
    "create_container",
    "Container",
    "LiteralArgument",
    "Kernel",
    "Request",
    "Response",
    "RedirectResponse",
    "Router",
    "Middleware",
    "RequestHandler",
    "Authenticate",
    "Guest",
    "Session",
    "SessionInterface",
    "SessionStore",
    "SessionAuthentication",
    "AbstractController",
    "HttpException",
    "NotFoundError",
    "MethodNotAllowedError",
]
