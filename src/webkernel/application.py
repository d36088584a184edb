"""
=============================================================================
APPLICATION BOOTSTRAP
=============================================================================

Wires the container and exposes the application to a WSGI server.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      DEFAULT SERVICE WIRING                         │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   "APP_ENV"                 literal from AppConfig.app_env          │
    │   AppConfig                 the config instance                     │
    │   Container                 the container itself                    │
    │   Router           shared   set_routes(<route table>)               │
    │   SessionStore     shared   in-memory, one entry per session id     │
    │   SessionInterface shared   → RequestSession (the active session)   │
    │   StartSession              cookie_name = AppConfig.session_cookie  │
    │   RequestHandlerInterface   → RequestHandler(container, stack)      │
    │   Guest                     redirect_to = AppConfig.home_path       │
    │   AccessLogMiddleware       log_format = AppConfig.log_format       │
    │   Kernel           shared   autowired                               │
    │   AbstractController        inflector: set_container(Container)     │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Everything else (controllers, repositories) is autowired on first use.
Applications add their own bindings through `app.container`:

    app = Application(ROUTES, AppConfig(app_env="dev"))
    app.container.add_shared(AuthRepositoryInterface, UserRepository)
    app.container.add_shared("template-renderer", JinjaRenderer)
    app.run()

=============================================================================
"""

from dataclasses import replace
from typing import Any, Iterable, Optional
import logging
from wsgiref.simple_server import make_server

from .config import AppConfig
from .container import Container, LiteralArgument
from .controller import AbstractController
from .http.kernel import Kernel
from .http.request import Request
from .http.response import Response
from .http.router import Router
from .middleware.auth import Guest
from .middleware.base import RequestHandlerInterface
from .middleware.handler import DEFAULT_MIDDLEWARE, RequestHandler
from .middleware.logging import AccessLogMiddleware
from .middleware.session import StartSession
from .session import RequestSession, SessionInterface, SessionStore
from .wsgi import WSGIApplication


logger = logging.getLogger(__name__)


LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(config: AppConfig) -> None:
    """Configure the root logger from the config."""
    level = getattr(logging, config.log_level.upper(), logging.INFO)

    logging.basicConfig(level=level, format=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
    logging.getLogger("webkernel").setLevel(level)


def create_container(config: Optional[AppConfig] = None, routes: Iterable[Any] = ()) -> Container:
    """Build a container with the framework's default bindings."""
    config = config or AppConfig()
    container = Container()

    container.add("APP_ENV", LiteralArgument(config.app_env))
    container.add(AppConfig, LiteralArgument(config))

    container.add_shared(Router).add_method_call("set_routes", [LiteralArgument(list(routes))])
    container.add_shared(SessionStore)
    container.add_shared(SessionInterface, RequestSession)
    container.add(StartSession).add_arguments([SessionStore, LiteralArgument(config.session_cookie)])

    middleware = tuple(config.middleware) + DEFAULT_MIDDLEWARE
    container.add(RequestHandlerInterface, RequestHandler).add_arguments(
        [Container, LiteralArgument(middleware)]
    )

    container.add(Guest).add_arguments([SessionInterface, LiteralArgument(config.home_path)])
    container.add(AccessLogMiddleware).add_argument(LiteralArgument(config.log_format))
    container.add_shared(Kernel)

    container.inflector(AbstractController).invoke_method("set_container", [Container])

    return container


class Application:
    """
    A configured container plus the kernel, ready to serve.

    Usage:
        ROUTES = [
            ("GET", "/", lambda: "Hello"),
            ("GET", "/post/{id:\\d+}", (PostController, "show")),
        ]

        app = Application(ROUTES)

        # Any WSGI server:
        #   gunicorn "myapp:app"
        # Or the development server:
        app.run()
    """

    def __init__(self, routes: Iterable[Any] = (), config: Optional[AppConfig] = None):
        self.config = config or AppConfig()
        self.config.validate()  # Fail-fast on invalid config

        self.container = create_container(self.config, routes)
        self._wsgi_app: Optional[WSGIApplication] = None

    @property
    def kernel(self) -> Kernel:
        return self.container.get(Kernel)

    @property
    def router(self) -> Router:
        return self.container.get(Router)

    def set_environment(self, app_env: str) -> None:
        """
        Switch prod/dev/test after construction.

        Rebinds APP_ENV and drops the cached Kernel, so bindings added
        through `container` are kept.
        """
        replace(self.config, app_env=app_env).validate()
        self.config.app_env = app_env

        self.container.replace("APP_ENV", LiteralArgument(app_env))
        self.container.replace(Kernel, shared=True)
        self._wsgi_app = None

    def handle(self, request: Request) -> Response:
        return self.kernel.handle(request)

    def terminate(self, request: Request, response: Response) -> None:
        self.kernel.terminate(request, response)

    def wsgi_app(self) -> WSGIApplication:
        if self._wsgi_app is None:
            self._wsgi_app = WSGIApplication(self.kernel)
        return self._wsgi_app

    def __call__(self, environ, start_response):
        return self.wsgi_app()(environ, start_response)

    # =========================================================================
    # DEVELOPMENT SERVER
    # =========================================================================

    def run(self, host: Optional[str] = None, port: Optional[int] = None) -> None:
        """
        Serve with wsgiref (blocking, single-threaded). For development only.
        """
        if host:
            self.config.host = host
        if port:
            self.config.port = port

        setup_logging(self.config)

        with make_server(self.config.host, self.config.port, self) as server:
            logger.info("Starting development server on %s:%s", self.config.host, self.config.port)
            self._print_startup_banner()
            try:
                server.serve_forever()
            except KeyboardInterrupt:
                logger.info("Received keyboard interrupt")

    def _print_startup_banner(self) -> None:
        print()
        print("╔══════════════════════════════════════════════════════════════╗")
        print(f"  webkernel running ({self.config.app_env})")
        print(f"  http://{self.config.host}:{self.config.port}")
        print("  Press Ctrl+C to stop")
        print("╚══════════════════════════════════════════════════════════════╝")
        print()
        print("Registered Routes:")
        print("-" * 60)
        print(self.router.format_routes())
        print("-" * 60)
