"""
=============================================================================
HTTP KERNEL
=============================================================================

The single entry point for a request, and the single place where errors
become responses.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                       KERNEL RESPONSIBILITIES                       │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   front controller                                                   │
    │        │  kernel.handle(request)                                     │
    │        ▼                                                             │
    │   RequestHandler chain ──► Response ─────────────────┐              │
    │        │                                              │              │
    │        │ exception                                    │              │
    │        ▼                                              │              │
    │   APP_ENV dev/test?  ── yes ──► re-raise (debugger)   │              │
    │        │ no                                           │              │
    │        ▼                                              │              │
    │   HttpException?     ── yes ──► Response(msg, code)   │              │
    │        │ no                                           │              │
    │        ▼                                              ▼              │
    │   log traceback, Response("Server Error", 500) ──► front controller │
    │                                                       │              │
    │                                   sends, then calls kernel.terminate │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Router, container and middleware never catch; they raise and the Kernel
decides what the client sees.

=============================================================================
"""

from typing import Optional
import logging

from ..container import Container
from ..middleware.base import RequestHandlerInterface
from .exceptions import HttpException, MethodNotAllowedError
from .request import Request, RequestState
from .response import Response


logger = logging.getLogger(__name__)


# Environments where exceptions propagate to the caller untouched
DEV_ENVIRONMENTS = ("dev", "test")
DEFAULT_ENVIRONMENT = "prod"


class Kernel:
    """
    Runs requests through the middleware chain.

    Example:
        kernel = container.get(Kernel)
        response = kernel.handle(request)
        send(response)
        kernel.terminate(request, response)
    """

    def __init__(
        self,
        container: Container,
        request_handler: RequestHandlerInterface,
        app_env: Optional[str] = None,
    ):
        self.container = container
        self.request_handler = request_handler

        if app_env is None:
            app_env = container.get("APP_ENV") if container.has("APP_ENV") else DEFAULT_ENVIRONMENT
        self.app_env = str(app_env).lower()

    @property
    def debug(self) -> bool:
        return self.app_env in DEV_ENVIRONMENTS

    def handle(self, request: Request) -> Response:
        """
        Produce the response for `request`.

        Raises:
            RuntimeError: The request was already handled.
            Exception: Anything escaping the chain, in dev/test only.
        """
        if request.state is not RequestState.RECEIVED:
            raise RuntimeError(f"Request {request.method} {request.path} has already been handled")

        request.transition(RequestState.IN_CHAIN)

        try:
            response = self.request_handler.handle(request)
            if not isinstance(response, Response):
                raise TypeError(
                    f"Middleware chain returned {type(response).__name__}, expected Response"
                )
        except Exception as exc:
            request.transition(RequestState.ERROR)
            if self.debug:
                raise
            response = self._error_response(request, exc)
        else:
            # No handler ran: some middleware answered on its own
            if request.state is RequestState.IN_CHAIN:
                request.transition(RequestState.SHORT_CIRCUITED)

        request.transition(RequestState.RESPONDED)
        return response

    def terminate(self, request: Request, response: Response) -> None:
        """
        Post-response cleanup. Runs at most once per request and never
        raises, since the response has already been sent.
        """
        if request.state is RequestState.TERMINATED:
            return

        try:
            if request.session is not None:
                request.session.clear_flash()
        except Exception:
            logger.exception("Error while terminating %s %s", request.method, request.path)
        finally:
            request.transition(RequestState.TERMINATED)

        logger.debug("Terminated %s %s (%d)", request.method, request.path, response.status)

    def _error_response(self, request: Request, exc: Exception) -> Response:
        if isinstance(exc, HttpException):
            logger.info(
                "%s %s -> %d %s", request.method, request.path, exc.status_code, exc.message
            )
            response = Response(exc.message, exc.status_code)
            if isinstance(exc, MethodNotAllowedError):
                response.set_header("Allow", ", ".join(exc.allowed_methods))
            return response

        logger.exception("Unhandled error while handling %s %s", request.method, request.path)
        return Response("Server Error", 500)
