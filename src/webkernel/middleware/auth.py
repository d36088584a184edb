"""
Authentication gates.

Both answer with a response instead of raising, so the route handler never
runs for a request that fails the gate:

    Authenticate    no user in session   → 401 "Authentication failed"
    Guest           user in session      → 302 to the home page
"""

import logging

from ..http.request import Request
from ..http.response import RedirectResponse, Response, unauthorized
from ..session import SessionInterface
from .base import Middleware, RequestHandlerInterface


logger = logging.getLogger(__name__)


class Authenticate(Middleware):
    """Only let authenticated users through."""

    def __init__(self, session: SessionInterface):
        self.session = session

    def process(self, request: Request, handler: RequestHandlerInterface) -> Response:
        self.session.start()

        if not self.session.has(SessionInterface.AUTH_KEY):
            logger.info("Rejected unauthenticated request %s %s", request.method, request.path)
            return unauthorized()

        return handler.handle(request)


class Guest(Middleware):
    """Only let anonymous users through (login and registration pages)."""

    def __init__(self, session: SessionInterface, redirect_to: str = "/dashboard"):
        self.session = session
        self.redirect_to = redirect_to

    def process(self, request: Request, handler: RequestHandlerInterface) -> Response:
        self.session.start()

        if self.session.has(SessionInterface.AUTH_KEY):
            return RedirectResponse(self.redirect_to)

        return handler.handle(request)
