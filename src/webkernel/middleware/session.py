"""Session startup middleware."""

from http.cookies import SimpleCookie

from ..http.request import Request
from ..http.response import Response
from ..session import DEFAULT_SESSION_COOKIE, SessionStore
from .base import Middleware, RequestHandlerInterface


class StartSession(Middleware):
    """
    Load the client's session from its cookie and make it active for the
    rest of the chain.

    On the way out the session is saved, and a Set-Cookie header is added
    when the client needs a new id: first visit, expired or forged id, or
    regenerate() on login.
    """

    def __init__(self, store: SessionStore, cookie_name: str = DEFAULT_SESSION_COOKIE):
        self.store = store
        self.cookie_name = cookie_name

    def process(self, request: Request, handler: RequestHandlerInterface) -> Response:
        incoming = request.get_cookie(self.cookie_name)
        session = self.store.open(incoming)
        opened_id = session.session_id

        session.start()
        request.session = session

        with self.store.activate(session):
            try:
                response = handler.handle(request)
            finally:
                self.store.save(session, opened_id)

        if session.data and session.session_id != incoming:
            response.set_header("Set-Cookie", self._cookie(session.session_id))
        return response

    def _cookie(self, session_id: str) -> str:
        cookie: SimpleCookie = SimpleCookie()
        cookie[self.cookie_name] = session_id
        morsel = cookie[self.cookie_name]
        morsel["path"] = "/"
        morsel["httponly"] = True
        morsel["samesite"] = "Lax"
        return morsel.OutputString()
