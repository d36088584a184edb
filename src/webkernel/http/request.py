"""
=============================================================================
HTTP REQUEST
=============================================================================

The request object handed through the middleware chain.

It is built once at the front controller (from a WSGI environ, or directly
in tests) and then annotated as it travels:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      REQUEST ANNOTATION                             │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Front controller    query_params, post_params, cookies, files,    │
    │                       server, headers, body                          │
    │        │                                                             │
    │        ▼                                                             │
    │   StartSession        request.session                                │
    │        │                                                             │
    │        ▼                                                             │
    │   ExtractRouteInfo    request.route, route_handler, route_params    │
    │        │                                                             │
    │        ▼                                                             │
    │   RouterDispatch      request.state = DISPATCHED                     │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
REQUEST LIFECYCLE
=============================================================================

    RECEIVED ──► IN_CHAIN ──┬──► DISPATCHED ──────┐
                            ├──► SHORT_CIRCUITED ─┼──► RESPONDED ──► TERMINATED
                            └──► ERROR ───────────┘

States only move forward. The Kernel uses this to refuse handling the same
request twice and to run terminate() at most once.

=============================================================================
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional
from urllib.parse import parse_qs, urlsplit
import json
import logging

if TYPE_CHECKING:
    from ..session import SessionInterface
    from .router import Route


logger = logging.getLogger(__name__)


class RequestState(Enum):
    """Where a request is in its lifecycle."""
    RECEIVED = "received"                # Built, not yet handed to the kernel
    IN_CHAIN = "in_chain"                # Travelling through middleware
    DISPATCHED = "dispatched"            # Route handler was invoked
    SHORT_CIRCUITED = "short_circuited"  # A middleware answered on its own
    ERROR = "error"                      # An exception escaped the chain
    RESPONDED = "responded"              # Kernel returned a response
    TERMINATED = "terminated"            # Post-send cleanup done


# Transitions must strictly increase the rank
_STATE_RANK = {
    RequestState.RECEIVED: 0,
    RequestState.IN_CHAIN: 1,
    RequestState.DISPATCHED: 2,
    RequestState.SHORT_CIRCUITED: 2,
    RequestState.ERROR: 3,
    RequestState.RESPONDED: 4,
    RequestState.TERMINATED: 5,
}


@dataclass
class Request:
    """
    An incoming HTTP request plus the data attached while handling it.

    =========================================================================
    ATTRIBUTES
    =========================================================================

        query_params:   Parsed query string, values as lists
                        "?a=1&a=2" → {"a": ["1", "2"]}

        post_params:    Parsed form body, same shape as query_params

        cookies:        Cookie name → value

        files:          Uploaded files, name → file-like (not parsed by the
                        WSGI adapter; available for custom front controllers)

        server:         CGI/WSGI-style environment. REQUEST_METHOD and
                        REQUEST_URI are the two keys routing relies on.

        headers:        Header name → value, LOWERCASE keys

        route_*:        Set by ExtractRouteInfo

        session:        Set by StartSession

    =========================================================================
    """

    query_params: Dict[str, List[str]] = field(default_factory=dict)
    post_params: Dict[str, List[str]] = field(default_factory=dict)
    cookies: Dict[str, str] = field(default_factory=dict)
    files: Dict[str, Any] = field(default_factory=dict)
    server: Dict[str, Any] = field(default_factory=dict)
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    # Populated during traversal
    session: Optional["SessionInterface"] = None
    route: Optional["Route"] = None
    route_handler: Any = None
    route_params: Dict[str, str] = field(default_factory=dict)
    attributes: Dict[str, Any] = field(default_factory=dict)

    state: RequestState = RequestState.RECEIVED
    history: List[RequestState] = field(default_factory=lambda: [RequestState.RECEIVED], repr=False)

    _body_json: Optional[Any] = field(default=None, repr=False)

    # =========================================================================
    # CONSTRUCTION
    # =========================================================================

    @classmethod
    def create(
        cls,
        method: str,
        uri: str,
        *,
        post_params: Optional[Dict[str, List[str]]] = None,
        cookies: Optional[Dict[str, str]] = None,
        headers: Optional[Dict[str, str]] = None,
        body: bytes = b"",
        server: Optional[Dict[str, Any]] = None,
    ) -> "Request":
        """
        Build a request from a method and a URI.

        The query string of `uri` becomes query_params.

        Example:
            request = Request.create("GET", "/posts/42?page=2")
            request.get_query("page")  # "2"
        """
        environ = dict(server or {})
        environ["REQUEST_METHOD"] = method.upper()
        environ["REQUEST_URI"] = uri

        return cls(
            query_params=parse_qs(urlsplit(uri).query, keep_blank_values=True),
            post_params=dict(post_params or {}),
            cookies=dict(cookies or {}),
            server=environ,
            headers={name.lower(): value for name, value in (headers or {}).items()},
            body=body,
        )

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def method(self) -> str:
        return str(self.server.get("REQUEST_METHOD", "GET")).upper()

    @property
    def uri(self) -> str:
        """Path plus query string, as the client sent it."""
        return str(self.server.get("REQUEST_URI", "/"))

    @property
    def path(self) -> str:
        """Request path without the query string."""
        return urlsplit(self.uri).path or "/"

    @property
    def json(self) -> Any:
        """
        The body parsed as JSON (cached).

        Raises:
            ValueError: Body is not valid JSON.
        """
        if self._body_json is None and self.body:
            self._body_json = json.loads(self.body.decode("utf-8"))
        return self._body_json

    # =========================================================================
    # ACCESSORS
    # =========================================================================

    def get_query(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """First value of a query parameter."""
        values = self.query_params.get(name, [])
        return values[0] if values else default

    def get_post_param(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """First value of a form field."""
        values = self.post_params.get(name, [])
        return values[0] if values else default

    def get_cookie(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self.cookies.get(name, default)

    def get_header(self, name: str, default: str = "") -> str:
        """Header value, case-insensitive."""
        return self.headers.get(name.lower(), default)

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def transition(self, state: RequestState) -> None:
        """
        Move to `state`.

        Raises:
            RuntimeError: The move would go backwards or sideways
                          (e.g. DISPATCHED → SHORT_CIRCUITED).
        """
        if _STATE_RANK[state] <= _STATE_RANK[self.state]:
            raise RuntimeError(
                f"Illegal request state transition {self.state.value} -> {state.value}"
            )
        logger.debug("%s %s: %s -> %s", self.method, self.path, self.state.value, state.value)
        self.state = state
        self.history.append(state)
