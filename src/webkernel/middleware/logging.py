"""
=============================================================================
ACCESS LOG MIDDLEWARE
=============================================================================

One log line per request: which route answered, how far the request got
through the chain, and how long it took.

=============================================================================
LOG FORMATS
=============================================================================

    TEXT (default):
    ┌─────────────────────────────────────────────────────────────────────┐
    │ [a1b2c3d4] 127.0.0.1 GET /post/4 -> 200 route=post dispatched 5.12ms│
    │  ────────  ─────────  ──────────    ───  ────────── ────────── ──── │
    │  Req. id   Client     Method/Path   Code Route      Outcome    Time │
    └─────────────────────────────────────────────────────────────────────┘

    Outcome is the request state when the response came back:
    "dispatched" (a handler ran) or "short_circuited" (some middleware,
    e.g. Authenticate, answered first). Route is the route name, its
    pattern when unnamed, or "-" when nothing matched.

    JSON (for log aggregators):
    ┌─────────────────────────────────────────────────────────────────────┐
    │ {"request_id": "a1b2c3d4", "method": "GET", "path": "/post/4",      │
    │  "route": "post", "outcome": "dispatched", "status": 200, ...}      │
    └─────────────────────────────────────────────────────────────────────┘

Entries go to the "webkernel.access" logger, so they can be routed
separately from application logs:

    logging.getLogger("webkernel.access").addHandler(file_handler)

Register it through AppConfig.middleware so it runs before the built-in
stack and sees requests that later middleware reject.

=============================================================================
"""

from dataclasses import asdict, dataclass
from typing import Iterable, Optional
import json
import logging
import time
import uuid

from ..http.request import Request, RequestState
from ..http.response import Response
from .base import Middleware, RequestHandlerInterface


logger = logging.getLogger("webkernel.access")

REQUEST_ID_HEADER = "X-Request-ID"


@dataclass
class RequestLog:
    """Structured access log entry."""

    request_id: str
    remote_addr: str
    method: str
    path: str
    route: str
    outcome: str
    status: int
    duration_ms: float

    @classmethod
    def capture(cls, request_id: str, request: Request, response: Response, duration_ms: float) -> "RequestLog":
        route = request.route
        if route is None:
            route_label = "-"
        else:
            route_label = route.name or route.pattern

        # Kernel moves to RESPONDED only after the chain returns
        outcome = request.state
        if outcome is RequestState.IN_CHAIN:
            outcome = RequestState.SHORT_CIRCUITED

        return cls(
            request_id=request_id,
            remote_addr=str(request.server.get("REMOTE_ADDR", "-")),
            method=request.method,
            path=request.path,
            route=route_label,
            outcome=outcome.value,
            status=response.status,
            duration_ms=round(duration_ms, 2),
        )

    def to_json(self) -> str:
        return json.dumps(asdict(self))

    def to_text(self) -> str:
        return (
            f"[{self.request_id}] {self.remote_addr} {self.method} {self.path} "
            f"-> {self.status} route={self.route} {self.outcome} {self.duration_ms:.2f}ms"
        )


class AccessLogMiddleware(Middleware):
    """
    Logs every request that passes through it.

        AppConfig(middleware=(AccessLogMiddleware,), log_format="json")

    The request id comes from an incoming X-Request-ID header when a client
    or proxy sent one and is generated otherwise. It is stored in
    request.attributes["request_id"] so handlers can put it in their own
    log lines, and echoed on the response.
    """

    def __init__(
        self,
        log_format: str = "text",
        include_request_id: bool = True,
        skip_paths: Optional[Iterable[str]] = None,
    ):
        if log_format not in ("text", "json"):
            raise ValueError(f"Unknown access log format: {log_format}")
        self.log_format = log_format
        self.include_request_id = include_request_id
        self.skip_paths = frozenset(skip_paths or ())

    def process(self, request: Request, handler: RequestHandlerInterface) -> Response:
        request_id = request.get_header(REQUEST_ID_HEADER) or uuid.uuid4().hex[:8]
        request.attributes["request_id"] = request_id

        started = time.perf_counter()
        try:
            response = handler.handle(request)
        except Exception as exc:
            # The kernel decides what the client sees; record and pass it on
            logger.error(
                "[%s] %s %s raised %s after %.2fms",
                request_id,
                request.method,
                request.path,
                type(exc).__name__,
                (time.perf_counter() - started) * 1000,
            )
            raise

        if self.include_request_id:
            response.set_header(REQUEST_ID_HEADER, request_id)

        if request.path not in self.skip_paths:
            entry = RequestLog.capture(request_id, request, response, (time.perf_counter() - started) * 1000)
            logger.info(entry.to_json() if self.log_format == "json" else entry.to_text())

        return response
