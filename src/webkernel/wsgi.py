"""
=============================================================================
WSGI FRONT CONTROLLER
=============================================================================

Adapts a Kernel to any WSGI server (wsgiref, gunicorn, uWSGI, waitress):

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      ONE REQUEST, END TO END                        │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   WSGI server                                                        │
    │        │  app(environ, start_response)                               │
    │        ▼                                                             │
    │   request_from_environ(environ)  → Request                          │
    │        │                                                             │
    │        ▼                                                             │
    │   kernel.handle(request)         → Response                         │
    │        │                                                             │
    │        ▼                                                             │
    │   start_response("200 OK", headers); return body iterable           │
    │        │                                                             │
    │        ▼  server sends the body, then calls body.close()            │
    │   kernel.terminate(request, response)                               │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

terminate() runs from close() because that is the only point where WSGI
guarantees the response has been handed to the client.

=============================================================================
"""

from http.cookies import CookieError, SimpleCookie
from typing import Any, Callable, Dict, Iterable, Iterator, List, Tuple
from urllib.parse import parse_qs
import logging

from .http.kernel import Kernel
from .http.request import Request
from .http.response import DEFAULT_CONTENT_TYPE


logger = logging.getLogger(__name__)


StartResponse = Callable[[str, List[Tuple[str, str]]], Any]

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


def request_from_environ(environ: Dict[str, Any]) -> Request:
    """
    Build a Request from a WSGI environ.

    REQUEST_URI is rebuilt from PATH_INFO and QUERY_STRING, since servers
    disagree on whether (and how) they provide it.
    """
    path = environ.get("PATH_INFO") or "/"
    query = environ.get("QUERY_STRING", "")

    server = dict(environ)
    server["REQUEST_METHOD"] = str(environ.get("REQUEST_METHOD", "GET")).upper()
    server["REQUEST_URI"] = f"{path}?{query}" if query else path

    headers = _headers_from_environ(environ)
    body = _read_body(environ)

    post_params: Dict[str, List[str]] = {}
    content_type = headers.get("content-type", "").split(";")[0].strip().lower()
    if content_type == FORM_CONTENT_TYPE and body:
        post_params = parse_qs(body.decode("utf-8", errors="replace"), keep_blank_values=True)

    return Request(
        query_params=parse_qs(query, keep_blank_values=True),
        post_params=post_params,
        cookies=_cookies_from_header(environ.get("HTTP_COOKIE", "")),
        server=server,
        headers=headers,
        body=body,
    )


def _headers_from_environ(environ: Dict[str, Any]) -> Dict[str, str]:
    headers = {}
    for key, value in environ.items():
        if key.startswith("HTTP_"):
            headers[key[5:].replace("_", "-").lower()] = value
        elif key in ("CONTENT_TYPE", "CONTENT_LENGTH") and value:
            headers[key.replace("_", "-").lower()] = value
    return headers


def _read_body(environ: Dict[str, Any]) -> bytes:
    try:
        length = int(environ.get("CONTENT_LENGTH") or 0)
    except ValueError:
        length = 0

    stream = environ.get("wsgi.input")
    if length <= 0 or stream is None:
        return b""
    return stream.read(length)


def _cookies_from_header(header: str) -> Dict[str, str]:
    if not header:
        return {}

    jar: SimpleCookie = SimpleCookie()
    try:
        jar.load(header)
    except CookieError:
        logger.warning("Ignoring malformed Cookie header: %r", header)
        return {}
    return {name: morsel.value for name, morsel in jar.items()}


class _ClosingBody:
    """Response body iterable whose close() runs the kernel's terminate step."""

    def __init__(self, chunks: Iterable[bytes], on_close: Callable[[], None]):
        self._chunks = chunks
        self._on_close = on_close

    def __iter__(self) -> Iterator[bytes]:
        return iter(self._chunks)

    def close(self) -> None:
        self._on_close()


class WSGIApplication:
    """
    WSGI callable around a Kernel.

        app = WSGIApplication(container.get(Kernel))
        wsgiref.simple_server.make_server("", 8080, app).serve_forever()
    """

    def __init__(self, kernel: Kernel):
        self.kernel = kernel

    def __call__(self, environ: Dict[str, Any], start_response: StartResponse) -> _ClosingBody:
        request = request_from_environ(environ)
        response = self.kernel.handle(request)

        body = response.body
        headers = [(name, value) for name, value in response.headers.items() if name.lower() != "content-length"]
        if response.get_header("Content-Type") is None:
            headers.append(("Content-Type", DEFAULT_CONTENT_TYPE))
        headers.append(("Content-Length", str(len(body))))

        start_response(response.status_line, headers)

        # HEAD: same headers as GET, no body
        chunks = [] if request.method == "HEAD" else [body]
        return _ClosingBody(chunks, lambda: self.kernel.terminate(request, response))
