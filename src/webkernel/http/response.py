"""
=============================================================================
HTTP RESPONSE
=============================================================================

What handlers and middleware return. A response is a plain value: text
content, a status code and a header map. Turning it into bytes on a socket
is the front controller's job (see webkernel.wsgi).

    Handler returns           Middleware may            Front controller
    Response        ─────►    add headers     ─────►    writes status line,
                              on the way out            headers, body

=============================================================================
HELPERS
=============================================================================

    json_response({"id": 1})            200, application/json
    redirect("/login")                  302, Location: /login
    unauthorized()                      401, "Authentication failed"

=============================================================================
"""

from dataclasses import dataclass, field
from http import HTTPStatus
from typing import Any, Dict, Optional
import json


DEFAULT_CONTENT_TYPE = "text/html; charset=utf-8"


@dataclass
class Response:
    """
    An HTTP response.

    Mutators return self so calls can be chained:

        Response("created", 201).set_header("Location", "/posts/7")
    """

    content: Optional[str] = ""          # Body text (None for no body)
    status: int = 200                    # HTTP status code
    headers: Dict[str, str] = field(default_factory=dict)

    def set_content(self, content: Optional[str]) -> "Response":
        self.content = content
        return self

    def set_header(self, name: str, value: str) -> "Response":
        self.headers[name] = value
        return self

    def get_header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """Header value, case-insensitive."""
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return default

    @property
    def status_line(self) -> str:
        """
        Status code and reason phrase, WSGI style ("404 Not Found").

        Codes outside the standard registry get a generic phrase.
        """
        try:
            phrase = HTTPStatus(self.status).phrase
        except ValueError:
            phrase = "Unknown Status"
        return f"{self.status} {phrase}"

    @property
    def body(self) -> bytes:
        """Content encoded as UTF-8."""
        return (self.content or "").encode("utf-8")


class RedirectResponse(Response):
    """Response that points the client at another URL (302 by default)."""

    def __init__(self, url: str, status: int = 302):
        super().__init__(content="", status=status, headers={"Location": url})

    @property
    def url(self) -> str:
        return self.headers["Location"]


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================

def redirect(url: str, permanent: bool = False) -> RedirectResponse:
    """302 redirect, or 301 when `permanent`."""
    return RedirectResponse(url, 301 if permanent else 302)


def json_response(data: Any, status: int = 200) -> Response:
    """Serialize `data` as a JSON response."""
    return Response(
        content=json.dumps(data),
        status=status,
        headers={"Content-Type": "application/json"},
    )


def unauthorized(message: str = "Authentication failed") -> Response:
    return Response(message, 401)
