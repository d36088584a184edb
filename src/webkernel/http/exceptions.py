"""
=============================================================================
HTTP EXCEPTIONS
=============================================================================

Errors that carry an HTTP status code. Raised by the router and by
application code; the Kernel turns them into responses:

    raise NotFoundError("Post 42 not found")
        │
        ▼
    Kernel.handle()  →  Response("Post 42 not found", status=404)

Anything that is NOT an HttpException becomes a 500 "Server Error" in
production, so the message never leaks internals to the client.

=============================================================================
"""

from http import HTTPStatus
from typing import Iterable, List, Optional


class HttpException(Exception):
    """
    Base class for errors that map to an HTTP status.

    Attributes:
        message: Text sent as the response body
        status_code: HTTP status (default 400)
    """

    default_status = 400

    def __init__(self, message: str = "", status_code: Optional[int] = None):
        self.status_code = status_code if status_code is not None else self.default_status
        self.message = message or HTTPStatus(self.status_code).phrase
        super().__init__(self.message)


class NotFoundError(HttpException):
    """No route matches the request path (404)."""

    default_status = 404


class MethodNotAllowedError(HttpException):
    """
    A route matches the path but not the method (405).

    `allowed_methods` is sorted and ends up in the Allow header.
    """

    default_status = 405

    def __init__(self, method: str, path: str, allowed_methods: Iterable[str]):
        self.method = method
        self.path = path
        self.allowed_methods: List[str] = sorted(allowed_methods)
        super().__init__(f"Method {method} not allowed for {path}")


class AuthenticationError(HttpException):
    """The request needs an authenticated user (401)."""

    default_status = 401
