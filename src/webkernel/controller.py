"""
Base class for controllers.

Controllers are resolved through the container per request. Bootstrap
registers an inflector so every controller receives the container, and the
router hands it the current request before calling the action:

    class PostController(AbstractController):
        def __init__(self, posts: PostRepository):
            self.posts = posts

        def show(self, id: int) -> Response:
            return self.render("post.html", {"post": self.posts.find(id)})
"""

from abc import ABC, abstractmethod
from typing import Any, Mapping, Optional

from .container import Container
from .http.request import Request
from .http.response import Response


# Service id of the template renderer used by render()
TEMPLATE_RENDERER = "template-renderer"


class TemplateRenderer(ABC):
    """Template engine adapter, bound under "template-renderer"."""

    @abstractmethod
    def render(self, template: str, parameters: Mapping[str, Any]) -> str: ...


class AbstractController:
    container: Optional[Container] = None
    request: Optional[Request] = None

    def set_container(self, container: Container) -> None:
        self.container = container

    def set_request(self, request: Request) -> None:
        self.request = request

    def render(
        self,
        template: str,
        parameters: Optional[Mapping[str, Any]] = None,
        response: Optional[Response] = None,
    ) -> Response:
        """Render `template` into `response` (a new 200 Response by default)."""
        if self.container is None:
            raise RuntimeError(f"{type(self).__name__} has no container; was it built by one?")

        renderer = self.container.get(TEMPLATE_RENDERER)
        content = renderer.render(template, dict(parameters or {}))

        response = response if response is not None else Response()
        return response.set_content(content)
