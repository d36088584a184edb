"""
pytest configuration and fixtures.
"""

from typing import Any, Callable, Dict, List, Tuple
import io
import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from webkernel import AppConfig, Application, Container
from webkernel.http import Request, Response
from webkernel.session import Session


def hello(name: str) -> str:
    return f"Hello {name}"


def show_post(id: int) -> Response:
    return Response(f"Post {id}")


def boom() -> Response:
    raise RuntimeError("database is on fire")


SAMPLE_ROUTES = [
    ("GET", "/", lambda: Response("Home")),
    ("GET", "/post/{id:\\d+}", show_post, [], "post"),
    ("GET", "/hello/{name:.+}", hello),
    ("POST", "/posts", lambda request: Response("created", 201)),
    ("GET", "/boom", boom),
]


@pytest.fixture
def container() -> Container:
    """Empty container."""
    return Container()


@pytest.fixture
def session() -> Session:
    """Fresh in-memory session."""
    return Session()


@pytest.fixture
def app() -> Application:
    """Production-mode application over SAMPLE_ROUTES."""
    return Application(SAMPLE_ROUTES, AppConfig(app_env="prod"))


@pytest.fixture
def dev_app() -> Application:
    """Dev-mode application: exceptions propagate."""
    return Application(SAMPLE_ROUTES, AppConfig(app_env="dev"))


def make_environ(method: str = "GET", path: str = "/", query: str = "", body: bytes = b"", **extra: Any) -> Dict[str, Any]:
    """Minimal WSGI environ."""
    environ = {
        "REQUEST_METHOD": method,
        "PATH_INFO": path,
        "QUERY_STRING": query,
        "SERVER_NAME": "localhost",
        "SERVER_PORT": "8080",
        "REMOTE_ADDR": "127.0.0.1",
        "wsgi.input": io.BytesIO(body),
        "CONTENT_LENGTH": str(len(body)) if body else "",
    }
    environ.update(extra)
    return environ


class StartResponseRecorder:
    """Captures what a WSGI app passes to start_response."""

    def __init__(self):
        self.status: str = ""
        self.headers: List[Tuple[str, str]] = []

    def __call__(self, status: str, headers: List[Tuple[str, str]]) -> Callable[[bytes], None]:
        self.status = status
        self.headers = headers
        return lambda data: None

    def header(self, name: str) -> str:
        for key, value in self.headers:
            if key.lower() == name.lower():
                return value
        return ""


@pytest.fixture
def environ_factory() -> Callable[..., Dict[str, Any]]:
    """make_environ as a fixture."""
    return make_environ


@pytest.fixture
def start_response() -> StartResponseRecorder:
    return StartResponseRecorder()
