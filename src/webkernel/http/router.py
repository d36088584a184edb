"""
=============================================================================
URL ROUTER
=============================================================================

Maps an HTTP method and path to a handler plus the path parameters.

The route table is declared up front as plain data:

    ROUTES = [
        ("GET",  "/",                   HomeController.index),
        ("GET",  "/post/{id:\\d+}",      (PostController, "show")),
        ("GET",  "/hello/{name:.+}",     hello),
        ("GET",  "/login",              (LoginController, "form"), [Guest]),
        ("GET",  "/dashboard",          (DashboardController, "index"), [Authenticate]),
    ]

    router = Router(ROUTES)

=============================================================================
PATTERN SYNTAX
=============================================================================

1. LITERAL: /posts
   Exact match.

2. PARAMETER: /posts/{id}
   Captures one path segment (default constraint [^/]+).
   Matches: /posts/42 → {"id": "42"}
   Doesn't match: /posts, /posts/42/comments

3. CONSTRAINED PARAMETER: /posts/{id:\\d+}
   Captures whatever the regex after the colon matches.
   {name:.+} may span several segments: /hello/a/b → {"name": "a/b"}

=============================================================================
PATTERN MATCHING ALGORITHM
=============================================================================

Patterns are compiled to anchored regexes once, when the table is built.
The end anchor is \Z, which unlike $ does not accept a trailing newline:

    Pattern:  /post/{id:\\d+}/comments/{cid}
                      │                  │
                      ▼                  ▼
    Regex:    ^/post/(?P<id>\\d+)/comments/(?P<cid>[^/]+)\\Z

    When matching /post/42/comments/7:
    - Regex match succeeds
    - Extract named groups: {"id": "42", "cid": "7"}
    - Return RouteMatch with params

Matching walks the table in order and the FIRST route that matches both
path and method wins. Order is the table author's responsibility:
"/users/me" must come before "/users/{name}".

=============================================================================
INTERVIEW QUESTIONS ABOUT ROUTING
=============================================================================

Q: "404 or 405?"
A: "If no route's path matches, 404. If some route's path matches but
   none for this method, 405 with an Allow header listing the methods
   that would have worked."

Q: "What's the time complexity of route matching?"
A: "O(R × P) where R is number of routes and P is path length.
   Compiling to one combined regex or a radix tree gets closer to O(P),
   but per-route regexes keep first-match-wins obvious."

Q: "Why is the route table immutable?"
A: "Routing has to be a pure function of (table, method, path).
   A table that can change mid-request makes that impossible."

=============================================================================
"""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterable, Iterator, List, Optional, Tuple, Union
import logging
import re

from .exceptions import MethodNotAllowedError, NotFoundError
from .request import Request

if TYPE_CHECKING:
    from ..container import Container


logger = logging.getLogger(__name__)


# =============================================================================
# TYPE ALIASES
# =============================================================================

# A callable, or a (controller id, method name) pair resolved per request
Handler = Union[Callable[..., Any], Tuple[Any, str]]

# Anything the container can resolve to a Middleware
MiddlewareId = Any

DEFAULT_CONSTRAINT = "[^/]+"


def normalize_path(path: str) -> str:
    """Leading slash, no trailing slash, "/" for the root."""
    return "/" + path.strip("/") if path.strip("/") else "/"


@dataclass(frozen=True)
class Route:
    """
    One entry of the route table.

    =========================================================================
    ANATOMY OF A ROUTE
    =========================================================================

        Route(
            method="GET",
            pattern="/post/{id:\\d+}",
            handler=(PostController, "show"),
            middleware=(Authenticate,),     # runs after global middleware
            name="post",                    # for url_for()
        )

    The compiled regex and parameter names are derived in __post_init__.

    =========================================================================
    """

    method: str
    pattern: str
    handler: Handler
    middleware: Tuple[MiddlewareId, ...] = ()
    name: Optional[str] = None

    # Internal: derived from pattern
    regex: "re.Pattern[str]" = field(init=False, repr=False, compare=False)
    param_names: Tuple[str, ...] = field(init=False, repr=False, compare=False)
    _parts: Tuple[Tuple[str, str, str], ...] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        handler = self.handler
        if isinstance(handler, list):
            handler = tuple(handler)
        if isinstance(handler, tuple):
            if len(handler) != 2 or not isinstance(handler[1], str):
                raise TypeError(
                    f"Route {self.pattern}: controller handlers are (controller, method_name) pairs"
                )
        elif not callable(handler):
            raise TypeError(f"Route {self.pattern}: handler {handler!r} is not callable")

        pattern = normalize_path(self.pattern)
        regex, param_names, parts = _compile_pattern(pattern)

        # Frozen dataclass: assign derived fields through object.__setattr__
        object.__setattr__(self, "method", self.method.upper())
        object.__setattr__(self, "pattern", pattern)
        object.__setattr__(self, "handler", handler)
        object.__setattr__(self, "middleware", tuple(self.middleware))
        object.__setattr__(self, "regex", regex)
        object.__setattr__(self, "param_names", param_names)
        object.__setattr__(self, "_parts", parts)

    def match_path(self, path: str) -> Optional[Dict[str, str]]:
        """Path parameters if `path` (already normalized) matches, else None."""
        found = self.regex.fullmatch(path)
        return found.groupdict() if found else None

    def build_path(self, **params: Any) -> str:
        """
        Fill the pattern's placeholders.

        Raises:
            ValueError: A parameter is missing or violates its constraint.
        """
        pieces: List[str] = []
        for kind, text, constraint in self._parts:
            if kind == "literal":
                pieces.append(text)
                continue
            if text not in params:
                raise ValueError(f"Route {self.pattern} needs parameter '{text}'")
            value = str(params[text])
            if not re.fullmatch(constraint, value):
                raise ValueError(
                    f"Value {value!r} for '{text}' does not match constraint {constraint}"
                )
            pieces.append(value)
        return "".join(pieces)


def _compile_pattern(pattern: str) -> Tuple["re.Pattern[str]", Tuple[str, ...], Tuple[Tuple[str, str, str], ...]]:
    """
    Compile a route pattern into an anchored regex.

    =====================================================================
    PATTERN COMPILATION
    =====================================================================

    Input:  "/post/{id:\\d{1,5}}/edit"

    Step 1: Split into literals and placeholders, tracking brace depth
            so constraints may contain their own braces
            "/post/"  {id:\\d{1,5}}  "/edit"

    Step 2: Escape literals, turn placeholders into named groups
            /post/    (?P<id>\\d{1,5})    /edit

    Step 3: Join and add anchors
            ^/post/(?P<id>\\d{1,5})/edit$

    =====================================================================
    """
    parts: List[Tuple[str, str, str]] = []
    param_names: List[str] = []
    literal: List[str] = []
    index = 0

    while index < len(pattern):
        char = pattern[index]
        if char != "{":
            literal.append(char)
            index += 1
            continue

        # Find the matching closing brace
        depth = 0
        end = index
        while end < len(pattern):
            if pattern[end] == "{":
                depth += 1
            elif pattern[end] == "}":
                depth -= 1
                if depth == 0:
                    break
            end += 1
        if depth != 0:
            raise ValueError(f"Unbalanced braces in route pattern {pattern}")

        if literal:
            parts.append(("literal", "".join(literal), ""))
            literal = []

        name, _, constraint = pattern[index + 1:end].partition(":")
        name = name.strip()
        if not name.isidentifier():
            raise ValueError(f"Invalid parameter name '{name}' in route pattern {pattern}")
        if name in param_names:
            raise ValueError(f"Duplicate parameter '{name}' in route pattern {pattern}")

        param_names.append(name)
        parts.append(("param", name, constraint.strip() or DEFAULT_CONSTRAINT))
        index = end + 1

    if literal:
        parts.append(("literal", "".join(literal), ""))

    regex_parts = ["^"]
    for kind, text, constraint in parts:
        if kind == "literal":
            regex_parts.append(re.escape(text))
        else:
            regex_parts.append(f"(?P<{text}>{constraint})")
    regex_parts.append(r"\Z")

    return re.compile("".join(regex_parts)), tuple(param_names), tuple(parts)


@dataclass(frozen=True)
class RouteMatch:
    """
    Result of a successful route match.

    Example:
        Pattern: /post/{id:\\d+}
        Path:    /post/42
        Result:  RouteMatch(route=<Route>, params={"id": "42"})
    """
    route: Route
    params: Dict[str, str]


@dataclass(frozen=True)
class RouteTable:
    """
    Immutable, ordered collection of routes.

    Build it from plain tuples:

        RouteTable.from_entries([
            ("GET", "/", home),
            (["GET", "POST"], "/login", (LoginController, "login"), [Guest]),
        ])

    Entries are (method, pattern, handler[, middleware[, name]]) or Route
    objects. A list of methods expands to one route per method.
    """

    routes: Tuple[Route, ...] = ()

    @classmethod
    def from_entries(cls, entries: Iterable[Any]) -> "RouteTable":
        routes: List[Route] = []

        for entry in entries:
            if isinstance(entry, Route):
                routes.append(entry)
                continue

            if not isinstance(entry, (tuple, list)) or not 3 <= len(entry) <= 5:
                raise ValueError(
                    f"Route entries are (method, pattern, handler[, middleware[, name]]), got {entry!r}"
                )

            methods, pattern, handler = entry[0], entry[1], entry[2]
            middleware = tuple(entry[3]) if len(entry) > 3 and entry[3] else ()
            name = entry[4] if len(entry) > 4 else None

            if isinstance(methods, str):
                methods = [methods]
            for method in methods:
                routes.append(Route(method, pattern, handler, middleware, name))

        return cls(tuple(routes))

    def __iter__(self) -> Iterator[Route]:
        return iter(self.routes)

    def __len__(self) -> int:
        return len(self.routes)


class Router:
    """
    Resolves requests against a RouteTable.

    ==========================================================================
    THE ROUTER IN THE PIPELINE
    ==========================================================================

        ExtractRouteInfo ──► router.resolve(request)
                               stores route, handler and params on request

        RouterDispatch   ──► router.dispatch(request, container)
                               (PostController, "show")
                                    │
                                    ▼
                               container.get(PostController).show

    ==========================================================================
    """

    def __init__(self, routes: Optional[Iterable[Any]] = None):
        self._table = RouteTable()
        self._named_routes: Dict[str, Route] = {}
        if routes is not None:
            self.set_routes(routes)

    # =========================================================================
    # ROUTE TABLE
    # =========================================================================

    def set_routes(self, routes: Union[RouteTable, Iterable[Any]]) -> None:
        """Install the route table, replacing any previous one."""
        table = routes if isinstance(routes, RouteTable) else RouteTable.from_entries(routes)

        named: Dict[str, Route] = {}
        for route in table:
            if route.name:
                named.setdefault(route.name, route)

        self._table = table
        self._named_routes = named
        logger.debug("Installed %d routes", len(table))

    @property
    def routes(self) -> RouteTable:
        return self._table

    # =========================================================================
    # ROUTE MATCHING
    # =========================================================================

    def match(self, method: str, path: str) -> RouteMatch:
        """
        Find the route for `method` and `path`.

        HEAD requests fall back to GET routes.

        Raises:
            NotFoundError: No route pattern matches the path.
            MethodNotAllowedError: The path matches but not for this method.
        """
        method = method.upper()
        path = normalize_path(path.split("?", 1)[0])
        allowed = set()

        for route in self._table:
            params = route.match_path(path)
            if params is None:
                continue

            if route.method == method or (method == "HEAD" and route.method == "GET"):
                return RouteMatch(route=route, params=params)

            allowed.add(route.method)

        if allowed:
            raise MethodNotAllowedError(method, path, allowed)

        raise NotFoundError(f"No route matches {path}")

    def get_allowed_methods(self, path: str) -> List[str]:
        """Sorted methods registered for `path` (empty if none)."""
        path = normalize_path(path.split("?", 1)[0])
        return sorted({route.method for route in self._table if route.match_path(path) is not None})

    def resolve(self, request: Request) -> RouteMatch:
        """Match the request and store the result on it."""
        found = self.match(request.method, request.path)

        request.route = found.route
        request.route_handler = found.route.handler
        request.route_params = dict(found.params)
        return found

    def dispatch(
        self,
        request: Request,
        container: "Container",
    ) -> Tuple[Callable[..., Any], Dict[str, str]]:
        """
        Turn the request's route handler into something callable.

        Controller pairs are resolved through the container; controllers
        that define set_request() receive the current request first.

        Returns:
            (callable handler, path parameters)
        """
        if request.route is None:
            self.resolve(request)

        handler = request.route_handler
        if isinstance(handler, tuple):
            controller_id, method_name = handler
            controller = container.get(controller_id)

            set_request = getattr(controller, "set_request", None)
            if callable(set_request):
                set_request(request)

            handler = getattr(controller, method_name, None)
            if not callable(handler):
                raise TypeError(
                    f"{type(controller).__name__} has no action method '{method_name}'"
                )

        return handler, dict(request.route_params)

    # =========================================================================
    # UTILITY METHODS
    # =========================================================================

    def url_for(self, name: str, **params: Any) -> Optional[str]:
        """
        Generate the path of a named route (reverse routing).

            ("GET", "/post/{id:\\d+}", show_post, [], "post")

            router.url_for("post", id=42)  # "/post/42"

        Returns:
            The path, or None if no route has that name.
        """
        route = self._named_routes.get(name)
        if route is None:
            return None
        return route.build_path(**params)

    def format_routes(self) -> str:
        """
        Route table as text, for startup banners and debugging.

            GET      /
            GET      /post/{id:\\d+}   [Authenticate]
        """
        lines = []
        for route in self._table:
            line = f"  {route.method:8} {route.pattern}"
            if route.middleware:
                names = ", ".join(getattr(mw, "__name__", str(mw)) for mw in route.middleware)
                line = f"{line}   [{names}]"
            lines.append(line)
        return "\n".join(lines)
