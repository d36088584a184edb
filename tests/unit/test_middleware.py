"""
Unit tests for the middleware chain and built-in middleware.
"""

import json
import logging
from typing import List

import pytest

from webkernel import AppConfig, Application
from webkernel.container import Container, LiteralArgument
from webkernel.http import NotFoundError, Request, RequestState, Response
from webkernel.http.router import Router
from webkernel.middleware import (
    AccessLogMiddleware,
    Authenticate,
    ExtractRouteInfo,
    FunctionMiddleware,
    Guest,
    Middleware,
    RequestHandler,
    RequestHandlerInterface,
    RouterDispatch,
    StartSession,
    function_middleware,
)
from webkernel.middleware.handler import EXHAUSTED_CHAIN_MESSAGE
from webkernel.middleware.routing import call_handler
from webkernel.session import RequestSession, Session, SessionInterface, SessionStore


EVENTS: List[str] = []


@pytest.fixture(autouse=True)
def clear_events():
    EVENTS.clear()
    yield
    EVENTS.clear()


class Recorder(Middleware):
    """Records before/after events around the rest of the chain."""

    def __init__(self, label: str):
        self.label = label

    def process(self, request: Request, handler: RequestHandlerInterface) -> Response:
        EVENTS.append(f"{self.label}-before")
        response = handler.handle(request)
        EVENTS.append(f"{self.label}-after")
        return response


class Blocker(Middleware):
    def process(self, request: Request, handler: RequestHandlerInterface) -> Response:
        EVENTS.append("blocked")
        return Response("Forbidden", 403)


class Terminal(Middleware):
    def process(self, request: Request, handler: RequestHandlerInterface) -> Response:
        EVENTS.append("handler")
        return Response("done")


class GlobalMiddleware(Middleware):
    def process(self, request: Request, handler: RequestHandlerInterface) -> Response:
        EVENTS.append("global")
        return handler.handle(request)


class RouteMiddleware(Middleware):
    def process(self, request: Request, handler: RequestHandlerInterface) -> Response:
        EVENTS.append("route")
        return handler.handle(request)


class SecondRouteMiddleware(Middleware):
    def process(self, request: Request, handler: RequestHandlerInterface) -> Response:
        EVENTS.append("route-2")
        return handler.handle(request)


class NotMiddleware:
    pass


def recorded_handler() -> Response:
    EVENTS.append("handler")
    return Response("ok")


def routed_container(routes) -> Container:
    container = Container()
    container.add_shared(Router).add_method_call("set_routes", [routes])
    container.add_shared(SessionInterface, Session)
    return container


class TestRequestHandler:
    """Tests for the chain cursor."""

    def test_onion_ordering(self, container: Container):
        handler = RequestHandler(container, [Recorder("A"), Recorder("B"), Terminal()])

        response = handler.handle(Request.create("GET", "/"))

        assert response.content == "done"
        assert EVENTS == ["A-before", "B-before", "handler", "B-after", "A-after"]

    def test_short_circuit_skips_rest(self, container: Container):
        handler = RequestHandler(container, [Recorder("A"), Blocker(), Terminal()])

        response = handler.handle(Request.create("GET", "/"))

        assert response.status == 403
        assert EVENTS == ["A-before", "blocked", "A-after"]

    def test_exhausted_chain_returns_500(self, container: Container):
        handler = RequestHandler(container, [Recorder("A")])

        response = handler.handle(Request.create("GET", "/"))

        assert response.status == 500
        assert response.content == EXHAUSTED_CHAIN_MESSAGE

    def test_empty_chain_returns_500(self, container: Container):
        assert RequestHandler(container, []).handle(Request.create("GET", "/")).status == 500

    def test_ids_resolved_through_container(self, container: Container):
        handler = RequestHandler(container, [GlobalMiddleware, Terminal])

        handler.handle(Request.create("GET", "/"))

        assert EVENTS == ["global", "handler"]

    def test_handler_is_reusable(self, container: Container):
        handler = RequestHandler(container, [Recorder("A"), Terminal()])

        handler.handle(Request.create("GET", "/"))
        handler.handle(Request.create("GET", "/"))

        assert EVENTS.count("handler") == 2
        assert len(handler.remaining) == 2

    def test_with_middleware_does_not_mutate(self, container: Container):
        handler = RequestHandler(container, [Terminal])

        spliced = handler.with_middleware([RouteMiddleware])

        assert handler.remaining == (Terminal,)
        assert spliced.remaining == (RouteMiddleware, Terminal)

    def test_with_no_middleware_returns_self(self, container: Container):
        handler = RequestHandler(container, [Terminal])

        assert handler.with_middleware([]) is handler

    def test_plain_function_entry(self, container: Container):
        def tag(request, handler):
            response = handler.handle(request)
            return response.set_header("X-Tag", "yes")

        response = RequestHandler(container, [tag, Terminal()]).handle(Request.create("GET", "/"))

        assert response.headers["X-Tag"] == "yes"

    def test_non_middleware_entry_rejected(self, container: Container):
        with pytest.raises(TypeError):
            RequestHandler(container, [NotMiddleware]).handle(Request.create("GET", "/"))


class TestFunctionMiddleware:
    """Tests for function-based middleware."""

    def test_decorator(self, container: Container):
        @function_middleware
        def add_header(request, handler):
            return handler.handle(request).set_header("X-Custom", "value")

        assert isinstance(add_header, FunctionMiddleware)
        assert add_header.name == "add_header"

        response = RequestHandler(container, [add_header, Terminal()]).handle(Request.create("GET", "/"))

        assert response.headers["X-Custom"] == "value"

    def test_explicit_name(self):
        middleware = FunctionMiddleware(lambda request, handler: Response(), name="noop")

        assert middleware.name == "noop"


class TestRoutingStages:
    """Tests for ExtractRouteInfo and RouterDispatch."""

    def test_full_routing_chain(self):
        container = routed_container([("GET", "/", recorded_handler)])
        handler = RequestHandler(container, [ExtractRouteInfo, RouterDispatch])
        request = Request.create("GET", "/")

        response = handler.handle(request)

        assert response.content == "ok"
        assert request.state is RequestState.DISPATCHED

    def test_per_route_middleware_runs_after_global(self):
        container = routed_container([
            ("GET", "/admin", recorded_handler, [RouteMiddleware, SecondRouteMiddleware]),
        ])
        handler = RequestHandler(container, [GlobalMiddleware, ExtractRouteInfo, RouterDispatch])

        handler.handle(Request.create("GET", "/admin"))

        assert EVENTS == ["global", "route", "route-2", "handler"]

    def test_per_route_middleware_can_short_circuit(self):
        container = routed_container([("GET", "/admin", recorded_handler, [Blocker])])
        handler = RequestHandler(container, [ExtractRouteInfo, RouterDispatch])
        request = Request.create("GET", "/admin")

        response = handler.handle(request)

        assert response.status == 403
        assert "handler" not in EVENTS
        assert request.state is RequestState.RECEIVED

    def test_route_middleware_only_for_its_route(self):
        container = routed_container([
            ("GET", "/admin", recorded_handler, [RouteMiddleware]),
            ("GET", "/", recorded_handler),
        ])
        handler = RequestHandler(container, [ExtractRouteInfo, RouterDispatch])

        handler.handle(Request.create("GET", "/"))

        assert EVENTS == ["handler"]

    def test_not_found_propagates(self):
        container = routed_container([("GET", "/", recorded_handler)])
        handler = RequestHandler(container, [ExtractRouteInfo, RouterDispatch])

        with pytest.raises(NotFoundError):
            handler.handle(Request.create("GET", "/missing"))

    def test_string_result_wrapped(self):
        container = routed_container([("GET", "/hello/{name}", lambda name: f"Hello {name}")])
        handler = RequestHandler(container, [ExtractRouteInfo, RouterDispatch])

        response = handler.handle(Request.create("GET", "/hello/ana"))

        assert response.content == "Hello ana"
        assert response.status == 200

    def test_bad_result_rejected(self):
        container = routed_container([("GET", "/", lambda: 42)])
        handler = RequestHandler(container, [ExtractRouteInfo, RouterDispatch])

        with pytest.raises(TypeError):
            handler.handle(Request.create("GET", "/"))

    def test_route_middleware_after_later_global(self):
        container = routed_container([("GET", "/admin", recorded_handler, [RouteMiddleware])])
        handler = RequestHandler(container, [ExtractRouteInfo, GlobalMiddleware, RouterDispatch])

        handler.handle(Request.create("GET", "/admin"))

        assert EVENTS == ["global", "route", "handler"]

    def test_dispatch_alone_runs_route_middleware(self):
        container = routed_container([("GET", "/admin", recorded_handler, [Blocker])])
        handler = RequestHandler(container, [RouterDispatch])

        response = handler.handle(Request.create("GET", "/admin"))

        assert response.status == 403
        assert EVENTS == ["blocked"]

    def test_dispatch_alone_reaches_handler_after_route_middleware(self):
        container = routed_container([("GET", "/admin", recorded_handler, [RouteMiddleware])])
        handler = RequestHandler(container, [GlobalMiddleware, RouterDispatch])
        request = Request.create("GET", "/admin")

        response = handler.handle(request)

        assert response.content == "ok"
        assert EVENTS == ["global", "route", "handler"]
        assert request.state is RequestState.DISPATCHED

    def test_dispatch_alone_protects_authenticated_route(self):
        container = routed_container([("GET", "/dashboard", lambda: "secret", [Authenticate])])
        container.add_shared(SessionStore)
        container.replace(SessionInterface, RequestSession, shared=True)
        handler = RequestHandler(container, [StartSession, RouterDispatch])

        response = handler.handle(Request.create("GET", "/dashboard"))

        assert response.status == 401


class TestCallHandler:
    """Tests for binding path parameters to handler arguments."""

    def test_params_as_keywords(self):
        def handler(slug, page):
            return (slug, page)

        assert call_handler(handler, Request.create("GET", "/"), {"page": "2", "slug": "x"}) == ("x", "2")

    def test_int_coercion(self):
        def handler(id: int):
            return id

        assert call_handler(handler, Request.create("GET", "/"), {"id": "42"}) == 42

    def test_failed_coercion_is_not_found(self):
        def handler(id: int):
            return id

        with pytest.raises(NotFoundError):
            call_handler(handler, Request.create("GET", "/"), {"id": "abc"})

    def test_request_injected_by_name(self):
        request = Request.create("GET", "/")

        def handler(request):
            return request

        assert call_handler(handler, request, {}) is request

    def test_request_injected_by_type(self):
        request = Request.create("GET", "/")

        def handler(req: Request):
            return req

        assert call_handler(handler, request, {}) is request

    def test_var_keyword_receives_remaining(self):
        def handler(**params):
            return params

        assert call_handler(handler, Request.create("GET", "/"), {"a": "1"}) == {"a": "1"}


class TestSessionMiddleware:
    """Tests for StartSession."""

    def test_attaches_active_session(self, container: Container):
        store = SessionStore()
        seen = []

        def capture(request, handler):
            seen.append((request.session, store.active))
            return Response()

        RequestHandler(container, [StartSession(store), capture]).handle(Request.create("GET", "/"))

        assert seen[0][0] is seen[0][1]
        assert seen[0][0].started
        assert store.active is None

    def test_new_session_gets_cookie(self, container: Container):
        store = SessionStore()

        def remember(request, handler):
            request.session.set("theme", "dark")
            return Response()

        response = RequestHandler(container, [StartSession(store, "sid"), remember]).handle(
            Request.create("GET", "/")
        )

        cookie = response.get_header("Set-Cookie")
        session_id = cookie.split(";")[0].split("=", 1)[1]
        assert cookie.startswith("sid=")
        assert "HttpOnly" in cookie
        assert "Path=/" in cookie
        assert store.open(session_id).get("theme") == "dark"

    def test_empty_session_sets_no_cookie(self, container: Container):
        store = SessionStore()

        response = RequestHandler(container, [StartSession(store), Terminal()]).handle(
            Request.create("GET", "/")
        )

        assert response.get_header("Set-Cookie") is None
        assert len(store) == 0

    def test_known_cookie_reuses_session(self, container: Container):
        store = SessionStore()
        existing = store.open()
        existing.set("theme", "dark")
        store.save(existing)
        seen = []

        def capture(request, handler):
            seen.append(request.session.get("theme"))
            return Response()

        response = RequestHandler(container, [StartSession(store, "sid"), capture]).handle(
            Request.create("GET", "/", cookies={"sid": existing.session_id})
        )

        assert seen == ["dark"]
        assert response.get_header("Set-Cookie") is None

    def test_unknown_cookie_not_adopted(self, container: Container):
        store = SessionStore()

        def remember(request, handler):
            request.session.set("theme", "dark")
            return Response()

        response = RequestHandler(container, [StartSession(store, "sid"), remember]).handle(
            Request.create("GET", "/", cookies={"sid": "chosen-by-client"})
        )

        assert "sid=chosen-by-client" not in response.get_header("Set-Cookie")
        assert store.open("chosen-by-client").get("theme") is None

    def test_clients_do_not_share_sessions(self, container: Container):
        store = SessionStore()
        container.add_shared(SessionInterface, RequestSession).add_argument(LiteralArgument(store))

        def login(request, handler):
            request.session.set(SessionInterface.AUTH_KEY, 1)
            return Response("in")

        login_response = RequestHandler(container, [StartSession(store, "sid"), login]).handle(
            Request.create("POST", "/login")
        )
        session_id = login_response.get_header("Set-Cookie").split(";")[0].split("=", 1)[1]

        gated = RequestHandler(container, [StartSession(store, "sid"), Authenticate, Terminal()])

        assert gated.handle(Request.create("GET", "/", cookies={"sid": session_id})).status == 200
        assert gated.handle(Request.create("GET", "/", cookies={"sid": "someone-else"})).status == 401
        assert gated.handle(Request.create("GET", "/")).status == 401

    def test_request_session_without_start_session(self, container: Container):
        container.add_shared(SessionInterface, RequestSession).add_argument(LiteralArgument(SessionStore()))

        with pytest.raises(RuntimeError, match="No active session"):
            RequestHandler(container, [Authenticate, Terminal()]).handle(Request.create("GET", "/"))


class TestAuthMiddleware:
    """Tests for Authenticate and Guest."""

    def test_authenticate_rejects_anonymous(self, container: Container, session: Session):
        response = RequestHandler(container, [Authenticate(session), Terminal()]).handle(
            Request.create("GET", "/dashboard")
        )

        assert response.status == 401
        assert response.content == "Authentication failed"
        assert EVENTS == []

    def test_authenticate_allows_logged_in(self, container: Container, session: Session):
        session.set(SessionInterface.AUTH_KEY, 7)

        response = RequestHandler(container, [Authenticate(session), Terminal()]).handle(
            Request.create("GET", "/dashboard")
        )

        assert response.status == 200
        assert EVENTS == ["handler"]

    def test_guest_redirects_logged_in(self, container: Container, session: Session):
        session.set(SessionInterface.AUTH_KEY, 7)

        response = RequestHandler(container, [Guest(session, "/home"), Terminal()]).handle(
            Request.create("GET", "/login")
        )

        assert response.status == 302
        assert response.headers["Location"] == "/home"

    def test_guest_allows_anonymous(self, container: Container, session: Session):
        response = RequestHandler(container, [Guest(session), Terminal()]).handle(
            Request.create("GET", "/login")
        )

        assert response.content == "done"

    def test_guest_autowired_default_target(self, container: Container):
        container.add_shared(SessionInterface, Session)

        assert container.get(Guest).redirect_to == "/dashboard"


class TestAccessLogMiddleware:
    """Tests for request logging."""

    def test_text_log_line(self, container: Container, caplog):
        handler = RequestHandler(container, [AccessLogMiddleware(), Terminal()])

        with caplog.at_level(logging.INFO, logger="webkernel.access"):
            response = handler.handle(Request.create("GET", "/posts", server={"REMOTE_ADDR": "10.0.0.1"}))

        request_id = response.headers["X-Request-ID"]
        assert len(request_id) == 8
        assert f"[{request_id}] 10.0.0.1 GET /posts -> 200 route=-" in caplog.text

    def test_route_and_outcome_through_app(self, caplog):
        routes = [("GET", "/post/{id:\\d+}", lambda id: f"Post {id}", [], "post")]
        app = Application(routes, AppConfig(middleware=(AccessLogMiddleware,)))

        with caplog.at_level(logging.INFO, logger="webkernel.access"):
            app.handle(Request.create("GET", "/post/4"))

        assert "GET /post/4 -> 200 route=post dispatched" in caplog.text

    def test_json_log_line(self, container: Container, caplog):
        handler = RequestHandler(container, [AccessLogMiddleware(log_format="json"), Terminal()])

        with caplog.at_level(logging.INFO, logger="webkernel.access"):
            handler.handle(Request.create("GET", "/posts"))

        entry = json.loads(caplog.records[-1].getMessage())
        assert entry["path"] == "/posts"
        assert entry["status"] == 200
        assert entry["route"] == "-"

    def test_incoming_request_id_reused(self, container: Container):
        handler = RequestHandler(container, [AccessLogMiddleware(), Terminal()])
        request = Request.create("GET", "/", headers={"X-Request-ID": "abc123"})

        response = handler.handle(request)

        assert response.headers["X-Request-ID"] == "abc123"
        assert request.attributes["request_id"] == "abc123"

    def test_skip_paths(self, container: Container, caplog):
        handler = RequestHandler(container, [AccessLogMiddleware(skip_paths=["/health"]), Terminal()])

        with caplog.at_level(logging.INFO, logger="webkernel.access"):
            handler.handle(Request.create("GET", "/health"))

        assert not [record for record in caplog.records if record.name == "webkernel.access"]

    def test_failure_logged_and_reraised(self, container: Container, caplog):
        def explode(request, handler):
            raise RuntimeError("boom")

        handler = RequestHandler(container, [AccessLogMiddleware(), explode])

        with caplog.at_level(logging.ERROR, logger="webkernel.access"):
            with pytest.raises(RuntimeError):
                handler.handle(Request.create("GET", "/"))

        assert "GET / raised RuntimeError" in caplog.text

    def test_unknown_format_rejected(self):
        with pytest.raises(ValueError):
            AccessLogMiddleware(log_format="xml")
