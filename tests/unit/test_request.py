"""
Unit tests for the Request object.
"""

import pytest

from webkernel.http import Request, RequestState


class TestCreate:
    """Tests for Request.create."""

    def test_method_and_uri(self):
        request = Request.create("post", "/posts?draft=1")

        assert request.method == "POST"
        assert request.uri == "/posts?draft=1"
        assert request.path == "/posts"
        assert request.server["REQUEST_METHOD"] == "POST"
        assert request.server["REQUEST_URI"] == "/posts?draft=1"

    def test_query_params(self):
        request = Request.create("GET", "/search?q=python&tag=a&tag=b&empty=")

        assert request.get_query("q") == "python"
        assert request.query_params["tag"] == ["a", "b"]
        assert request.get_query("empty") == ""
        assert request.get_query("missing", "default") == "default"

    def test_headers_lowercased(self):
        request = Request.create("GET", "/", headers={"Content-Type": "application/json"})

        assert request.get_header("content-type") == "application/json"
        assert request.get_header("CONTENT-TYPE") == "application/json"
        assert request.get_header("X-Missing") == ""

    def test_post_params_and_cookies(self):
        request = Request.create(
            "POST",
            "/login",
            post_params={"username": ["ana"]},
            cookies={"theme": "dark"},
        )

        assert request.get_post_param("username") == "ana"
        assert request.get_post_param("password") is None
        assert request.get_cookie("theme") == "dark"

    def test_json_body(self):
        request = Request.create("POST", "/api", body=b'{"name": "ana"}')

        assert request.json == {"name": "ana"}

    def test_invalid_json_body(self):
        request = Request.create("POST", "/api", body=b"{not json")

        with pytest.raises(ValueError):
            request.json

    def test_defaults(self):
        request = Request()

        assert request.method == "GET"
        assert request.path == "/"
        assert request.state is RequestState.RECEIVED
        assert request.route is None


class TestLifecycle:
    """Tests for state transitions."""

    def test_forward_transitions(self):
        request = Request.create("GET", "/")

        request.transition(RequestState.IN_CHAIN)
        request.transition(RequestState.DISPATCHED)
        request.transition(RequestState.RESPONDED)
        request.transition(RequestState.TERMINATED)

        assert request.history[-1] is RequestState.TERMINATED

    def test_backwards_transition_rejected(self):
        request = Request.create("GET", "/")
        request.transition(RequestState.RESPONDED)

        with pytest.raises(RuntimeError):
            request.transition(RequestState.IN_CHAIN)

    def test_dispatched_and_short_circuited_are_exclusive(self):
        request = Request.create("GET", "/")
        request.transition(RequestState.IN_CHAIN)
        request.transition(RequestState.DISPATCHED)

        with pytest.raises(RuntimeError):
            request.transition(RequestState.SHORT_CIRCUITED)

    def test_repeating_a_state_rejected(self):
        request = Request.create("GET", "/")
        request.transition(RequestState.IN_CHAIN)

        with pytest.raises(RuntimeError):
            request.transition(RequestState.IN_CHAIN)
