"""Tests for request routing."""

import base64
import json
from typing import Any, Dict
from unittest.mock import MagicMock

import pytest

from src.utils.errors import AppError, ErrorCode
from src.utils.logging import StructuredLogger
from src.utils.responses import json_response
from src.utils.routing import Request, Router, build_request, dispatch, parse_body, route_segments


class TestRouteSegments:
    """Tests for route_segments."""

    @pytest.mark.parametrize(
        "path,expected",
        [
            ("/sprints", ["sprints"]),
            ("/dev/sprints/sprint-1", ["sprints", "sprint-1"]),
            ("/prod/store/items/", ["store", "items"]),
            ("/staging/certification-groups/g1/join", ["certification-groups", "g1", "join"]),
            ("", []),
        ],
    )
    def test_stage_prefix_dropped(self, path: str, expected: list) -> None:
        assert route_segments(path) == expected


class TestParseBody:
    """Tests for parse_body."""

    def test_json_string(self) -> None:
        assert parse_body('{"userId": "u1"}') == {"userId": "u1"}

    def test_empty_and_missing(self) -> None:
        assert parse_body(None) == {}
        assert parse_body("   ") == {}

    def test_already_parsed(self) -> None:
        assert parse_body({"a": 1}) == {"a": 1}

    def test_base64(self) -> None:
        encoded = base64.b64encode(b'{"code": "ABC"}').decode()

        assert parse_body(encoded, is_base64_encoded=True) == {"code": "ABC"}

    @pytest.mark.parametrize("raw", ["{not json", "[1, 2]", '"text"'])
    def test_invalid(self, raw: str) -> None:
        with pytest.raises(AppError) as exc_info:
            parse_body(raw)

        assert exc_info.value.error_code == ErrorCode.INVALID_INPUT


class TestRouter:
    """Tests for Router.match."""

    def setup_method(self) -> None:
        self.router = Router()
        self.list_op = MagicMock(__name__="list_op")
        self.get_op = MagicMock(__name__="get_op")
        self.like_op = MagicMock(__name__="like_op")
        self.router.add("GET", "sprints", self.list_op)
        self.router.add("GET", "sprints/{id}", self.get_op)
        self.router.add("post", "groups/{id}/messages/{messageId}/like", self.like_op)

    def test_static_route(self) -> None:
        assert self.router.match("GET", ["sprints"]) == (self.list_op, {})

    def test_captures_params(self) -> None:
        operation, params = self.router.match("POST", ["groups", "g1", "messages", "m1", "like"])

        assert operation is self.like_op
        assert params == {"id": "g1", "messageId": "m1"}

    def test_method_mismatch(self) -> None:
        assert self.router.match("DELETE", ["sprints", "s1"]) is None

    def test_literal_mismatch(self) -> None:
        assert self.router.match("POST", ["groups", "g1", "messages", "m1", "pin"]) is None


class TestBuildRequest:
    """Tests for build_request."""

    def test_falls_back_to_request_context_path(self) -> None:
        request = build_request(
            {"httpMethod": "get", "requestContext": {"path": "/dev/store/orders"}, "queryStringParameters": None}
        )

        assert request.method == "GET"
        assert request.segments == ["store", "orders"]
        assert request.query == {}


class TestDispatch:
    """Tests for dispatch."""

    def _event(self, method: str, path: str, body: Any = None) -> Dict[str, Any]:
        return {"httpMethod": method, "path": path, "body": body, "requestContext": {"requestId": "req-9"}}

    def test_options_preflight(self) -> None:
        response = dispatch(Router(), self._event("OPTIONS", "/anything"), StructuredLogger("test"))

        assert response["statusCode"] == 200
        assert response["body"] == ""
        assert response["headers"]["Access-Control-Allow-Origin"] == "*"

    def test_unmatched_route(self) -> None:
        response = dispatch(Router(), self._event("GET", "/nope"), StructuredLogger("test"))

        assert response["statusCode"] == 404
        assert json.loads(response["body"]) == {"error": "Not found"}

    def test_operation_receives_request(self) -> None:
        router = Router()

        def echo(request: Request) -> Dict[str, Any]:
            return json_response(200, {"params": request.params, "body": request.body})

        router.add("POST", "things/{id}", echo)
        response = dispatch(router, self._event("POST", "/dev/things/t1", '{"a": 1}'), StructuredLogger("test"))

        assert response["statusCode"] == 200
        assert json.loads(response["body"]) == {"params": {"id": "t1"}, "body": {"a": 1}}

    def test_app_error_mapped(self) -> None:
        router = Router()

        def missing(request: Request) -> Dict[str, Any]:
            raise AppError(ErrorCode.NOT_FOUND, "Sprint not found")

        router.add("GET", "things", missing)
        response = dispatch(router, self._event("GET", "/things"), StructuredLogger("test"))

        assert response["statusCode"] == 404
        assert json.loads(response["body"]) == {"error": "Sprint not found", "errorCode": "NOT_FOUND"}

    def test_malformed_json_is_400(self) -> None:
        router = Router()
        router.add("POST", "things", lambda request: json_response(200, request.body))

        response = dispatch(router, self._event("POST", "/things", "{oops"), StructuredLogger("test"))

        assert response["statusCode"] == 400
        assert json.loads(response["body"])["errorCode"] == "INVALID_INPUT"

    def test_unexpected_error_is_generic_500(self, capsys: Any) -> None:
        router = Router()

        def boom(request: Request) -> Dict[str, Any]:
            raise RuntimeError("secret internals")

        router.add("GET", "things", boom)
        response = dispatch(router, self._event("GET", "/things"), StructuredLogger("test"))

        assert response["statusCode"] == 500
        assert "secret internals" not in response["body"]
        assert response["headers"]["Access-Control-Allow-Origin"] == "*"

        logged = [json.loads(line) for line in capsys.readouterr().out.strip().splitlines()]
        error_line = next(line for line in logged if line["level"] == "ERROR")
        assert error_line["error"] == "secret internals"
        assert error_line["correlationId"] == "req-9"
