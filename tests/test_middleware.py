"""
Tests for the bearer-token ASGI middleware.

Tests cover:
- Accepted tokens reach the wrapped app with claims in scope
- 400/401 mapping of rejections and RFC 6750 WWW-Authenticate headers
- Uniform responses for unknown key ids and bad signatures
- Opt-in guarding: unwrapped routes need no token
"""

import base64

import pytest
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse, PlainTextResponse
from starlette.routing import Mount, Route
from starlette.testclient import TestClient

from jwks_gate import AuthenticationError, BearerAuthMiddleware
from jwks_gate.middleware import extract_bearer_token, www_authenticate_value


async def _receive():
    return {"type": "http.request", "body": b""}


async def _call(middleware, headers):
    """Run one HTTP request through the middleware; return (status, headers, body)."""
    scope = {
        "type": "http",
        "method": "GET",
        "path": "/",
        "headers": headers,
    }
    sent = {"body": b""}

    async def send(message):
        if message["type"] == "http.response.start":
            sent["status"] = message["status"]
            sent["headers"] = dict(message.get("headers", []))
        elif message["type"] == "http.response.body":
            sent["body"] += message.get("body", b"")

    await middleware(scope, _receive, send)
    return sent.get("status"), sent.get("headers", {}), sent["body"]


def _auth_header(token):
    return [(b"authorization", f"Bearer {token}".encode())]


class TestBearerAuthMiddleware:
    @pytest.mark.asyncio
    async def test_authenticated_request(self, validator, make_token, valid_claims):
        """Test authenticated request passes through."""
        app_called = False

        async def mock_app(scope, receive, send):
            nonlocal app_called
            app_called = True
            assert scope["token_claims"].claims == valid_claims

        middleware = BearerAuthMiddleware(mock_app, validator)

        await _call(middleware, _auth_header(make_token(valid_claims)))

        assert app_called is True

    @pytest.mark.asyncio
    async def test_missing_authorization_header(self, validator):
        async def mock_app(scope, receive, send):
            pytest.fail("App should not be called")

        status, headers, _ = await _call(BearerAuthMiddleware(mock_app, validator), [])

        assert status == 401
        assert headers[b"www-authenticate"] == b"Bearer"

    @pytest.mark.asyncio
    async def test_non_bearer_scheme(self, validator):
        async def mock_app(scope, receive, send):
            pytest.fail("App should not be called")

        status, headers, _ = await _call(
            BearerAuthMiddleware(mock_app, validator),
            [(b"authorization", b"Basic dXNlcjpwYXNz")],
        )

        assert status == 401
        assert headers[b"www-authenticate"] == b"Bearer"

    @pytest.mark.asyncio
    async def test_malformed_token_is_bad_request(self, validator):
        async def mock_app(scope, receive, send):
            pytest.fail("App should not be called")

        status, headers, body = await _call(
            BearerAuthMiddleware(mock_app, validator), _auth_header("not-a-jwt")
        )

        assert status == 400
        assert body == b"bad token"
        assert b'error="invalid_request"' in headers[b"www-authenticate"]

    @pytest.mark.asyncio
    async def test_deeply_nested_header_is_bad_request(self, validator):
        async def mock_app(scope, receive, send):
            pytest.fail("App should not be called")

        header = base64.urlsafe_b64encode(b"[" * 3000).decode("ascii").rstrip("=")

        status, _, body = await _call(
            BearerAuthMiddleware(mock_app, validator), _auth_header(f"{header}.e30.sig")
        )

        assert status == 400
        assert body == b"bad token"

    @pytest.mark.asyncio
    async def test_missing_kid_is_bad_request(self, validator, make_token, valid_claims):
        async def mock_app(scope, receive, send):
            pytest.fail("App should not be called")

        status, _, body = await _call(
            BearerAuthMiddleware(mock_app, validator),
            _auth_header(make_token(valid_claims, kid=None)),
        )

        assert status == 400
        assert body == b"token missing kid"

    @pytest.mark.asyncio
    async def test_expired_token_is_unauthorized(self, validator, make_token, valid_claims, now):
        async def mock_app(scope, receive, send):
            pytest.fail("App should not be called")

        status, headers, body = await _call(
            BearerAuthMiddleware(mock_app, validator),
            _auth_header(make_token({**valid_claims, "exp": now - 60})),
        )

        assert status == 401
        assert body == b"invalid token"
        assert headers[b"www-authenticate"] == (
            b'Bearer, error="invalid_token", error_description="invalid token"'
        )

    @pytest.mark.asyncio
    async def test_unknown_kid_and_bad_signature_look_the_same(
        self, validator, make_token, other_rsa_private_key, valid_claims
    ):
        async def mock_app(scope, receive, send):
            pytest.fail("App should not be called")

        middleware = BearerAuthMiddleware(mock_app, validator)

        unknown_kid = await _call(middleware, _auth_header(make_token(valid_claims, kid="99")))
        bad_signature = await _call(
            middleware, _auth_header(make_token(valid_claims, key=other_rsa_private_key))
        )

        assert unknown_kid[0] == 401
        assert unknown_kid == bad_signature

    @pytest.mark.asyncio
    async def test_non_http_scope_passes_through(self, validator):
        seen = []

        async def mock_app(scope, receive, send):
            seen.append(scope["type"])

        await BearerAuthMiddleware(mock_app, validator)({"type": "lifespan"}, _receive, None)

        assert seen == ["lifespan"]


class TestOptInRoutes:
    @pytest.fixture
    def client(self, validator):
        async def index(request: Request) -> PlainTextResponse:
            return PlainTextResponse("")

        async def whoami(request: Request) -> JSONResponse:
            return JSONResponse(request.scope["token_claims"].claims)

        protected = Starlette(routes=[Route("/whoami", whoami)])
        app = Starlette(
            routes=[
                Route("/", index),
                Mount("/protected", app=BearerAuthMiddleware(protected, validator)),
            ]
        )
        return TestClient(app)

    def test_unguarded_route_needs_no_token(self, client):
        response = client.get("/")

        assert response.status_code == 200

    def test_guarded_route_without_token(self, client):
        response = client.get("/protected/whoami")

        assert response.status_code == 401
        assert response.headers["www-authenticate"] == "Bearer"

    def test_guarded_route_with_token(self, client, make_token, valid_claims):
        response = client.get(
            "/protected/whoami",
            headers={"Authorization": f"Bearer {make_token(valid_claims)}"},
        )

        assert response.status_code == 200
        assert response.json() == valid_claims


class TestHelpers:
    @pytest.mark.parametrize(
        "header, token",
        [("Bearer abc.def.ghi", "abc.def.ghi"), ("bearer abc", "abc"), ("Bearer  abc ", "abc")],
    )
    def test_extract_bearer_token(self, header, token):
        assert extract_bearer_token(header) == token

    @pytest.mark.parametrize("header", [None, "", "Bearer", "Bearer ", "Token abc", "abc"])
    def test_extract_bearer_token_rejects(self, header):
        with pytest.raises(AuthenticationError):
            extract_bearer_token(header)

    def test_www_authenticate_value(self):
        assert www_authenticate_value() == "Bearer"
        assert www_authenticate_value("invalid_token") == 'Bearer, error="invalid_token"'
