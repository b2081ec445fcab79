"""ASGI middleware for bearer-token authentication."""

import logging

from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp, Receive, Scope, Send

from jwks_gate.base import AuthenticationError, Claims, TokenRejectedError
from jwks_gate.validator import TokenValidator

logger = logging.getLogger("jwks_gate.middleware")

CLAIMS_SCOPE_KEY = "token_claims"


def extract_bearer_token(authorization: str | None) -> str:
    """Return the token from an ``Authorization: Bearer <token>`` header value.

    Raises:
        AuthenticationError: No header or not the Bearer scheme
    """
    if not authorization:
        raise AuthenticationError("No Authorization header")

    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthenticationError("Invalid Authorization header format.")

    return token.strip()


def www_authenticate_value(
    error: str | None = None,
    error_description: str | None = None,
) -> str:
    """Build an RFC 6750 WWW-Authenticate header value."""
    www_auth_parts = ["Bearer"]
    if error:
        www_auth_parts.append(f'error="{error}"')
    if error_description:
        www_auth_parts.append(f'error_description="{error_description}"')
    return ", ".join(www_auth_parts)


class BearerAuthMiddleware:
    """ASGI middleware that validates the Bearer token of every HTTP request.

    - Missing or non-Bearer Authorization header: 401 with a bare ``WWW-Authenticate: Bearer``
    - Structurally bad token or missing kid: 400 ``invalid_request``
    - Unknown kid, bad signature or failed claims: 401 ``invalid_token`` with one uniform
      description, so clients cannot probe which key ids exist
    - Accepted: the verified :class:`Claims` are stored under ``scope["token_claims"]``

    Wrap only the routes that need authentication; everything else is served as-is.

    Example:
        ```python
        from starlette.applications import Starlette
        from starlette.routing import Mount, Route

        validator = TokenValidator.from_settings()
        app = Starlette(
            routes=[
                Route("/health", health),
                Mount("/api", app=BearerAuthMiddleware(api_app, validator)),
            ]
        )
        ```
    """

    def __init__(self, app: ASGIApp, validator: TokenValidator):
        """Initialize the auth middleware.

        Args:
            app: ASGI application to wrap
            validator: Token validator shared by all requests
        """
        self.app = app
        self.validator = validator

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        # Only process HTTP requests
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request = Request(scope, receive)

        try:
            claims = self._authenticate_request(request)

        except TokenRejectedError as e:
            response = self._create_error_response(e)
            await response(scope, receive, send)
            return

        except AuthenticationError as e:
            logger.debug("Request not authenticated: %s", e)
            response = Response(
                content="Unauthorized",
                status_code=401,
                headers={"WWW-Authenticate": www_authenticate_value()},
            )
            await response(scope, receive, send)
            return

        # Store in scope for downstream usage & continue to app execution
        scope[CLAIMS_SCOPE_KEY] = claims
        await self.app(scope, receive, send)

    def _authenticate_request(self, request: Request) -> Claims:
        """Extract and validate the Bearer token from the Authorization header.

        Raises:
            AuthenticationError: No token or invalid header format
            TokenRejectedError: The validator rejected the token
        """
        token = extract_bearer_token(request.headers.get("Authorization"))
        return self.validator.validate(token)

    def _create_error_response(self, error: TokenRejectedError) -> Response:
        return Response(
            content=error.public_message,
            status_code=error.status_code,
            headers={
                "WWW-Authenticate": www_authenticate_value(
                    error=error.error_code,
                    error_description=error.public_message,
                ),
            },
        )
