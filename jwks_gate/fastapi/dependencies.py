"""FastAPI dependency that guards individual routes with bearer-token validation."""

from fastapi import HTTPException, Request
from fastapi.security import HTTPBearer

from jwks_gate.base import Claims, TokenRejectedError
from jwks_gate.middleware import CLAIMS_SCOPE_KEY, www_authenticate_value
from jwks_gate.validator import TokenValidator


class BearerTokenAuth:
    """Callable dependency returning the verified claims of the request's bearer token.

    Example:
        ```python
        require_token = BearerTokenAuth(TokenValidator.from_settings())

        @app.get("/me")
        async def me(claims: Claims = Depends(require_token)) -> dict:
            return {"sub": claims.sub}
        ```
    """

    def __init__(self, validator: TokenValidator):
        self.validator = validator
        self._bearer = HTTPBearer(auto_error=False)

    async def __call__(self, request: Request) -> Claims:
        credentials = await self._bearer(request)
        if credentials is None:
            raise HTTPException(
                status_code=401,
                detail="Not authenticated",
                headers={"WWW-Authenticate": www_authenticate_value()},
            )

        try:
            claims = self.validator.validate(credentials.credentials)
        except TokenRejectedError as e:
            raise HTTPException(
                status_code=e.status_code,
                detail=e.public_message,
                headers={
                    "WWW-Authenticate": www_authenticate_value(
                        error=e.error_code,
                        error_description=e.public_message,
                    )
                },
            ) from e

        setattr(request.state, CLAIMS_SCOPE_KEY, claims)
        return claims
