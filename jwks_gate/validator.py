"""
Bearer token validator.

Decides whether a compact JWS token is signed by a key in the key store and carries
claims acceptable under the validation policy.
"""

import base64
import json
import logging
import math
import re
import time
from collections.abc import Callable
from typing import TYPE_CHECKING, Any, cast

from joserfc import jws
from joserfc.errors import JoseError

from jwks_gate.base import (
    Claims,
    InvalidClaimsError,
    InvalidSignatureError,
    MalformedTokenError,
    MissingKeyIdError,
    TokenExpiredError,
    TokenRejectedError,
    UnknownKeyIdError,
    ValidationPolicy,
)
from jwks_gate.keystore import KeyStore, VerificationKey
from jwks_gate.logging_utils import TRACE, setup_logging

if TYPE_CHECKING:
    from jwks_gate.settings import GateSettings

logger = logging.getLogger("jwks_gate.validator")


_B64URL_SEGMENT = re.compile(r"[A-Za-z0-9_-]*")


def _b64url_decode(segment: str) -> bytes:
    if not _B64URL_SEGMENT.fullmatch(segment):
        raise ValueError("segment is not base64url")
    # Add padding if needed
    padding = 4 - len(segment) % 4
    if padding != 4:
        segment += "=" * padding
    return base64.urlsafe_b64decode(segment)


def _is_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    try:
        return math.isfinite(value)
    except OverflowError:
        # int beyond float range
        return False


class TokenValidator:
    """Validates bearer tokens against a key store under a fixed policy.

    Construct once at startup and share: the validator holds no mutable state, so any
    number of threads or tasks may call :meth:`validate` concurrently.

    Example:
        ```python
        validator = TokenValidator(
            store=KeyStore.from_jwks(jwks_document),
            policy=ValidationPolicy(algorithms="RS256", issuer="https://auth.example.com"),
        )

        try:
            claims = validator.validate(token)
        except TokenRejectedError as e:
            return Response(e.public_message, status_code=e.status_code)
        ```
    """

    def __init__(
        self,
        store: KeyStore,
        policy: ValidationPolicy,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.policy = policy
        self._clock = clock

    @classmethod
    def from_settings(
        cls,
        settings: "GateSettings | None" = None,
        configure_logging: bool = True,
    ) -> "TokenValidator":
        """Build a validator from environment configuration.

        Args:
            settings: Settings to use; read from the environment when omitted
            configure_logging: Set up loguru at ``settings.log_level``. Pass False
                when the host application configures logging itself.

        Raises:
            ValueError: If no JWKS file is configured or it cannot be loaded
        """
        from jwks_gate.settings import GateSettings

        if settings is None:
            settings = GateSettings.from_env()
        if configure_logging:
            setup_logging(settings.log_level)
        return cls(store=settings.load_key_store(), policy=settings.to_policy())

    def validate(self, token: str) -> Claims:
        """Validate a raw bearer token and return its verified claims.

        Steps, in order:
        1. Parse the header without verifying
        2. Read the key id
        3. Look the key up in the store
        4. Verify the signature with the policy's algorithm(s)
        5. Check the time window, issuer and audience claims

        Args:
            token: Compact JWS string, without the "Bearer " prefix

        Returns:
            Claims from the verified token

        Raises:
            MalformedTokenError: Token or header cannot be parsed
            MissingKeyIdError: Header has no 'kid'
            UnknownKeyIdError: 'kid' is not in the key store
            InvalidSignatureError: Signature or algorithm check failed
            InvalidClaimsError: exp/nbf/iss/aud check failed
            TokenExpiredError: Token has expired (subclass of InvalidClaimsError)
        """
        try:
            header = self._get_unverified_header(token)
            kid = self._extract_kid(header)
            logger.log(TRACE, "kid: %r", kid)

            key = self._find_key(kid)
            payload = self._verify_signature(token, key)
            claims = self._validate_claims(payload)
        except TokenRejectedError as e:
            logger.debug("Token rejected (%s): %s", e.reason.value, e)
            raise

        logger.log(TRACE, "claims: %r", claims.claims)
        return claims

    def _get_unverified_header(self, token: str) -> dict[str, Any]:
        """Extract header from JWT without verification.

        Raises:
            MalformedTokenError: If token format is invalid
        """
        if not isinstance(token, str):
            raise MalformedTokenError("Token is not a string")

        parts = token.split(".")
        if len(parts) != 3:
            raise MalformedTokenError(f"Invalid JWT format: {len(parts)} segment(s)")

        try:
            header = json.loads(_b64url_decode(parts[0]))
        except (ValueError, RecursionError) as e:
            raise MalformedTokenError(f"Invalid JWT header: {e}") from e

        if not isinstance(header, dict):
            raise MalformedTokenError("JWT header is not a JSON object")
        if not isinstance(header.get("alg"), str):
            raise MalformedTokenError("JWT header has no 'alg'")
        return cast(dict[str, Any], header)

    def _extract_kid(self, header: dict[str, Any]) -> str:
        kid = header.get("kid")
        if kid is None:
            raise MissingKeyIdError("Token missing 'kid' header")
        if not isinstance(kid, str):
            raise MalformedTokenError(f"Token 'kid' header is a {type(kid).__name__}")
        return kid

    def _find_key(self, kid: str) -> VerificationKey:
        key = self.store.lookup(kid)
        if key is None:
            raise UnknownKeyIdError(f"No key with kid {kid!r} in key store")
        return key

    def _allowed_algorithms(self, key: VerificationKey) -> list[str]:
        """Algorithms the signature may use: the policy's, narrowed to the key's own."""
        if key.algorithm is None:
            return list(self.policy.algorithms)
        if key.algorithm not in self.policy.algorithms:
            raise InvalidSignatureError(
                f"Key algorithm '{key.algorithm}' is not permitted by policy "
                f"{list(self.policy.algorithms)}"
            )
        return [key.algorithm]

    def _verify_signature(self, token: str, key: VerificationKey) -> dict[str, Any]:
        """Verify the signature and return the decoded payload.

        Raises:
            InvalidSignatureError: Signature, algorithm or key type check failed
            InvalidClaimsError: Payload is not a JSON object
        """
        algorithms = self._allowed_algorithms(key)

        try:
            obj = jws.deserialize_compact(token, key.key, algorithms=algorithms)
        except (JoseError, ValueError, TypeError) as e:
            raise InvalidSignatureError(f"Signature verification failed: {e}") from e

        try:
            payload = json.loads(obj.payload)
        except (ValueError, RecursionError) as e:
            raise InvalidClaimsError(f"Token payload is not JSON: {e}") from e

        if not isinstance(payload, dict):
            raise InvalidClaimsError("Token payload is not a JSON object")
        return cast(dict[str, Any], payload)

    def _validate_claims(self, payload: dict[str, Any]) -> Claims:
        """Check the time window, issuer and audience.

        Raises:
            TokenExpiredError: Token has expired
            InvalidClaimsError: Any other claim check failed
        """
        policy = self.policy
        current_time = self._clock()
        leeway = policy.leeway

        exp = payload.get("exp")
        if exp is None:
            if policy.require_exp:
                raise InvalidClaimsError("Token missing 'exp' claim")
        elif not _is_number(exp):
            raise InvalidClaimsError("Token 'exp' claim is not numeric")
        elif current_time >= exp + leeway:
            raise TokenExpiredError("Token has expired")

        nbf = payload.get("nbf")
        if nbf is None:
            if policy.require_nbf:
                raise InvalidClaimsError("Token missing 'nbf' claim")
        elif not _is_number(nbf):
            raise InvalidClaimsError("Token 'nbf' claim is not numeric")
        elif current_time < nbf - leeway:
            raise InvalidClaimsError("Token not yet valid")

        if policy.issuer is not None:
            token_iss = payload.get("iss")
            if token_iss != policy.issuer:
                raise InvalidClaimsError(
                    f"Token issuer {token_iss!r} doesn't match expected {policy.issuer!r}"
                )

        if policy.audience is not None:
            token_aud = payload.get("aud")
            token_audiences = [token_aud] if isinstance(token_aud, str) else (token_aud or [])
            if (
                not isinstance(token_audiences, list)
                or not all(isinstance(aud, str) for aud in token_audiences)
                or not (set(token_audiences) & set(policy.audience))
            ):
                raise InvalidClaimsError(
                    f"Token audience {token_aud!r} doesn't match expected {list(policy.audience)}"
                )

        return Claims.from_payload(payload)


def validate(store: KeyStore, policy: ValidationPolicy, token: str) -> Claims:
    """Validate ``token`` against ``store`` under ``policy``.

    Convenience wrapper around :meth:`TokenValidator.validate` for one-off calls.
    """
    return TokenValidator(store, policy).validate(token)
