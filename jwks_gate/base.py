"""Core types for bearer-token validation: policy, claims and rejection errors."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator

# Note: Only asymmetric algorithms supported
SUPPORTED_ALGORITHMS = {
    # RSA
    "RS256",
    "RS384",
    "RS512",
    # ECDSA
    "ES256",
    "ES384",
    "ES512",
    # RSA-PSS
    "PS256",
    "PS384",
    "PS512",
    # EdDSA
    "Ed25519",
    "EdDSA",
}


class ValidationPolicy(BaseModel):
    """Rules a token must satisfy to be accepted.

    The policy pins the signing algorithm(s). The algorithm a token declares in its
    own header is only accepted when it is one of these.
    """

    algorithms: tuple[str, ...] = Field(
        default=("RS256",),
        min_length=1,
        description="Permitted signature algorithms",
    )
    issuer: str | None = Field(
        default=None,
        description="Required 'iss' claim value. None disables the issuer check",
    )
    audience: tuple[str, ...] | None = Field(
        default=None,
        description="Accepted 'aud' values. None disables the audience check",
    )
    leeway: int = Field(
        default=0,
        ge=0,
        description="Clock skew tolerance in seconds for 'exp' and 'nbf'",
    )
    require_exp: bool = Field(
        default=True,
        description="Reject tokens without an 'exp' claim",
    )
    require_nbf: bool = Field(
        default=False,
        description="Reject tokens without an 'nbf' claim",
    )

    model_config = {"frozen": True}

    @field_validator("algorithms", mode="before")
    @classmethod
    def coerce_algorithms(cls, v: Any) -> Any:
        if isinstance(v, str):
            return (v,)
        return v

    @field_validator("algorithms")
    @classmethod
    def validate_algorithms(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        for alg in v:
            if alg not in SUPPORTED_ALGORITHMS:
                raise ValueError(
                    f"Unsupported algorithm '{alg}'. "
                    f"Supported asymmetric algorithms: {', '.join(sorted(SUPPORTED_ALGORITHMS))}"
                )
        return v

    @field_validator("audience", mode="before")
    @classmethod
    def coerce_audience(cls, v: Any) -> Any:
        if isinstance(v, str):
            return (v,)
        return v


@dataclass(frozen=True)
class Claims:
    """Verified claims extracted from an accepted token."""

    exp: float | None = None
    """Expiry, seconds since the epoch"""

    nbf: float | None = None
    """Not-before, seconds since the epoch"""

    iss: str | None = None
    """Issuer"""

    aud: str | list[str] | None = None
    """Audience as it appeared in the token"""

    sub: str | None = None
    """Subject"""

    claims: dict[str, Any] = field(default_factory=dict)
    """The whole decoded payload"""

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "Claims":
        return cls(
            exp=payload.get("exp"),
            nbf=payload.get("nbf"),
            iss=payload.get("iss"),
            aud=payload.get("aud"),
            sub=payload.get("sub"),
            claims=dict(payload),
        )


class RejectionReason(str, Enum):
    MALFORMED_TOKEN = "malformed_token"
    MISSING_KEY_ID = "missing_key_id"
    UNKNOWN_KEY_ID = "unknown_key_id"
    INVALID_SIGNATURE = "invalid_signature"
    INVALID_CLAIMS = "invalid_claims"


class AuthenticationError(Exception):
    """Base authentication error."""

    pass


class TokenRejectedError(AuthenticationError):
    """The validator rejected the token.

    The exception message is the internal diagnostic. ``public_message`` is what
    may be shown to the client; it is the same for every 401 rejection so that a
    caller cannot tell an unknown key id from a bad signature.
    """

    reason: RejectionReason
    status_code: int = 401
    error_code: str = "invalid_token"
    public_message: str = "invalid token"


class MalformedTokenError(TokenRejectedError):
    """Token is not a structurally valid compact JWS."""

    reason = RejectionReason.MALFORMED_TOKEN
    status_code = 400
    error_code = "invalid_request"
    public_message = "bad token"


class MissingKeyIdError(TokenRejectedError):
    """Token header has no 'kid'."""

    reason = RejectionReason.MISSING_KEY_ID
    status_code = 400
    error_code = "invalid_request"
    public_message = "token missing kid"


class UnknownKeyIdError(TokenRejectedError):
    """Token 'kid' is not in the key store."""

    reason = RejectionReason.UNKNOWN_KEY_ID


class InvalidSignatureError(TokenRejectedError):
    """Signature does not verify under the pinned algorithm and located key."""

    reason = RejectionReason.INVALID_SIGNATURE


class InvalidClaimsError(TokenRejectedError):
    """Signature is valid but the time window, issuer or audience checks failed."""

    reason = RejectionReason.INVALID_CLAIMS


class TokenExpiredError(InvalidClaimsError):
    """Token has expired."""

    pass
