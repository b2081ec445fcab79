"""
Bearer-token authentication gate.

This package provides:
- A key store of verification keys addressed by key id (JWKS-style)
- A token validator that checks signature, algorithm, expiry, not-before,
  issuer and audience, and returns the verified claims
- ASGI middleware and a FastAPI dependency that apply the validator to requests
"""

from jwks_gate.base import (
    AuthenticationError,
    Claims,
    InvalidClaimsError,
    InvalidSignatureError,
    MalformedTokenError,
    MissingKeyIdError,
    RejectionReason,
    TokenExpiredError,
    TokenRejectedError,
    UnknownKeyIdError,
    ValidationPolicy,
)
from jwks_gate.keystore import KeyStore, VerificationKey
from jwks_gate.middleware import BearerAuthMiddleware
from jwks_gate.settings import GateSettings
from jwks_gate.validator import TokenValidator, validate

__all__ = [
    "AuthenticationError",
    "BearerAuthMiddleware",
    "Claims",
    "GateSettings",
    "InvalidClaimsError",
    "InvalidSignatureError",
    "KeyStore",
    "MalformedTokenError",
    "MissingKeyIdError",
    "RejectionReason",
    "TokenExpiredError",
    "TokenRejectedError",
    "TokenValidator",
    "UnknownKeyIdError",
    "ValidationPolicy",
    "VerificationKey",
    "validate",
]

# Package metadata
__version__ = "0.1.0"
