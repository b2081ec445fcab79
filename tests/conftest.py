"""Shared fixtures for the token gate tests."""

import logging
import os
import sys
import time
from collections.abc import Callable
from typing import Any

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from joserfc import jwt
from joserfc.jwk import RSAKey
from loguru import logger

from jwks_gate import KeyStore, TokenValidator, ValidationPolicy, VerificationKey

# Fixed "current time" for deterministic claim checks
NOW = 1_700_000_000


@pytest.fixture(autouse=True)
def isolate_environment():
    """Keep JWKS_GATE_* variables from the outer environment out of the tests."""
    original_env = os.environ.copy()

    for var in list(os.environ):
        if var.startswith("JWKS_GATE_"):
            os.environ.pop(var)

    yield

    os.environ.clear()
    os.environ.update(original_env)


@pytest.fixture
def restore_logging():
    """Undo setup_logging: root handlers, root level and loguru sinks."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level

    yield

    root.handlers[:] = handlers
    root.setLevel(level)
    logger.remove()
    logger.add(sys.stderr)


def _generate_rsa_key() -> RSAKey:
    private_key = rsa.generate_private_key(
        public_exponent=65537,
        key_size=2048,
    )
    pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )
    return RSAKey.import_key(pem)


@pytest.fixture(scope="session")
def rsa_private_key() -> RSAKey:
    """Signing key whose public half is stored under kid "0"."""
    return _generate_rsa_key()


@pytest.fixture(scope="session")
def other_rsa_private_key() -> RSAKey:
    """Signing key unrelated to anything in the key store."""
    return _generate_rsa_key()


@pytest.fixture
def public_pem(rsa_private_key) -> bytes:
    return rsa_private_key.as_pem(private=False)


@pytest.fixture
def key_store(public_pem) -> KeyStore:
    return KeyStore({"0": VerificationKey.from_pem(public_pem, "RS256")})


@pytest.fixture
def policy() -> ValidationPolicy:
    return ValidationPolicy(algorithms="RS256", issuer="")


@pytest.fixture
def validator(key_store, policy) -> TokenValidator:
    return TokenValidator(key_store, policy, clock=lambda: NOW)


@pytest.fixture
def now() -> int:
    return NOW


@pytest.fixture
def valid_claims() -> dict[str, Any]:
    return {"exp": NOW + 3600, "nbf": 0, "iss": ""}


@pytest.fixture
def make_token(rsa_private_key) -> Callable[..., str]:
    """Return a function that signs claims into a compact JWT."""

    def _make_token(
        claims: dict[str, Any] | None = None,
        kid: str | None = "0",
        key: Any = None,
        alg: str = "RS256",
    ) -> str:
        if claims is None:
            claims = {"exp": int(time.time()) + 3600, "nbf": 0, "iss": ""}
        header: dict[str, Any] = {"alg": alg}
        if kid is not None:
            header["kid"] = kid
        if key is None:
            key = rsa_private_key
        return jwt.encode(header, claims, key, algorithms=[alg])

    return _make_token
