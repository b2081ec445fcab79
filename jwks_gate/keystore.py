"""
Key store: verification keys addressable by key id.

The store is built once at startup from key material the host already has in hand
(a JWKS document, PEM files) and is read-only afterwards.
"""

import logging
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any

from joserfc.errors import JoseError
from joserfc.jwk import JWKRegistry

from jwks_gate.base import SUPPORTED_ALGORITHMS

logger = logging.getLogger("jwks_gate.keystore")

_KEY_TYPES = {
    "RS": "RSA",
    "PS": "RSA",
    "ES": "EC",
    "Ed": "OKP",
}


def key_type_for_algorithm(algorithm: str) -> str:
    """Return the JWK ``kty`` that signs with ``algorithm``."""
    if algorithm not in SUPPORTED_ALGORITHMS:
        raise ValueError(f"Unsupported algorithm '{algorithm}'")
    return _KEY_TYPES[algorithm[:2]]


@dataclass(frozen=True)
class VerificationKey:
    """Public key material plus the algorithm it is expected to verify."""

    key: Any
    """joserfc key object"""

    algorithm: str | None = None
    """Expected signing algorithm. None means any algorithm the policy permits"""

    def __repr__(self) -> str:
        # Keep key parameters out of reprs and log records
        return f"VerificationKey(kty={self.key.key_type!r}, algorithm={self.algorithm!r})"

    @classmethod
    def from_jwk(cls, data: dict[str, Any], algorithm: str | None = None) -> "VerificationKey":
        """Build from a single JWK. ``algorithm`` defaults to the JWK's ``alg`` member.

        Raises:
            ValueError: If the JWK cannot be imported
        """
        try:
            key = JWKRegistry.import_key(data)
        except (JoseError, ValueError, TypeError, KeyError) as e:
            raise ValueError(f"Invalid JWK: {e}") from e
        return cls(key=key, algorithm=algorithm or data.get("alg"))

    @classmethod
    def from_pem(cls, pem: str | bytes, algorithm: str) -> "VerificationKey":
        """Build from a PEM encoded public key.

        Raises:
            ValueError: If the PEM cannot be imported or the algorithm is unsupported
        """
        key_type = key_type_for_algorithm(algorithm)
        try:
            key = JWKRegistry.import_key(pem, key_type)
        except (JoseError, ValueError, TypeError) as e:
            raise ValueError(f"Invalid {key_type} PEM key: {e}") from e
        return cls(key=key, algorithm=algorithm)


class KeyStore(Mapping[str, VerificationKey]):
    """Immutable mapping from key id to :class:`VerificationKey`.

    Lookups are exact and case-sensitive. The store copies the mapping it is given,
    so later changes to the source are not observed.

    Example:
        ```python
        store = KeyStore({"0": VerificationKey.from_pem(public_pem, "RS256")})

        # From a JWKS document the host has already loaded
        store = KeyStore.from_jwks(json.loads(Path("jwks.json").read_text()))
        ```
    """

    def __init__(self, keys: Mapping[str, VerificationKey] | None = None):
        entries: dict[str, VerificationKey] = {}
        for kid, key in (keys or {}).items():
            if not isinstance(kid, str):
                raise TypeError(f"Key id must be a string, got {type(kid).__name__}")
            if not isinstance(key, VerificationKey):
                raise TypeError(
                    f"Key '{kid}' must be a VerificationKey, got {type(key).__name__}"
                )
            entries[kid] = key
        self._keys = MappingProxyType(entries)

    @classmethod
    def from_jwks(cls, document: Mapping[str, Any]) -> "KeyStore":
        """Build a store from a JWKS document (``{"keys": [...]}``).

        Keys without a ``kid`` cannot be addressed by a token and are skipped.

        Raises:
            ValueError: If the document is not a key set, a key cannot be imported,
                or two keys share a kid
        """
        jwk_list = document.get("keys") if isinstance(document, Mapping) else None
        if not isinstance(jwk_list, list):
            raise ValueError("JWKS document must contain a 'keys' list")

        entries: dict[str, VerificationKey] = {}
        for index, jwk_data in enumerate(jwk_list):
            if not isinstance(jwk_data, dict):
                raise ValueError(f"JWKS entry {index} is not an object")

            kid = jwk_data.get("kid")
            if kid is None:
                logger.warning("Skipping JWKS entry %d without a kid", index)
                continue
            if not isinstance(kid, str):
                raise ValueError(f"JWKS entry {index} has a non-string kid")
            if kid in entries:
                raise ValueError(f"Duplicate kid '{kid}' in JWKS document")

            entries[kid] = VerificationKey.from_jwk(jwk_data)

        logger.info("Loaded %d verification key(s)", len(entries))
        return cls(entries)

    def lookup(self, kid: str) -> VerificationKey | None:
        """Return the key stored under ``kid``, or None."""
        return self._keys.get(kid)

    def __getitem__(self, kid: str) -> VerificationKey:
        return self._keys[kid]

    def __iter__(self) -> Iterator[str]:
        return iter(self._keys)

    def __len__(self) -> int:
        return len(self._keys)

    def __repr__(self) -> str:
        return f"KeyStore(kids={sorted(self._keys)!r})"
