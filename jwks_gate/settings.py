"""
Gate Settings Management

Provides Pydantic-based settings with validation and environment variable support.
"""

import json
from pathlib import Path
from typing import Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

from jwks_gate.base import ValidationPolicy
from jwks_gate.keystore import KeyStore
from jwks_gate.logging_utils import VALID_LOG_LEVELS


class GateSettings(BaseSettings):
    """Token gate settings, read from JWKS_GATE_* environment variables."""

    authserver: str | None = Field(
        default=None,
        description="Authorization server URL. Tokens must carry it as their 'iss' claim",
    )
    audience: list[str] | str | None = Field(
        default=None,
        description="Accepted 'aud' value(s). Unset disables the audience check",
    )
    algorithms: list[str] = Field(
        default_factory=lambda: ["RS256"],
        description="Permitted signature algorithms (JSON list)",
    )
    leeway: int = Field(
        default=0,
        description="Clock skew tolerance in seconds",
        ge=0,
        le=3600,
    )
    require_exp: bool = Field(
        default=True,
        description="Reject tokens without an 'exp' claim",
    )
    require_nbf: bool = Field(
        default=False,
        description="Reject tokens without an 'nbf' claim",
    )
    jwks_file: str | None = Field(
        default=None,
        description="Path to a JWKS JSON document holding the verification keys",
    )
    log_level: str = Field(
        default="INFO",
        description="Log level",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        v = v.upper()
        if v not in VALID_LOG_LEVELS:
            raise ValueError(f"Invalid log level: {v}. Must be one of {VALID_LOG_LEVELS}")
        return v

    model_config = {
        "env_prefix": "JWKS_GATE_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
    }

    @classmethod
    def from_env(cls) -> "GateSettings":
        """Create settings from environment variables."""
        return cls()

    def to_policy(self) -> ValidationPolicy:
        """Build the validation policy these settings describe."""
        return ValidationPolicy(
            algorithms=tuple(self.algorithms),
            issuer=self.authserver,
            audience=self.audience,
            leeway=self.leeway,
            require_exp=self.require_exp,
            require_nbf=self.require_nbf,
        )

    def load_key_store(self) -> KeyStore:
        """Load the key store from the configured JWKS file.

        Raises:
            ValueError: If no file is configured, or it is not a valid JWKS document
        """
        if not self.jwks_file:
            raise ValueError("'jwks_file' required (JWKS_GATE_JWKS_FILE environment variable)")

        path = Path(self.jwks_file)
        try:
            document: Any = json.loads(path.read_text(encoding="utf-8"))
        except OSError as e:
            raise ValueError(f"Cannot read JWKS file {path}: {e}") from e
        except json.JSONDecodeError as e:
            raise ValueError(f"JWKS file {path} is not valid JSON: {e}") from e

        return KeyStore.from_jwks(document)
