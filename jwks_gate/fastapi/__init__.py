from jwks_gate.fastapi.dependencies import BearerTokenAuth

__all__ = ["BearerTokenAuth"]
