"""JWT verifier for tokens issued by the backing store."""

from __future__ import annotations

import jwt

from scribedesk.adapters.auth.base import AuthVerificationError, TokenVerifier
from scribedesk.schemas.auth import AuthPrincipal
from scribedesk.schemas.job import ActorRole

_USER_ID_CLAIMS = ("sub", "userId", "id")
_ROLE_CLAIMS = ("user_type", "role")


class JwtTokenVerifier(TokenVerifier):
    """Decodes HMAC-signed JWTs and normalizes principal data."""

    def __init__(self, secret: str | None, algorithm: str = "HS256") -> None:
        self._secret = secret
        self._algorithm = algorithm

    def verify_token(self, token: str) -> AuthPrincipal:
        if not self._secret:
            raise AuthVerificationError("JWT verifier is not configured")

        try:
            decoded = jwt.decode(token, self._secret, algorithms=[self._algorithm])
        except jwt.ExpiredSignatureError as exc:
            raise AuthVerificationError("Bearer token expired") from exc
        except jwt.InvalidTokenError as exc:
            raise AuthVerificationError("Invalid bearer token") from exc

        user_id = next((str(decoded[key]).strip() for key in _USER_ID_CLAIMS if decoded.get(key)), "")
        if not user_id:
            raise AuthVerificationError("Bearer token missing user identity")

        role = next((str(decoded[key]).strip() for key in _ROLE_CLAIMS if decoded.get(key)), "")
        try:
            actor_role = ActorRole(role)
        except ValueError as exc:
            raise AuthVerificationError("Bearer token has an unsupported role") from exc

        email = decoded.get("email")
        full_name = decoded.get("full_name")
        return AuthPrincipal(
            user_id=user_id,
            role=actor_role,
            email=email if isinstance(email, str) else None,
            full_name=full_name if isinstance(full_name, str) else None,
        )


__all__ = ["JwtTokenVerifier"]
