"""Mock auth verifier for local development and tests."""

from scribedesk.adapters.auth.base import AuthVerificationError, TokenVerifier
from scribedesk.schemas.auth import AuthPrincipal
from scribedesk.schemas.job import ActorRole


class MockTokenVerifier(TokenVerifier):
    """Accepts deterministic test tokens only.

    Expected token format:
    - ``test:<user_id>`` (client)
    - ``test:<user_id>:<client|transcriber>``
    """

    def verify_token(self, token: str) -> AuthPrincipal:
        parts = token.split(":")
        if len(parts) not in (2, 3) or parts[0] != "test":
            raise AuthVerificationError("Invalid bearer token")

        user_id = parts[1].strip()
        role = parts[2].strip() if len(parts) == 3 else ActorRole.CLIENT.value

        if not user_id:
            raise AuthVerificationError("Bearer token missing user identity")
        try:
            actor_role = ActorRole(role)
        except ValueError as exc:
            raise AuthVerificationError("Bearer token has an unsupported role") from exc

        return AuthPrincipal(user_id=user_id, role=actor_role, email=f"{user_id}@example.test")


__all__ = ["MockTokenVerifier"]
