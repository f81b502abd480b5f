"""Authentication schemas."""

from pydantic import BaseModel, Field

from scribedesk.schemas.job import ActorRole


class AuthPrincipal(BaseModel):
    """Normalized authenticated actor used by lifecycle services."""

    user_id: str = Field(min_length=1)
    role: ActorRole = ActorRole.CLIENT
    email: str | None = None
    full_name: str | None = None
