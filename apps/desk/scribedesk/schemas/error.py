"""Error schemas for lifecycle results and the HTTP surface."""

from enum import Enum
from typing import Any
from typing import Literal

from pydantic import BaseModel, ConfigDict


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    AUTH = "auth"
    NETWORK = "network"
    CONFLICT = "conflict"
    PAYMENT = "payment"


class LifecycleError(BaseModel):
    """Typed failure returned (never raised) by lifecycle components."""

    model_config = ConfigDict(frozen=True)

    kind: ErrorKind
    code: str
    message: str
    details: dict[str, Any] | None = None

    @property
    def recoverable(self) -> bool:
        return self.kind in (ErrorKind.NETWORK, ErrorKind.CONFLICT, ErrorKind.PAYMENT)


class ErrorResponse(BaseModel):
    code: str
    message: str
    details: dict[str, Any] | None = None


class NoLeakNotFoundError(BaseModel):
    code: Literal["RESOURCE_NOT_FOUND"]
    message: str
