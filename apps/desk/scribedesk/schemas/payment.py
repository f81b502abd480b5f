"""Payment handshake schemas."""

from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from scribedesk.schemas.job import JobOrigin


class GatewayKind(str, Enum):
    REDIRECT = "redirect"
    WIDGET = "widget"


class Gateway(str, Enum):
    PAYSTACK = "paystack"
    KORAPAY = "korapay"

    @property
    def kind(self) -> GatewayKind:
        return _GATEWAY_KINDS[self]


_GATEWAY_KINDS: dict[Gateway, GatewayKind] = {
    Gateway.PAYSTACK: GatewayKind.REDIRECT,
    Gateway.KORAPAY: GatewayKind.WIDGET,
}


class PaymentPhase(str, Enum):
    IDLE = "idle"
    METHOD_SELECTED = "method_selected"
    INITIATING = "initiating"
    REDIRECT_PENDING = "redirect_pending"
    WIDGET_PENDING = "widget_pending"
    VERIFYING = "verifying"
    VERIFIED = "verified"
    FAILED = "failed"


class PaymentOutcome(str, Enum):
    PENDING = "pending"
    VERIFIED = "verified"
    FAILED = "failed"


class PaymentCustomer(BaseModel):
    email: str = Field(min_length=3)
    full_name: str | None = None
    mobile_number: str | None = None


class PaymentAttempt(BaseModel):
    """One charge attempt; never reused once it reaches a terminal outcome."""

    job_id: str
    origin: JobOrigin
    gateway: Gateway
    amount: Decimal
    currency: str
    reference: str | None = None
    outcome: PaymentOutcome = PaymentOutcome.PENDING


class WidgetCredentials(BaseModel):
    model_config = ConfigDict(frozen=True)

    key: str
    reference: str
    amount: Decimal
    currency: str
    customer: dict[str, Any] = Field(default_factory=dict)
    notification_url: str | None = None


class PaymentLaunch(BaseModel):
    """Gateway-specific data needed to hand control to the payer."""

    model_config = ConfigDict(frozen=True)

    gateway: Gateway
    redirect_url: str | None = None
    widget: WidgetCredentials | None = None
    reference: str | None = None


class PaymentVerification(BaseModel):
    model_config = ConfigDict(frozen=True)

    verified: bool
    message: str | None = None


class PaymentCallbackParams(BaseModel):
    """Values carried by a redirect gateway's return trip."""

    model_config = ConfigDict(frozen=True)

    reference: str = Field(min_length=1)
    job_id: str = Field(min_length=1)
    origin: JobOrigin
    gateway: Gateway
