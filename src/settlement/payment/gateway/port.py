"""Payment gateway port (abstract interface).

Defines the contract a gateway adapter must implement: authenticate the
buyer's return callback, authenticate webhook deliveries, and turn a raw
webhook body into a typed event. Domain handlers only ever see the types
defined here.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class PaymentEntity:
    """Payment as reported by the gateway. Amounts are in minor units."""

    payment_id: str
    gateway_order_id: str | None = None
    amount: int | None = None
    currency: str | None = None
    method: str | None = None
    error_description: str | None = None
    amount_refunded: int | None = None


@dataclass(frozen=True)
class RefundEntity:
    """Refund as reported by the gateway. Amounts are in minor units."""

    refund_id: str
    payment_id: str
    amount: int | None = None
    status: str | None = None


@dataclass(frozen=True)
class GatewayEvent:
    """A parsed, authenticated webhook delivery."""

    event: str
    payment: PaymentEntity | None = None
    refund: RefundEntity | None = None


class PaymentGateway(ABC):
    """Abstract payment gateway interface."""

    @abstractmethod
    def verify_return_callback(self, order_ref: str, payment_ref: str, signature: str) -> bool:
        """Verify the signature the buyer's browser relays after checkout."""
        ...

    @abstractmethod
    def verify_webhook_signature(self, raw_body: bytes, signature: str | None) -> bool:
        """Verify that a webhook body is authentically from the gateway."""
        ...

    @abstractmethod
    def parse_webhook_event(self, raw_body: bytes) -> GatewayEvent:
        """Decode an authenticated webhook body into a typed event."""
        ...
