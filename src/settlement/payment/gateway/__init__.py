"""Payment gateway factory.

Provides get_gateway() / set_gateway() to swap implementations. By default a
RazorpayGateway is built from the current environment's SettlementConfig.
"""

from settlement.config import SettlementConfig
from settlement.payment.gateway.port import PaymentGateway
from settlement.payment.gateway.razorpay_adapter import RazorpayGateway

_current_gateway: PaymentGateway | None = None


def get_gateway() -> PaymentGateway:
    """Return the overriding gateway if one is set, else a fresh RazorpayGateway."""
    if _current_gateway is not None:
        return _current_gateway
    return RazorpayGateway(SettlementConfig.from_env())


def set_gateway(gateway: PaymentGateway) -> None:
    """Override the active payment gateway (useful for tests)."""
    global _current_gateway
    _current_gateway = gateway


def reset_gateway() -> None:
    """Reset to default gateway."""
    global _current_gateway
    _current_gateway = None
