"""Settlement configuration.

Commission and processing rates, payout thresholds, and gateway secrets are
carried in an immutable ``SettlementConfig`` that is handed to the payout
batcher and the gateway adapter when they are constructed. Nothing here is
cached at module level; ``from_env()`` reads the environment on every call so
tests can run several rate configurations side by side.
"""

import os
from dataclasses import dataclass

from protean.exceptions import ConfigurationError

DEFAULT_PLATFORM_COMMISSION_RATE = 0.12
DEFAULT_PAYMENT_PROCESSING_RATE = 0.029


@dataclass(frozen=True)
class SettlementConfig:
    """Rates and secrets used by the settlement engine."""

    platform_commission_rate: float = DEFAULT_PLATFORM_COMMISSION_RATE
    payment_processing_rate: float = DEFAULT_PAYMENT_PROCESSING_RATE
    minimum_payout: float = 0.0
    currency: str = "INR"
    minor_units_per_major: int = 100
    gateway_key_secret: str = ""
    webhook_secret: str = ""

    def __post_init__(self) -> None:
        for name in ("platform_commission_rate", "payment_processing_rate"):
            rate = getattr(self, name)
            if rate < 0 or rate > 1:
                raise ConfigurationError(f"{name} must be between 0 and 1, got {rate}")
        if self.platform_commission_rate + self.payment_processing_rate > 1:
            raise ConfigurationError("Combined platform and processing rates cannot exceed 1")
        if self.minimum_payout < 0:
            raise ConfigurationError("minimum_payout cannot be negative")
        if self.minor_units_per_major <= 0:
            raise ConfigurationError("minor_units_per_major must be positive")

    @classmethod
    def from_env(cls) -> "SettlementConfig":
        """Build a config from ``SETTLEMENT_*`` and ``RAZORPAY_*`` variables."""
        return cls(
            platform_commission_rate=float(
                os.environ.get("SETTLEMENT_PLATFORM_COMMISSION_RATE", DEFAULT_PLATFORM_COMMISSION_RATE)
            ),
            payment_processing_rate=float(
                os.environ.get("SETTLEMENT_PAYMENT_PROCESSING_RATE", DEFAULT_PAYMENT_PROCESSING_RATE)
            ),
            minimum_payout=float(os.environ.get("SETTLEMENT_MINIMUM_PAYOUT", "0")),
            currency=os.environ.get("SETTLEMENT_CURRENCY", "INR"),
            minor_units_per_major=int(os.environ.get("SETTLEMENT_MINOR_UNITS", "100")),
            gateway_key_secret=os.environ.get("RAZORPAY_KEY_SECRET", ""),
            webhook_secret=os.environ.get("RAZORPAY_WEBHOOK_SECRET", ""),
        )
