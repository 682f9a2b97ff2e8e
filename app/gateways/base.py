"""Base payment gateway interface.

All gateway adapters must implement this interface.
Business logic should NOT live in adapters - only gateway communication.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum


class GatewayType(str, Enum):
    """Supported payment gateways."""

    STRIPE = "stripe"
    MANUAL = "manual"


@dataclass
class PaymentResult:
    """Result of a payment operation."""

    success: bool
    transaction_id: str | None = None
    status: str | None = None
    error_message: str | None = None
    raw_response: dict | None = None


class PaymentGateway(ABC):
    """Abstract base class for payment gateways."""

    @property
    @abstractmethod
    def gateway_type(self) -> GatewayType:
        """Return the gateway type."""
        pass

    @abstractmethod
    async def capture_payment(
        self,
        transaction_id: str,
        idempotency_key: str | None = None,
    ) -> PaymentResult:
        """Capture a previously authorized charge.

        Args:
            transaction_id: Gateway id of the authorized charge
            idempotency_key: Key that makes repeated captures collapse

        Returns:
            PaymentResult; ``success`` is True only once funds are captured
        """
        pass

    @abstractmethod
    async def verify_payment(
        self,
        transaction_id: str,
    ) -> PaymentResult:
        """Verify a payment status.

        Args:
            transaction_id: Gateway transaction ID

        Returns:
            PaymentResult with current status; ``success`` is True if the
            charge has already been captured
        """
        pass
