"""Manual payment gateway adapter for environments without a processor."""

from app.gateways.base import (
    GatewayType,
    PaymentGateway,
    PaymentResult,
)


class ManualGateway(PaymentGateway):
    """Manual payment gateway.

    Charges are settled offline by an admin, so capture is never confirmed
    here and bookings stay in their retryable awaiting-payment state.
    """

    @property
    def gateway_type(self) -> GatewayType:
        return GatewayType.MANUAL

    async def capture_payment(
        self,
        transaction_id: str,
        idempotency_key: str | None = None,
    ) -> PaymentResult:
        """Manual capture (requires admin verification)."""
        return PaymentResult(
            success=False,
            transaction_id=transaction_id,
            status="pending_verification",
            error_message="Manual verification required by admin",
        )

    async def verify_payment(
        self,
        transaction_id: str,
    ) -> PaymentResult:
        """Verify manual payment (requires admin verification)."""
        return PaymentResult(
            success=False,
            transaction_id=transaction_id,
            status="pending_verification",
            error_message="Manual verification required by admin",
        )
