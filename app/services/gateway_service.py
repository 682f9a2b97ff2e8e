"""Payment gateway service.

Routes payment operations to the appropriate gateway adapter.
No business logic here - only gateway coordination.
"""

from app.config import settings
from app.core.exceptions import ExternalServiceError
from app.gateways.base import (
    GatewayType,
    PaymentGateway,
    PaymentResult,
)
from app.gateways.manual import ManualGateway
from app.gateways.stripe_gateway import StripeGateway


def _is_production() -> bool:
    """Check if running in production environment."""
    return settings.environment == "production"


def _assert_production_for_live_keys(gateway: PaymentGateway) -> None:
    """Block live Stripe keys in non-production environments.

    Raises:
        ExternalServiceError: If a live key is configured outside production
    """
    if gateway.gateway_type != GatewayType.STRIPE or _is_production():
        return
    secret_key = settings.stripe_secret_key or ""
    if secret_key.startswith(("sk_live_", "rk_live_")):
        raise ExternalServiceError(
            "stripe",
            f"live keys cannot be used in the {settings.environment} environment; "
            "use a test key or set ENVIRONMENT=production",
        )


class GatewayService:
    """Service for managing payment gateway operations."""

    def __init__(self):
        self._gateways: dict[GatewayType, PaymentGateway] = {}

    def _get_gateway(self, gateway_type: str | GatewayType | None = None) -> PaymentGateway:
        """Get or create gateway instance (defaults to the configured one)."""
        gateway_type = gateway_type or settings.payment_gateway
        if isinstance(gateway_type, str):
            try:
                gateway_type = GatewayType(gateway_type)
            except ValueError:
                gateway_type = GatewayType.MANUAL

        if gateway_type not in self._gateways:
            if gateway_type == GatewayType.STRIPE:
                self._gateways[gateway_type] = StripeGateway()
            else:
                self._gateways[gateway_type] = ManualGateway()

        return self._gateways[gateway_type]

    async def capture_payment(
        self,
        transaction_id: str,
        idempotency_key: str | None = None,
        gateway_type: str | GatewayType | None = None,
    ) -> PaymentResult:
        """Capture an authorized charge via the gateway."""
        gateway = self._get_gateway(gateway_type)
        # Environment safety: block live keys in non-production
        _assert_production_for_live_keys(gateway)
        return await gateway.capture_payment(
            transaction_id=transaction_id,
            idempotency_key=idempotency_key,
        )

    async def verify_payment(
        self,
        transaction_id: str,
        gateway_type: str | GatewayType | None = None,
    ) -> PaymentResult:
        """Verify payment status via gateway."""
        gateway = self._get_gateway(gateway_type)
        _assert_production_for_live_keys(gateway)
        return await gateway.verify_payment(transaction_id)


# Singleton instance
gateway_service = GatewayService()
