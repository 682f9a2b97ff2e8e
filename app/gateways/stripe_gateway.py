"""Stripe payment gateway adapter."""

import asyncio

import stripe

from app.config import settings
from app.gateways.base import (
    GatewayType,
    PaymentGateway,
    PaymentResult,
)


class StripeGateway(PaymentGateway):
    """Stripe payment gateway implementation.

    The stripe SDK is synchronous; calls run in a worker thread so the event
    loop stays free and callers can bound them with ``asyncio.wait_for``.
    """

    def __init__(self):
        self.secret_key = settings.stripe_secret_key

    @property
    def gateway_type(self) -> GatewayType:
        return GatewayType.STRIPE

    async def capture_payment(
        self,
        transaction_id: str,
        idempotency_key: str | None = None,
    ) -> PaymentResult:
        """Capture a Stripe PaymentIntent created with ``capture_method=manual``."""
        if not self.secret_key:
            return PaymentResult(
                success=False,
                error_message="Stripe not configured",
            )

        try:
            intent = await asyncio.to_thread(
                stripe.PaymentIntent.capture,
                transaction_id,
                api_key=self.secret_key,
                idempotency_key=idempotency_key,
            )

            return PaymentResult(
                success=intent.status == "succeeded",
                transaction_id=intent.id,
                status=intent.status,
                raw_response={"id": intent.id, "status": intent.status},
            )

        except stripe.StripeError as e:
            return PaymentResult(
                success=False,
                transaction_id=transaction_id,
                error_message=str(e),
            )

    async def verify_payment(
        self,
        transaction_id: str,
    ) -> PaymentResult:
        """Verify Stripe payment status."""
        if not self.secret_key:
            return PaymentResult(
                success=False,
                error_message="Stripe not configured",
            )

        try:
            intent = await asyncio.to_thread(
                stripe.PaymentIntent.retrieve,
                transaction_id,
                api_key=self.secret_key,
            )

            return PaymentResult(
                success=intent.status == "succeeded",
                transaction_id=transaction_id,
                status=intent.status,
                raw_response={"status": intent.status},
            )

        except stripe.StripeError as e:
            return PaymentResult(
                success=False,
                transaction_id=transaction_id,
                error_message=str(e),
            )
