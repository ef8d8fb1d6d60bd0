"""
Simulated Payment Service

Stands in for a payment gateway: waits a fixed processing delay and
approves every charge. No authorization, capture or decline path exists.

Card numbers and CVCs that may be present in the client's payment data
are never logged or echoed back in the result metadata.
"""

import asyncio
import logging
import time
import uuid
from decimal import Decimal
from typing import Optional

from app.services.payment.base import BasePaymentService, PaymentResult

logger = logging.getLogger(__name__)

SENSITIVE_FIELDS = {"cardNumber", "card_number", "cvv", "cvc", "securityCode"}


class MockPaymentService(BasePaymentService):
    """
    Always-approving payment processor.

    Attributes:
        delay_seconds: Fixed simulated processing time
    """

    def __init__(self, delay_seconds: float = 2.0):
        self.delay_seconds = delay_seconds

        logger.info(f"MockPaymentService initialized (delay={delay_seconds}s)")

    @property
    def provider_name(self) -> str:
        """Return the provider name."""
        return "simulated"

    def _generate_payment_id(self) -> str:
        return f"pay_sim_{uuid.uuid4().hex[:24]}"

    @staticmethod
    def _safe_metadata(payment_data: Optional[dict]) -> dict:
        return {
            key: value
            for key, value in (payment_data or {}).items()
            if key not in SENSITIVE_FIELDS
        }

    async def process_payment(
        self,
        order_id: str,
        amount: Decimal,
        method: str,
        payment_data: Optional[dict] = None,
    ) -> PaymentResult:
        """Wait the fixed delay, then approve."""
        start = time.perf_counter()
        logger.debug(f"Simulated: processing {method} payment of {amount} for order {order_id}")

        if self.delay_seconds:
            await asyncio.sleep(self.delay_seconds)

        payment_id = self._generate_payment_id()
        elapsed_ms = (time.perf_counter() - start) * 1000

        logger.info(f"Simulated: payment {payment_id} approved for order {order_id} - {amount}")

        return PaymentResult(
            success=True,
            payment_id=payment_id,
            amount=amount,
            method=method,
            response_time_ms=elapsed_ms,
            metadata={"simulated": True, **self._safe_metadata(payment_data)},
        )

    async def health_check(self) -> bool:
        """The simulated processor is always available."""
        return True
