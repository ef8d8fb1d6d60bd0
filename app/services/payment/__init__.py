"""
Payment Service Factory

Single place the rest of the app asks for its payment processor,
so endpoints never import a concrete implementation.

Usage:
    from app.services.payment import get_payment_service

    payment_service = get_payment_service()
    result = await payment_service.process_payment(order_id, amount, "pix")

Only the simulated processor exists; real gateway integration is out of
scope for the storefront.
"""

import logging
from functools import lru_cache

from app.core.config import get_settings
from app.services.payment.base import BasePaymentService, PaymentResult
from app.services.payment.mock import MockPaymentService

logger = logging.getLogger(__name__)


@lru_cache()
def get_payment_service() -> BasePaymentService:
    """
    Processor for the current deployment.

    Cached: every request shares one processor.

    Returns:
        BasePaymentService: Configured payment service instance
    """
    settings = get_settings()

    logger.info(
        f"Payment Service: Using MockPaymentService ({settings.env_mode.value} mode)"
    )
    return MockPaymentService(delay_seconds=settings.payment_processing_delay_seconds)


__all__ = [
    "get_payment_service",
    "BasePaymentService",
    "PaymentResult",
    "MockPaymentService",
]
