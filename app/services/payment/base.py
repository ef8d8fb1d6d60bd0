"""
Payment Processor Interface

Every processor the storefront can charge through implements
BasePaymentService. Only the simulated processor ships today; a gateway
integration would subclass the same interface and be returned by
app.services.payment.get_payment_service.

Design Pattern: Strategy Pattern
    - Endpoints depend on BasePaymentService only
    - The factory decides which implementation is live
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional


@dataclass
class PaymentResult:
    """
    Outcome of a single charge attempt.

    Attributes:
        success: True when the processor accepted the charge
        payment_id: Processor reference for the charge
        amount: Charged amount
        method: pix, credit_card or debit_card
        error_message: Human-readable reason of a declined charge
        response_time_ms: Processor latency
        metadata: Processor-specific extras
    """
    success: bool
    payment_id: Optional[str] = None
    amount: Optional[Decimal] = None
    method: Optional[str] = None
    error_message: Optional[str] = None
    response_time_ms: float = 0.0
    metadata: Optional[dict] = None


class BasePaymentService(ABC):
    """
    Contract shared by all payment processors.

    Example:
        >>> service = get_payment_service()
        >>> result = await service.process_payment(
        ...     order_id="8f0c...",
        ...     amount=Decimal("59.80"),
        ...     method="pix",
        ... )
        >>> if result.success:
        ...     print(f"Charged: {result.payment_id}")
    """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Short processor name reported by /health (e.g. "simulated")."""

    @abstractmethod
    async def process_payment(
        self,
        order_id: str,
        amount: Decimal,
        method: str,
        payment_data: Optional[dict] = None,
    ) -> PaymentResult:
        """
        Charge an order.

        Args:
            order_id: Order being paid
            amount: Amount to charge
            method: pix | credit_card | debit_card
            payment_data: Method-specific form data sent by the client

        Returns:
            PaymentResult describing the outcome; declines are not raised
        """

    @abstractmethod
    async def health_check(self) -> bool:
        """True when the processor can take charges."""
