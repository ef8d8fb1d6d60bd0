"""
Pydantic Schemas for Request/Response Validation

Rows coming out of the store are parsed into these records before they
leave the API; an order item whose product cannot be resolved is treated
as a data integrity failure instead of being rendered half-empty.

Version: 1.0.0
"""

from datetime import date, datetime, time, timezone
from decimal import Decimal
from typing import Annotated, Any, List, Optional

from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    Field,
    PlainSerializer,
    field_validator,
)

from app.core.exceptions import DataIntegrityError
from app.models import DiscountType, PaymentMethod, as_utc


# JSON renders money as numbers, Python keeps Decimal
Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]
UtcDatetime = Annotated[datetime, AfterValidator(as_utc)]


def _blank_to_none(v: Any) -> Any:
    if isinstance(v, str) and not v.strip():
        return None
    return v


# =============================================================================
# REQUEST SCHEMAS
# =============================================================================

class AddressCreate(BaseModel):
    """New delivery address."""
    street: str = Field(..., min_length=1, max_length=255, examples=["Rua das Flores"])
    number: str = Field(..., min_length=1, max_length=20, examples=["123"])
    complement: Optional[str] = Field(None, max_length=255, examples=["Apt 42"])
    neighborhood: str = Field(..., min_length=1, max_length=120, examples=["Centro"])
    city: str = Field(..., min_length=1, max_length=120, examples=["São Paulo"])
    state: str = Field(..., min_length=1, max_length=50, examples=["SP"])
    zip_code: str = Field(..., min_length=1, max_length=20, examples=["01001-000"])

    @field_validator("complement", mode="before")
    @classmethod
    def blank_complement(cls, v: Any) -> Any:
        return _blank_to_none(v)


class CheckoutLine(BaseModel):
    """One cart entry sent to checkout. Prices are never taken from the client."""
    product_id: str = Field(..., min_length=1)
    quantity: int = Field(..., ge=1, le=99, examples=[2])
    notes: Optional[str] = Field(None, max_length=200)


class CheckoutRequest(BaseModel):
    """Details step of the checkout wizard."""
    items: List[CheckoutLine] = Field(default_factory=list)
    address_id: Optional[str] = None
    new_address: Optional[AddressCreate] = None
    payment_method: PaymentMethod = Field(default=PaymentMethod.PIX, examples=["pix"])
    notes: Optional[str] = Field(None, max_length=500)


class StatusUpdateRequest(BaseModel):
    """
    Generic status change.

    ``status`` is deliberately untyped here: unknown values are answered
    with the fixed 400 body rather than a schema error.
    """
    status: Any = None
    expected_version: Optional[int] = Field(None, ge=1)
    force: bool = False


class OrderMutationRequest(BaseModel):
    """Optional body of the admin advance/cancel actions."""
    expected_version: Optional[int] = Field(None, ge=1)


class PaymentRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    payment_data: Optional[dict[str, Any]] = Field(None, alias="paymentData")


class PromotionForm(BaseModel):
    """
    Promotion create/update form.

    Form-level rules: blank minimum order value is 0, blank usage limit
    means unlimited, code is optional and stored upper-case. Overlapping
    codes and negative values are not rejected.
    """
    title: str = Field(..., min_length=1, max_length=200, examples=["Summer Deal"])
    description: Optional[str] = None
    discount_type: DiscountType = DiscountType.PERCENTAGE
    discount_value: Decimal = Field(..., examples=[20])
    min_order_value: Optional[Decimal] = Field(None, validate_default=True)
    start_date: datetime
    end_date: datetime
    active: bool = True
    usage_limit: Optional[int] = None
    code: Optional[str] = Field(None, max_length=50)

    @field_validator("description", "min_order_value", "usage_limit", "code", mode="before")
    @classmethod
    def blank_fields(cls, v: Any) -> Any:
        return _blank_to_none(v)

    @field_validator("min_order_value")
    @classmethod
    def default_min_order(cls, v: Optional[Decimal]) -> Decimal:
        return v if v is not None else Decimal("0")

    @field_validator("code")
    @classmethod
    def upper_code(cls, v: Optional[str]) -> Optional[str]:
        return v.strip().upper() if v else None

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def accept_plain_dates(cls, v: Any) -> Any:
        """Date inputs ('2024-06-01') cover the whole day in UTC."""
        if isinstance(v, str) and len(v) == 10:
            v = date.fromisoformat(v)
        if isinstance(v, date) and not isinstance(v, datetime):
            return datetime.combine(v, time.min, tzinfo=timezone.utc)
        return v

    @field_validator("start_date", "end_date")
    @classmethod
    def aware_dates(cls, v: datetime) -> datetime:
        return as_utc(v)


class PromotionActiveUpdate(BaseModel):
    active: bool


# =============================================================================
# RESPONSE SCHEMAS
# =============================================================================

class CategoryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: Optional[str] = None
    image_url: Optional[str] = None


class CategorySummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str


class ProductResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: Optional[str] = None
    price: Money
    image_url: Optional[str] = None
    category_id: Optional[str] = None
    category: Optional[CategorySummary] = None


class ProductSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    image_url: Optional[str] = None


class AddressResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    street: str
    number: str
    complement: Optional[str] = None
    neighborhood: str
    city: str
    state: str
    zip_code: str
    is_default: bool


class CustomerSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    full_name: Optional[str] = None
    phone: Optional[str] = None


class OrderItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    product_id: str
    quantity: int
    unit_price: Money
    notes: Optional[str] = None
    product: ProductSummary


class OrderResponse(BaseModel):
    """Order with its address, customer and items joined."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    address_id: Optional[str] = None
    total_amount: Money
    payment_method: str
    payment_status: str
    order_status: str
    notes: Optional[str] = None
    estimated_delivery_time: Optional[int] = None
    version: int
    created_at: UtcDatetime
    updated_at: UtcDatetime
    address: Optional[AddressResponse] = None
    customer: Optional[CustomerSummary] = None
    items: List[OrderItemResponse] = Field(default_factory=list)

    @classmethod
    def from_row(cls, order: Any) -> "OrderResponse":
        """Parse an Order row, refusing items whose product is missing."""
        for item in order.items:
            if item.product is None:
                raise DataIntegrityError(
                    f"Order {order.id} item {item.id} references missing product {item.product_id}"
                )
        return cls.model_validate(order)


class TrackerStageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    key: str
    label: str
    completed: bool
    current: bool
    estimated_at: Optional[UtcDatetime] = None


class TrackerResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    status: str
    label: str
    current_index: int
    message: Optional[str] = None
    estimated_delivery: Optional[UtcDatetime] = None
    stages: List[TrackerStageResponse]


class OrderDetailResponse(BaseModel):
    order: OrderResponse
    tracker: TrackerResponse


class OrderListResponse(BaseModel):
    orders: List[OrderResponse]


class AdminOrderListResponse(BaseModel):
    total: int
    active_count: int
    completed_count: int
    orders: List[OrderResponse]


class OrderMutationResponse(BaseModel):
    success: bool = True
    message: str
    order: OrderResponse


class PaymentResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    message: str
    payment_data: Optional[dict[str, Any]] = Field(None, serialization_alias="paymentData")
    order: OrderResponse


class DeliveryPerson(BaseModel):
    name: str
    phone: str
    vehicle: str
    plate: str
    rating: float


class DeliveryLocation(BaseModel):
    lat: float
    lng: float
    address: str
    last_update: UtcDatetime = Field(..., serialization_alias="lastUpdate")


class TrackingInfo(BaseModel):
    order_id: str = Field(..., serialization_alias="orderId")
    status: str
    estimated_delivery: Optional[int] = Field(None, serialization_alias="estimatedDelivery")
    delivery_person: Optional[DeliveryPerson] = Field(None, serialization_alias="deliveryPerson")
    location: Optional[DeliveryLocation] = None


class TrackingResponse(BaseModel):
    tracking: TrackingInfo


class PromotionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    description: Optional[str] = None
    discount_type: str
    discount_value: Money
    min_order_value: Money
    start_date: UtcDatetime
    end_date: UtcDatetime
    active: bool
    usage_limit: Optional[int] = None
    usage_count: int
    code: Optional[str] = None
    created_at: UtcDatetime
    currently_active: bool = False
    expired: bool = False


class PromotionCodeResponse(BaseModel):
    code: str


class ProfileStats(BaseModel):
    total_orders: int
    total_spent: Money
    delivered_orders: int
    average_order_value: Money


class ProfileResponse(BaseModel):
    user_id: str
    full_name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    addresses: List[AddressResponse]
    recent_orders: List[OrderResponse]
    stats: ProfileStats


class DashboardResponse(BaseModel):
    total_orders: int
    total_revenue: Money
    total_customers: int
    pending_orders: int
    completed_orders: int
    cancelled_orders: int
    today_orders: int
    today_revenue: Money
    recent_orders: List[OrderResponse]


class MonthlySalesEntry(BaseModel):
    month: str
    revenue: Money
    orders: int


class ProductSalesEntry(BaseModel):
    id: str
    name: str
    image_url: Optional[str] = None
    total_sold: int
    total_revenue: Money


class CustomerRankingEntry(BaseModel):
    id: str
    full_name: str
    phone: str
    total_orders: int
    total_spent: Money
    last_order: UtcDatetime


class PeriodTotals(BaseModel):
    revenue: Money
    orders: int
    customers: int


class GrowthRates(BaseModel):
    revenue: float
    orders: float
    customers: float


class MonthlyStatsResponse(BaseModel):
    current_month: PeriodTotals
    previous_month: PeriodTotals
    growth: GrowthRates


class ReportsResponse(BaseModel):
    period: str
    start_date: UtcDatetime
    sales: List[MonthlySalesEntry]
    top_products: List[ProductSalesEntry]
    top_customers: List[CustomerRankingEntry]
    monthly_stats: MonthlyStatsResponse


class ErrorResponse(BaseModel):
    """Standard error response."""
    error: str
    detail: Optional[str] = None


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    database: str
    payment_service: str
    auth_service: str
    timestamp: datetime
