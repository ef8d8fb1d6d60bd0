"""
FastAPI Application Entry Point

Food Storefront API - storefront and back office.
Supports both Mock services (development) and real token verification
(staging/production).

Endpoints:
    - GET  /api/categories, /api/products: Catalog
    - GET/POST /api/addresses: Address book
    - POST /api/checkout: Place an order from the cart
    - GET  /api/orders: Caller's orders
    - PATCH /api/orders/{id}/status: Generic status change
    - POST /api/orders/{id}/payment: Simulated payment
    - GET  /api/orders/{id}/track: Delivery tracking
    - /api/admin/...: Dashboard, orders, promotions, reports
    - GET  /health: System health check

Version: 1.0.0
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import Depends, FastAPI, Header, Query, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import get_settings, setup_logging
from app.core.exceptions import (
    AuthenticationError,
    PaymentError,
    PermissionDeniedError,
    StorefrontError,
)
from app.database import engine, get_db, get_session_factory, init_db
from app.models import AdminRole, Order, OrderStatus, Promotion, utc_now
from app.schemas import (
    AddressCreate,
    AddressResponse,
    AdminOrderListResponse,
    CategoryResponse,
    CheckoutRequest,
    DashboardResponse,
    ErrorResponse,
    HealthResponse,
    OrderDetailResponse,
    OrderListResponse,
    OrderMutationRequest,
    OrderMutationResponse,
    OrderResponse,
    PaymentRequest,
    PaymentResponse,
    ProductResponse,
    ProfileResponse,
    ProfileStats,
    PromotionActiveUpdate,
    PromotionCodeResponse,
    PromotionForm,
    PromotionResponse,
    ReportsResponse,
    StatusUpdateRequest,
    TrackerResponse,
    TrackingInfo,
    TrackingResponse,
)
from app.services import addresses, catalog, checkout, orders, profiles, promotions, reports
from app.services.auth import AuthUser, get_auth_service
from app.services.order_status import (
    STATUS_LABELS,
    build_tracker,
    parse_status,
)
from app.services.payment import get_payment_service
from app.services.report_export import XLSX_MEDIA_TYPE, ReportExporter

# Initialize configuration and logging
settings = get_settings()
setup_logging()
logger = logging.getLogger(__name__)


# =============================================================================
# APPLICATION LIFECYCLE
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application startup and shutdown events.
    """
    # Startup
    logger.info("=" * 60)
    logger.info(f"Starting {settings.app_name}")
    logger.info(f"   Version: {settings.app_version}")
    logger.info(f"   Environment: {settings.env_mode.value}")
    logger.info(f"   Debug: {settings.debug}")
    logger.info("=" * 60)

    await init_db()
    logger.info("Database initialized")

    payment_service = get_payment_service()
    auth_service = get_auth_service()
    logger.info(f"Payment Service: {payment_service.provider_name}")
    logger.info(f"Auth Service: {auth_service.provider_name}")

    if settings.use_real_services:
        missing = settings.validate_production_config()
        if missing:
            logger.warning(f"Missing production config: {missing}")

    logger.info("Application ready")

    yield

    # Shutdown
    logger.info("Shutting down...")
    await engine.dispose()
    logger.info("Cleanup complete")


# =============================================================================
# APPLICATION INSTANCE
# =============================================================================

app = FastAPI(
    title=settings.app_name,
    description=(
        "Food-ordering storefront: catalog, checkout with simulated payment, "
        "order tracking and the admin back office."
    ),
    version=settings.app_version,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# DEPENDENCIES
# =============================================================================

async def get_current_user(
    authorization: Optional[str] = Header(None),
) -> AuthUser:
    """Resolve the caller from the ``Authorization: Bearer <token>`` header."""
    if not authorization:
        raise AuthenticationError()

    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthenticationError()

    return await get_auth_service().verify_token(token.strip())


async def require_admin(
    user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> AdminRole:
    role = await profiles.get_admin_role(db, user.user_id)
    if role is None:
        logger.info(f"User {user.user_id} denied admin access")
        raise PermissionDeniedError()
    return role


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def tracker_response(order: Order) -> TrackerResponse:
    tracker = build_tracker(
        order.order_status,
        order.created_at,
        order.estimated_delivery_time,
        step_minutes=settings.status_step_minutes,
    )
    return TrackerResponse.model_validate(tracker)


def promotion_response(promotion: Promotion) -> PromotionResponse:
    now = utc_now()
    response = PromotionResponse.model_validate(promotion)
    response.currently_active = promotions.is_currently_active(promotion, now)
    response.expired = promotions.is_expired(promotion, now)
    return response


def mutation_response(order: Order) -> OrderMutationResponse:
    label = STATUS_LABELS.get(order.order_status, order.order_status)
    return OrderMutationResponse(
        message=f"Order status: {label}",
        order=OrderResponse.from_row(order),
    )


# =============================================================================
# ROOT & HEALTH ENDPOINTS
# =============================================================================

@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """API root with navigation links."""
    return {
        "message": f"Welcome to {settings.app_name}",
        "version": settings.app_version,
        "environment": settings.env_mode.value,
        "documentation": "/docs",
        "health": "/health",
    }


@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["Health"],
    summary="System Health Check",
)
async def health_check(
    db: AsyncSession = Depends(get_db),
) -> HealthResponse:
    """Verify all system components are operational."""

    db_status = "healthy"
    try:
        await db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        db_status = f"unhealthy: {str(e)}"
        logger.error(f"Database health check failed: {e}")

    payment_status = "healthy" if await get_payment_service().health_check() else "unhealthy"
    auth_status = "healthy" if await get_auth_service().health_check() else "unhealthy"

    overall = "operational" if all(
        s == "healthy" for s in [db_status, payment_status, auth_status]
    ) else "degraded"

    return HealthResponse(
        status=overall,
        database=db_status,
        payment_service=payment_status,
        auth_service=auth_status,
        timestamp=utc_now(),
    )


# =============================================================================
# CATALOG ENDPOINTS
# =============================================================================

@app.get(
    "/api/categories",
    response_model=list[CategoryResponse],
    tags=["Catalog"],
)
async def list_categories(
    db: AsyncSession = Depends(get_db),
) -> list[CategoryResponse]:
    rows = await catalog.list_categories(db)
    return [CategoryResponse.model_validate(row) for row in rows]


@app.get(
    "/api/products",
    response_model=list[ProductResponse],
    tags=["Catalog"],
)
async def list_products(
    category_id: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
) -> list[ProductResponse]:
    rows = await catalog.list_products(db, category_id)
    return [ProductResponse.model_validate(row) for row in rows]


# =============================================================================
# ADDRESS ENDPOINTS
# =============================================================================

@app.get(
    "/api/addresses",
    response_model=list[AddressResponse],
    tags=["Addresses"],
)
async def list_addresses(
    user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> list[AddressResponse]:
    rows = await addresses.list_addresses(db, user.user_id)
    return [AddressResponse.model_validate(row) for row in rows]


@app.post(
    "/api/addresses",
    response_model=AddressResponse,
    status_code=201,
    tags=["Addresses"],
)
async def create_address(
    data: AddressCreate,
    user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> AddressResponse:
    address = await addresses.create_address(db, user.user_id, data)
    return AddressResponse.model_validate(address)


@app.patch(
    "/api/addresses/{address_id}/default",
    response_model=AddressResponse,
    responses={404: {"model": ErrorResponse}},
    tags=["Addresses"],
)
async def set_default_address(
    address_id: str,
    user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> AddressResponse:
    address = await addresses.set_default_address(db, user.user_id, address_id)
    return AddressResponse.model_validate(address)


# =============================================================================
# CHECKOUT & ORDER ENDPOINTS
# =============================================================================

@app.post(
    "/api/checkout",
    response_model=OrderDetailResponse,
    status_code=201,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
    tags=["Orders"],
    summary="Place Order From Cart",
)
async def place_order(
    request: CheckoutRequest,
    user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> OrderDetailResponse:
    """
    Create a pending order from the cart lines.

    Prices are read from the catalog now; the client's cart never carries
    prices. Pay it next with POST /api/orders/{id}/payment.
    """
    order = await checkout.place_order(db, user.user_id, request)
    return OrderDetailResponse(
        order=OrderResponse.from_row(order),
        tracker=tracker_response(order),
    )


@app.get(
    "/api/orders",
    response_model=OrderListResponse,
    tags=["Orders"],
    summary="List My Orders",
)
async def list_orders(
    status: Optional[str] = Query(None),
    limit: int = Query(10, ge=1, le=100),
    offset: int = Query(0, ge=0),
    user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> OrderListResponse:
    """Caller's orders, newest first, with address and items."""
    rows = await orders.list_user_orders(db, user.user_id, status, limit, offset)
    return OrderListResponse(orders=[OrderResponse.from_row(row) for row in rows])


@app.get(
    "/api/orders/{order_id}",
    response_model=OrderDetailResponse,
    responses={404: {"model": ErrorResponse}},
    tags=["Orders"],
)
async def get_order(
    order_id: str,
    user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> OrderDetailResponse:
    """Order detail with the progress tracker."""
    order = await orders.load_order(db, order_id, user.user_id)
    return OrderDetailResponse(
        order=OrderResponse.from_row(order),
        tracker=tracker_response(order),
    )


@app.patch(
    "/api/orders/{order_id}/status",
    response_model=OrderMutationResponse,
    responses={
        400: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
    tags=["Orders"],
    summary="Update Order Status",
)
async def update_order_status(
    order_id: str,
    body: StatusUpdateRequest,
    user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> OrderMutationResponse:
    """
    Generic status change, validated against the transition table.

    Admins may act on any order and may ``force`` a transition; other
    callers only reach their own orders.
    """
    target = parse_status(body.status)

    role = await profiles.get_admin_role(db, user.user_id)
    if body.force and role is None:
        raise PermissionDeniedError()

    owner = None if role is not None else user.user_id
    order = await orders.load_order(db, order_id, owner)
    updated = await orders.change_status(
        db, order, target, force=body.force, expected_version=body.expected_version
    )
    return mutation_response(updated)


@app.post(
    "/api/orders/{order_id}/payment",
    response_model=PaymentResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    tags=["Orders"],
    summary="Pay Order (Simulated)",
)
async def pay_order(
    order_id: str,
    body: PaymentRequest,
    user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> PaymentResponse:
    """
    Run the simulated processor, then mark the order paid and confirmed.

    The client clears its cart after a successful response.
    """
    order = await orders.load_order(db, order_id, user.user_id)
    orders.ensure_payable(order)

    payment_service = get_payment_service()
    result = await payment_service.process_payment(
        order_id=order.id,
        amount=order.total_amount,
        method=order.payment_method,
        payment_data=body.payment_data,
    )
    if not result.success:
        logger.error(f"Payment failed for order {order.id}: {result.error_message}")
        raise PaymentError(result.error_message)

    updated = await orders.mark_paid(db, order)
    return PaymentResponse(
        message="Payment processed successfully",
        payment_data=body.payment_data,
        order=OrderResponse.from_row(updated),
    )


@app.get(
    "/api/orders/{order_id}/track",
    response_model=TrackingResponse,
    response_model_by_alias=True,
    responses={404: {"model": ErrorResponse}},
    tags=["Orders"],
    summary="Track Order",
)
async def track_order(
    order_id: str,
    user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> TrackingResponse:
    """Courier and location are only filled while out for delivery."""
    order = await orders.load_order(db, order_id, user.user_id)
    return TrackingResponse(tracking=TrackingInfo(**orders.build_tracking(order)))


# =============================================================================
# PROFILE ENDPOINT
# =============================================================================

@app.get(
    "/api/profile",
    response_model=ProfileResponse,
    tags=["Profile"],
)
async def get_profile(
    user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> ProfileResponse:
    """Profile data, addresses, three latest orders and spending stats."""
    profile = await profiles.get_profile(db, user.user_id)
    address_rows = await addresses.list_addresses(db, user.user_id)
    recent = await orders.list_user_orders(db, user.user_id, limit=3)
    stats = await orders.profile_stats(db, user.user_id)

    return ProfileResponse(
        user_id=user.user_id,
        full_name=profile.full_name if profile else None,
        phone=profile.phone if profile else None,
        email=(profile.email if profile else None) or user.email,
        addresses=[AddressResponse.model_validate(a) for a in address_rows],
        recent_orders=[OrderResponse.from_row(o) for o in recent],
        stats=ProfileStats(**vars(stats)),
    )


# =============================================================================
# ADMIN: DASHBOARD & ORDERS
# =============================================================================

@app.get(
    "/api/admin/dashboard",
    response_model=DashboardResponse,
    tags=["Admin"],
)
async def admin_dashboard(
    _: AdminRole = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> DashboardResponse:
    stats = orders.dashboard_stats(await orders.list_all_orders(db))
    data = vars(stats).copy()
    data["recent_orders"] = [OrderResponse.from_row(o) for o in stats.recent_orders]
    return DashboardResponse(**data)


@app.get(
    "/api/admin/orders",
    response_model=AdminOrderListResponse,
    tags=["Admin"],
)
async def admin_list_orders(
    search: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    tab: Optional[str] = Query(None, pattern="^(active|completed)$"),
    _: AdminRole = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> AdminOrderListResponse:
    """
    All orders with search, status and active/completed tab filters.

    The counts cover the search/status-filtered list before the tab split.
    """
    filtered = orders.filter_orders(await orders.list_all_orders(db), search, status)
    active, completed = orders.partition_orders(filtered)

    shown = {"active": active, "completed": completed}.get(tab, filtered)
    return AdminOrderListResponse(
        total=len(filtered),
        active_count=len(active),
        completed_count=len(completed),
        orders=[OrderResponse.from_row(o) for o in shown],
    )


@app.post(
    "/api/admin/orders/{order_id}/advance",
    response_model=OrderMutationResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    tags=["Admin"],
)
async def admin_advance_order(
    order_id: str,
    body: Optional[OrderMutationRequest] = None,
    _: AdminRole = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> OrderMutationResponse:
    expected = body.expected_version if body else None
    order = await orders.advance_order(db, order_id, expected_version=expected)
    return mutation_response(order)


@app.post(
    "/api/admin/orders/{order_id}/cancel",
    response_model=OrderMutationResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    tags=["Admin"],
)
async def admin_cancel_order(
    order_id: str,
    body: Optional[OrderMutationRequest] = None,
    _: AdminRole = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> OrderMutationResponse:
    expected = body.expected_version if body else None
    order = await orders.cancel_order(db, order_id, expected_version=expected)
    return mutation_response(order)


@app.patch(
    "/api/admin/orders/{order_id}/status",
    response_model=OrderMutationResponse,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
    tags=["Admin"],
)
async def admin_update_order_status(
    order_id: str,
    body: StatusUpdateRequest,
    _: AdminRole = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> OrderMutationResponse:
    target = parse_status(body.status)
    order = await orders.load_order(db, order_id)
    updated = await orders.change_status(
        db, order, target, force=body.force, expected_version=body.expected_version
    )
    return mutation_response(updated)


# =============================================================================
# ADMIN: PROMOTIONS
# =============================================================================

@app.get(
    "/api/admin/promotions",
    response_model=list[PromotionResponse],
    tags=["Promotions"],
)
async def admin_list_promotions(
    _: AdminRole = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> list[PromotionResponse]:
    return [promotion_response(p) for p in await promotions.list_promotions(db)]


@app.post(
    "/api/admin/promotions",
    response_model=PromotionResponse,
    status_code=201,
    tags=["Promotions"],
)
async def admin_create_promotion(
    form: PromotionForm,
    _: AdminRole = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> PromotionResponse:
    return promotion_response(await promotions.create_promotion(db, form))


@app.post(
    "/api/admin/promotions/generate-code",
    response_model=PromotionCodeResponse,
    tags=["Promotions"],
)
async def admin_generate_promotion_code(
    _: AdminRole = Depends(require_admin),
) -> PromotionCodeResponse:
    return PromotionCodeResponse(code=promotions.generate_code())


@app.put(
    "/api/admin/promotions/{promotion_id}",
    response_model=PromotionResponse,
    responses={404: {"model": ErrorResponse}},
    tags=["Promotions"],
)
async def admin_update_promotion(
    promotion_id: str,
    form: PromotionForm,
    _: AdminRole = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> PromotionResponse:
    return promotion_response(await promotions.update_promotion(db, promotion_id, form))


@app.patch(
    "/api/admin/promotions/{promotion_id}/active",
    response_model=PromotionResponse,
    responses={404: {"model": ErrorResponse}},
    tags=["Promotions"],
)
async def admin_toggle_promotion(
    promotion_id: str,
    body: PromotionActiveUpdate,
    _: AdminRole = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> PromotionResponse:
    return promotion_response(await promotions.set_active(db, promotion_id, body.active))


@app.delete(
    "/api/admin/promotions/{promotion_id}",
    status_code=204,
    responses={404: {"model": ErrorResponse}},
    tags=["Promotions"],
)
async def admin_delete_promotion(
    promotion_id: str,
    _: AdminRole = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> Response:
    await promotions.delete_promotion(db, promotion_id)
    return Response(status_code=204)


# =============================================================================
# ADMIN: REPORTS
# =============================================================================

@app.get(
    "/api/admin/reports",
    response_model=ReportsResponse,
    tags=["Reports"],
)
async def admin_reports(
    period: str = Query(reports.DEFAULT_PERIOD),
    _: AdminRole = Depends(require_admin),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> ReportsResponse:
    """Monthly sales, top products, top customers and month-over-month stats."""
    report = await reports.build_report(session_factory, period, top_n=settings.report_top_n)
    return ReportsResponse.model_validate(vars(report))


@app.get(
    "/api/admin/reports/export",
    tags=["Reports"],
    responses={200: {"content": {XLSX_MEDIA_TYPE: {}}}},
)
async def admin_export_reports(
    period: str = Query(reports.DEFAULT_PERIOD),
    _: AdminRole = Depends(require_admin),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> Response:
    """Download the report as an Excel workbook."""
    report = await reports.build_report(session_factory, period, top_n=settings.report_top_n)
    return Response(
        content=ReportExporter.to_workbook(report),
        media_type=XLSX_MEDIA_TYPE,
        headers={
            "Content-Disposition": f'attachment; filename="{ReportExporter.filename(report)}"'
        },
    )


# =============================================================================
# ERROR HANDLERS
# =============================================================================

@app.exception_handler(StorefrontError)
async def storefront_exception_handler(request: Request, exc: StorefrontError) -> JSONResponse:
    """Domain errors carry their own status code; server-side details stay in the log."""
    message = exc.message
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path}: {exc.message}")
        message = exc.default_message
    return JSONResponse(status_code=exc.status_code, content={"error": message})


@app.exception_handler(SQLAlchemyError)
async def database_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.exception(f"Database error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all exception handler."""
    logger.exception(f"Unhandled exception: {exc}")

    content: dict[str, Any] = {"error": "Internal server error"}
    if settings.debug:
        content["detail"] = str(exc)
    return JSONResponse(status_code=500, content=content)
