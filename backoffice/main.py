"""
FastAPI Application Entry Point

Restaurant Back-Office Order Engine
Table carts, order lifecycle and payment reconciliation behind a small
HTTP surface. Runs against mock services (development) or the real
back-office API and Redis (staging/production).

Endpoints:
    - GET/POST/DELETE /api/tables/{id}/cart...: Pending cart
    - POST /api/tables/{id}/confirm|cancel: Order lifecycle
    - /api/tables/{id}/payment...: Payment method, confirmation, session
    - GET /api/orders/{id}: Order detail (expires lapsed reservations)
    - POST /simulation/orders/{id}/paid: Simulated bank callback (development)
    - GET /health: System health check
"""

import asyncio
import sys
import logging
from datetime import datetime
from typing import Any, Optional
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Depends, Header, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware

# Windows-specific event loop policy
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

from backoffice.core.config import get_settings, setup_logging
from backoffice.core.exceptions import (
    AuthError,
    BackendError,
    BackofficeError,
    InvalidTransitionError,
    NetworkError,
    PaymentStateError,
    StorageError,
    ValidationError,
)
from backoffice.models import StaffUser
from backoffice.schemas import (
    CancelOrderResponse,
    CartItemRequest,
    CartResponse,
    ConfirmOrderResponse,
    ErrorResponse,
    HealthResponse,
    OrderResponse,
    PaymentMethodResponse,
    PaymentOutcomeResponse,
    PaymentSessionResponse,
    SelectMethodRequest,
    TableResponse,
)
from backoffice.services.cart import PendingCartStore, get_cart_store
from backoffice.services.orders import (
    BaseOrderService,
    MockOrderService,
    OrderLifecycleService,
    get_lifecycle_service,
    get_order_service,
    get_sync_service,
)
from backoffice.services.orders.state_machine import state_from_cart
from backoffice.services.payment import (
    PaymentCoordinator,
    PaymentOutcome,
    PaymentSession,
    get_payment_coordinator,
)
from backoffice.services.tables import TableStatusProjector

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

    order_service = get_order_service()
    store = get_cart_store()
    get_sync_service()
    logger.info(f"Order Service: {order_service.provider_name}")
    logger.info(f"Cart Store: {store.backend_name}")

    if settings.use_real_services:
        missing = settings.validate_production_config()
        if missing:
            logger.warning(f"Missing production config: {missing}")

    logger.info("Application ready!")

    yield  # Application runs

    # Shutdown
    logger.info("Shutting down...")
    await get_payment_coordinator().shutdown()
    await store.drain()
    await order_service.aclose()
    logger.info("Cleanup complete")


# =============================================================================
# APPLICATION INSTANCE
# =============================================================================

app = FastAPI(
    title=settings.app_name,
    description=(
        "Table order lifecycle and payment reconciliation engine for the "
        "restaurant back-office. Mock services in development, the real "
        "order API in production."
    ),
    version=settings.app_version,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# DEPENDENCIES
# =============================================================================

def current_user(
    x_staff_id: Optional[int] = Header(None, alias="x-staff-id"),
    x_staff_name: Optional[str] = Header(None, alias="x-staff-name"),
    x_staff_phone: Optional[str] = Header(None, alias="x-staff-phone"),
) -> StaffUser:
    """Staff member placing the order; falls back to the default user."""
    return StaffUser(
        id=x_staff_id or settings.default_user_id,
        name=x_staff_name,
        phone=x_staff_phone,
    )


def cart_store_dep() -> PendingCartStore:
    store = get_cart_store()
    # Reorder syncs need the sync service attached to the store
    get_sync_service()
    return store


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def cart_response(store: PendingCartStore, table_id: int) -> CartResponse:
    cart = store.load(table_id)
    state = state_from_cart(cart)
    return CartResponse.build(table_id, cart, state.name if state else "empty")


def session_response(session: Optional[PaymentSession]) -> Optional[PaymentSessionResponse]:
    if session is None:
        return None
    return PaymentSessionResponse(**session.to_dict())


def outcome_response(outcome: PaymentOutcome) -> PaymentOutcomeResponse:
    return PaymentOutcomeResponse(
        success=outcome.success,
        action=outcome.action.value,
        message=outcome.message,
        order_id=outcome.order_id,
        session=session_response(outcome.session),
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
    order_service: BaseOrderService = Depends(get_order_service),
    store: PendingCartStore = Depends(cart_store_dep),
) -> HealthResponse:
    """Verify the order service and the cart cache are operational."""
    order_status = "healthy" if await order_service.health_check() else "unhealthy"
    cart_status = "healthy" if store.health_check() else "unhealthy"

    overall = "operational" if order_status == cart_status == "healthy" else "degraded"

    return HealthResponse(
        status=overall,
        order_service=order_status,
        cart_store=cart_status,
        timestamp=datetime.now(),
    )


# =============================================================================
# TABLE & CART ENDPOINTS
# =============================================================================

@app.get(
    "/api/tables/{table_id}",
    response_model=TableResponse,
    tags=["Tables"],
)
async def get_table(
    table_id: int,
    order_service: BaseOrderService = Depends(get_order_service),
    store: PendingCartStore = Depends(cart_store_dep),
) -> TableResponse:
    """Table with the status shown to staff."""
    table = await order_service.get_table(table_id)
    view = TableStatusProjector(store).project(table)

    return TableResponse(
        id=table.id,
        number=table.number,
        capacity=table.capacity,
        persisted_status=int(table.persisted_status),
        status=int(view.status),
        label=view.label,
        has_pending_items=store.has_pending_items(table_id),
        start_time=table.start_time,
        end_time=table.end_time,
        description=table.description,
    )


@app.get(
    "/api/tables/{table_id}/cart",
    response_model=CartResponse,
    tags=["Cart"],
)
async def get_cart(
    table_id: int,
    store: PendingCartStore = Depends(cart_store_dep),
) -> CartResponse:
    return cart_response(store, table_id)


@app.post(
    "/api/tables/{table_id}/cart/items",
    response_model=CartResponse,
    responses={422: {"model": ErrorResponse}},
    tags=["Cart"],
    summary="Add Product or Change Quantity",
)
async def add_cart_item(
    table_id: int,
    request: CartItemRequest,
    store: PendingCartStore = Depends(cart_store_dep),
) -> CartResponse:
    """
    Add a product to the table's cart, or change its quantity by ``delta``.

    When the cart already belongs to a remote order, the full item list is
    synced to it in the background.
    """
    await store.add_or_increment(table_id, request.to_item(), request.delta)
    return cart_response(store, table_id)


@app.delete(
    "/api/tables/{table_id}/cart/items/{product_id}",
    response_model=CartResponse,
    tags=["Cart"],
)
async def remove_cart_item(
    table_id: int,
    product_id: int,
    store: PendingCartStore = Depends(cart_store_dep),
) -> CartResponse:
    await store.remove(table_id, product_id)
    return cart_response(store, table_id)


@app.delete(
    "/api/tables/{table_id}/cart",
    response_model=CartResponse,
    tags=["Cart"],
)
async def clear_cart(
    table_id: int,
    store: PendingCartStore = Depends(cart_store_dep),
) -> CartResponse:
    store.clear(table_id)
    return cart_response(store, table_id)


# =============================================================================
# ORDER LIFECYCLE ENDPOINTS
# =============================================================================

@app.post(
    "/api/tables/{table_id}/confirm",
    response_model=ConfirmOrderResponse,
    responses={422: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
    tags=["Orders"],
    summary="Confirm Table Order",
)
async def confirm_order(
    table_id: int,
    user: StaffUser = Depends(current_user),
    lifecycle: OrderLifecycleService = Depends(get_lifecycle_service),
) -> ConfirmOrderResponse:
    result = await lifecycle.confirm(table_id, user)
    return ConfirmOrderResponse(
        order_id=result.order_id,
        table_id=table_id,
        state=result.state.name,
        total_amount=result.total_amount,
    )


@app.post(
    "/api/tables/{table_id}/cancel",
    response_model=CancelOrderResponse,
    responses={502: {"model": ErrorResponse}},
    tags=["Orders"],
    summary="Cancel Table Order",
)
async def cancel_order(
    table_id: int,
    lifecycle: OrderLifecycleService = Depends(get_lifecycle_service),
    coordinator: PaymentCoordinator = Depends(get_payment_coordinator),
) -> CancelOrderResponse:
    """Stop any payment in progress, free the table and drop its cart."""
    await coordinator.cancel(table_id)
    result = await lifecycle.cancel(table_id)
    return CancelOrderResponse(
        table_id=table_id,
        order_id=result.order_id,
        message=f"Table {table_id} is available again",
    )


@app.get(
    "/api/orders/{order_id}",
    response_model=OrderResponse,
    responses={404: {"model": ErrorResponse}},
    tags=["Orders"],
)
async def get_order(
    order_id: int,
    lifecycle: OrderLifecycleService = Depends(get_lifecycle_service),
) -> OrderResponse:
    """Order detail; a lapsed reservation is cancelled before it is returned."""
    detail = await lifecycle.open_detail(order_id)
    record = detail.record
    return OrderResponse(
        id=record.id,
        table_id=record.table_id,
        user_id=record.user_id,
        status=int(record.status),
        state=detail.state.name,
        total_payment=record.total_payment,
        deposit_status=int(record.deposit_status),
        payment_method_id=record.payment_method_id,
        created_at=record.created_at,
        customer_name=record.customer_name,
        expired_on_read=detail.expired_on_read,
    )


# =============================================================================
# PAYMENT ENDPOINTS
# =============================================================================

@app.get(
    "/api/payment-methods",
    response_model=list[PaymentMethodResponse],
    tags=["Payment"],
)
async def list_payment_methods(
    coordinator: PaymentCoordinator = Depends(get_payment_coordinator),
) -> list[PaymentMethodResponse]:
    methods = await coordinator.list_methods()
    return [
        PaymentMethodResponse(id=m.id, label=m.label, is_asynchronous=m.is_asynchronous)
        for m in methods
    ]


@app.put(
    "/api/tables/{table_id}/payment/method",
    response_model=PaymentMethodResponse,
    responses={409: {"model": ErrorResponse}},
    tags=["Payment"],
)
async def select_payment_method(
    table_id: int,
    request: SelectMethodRequest,
    coordinator: PaymentCoordinator = Depends(get_payment_coordinator),
) -> PaymentMethodResponse:
    method = await coordinator.select_method(table_id, request.method_id)
    return PaymentMethodResponse(
        id=method.id, label=method.label, is_asynchronous=method.is_asynchronous
    )


@app.post(
    "/api/tables/{table_id}/payment/confirm",
    response_model=PaymentOutcomeResponse,
    responses={409: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
    tags=["Payment"],
    summary="Complete Payment",
)
async def confirm_payment(
    table_id: int,
    user: StaffUser = Depends(current_user),
    coordinator: PaymentCoordinator = Depends(get_payment_coordinator),
) -> PaymentOutcomeResponse:
    """
    The "complete payment" action.

    Instant methods settle at once. Asynchronous methods start a QR session
    on the first call and finalize it once the bank has confirmed.
    """
    outcome = await coordinator.confirm(table_id, user)
    return outcome_response(outcome)


@app.get(
    "/api/tables/{table_id}/payment",
    response_model=PaymentSessionResponse,
    responses={404: {"model": ErrorResponse}},
    tags=["Payment"],
)
async def get_payment_session(
    table_id: int,
    coordinator: PaymentCoordinator = Depends(get_payment_coordinator),
) -> PaymentSessionResponse:
    session = coordinator.session(table_id)
    if session is None:
        raise HTTPException(
            status_code=404,
            detail=f"No payment in progress for table {table_id}",
        )
    return session_response(session)


@app.delete(
    "/api/tables/{table_id}/payment",
    tags=["Payment"],
)
async def cancel_payment_session(
    table_id: int,
    coordinator: PaymentCoordinator = Depends(get_payment_coordinator),
) -> dict[str, Any]:
    """Stop polling for the table, e.g. when staff leave the payment view."""
    cancelled = await coordinator.cancel(table_id)
    return {"success": True, "table_id": table_id, "cancelled": cancelled}


# =============================================================================
# SIMULATION ENDPOINTS
# =============================================================================

@app.post(
    "/simulation/orders/{order_id}/paid",
    tags=["Simulation"],
    summary="Simulated Bank Callback (Development)",
)
async def simulate_bank_payment(
    order_id: int,
    order_service: BaseOrderService = Depends(get_order_service),
) -> dict[str, Any]:
    """Mark an order paid, as the bank would after a QR transfer."""
    if not settings.is_development or not isinstance(order_service, MockOrderService):
        raise HTTPException(
            status_code=403,
            detail="Simulation endpoint only available in development mode",
        )

    record = order_service.mark_paid(order_id)
    return {"success": True, "order_id": record.id, "status": int(record.status)}


# =============================================================================
# ERROR HANDLERS
# =============================================================================

ERROR_STATUS = [
    (ValidationError, 422),
    (AuthError, 401),
    (InvalidTransitionError, 409),
    (PaymentStateError, 409),
    (NetworkError, 502),
    (StorageError, 503),
]


def error_status(exc: BackofficeError) -> int:
    if isinstance(exc, BackendError):
        return 404 if exc.status_code == 404 else 502
    for error_type, status_code in ERROR_STATUS:
        if isinstance(exc, error_type):
            return status_code
    return 500


@app.exception_handler(BackofficeError)
async def backoffice_exception_handler(request: Request, exc: BackofficeError) -> JSONResponse:
    """Map engine errors to their HTTP status."""
    status_code = error_status(exc)
    logger.warning(f"{request.method} {request.url.path} -> {status_code}: {exc.message}")

    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(
            error=type(exc).__name__,
            detail=exc.message,
        ).model_dump(),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handle HTTP exceptions with consistent format."""
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(error=str(exc.detail)).model_dump(),
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all exception handler."""
    logger.exception(f"Unhandled exception: {exc}")

    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "Internal Server Error",
            "detail": str(exc) if settings.debug else "An unexpected error occurred",
        },
    )


# =============================================================================
# ENTRY POINT
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "backoffice.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
        log_level="debug" if settings.debug else "info",
    )
