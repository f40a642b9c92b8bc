"""
FastAPI Application Entry Point

Order Entry Core - session API for the order entry screen.
Runs against the in-memory order store (development) or the restaurant's
order store REST API (staging/production).

Endpoints:
    - GET /api/menu: Menu items available to add
    - POST /api/sessions: Open a session for a table (or a quick order)
    - GET /api/sessions/{session_id}: Current session view
    - POST /api/sessions/{session_id}/items: Add an item
    - DELETE /api/sessions/{session_id}/items/{index}: Remove an item
    - POST /api/sessions/{session_id}/save: Save as draft
    - POST /api/sessions/{session_id}/send: Send the order
    - POST /api/sessions/{session_id}/send-now: Release the edit window early
    - DELETE /api/sessions/{session_id}: Close the session
    - GET /health: System health check

Version: 1.0.0
"""

import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from order_entry.coordinator import ReleaseCoordinator
from order_entry.core.config import get_settings, setup_logging
from order_entry.core.exceptions import OrderEntryError
from order_entry.refresh import PeriodicRefresh
from order_entry.schemas import (
    ActionResponse,
    AddItemRequest,
    ErrorResponse,
    HealthResponse,
    MenuItem,
    SessionCreate,
    SessionView,
)
from order_entry.services.store import BaseOrderStore, get_order_store
from order_entry.session import ActionResult

# Initialize configuration and logging
settings = get_settings()
setup_logging()
logger = logging.getLogger(__name__)

# Live sessions by id; each owns its timer and refresh tasks.
SESSIONS: dict[str, ReleaseCoordinator] = {}
# Monotonic time of the last request that touched each session.
LAST_SEEN: dict[str, float] = {}


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
    logger.info(f"🚀 Starting {settings.app_name}")
    logger.info(f"   Version: {settings.app_version}")
    logger.info(f"   Environment: {settings.env_mode.value}")
    logger.info(f"   Edit window: {settings.edit_window_seconds}s")
    logger.info("=" * 60)

    store = app.dependency_overrides.get(get_order_store, get_order_store)()
    logger.info(f"✅ Order Store: {store.provider_name}")

    if settings.use_real_services:
        missing = settings.validate_production_config()
        if missing:
            logger.warning(f"⚠️ Missing production config: {missing}")

    sweeper = None
    if settings.session_idle_seconds > 0:
        sweeper = PeriodicRefresh(
            evict_idle_sessions,
            min(settings.session_idle_seconds, 60.0),
            name="session-sweeper",
        )
        sweeper.start()

    logger.info("✅ Application ready!")

    yield  # Application runs

    # Shutdown
    logger.info("Shutting down...")
    if sweeper is not None:
        await sweeper.stop()
    for session_id in list(SESSIONS):
        LAST_SEEN.pop(session_id, None)
        await SESSIONS.pop(session_id).close(reason="shutdown")
    await store.aclose()
    logger.info("✅ Cleanup complete")


# =============================================================================
# APPLICATION INSTANCE
# =============================================================================

app = FastAPI(
    title=settings.app_name,
    description=(
        "Order composition and timed release for the order entry screen: "
        "drafts, a shared edit window after sending, and quick-order tables."
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
# HELPER FUNCTIONS
# =============================================================================

def get_session(session_id: str) -> ReleaseCoordinator:
    coordinator = SESSIONS.get(session_id)
    if coordinator is None:
        raise HTTPException(status_code=404, detail=f"Session {session_id} not found")
    LAST_SEEN[session_id] = time.monotonic()
    return coordinator


async def evict_idle_sessions(now: Optional[float] = None) -> list[str]:
    """
    Close sessions no request has touched for session_idle_seconds.

    Clients that navigate away without DELETE would otherwise keep their
    coordinator, and its status polling, alive until shutdown.
    """
    if settings.session_idle_seconds <= 0:
        return []
    now = time.monotonic() if now is None else now
    idle = [
        session_id
        for session_id, seen in LAST_SEEN.items()
        if now - seen >= settings.session_idle_seconds
    ]
    for session_id in idle:
        LAST_SEEN.pop(session_id, None)
        coordinator = SESSIONS.pop(session_id, None)
        if coordinator is not None:
            await coordinator.close(reason="idle")
    if idle:
        logger.info(f"Evicted {len(idle)} idle session(s) ({len(SESSIONS)} active)")
    return idle


def action_response(coordinator: ReleaseCoordinator, result: ActionResult) -> Any:
    """Failed actions answer 409 with the same body shape as successes."""
    response = ActionResponse(
        success=result.success,
        message=result.message,
        error_code=result.error_code,
        session=coordinator.view(),
    )
    if result.success:
        return response
    return JSONResponse(status_code=409, content=response.model_dump(mode="json"))


async def find_menu_item(store: BaseOrderStore, menu_item_id: int) -> MenuItem:
    menu = await store.list_menu_items()
    for menu_item in menu:
        if menu_item.id == menu_item_id:
            return menu_item
    raise HTTPException(status_code=404, detail=f"Menu item #{menu_item_id} not found")


# =============================================================================
# ROOT & HEALTH ENDPOINTS
# =============================================================================

@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """API root with navigation links."""
    return {
        "message": f"🍽️ Welcome to {settings.app_name}",
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
async def health_check(store: BaseOrderStore = Depends(get_order_store)) -> HealthResponse:
    """Verify the order store is reachable."""
    store_status = "healthy" if await store.health_check() else "unhealthy"

    return HealthResponse(
        status="operational" if store_status == "healthy" else "degraded",
        store=f"{store.provider_name}: {store_status}",
        environment=settings.env_mode.value,
        active_sessions=len(SESSIONS),
        timestamp=datetime.now(),
    )


@app.get(
    "/api/menu",
    response_model=list[MenuItem],
    responses={502: {"model": ErrorResponse}},
    tags=["Menu"],
)
async def list_menu(store: BaseOrderStore = Depends(get_order_store)) -> list[MenuItem]:
    """Menu items available to add."""
    return await store.list_menu_items()


# =============================================================================
# SESSION ENDPOINTS
# =============================================================================

@app.post(
    "/api/sessions",
    response_model=ActionResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ActionResponse}, 502: {"model": ErrorResponse}},
    tags=["Sessions"],
    summary="Open Session",
)
async def open_session(
    request: SessionCreate,
    store: BaseOrderStore = Depends(get_order_store),
) -> Any:
    """
    Open a composition session.

    With a table_id the table is looked up and, when occupied, its open
    orders are merged into the session. Without one the session is a
    quick order whose table is created on first save or send.
    """
    await evict_idle_sessions()

    table = None
    if request.table_id is not None:
        tables = await store.get_tables()
        table = next((t for t in tables if t.id == request.table_id), None)
        if table is None:
            raise HTTPException(status_code=404, detail=f"Table #{request.table_id} not found")

    coordinator = ReleaseCoordinator(store, settings, table=table)
    result = await coordinator.open()
    SESSIONS[coordinator.session.session_id] = coordinator
    LAST_SEEN[coordinator.session.session_id] = time.monotonic()

    logger.info(f"Session {coordinator.session.session_id[:8]} registered ({len(SESSIONS)} active)")
    return action_response(coordinator, result)


@app.get(
    "/api/sessions/{session_id}",
    response_model=SessionView,
    responses={404: {"model": ErrorResponse}},
    tags=["Sessions"],
)
async def get_session_view(session_id: str) -> SessionView:
    return get_session(session_id).view()


@app.post(
    "/api/sessions/{session_id}/items",
    response_model=ActionResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ActionResponse}, 502: {"model": ErrorResponse}},
    tags=["Sessions"],
)
async def add_item(
    session_id: str,
    request: AddItemRequest,
    store: BaseOrderStore = Depends(get_order_store),
) -> Any:
    """Add a menu item; while the edit window is open it is sent at once."""
    coordinator = get_session(session_id)
    menu_item = await find_menu_item(store, request.menu_item_id)
    return action_response(coordinator, await coordinator.add_item(menu_item))


@app.delete(
    "/api/sessions/{session_id}/items/{index}",
    response_model=ActionResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ActionResponse}},
    tags=["Sessions"],
)
async def remove_item(session_id: str, index: int) -> Any:
    coordinator = get_session(session_id)
    return action_response(coordinator, await coordinator.remove_item(index))


@app.post(
    "/api/sessions/{session_id}/save",
    response_model=ActionResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ActionResponse}},
    tags=["Sessions"],
)
async def save_draft(session_id: str) -> Any:
    coordinator = get_session(session_id)
    return action_response(coordinator, await coordinator.save_draft())


@app.post(
    "/api/sessions/{session_id}/send",
    response_model=ActionResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ActionResponse}},
    tags=["Sessions"],
)
async def send_order(session_id: str) -> Any:
    """Send all drafts and open the edit window."""
    coordinator = get_session(session_id)
    return action_response(coordinator, await coordinator.send_order())


@app.post(
    "/api/sessions/{session_id}/send-now",
    response_model=ActionResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ActionResponse}},
    tags=["Sessions"],
)
async def send_now(session_id: str) -> Any:
    coordinator = get_session(session_id)
    return action_response(coordinator, await coordinator.send_now())


@app.delete(
    "/api/sessions/{session_id}",
    tags=["Sessions"],
)
async def close_session(session_id: str) -> dict[str, Any]:
    """Tear the session down (navigation away or payment completed)."""
    coordinator = SESSIONS.pop(session_id, None)
    LAST_SEEN.pop(session_id, None)
    if coordinator is None:
        raise HTTPException(status_code=404, detail=f"Session {session_id} not found")
    await coordinator.close()
    return {"success": True, "session_id": session_id}


# =============================================================================
# ERROR HANDLERS
# =============================================================================

@app.exception_handler(OrderEntryError)
async def order_entry_exception_handler(request: Request, exc: OrderEntryError) -> JSONResponse:
    """Store failures outside a session action (table or menu lookups)."""
    logger.error(f"{request.method} {request.url.path} failed: {exc}")

    return JSONResponse(
        status_code=502,
        content=ErrorResponse(error="Order store unavailable", detail=exc.message).model_dump(),
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

