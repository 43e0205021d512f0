"""
FastAPI Application Entry Point

DineAI - transactional backbone for the restaurant assistant.
The voice/chat front end calls these endpoints; all business rules live in
the engines under dineai.services.

Endpoints:
    - GET  /api/tools: Tool catalog visible to a role
    - POST /api/tools/execute: Run one tool call
    - POST /api/sessions: Start a conversation session (daily limit enforced)
    - GET  /api/sessions/{id}: Session with its messages
    - POST /api/sessions/{id}/messages: Append a message
    - POST /api/sessions/{id}/tools/execute: Run a tool inside a session
    - POST /api/sessions/{id}/end: Close a session
    - GET  /api/usage: Daily usage against the role's limit
    - GET  /health: System health check
"""

import asyncio
import logging
import sys
from contextlib import asynccontextmanager
from datetime import datetime
from functools import lru_cache
from typing import Any, Optional

import redis.asyncio as aioredis
from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

# Windows-specific event loop policy
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

from dineai.core.config import get_settings, setup_logging
from dineai.core.exceptions import SessionNotFound
from dineai.database import get_db, get_engine, get_session_maker, init_db
from dineai.schemas import (
    EndSessionRequest,
    ExecuteToolRequest,
    HealthResponse,
    MessageRequest,
    SessionToolRequest,
    StartSessionRequest,
    ToolListResponse,
    UsageResponse,
)
from dineai.services.conversations import ConversationQuotaTracker
from dineai.services.permissions import PermissionGateway
from dineai.services.tools import TOOL_CATALOG_VERSION, ToolDispatcher, get_dispatcher

# Initialize configuration and logging
settings = get_settings()
setup_logging()
logger = logging.getLogger(__name__)


# =============================================================================
# DEPENDENCIES
# =============================================================================

@lru_cache()
def get_tracker() -> ConversationQuotaTracker:
    return ConversationQuotaTracker(get_session_maker(), settings)


@lru_cache()
def get_gateway() -> PermissionGateway:
    return PermissionGateway()


# =============================================================================
# APPLICATION LIFECYCLE
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application startup and shutdown events.
    """
    logger.info("=" * 60)
    logger.info(f"Starting {settings.app_name}")
    logger.info(f"   Version: {settings.app_version}")
    logger.info(f"   Environment: {settings.env_mode.value}")
    logger.info(f"   Timezone: {settings.restaurant_timezone}")
    logger.info(f"   Tool catalog: v{TOOL_CATALOG_VERSION}")
    logger.info("=" * 60)

    await init_db()
    logger.info("Database initialized")

    if settings.use_real_services:
        missing = settings.validate_production_config()
        if missing:
            logger.warning(f"Missing production config: {missing}")

    logger.info("Application ready")

    yield

    logger.info("Shutting down...")
    await get_engine().dispose()
    logger.info("Cleanup complete")


# =============================================================================
# APPLICATION INSTANCE
# =============================================================================

app = FastAPI(
    title=settings.app_name,
    description=(
        "Permission-gated tool execution, order lifecycle, table state and "
        "conversation quotas for the DineAI restaurant assistant."
    ),
    version=settings.app_version,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
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
async def health_check(db: AsyncSession = Depends(get_db)) -> HealthResponse:
    """Verify the database and Redis are reachable."""
    db_status = "healthy"
    try:
        await db.execute(text("SELECT 1"))
    except Exception as e:
        db_status = f"unhealthy: {e}"
        logger.error(f"Database health check failed: {e}")

    redis_status = "healthy"
    try:
        client = aioredis.from_url(settings.redis_url, socket_timeout=2)
        try:
            await client.ping()
        finally:
            await client.aclose()
    except Exception as e:
        redis_status = f"unhealthy: {e}"
        logger.error(f"Redis health check failed: {e}")

    overall = "operational" if db_status == redis_status == "healthy" else "degraded"
    return HealthResponse(
        status=overall,
        database=db_status,
        redis=redis_status,
        timestamp=datetime.now(),
    )


# =============================================================================
# TOOL ENDPOINTS
# =============================================================================

@app.get(
    "/api/tools",
    response_model=ToolListResponse,
    tags=["Tools"],
    summary="Tool Catalog For A Role",
)
async def list_tools(
    role: Optional[str] = Query(None),
    dispatcher: ToolDispatcher = Depends(get_dispatcher),
    gateway: PermissionGateway = Depends(get_gateway),
) -> ToolListResponse:
    return ToolListResponse(
        version=TOOL_CATALOG_VERSION,
        role=gateway.permissions_for(role).role,
        tools=dispatcher.tools_for_role(role),
        capabilities=gateway.describe_capabilities(role),
    )


@app.post("/api/tools/execute", tags=["Tools"], summary="Execute Tool")
async def execute_tool(
    request: ExecuteToolRequest,
    dispatcher: ToolDispatcher = Depends(get_dispatcher),
) -> dict[str, Any]:
    """
    Run one tool call.

    Always answers 200: refusals and failures come back as
    {"success": false, "error": ..., "error_code": ...}.
    """
    return await dispatcher.execute(
        request.tool_name,
        request.arguments,
        request.restaurant_id,
        request.user_id,
        request.role,
    )


# =============================================================================
# SESSION ENDPOINTS
# =============================================================================

async def _require_session(tracker: ConversationQuotaTracker, session_id: str) -> dict[str, Any]:
    session = await tracker.get_session(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail=f"Session {session_id} not found")
    return session


@app.post("/api/sessions", status_code=201, tags=["Sessions"], summary="Start Session")
async def start_session(
    request: StartSessionRequest,
    tracker: ConversationQuotaTracker = Depends(get_tracker),
    gateway: PermissionGateway = Depends(get_gateway),
) -> dict[str, Any]:
    """Start a session unless the caller has used up today's messages."""
    limit = await tracker.check_limit(
        request.user_id, request.restaurant_id, gateway.daily_limit(request.role)
    )
    if not limit["allowed"]:
        logger.warning(
            f"Daily limit reached for {request.user_id} "
            f"({limit['used']}/{limit['limit']})"
        )
        raise HTTPException(
            status_code=429,
            detail=f"Daily conversation limit of {limit['limit']} messages reached",
        )

    session = await tracker.start_session(
        request.restaurant_id,
        request.user_id,
        role=request.role,
        session_type=request.session_type,
        response_mode=request.response_mode.value,
    )
    return {"success": True, "session": session, "limit": limit}


@app.get("/api/sessions/{session_id}", tags=["Sessions"])
async def get_session(
    session_id: str,
    tracker: ConversationQuotaTracker = Depends(get_tracker),
) -> dict[str, Any]:
    details = await tracker.get_conversation_details(session_id)
    if details is None:
        raise HTTPException(status_code=404, detail=f"Session {session_id} not found")
    return details


@app.post("/api/sessions/{session_id}/messages", status_code=201, tags=["Sessions"])
async def add_message(
    session_id: str,
    request: MessageRequest,
    tracker: ConversationQuotaTracker = Depends(get_tracker),
) -> dict[str, Any]:
    message = await tracker.record_message(
        session_id,
        request.role.value,
        request.content,
        tool_name=request.tool_name,
        tool_result=request.tool_result,
        metadata=request.metadata,
        audio_url=request.audio_url,
    )
    if message is None:
        raise HTTPException(status_code=404, detail=f"Session {session_id} not found")
    return message


@app.post("/api/sessions/{session_id}/tools/execute", tags=["Sessions"])
async def execute_session_tool(
    session_id: str,
    request: SessionToolRequest,
    tracker: ConversationQuotaTracker = Depends(get_tracker),
    dispatcher: ToolDispatcher = Depends(get_dispatcher),
) -> dict[str, Any]:
    """Run a tool as the session's caller and log it on the session."""
    session = await _require_session(tracker, session_id)
    result = await dispatcher.execute(
        request.tool_name,
        request.arguments,
        session["restaurant_id"],
        session["user_id"],
        session["role"],
    )

    await tracker.record_action(
        session_id,
        request.tool_name,
        params=request.arguments,
        success=bool(result.get("success")),
        result=result,
    )
    await tracker.record_message(
        session_id,
        "tool",
        result.get("message") or result.get("error") or request.tool_name,
        tool_name=request.tool_name,
        tool_result=result,
    )
    return result


@app.post("/api/sessions/{session_id}/end", tags=["Sessions"])
async def end_session(
    session_id: str,
    request: Optional[EndSessionRequest] = None,
    tracker: ConversationQuotaTracker = Depends(get_tracker),
) -> dict[str, Any]:
    try:
        return await tracker.end_session(session_id, request.summary if request else None)
    except SessionNotFound as e:
        raise HTTPException(status_code=404, detail=e.message)


# =============================================================================
# USAGE
# =============================================================================

@app.get("/api/usage", response_model=UsageResponse, tags=["Usage"])
async def get_usage(
    user_id: str = Query(...),
    restaurant_id: str = Query(...),
    role: Optional[str] = Query(None),
    tracker: ConversationQuotaTracker = Depends(get_tracker),
    gateway: PermissionGateway = Depends(get_gateway),
) -> UsageResponse:
    usage = await tracker.daily_usage(user_id, restaurant_id)
    limit = await tracker.check_limit(user_id, restaurant_id, gateway.daily_limit(role))
    return UsageResponse(
        user_id=user_id,
        restaurant_id=restaurant_id,
        role=gateway.permissions_for(role).role,
        usage=usage,
        limit=limit,
    )


# =============================================================================
# ERROR HANDLERS
# =============================================================================

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
