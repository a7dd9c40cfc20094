"""FastAPI application for the SalesBot API.

Provides the main application instance with routers, middleware and
exception handlers configured. The lifespan builds the entity store and
the services around it once per process; nothing is persisted.

Run with:
    uvicorn salesbot.api.main:app
"""

import logging
import sys
import time as _time
from contextlib import asynccontextmanager
from datetime import UTC, datetime

from fastapi import Depends, FastAPI, Request

# Configure logging to stdout for uvicorn to capture
logging.basicConfig(
    level=logging.INFO,
    format="%(levelname)s:%(name)s:%(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
# Ensure our application loggers are captured
logging.getLogger("salesbot").setLevel(logging.INFO)
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from salesbot.api.dependencies import (
    get_assistant,
    get_broker,
    get_shopify_client,
    get_store,
)
from salesbot.api.routes import (
    analytics,
    conversations,
    events,
    inbound,
    orders,
    products,
    webhooks,
)
from salesbot.config import load_config, parse_allowed_origins
from salesbot.errors.domain import DomainError
from salesbot.services.assistant import ChatAssistant
from salesbot.services.live_updates import LiveUpdateBroker
from salesbot.services.shopify_client import ShopifyClient
from salesbot.services.webhook_dispatcher import WebhookDispatcher
from salesbot.store.memory import EntityStore
from salesbot.utils.redaction import sanitize_error_message

logger = logging.getLogger(__name__)

# Module-level state for the health endpoint
_startup_time: float = 0.0


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Async lifespan: build services on startup, let deliveries settle on shutdown."""
    global _startup_time

    # --- Startup ---
    _startup_time = _time.time()
    config = load_config()
    store = EntityStore()

    app.state.config = config
    app.state.store = store
    app.state.dispatcher = WebhookDispatcher(
        store, timeout=config.webhook_timeout, user_agent=config.webhook_user_agent
    )
    app.state.shopify = ShopifyClient(
        config.shopify_shop_url, config.shopify_access_token, timeout=config.webhook_timeout
    )
    app.state.assistant = ChatAssistant(
        model=config.anthropic_model, history_window=config.history_window
    )
    app.state.broker = LiveUpdateBroker()
    logger.info(
        "SalesBot started (model=%s, webhook timeout=%gs)",
        config.anthropic_model, config.webhook_timeout,
    )

    yield

    # --- Shutdown ---
    await app.state.dispatcher.drain()
    logger.info("SalesBot stopped")


app = FastAPI(
    title="SalesBot API",
    description="AI sales chat with product sync and outbound webhooks",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS allowlist is env-driven. If unset, CORS is disabled (same-origin only).
allowed_origins = parse_allowed_origins()
if allowed_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "X-Webhook-Signature", "X-Webhook-Secret"],
    )


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    """Handle DomainError exceptions with consistent format.

    Args:
        request: The incoming request.
        exc: The DomainError exception.

    Returns:
        JSONResponse with the error's status code and machine-readable code.
    """
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"error_code": exc.code, "detail": sanitize_error_message(exc.message)},
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Report request-body validation failures as 400 in the domain error shape."""
    messages = [
        f"{'.'.join(str(p) for p in err.get('loc', ()) if p != 'body')}: {err.get('msg')}"
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={"error_code": "validation_error", "detail": "; ".join(messages)},
    )


# Include routers
app.include_router(conversations.router, prefix="/api")
app.include_router(products.router, prefix="/api")
app.include_router(orders.router, prefix="/api")
app.include_router(webhooks.router, prefix="/api")
app.include_router(analytics.router, prefix="/api")
app.include_router(inbound.router, prefix="/api")
app.include_router(events.router, prefix="/api")


@app.get("/api/health")
async def health_check(
    store: EntityStore = Depends(get_store),
    shopify: ShopifyClient = Depends(get_shopify_client),
    assistant: ChatAssistant = Depends(get_assistant),
    broker: LiveUpdateBroker = Depends(get_broker),
) -> dict:
    """Health check endpoint with service status.

    Shopify is reported reachable only when it is configured and answers
    a live ``shop.json`` request.

    Returns:
        Status, timestamp, uptime, collaborator status and the per-service
        API call counters.
    """
    uptime = int(_time.time() - _startup_time) if _startup_time else 0
    shopify_ok = await shopify.test_connection() if shopify.is_configured else False
    return {
        "status": "healthy",
        "timestamp": datetime.now(UTC).isoformat(),
        "uptime_seconds": uptime,
        "services": {
            "shopify": shopify_ok,
            "ai_model": assistant.model,
            "webhook_subscriptions": len(store.list_active_subscriptions()),
            "live_listeners": broker.listener_count,
        },
        "api_metrics": store.api_metrics(),
    }
