"""FastAPI application entry point."""
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from quickbrush.core.config import get_settings
from quickbrush.core.logging import setup_logging
from quickbrush.services.pipeline import build_service
from quickbrush.services.resolver import (
    can_use_byok_advanced,
    can_use_server_generation,
    resolve,
)

# Setup logging
logger = setup_logging("main")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Initialize services at startup, close the HTTP pool at shutdown."""
    settings = get_settings()
    async with httpx.AsyncClient(timeout=settings.http_timeout) as http_client:
        service, broker_client = build_service(settings, http_client)
        app.state.quickbrush_service = service
        app.state.broker_client = broker_client
        logger.info(
            "Services initialized successfully",
            extra={"strategy": resolve(settings.account_state()).value},
        )
        yield
        # Shutdown cleanup
        del app.state.quickbrush_service
        del app.state.broker_client


# Create FastAPI app
app = FastAPI(
    title="Quickbrush",
    description="AI image generation for tabletop hosts via Wizzlethorpe Labs or BYOK",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS configuration
settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.frontend_origin],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routers
from quickbrush.api.generation import router as generation_router  # noqa: E402

app.include_router(generation_router)


@app.get("/health")
async def health_check(request: Request) -> dict:
    """Health check endpoint.

    Reports which clients are configured, the strategy the current account
    snapshot resolves to and the tier features it unlocks. Always returns
    HTTP 200.
    """
    svc = getattr(request.app.state, "quickbrush_service", None)
    pipeline = svc.pipeline if svc is not None else None
    account = get_settings().account_state()

    logger.info("Health check requested")
    return {
        "status": "ok",
        "version": app.version,
        "services": {
            "direct": "ok" if pipeline is not None and pipeline.direct_client else "unavailable",
            "broker": "ok" if pipeline is not None and pipeline.broker_client else "unavailable",
        },
        "strategy": resolve(account).value,
        "account": {
            "linked": account.linked,
            "server_generation": can_use_server_generation(account),
            "byok_advanced": can_use_byok_advanced(account),
        },
    }
