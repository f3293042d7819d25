"""
OnwardFare - Backend Main Application
FastAPI entry point

Endpoints:
    /               - Service banner
    /health         - Health check
    /test-provider  - Duffel connectivity probe
    /quote          - Cheapest eligible onward flight
    /hold           - No-payment hold on an offer
    /metrics        - Prometheus metrics
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from onwardfare.api.v1.flight_routes import router as flight_router
from onwardfare.config import get_settings
from onwardfare.core.metrics import setup_metrics
from onwardfare.services.integration.duffel.client import DuffelClient

# A bad environment fails here, before the app is built
settings = get_settings()
settings.policy()

# ═══════════════════════════════════════════════════════════════════
# LOGGING
# ═══════════════════════════════════════════════════════════════════

logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("OnwardFare-Backend")


# ═══════════════════════════════════════════════════════════════════
# LIFESPAN (Startup & Shutdown)
# ═══════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown events"""

    # ─────────── STARTUP ───────────
    logger.info("🚀 Starting OnwardFare Backend...")

    app.state.duffel = DuffelClient.from_settings(settings)
    if not app.state.duffel.configured:
        logger.warning("⚠️ DUFFEL_API_KEY missing - quote and hold will answer 500")

    logger.info(
        f"✅ OnwardFare Backend started | pool={','.join(settings.destination_pool)} | "
        f"fanout={settings.search_fanout_limit}"
    )

    yield

    # ─────────── SHUTDOWN ───────────
    logger.info("🛑 Shutting down OnwardFare Backend...")
    await app.state.duffel.aclose()
    logger.info("👋 OnwardFare Backend stopped")


# ═══════════════════════════════════════════════════════════════════
# FASTAPI APP
# ═══════════════════════════════════════════════════════════════════

app = FastAPI(
    title="OnwardFare",
    description="Cheapest onward flight quotes and no-payment holds over Duffel",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

setup_metrics(app)

# ═══════════════════════════════════════════════════════════════════
# MIDDLEWARE
# ═══════════════════════════════════════════════════════════════════

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ═══════════════════════════════════════════════════════════════════
# ROUTERS
# ═══════════════════════════════════════════════════════════════════

app.include_router(flight_router)


# ═══════════════════════════════════════════════════════════════════
# ROOT ENDPOINTS
# ═══════════════════════════════════════════════════════════════════

@app.get("/")
async def root():
    return {"status": "OnwardFare backend running"}


@app.get("/health")
async def health_check():
    return {"ok": True}


# ═══════════════════════════════════════════════════════════════════
# ERROR HANDLERS
# ═══════════════════════════════════════════════════════════════════

@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler"""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "detail": str(exc) if app.debug else "An unexpected error occurred"
        }
    )


# ═══════════════════════════════════════════════════════════════════
# RUN (for development)
# ═══════════════════════════════════════════════════════════════════

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "onwardfare.main:app",
        host="0.0.0.0",
        port=settings.port,
        reload=True,
        log_level="info"
    )
