"""
Trading Journal - Main API
==========================
Personal trading journal: trade log, portfolio capital and risk limits,
goals, watchlist and preferences for signed-in users.

Includes a global exception handler that records unhandled failures in
the error_logs table.

Author: Trading Journal Team
"""
import asyncio
import logging
import os
import traceback

import asyncpg
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from auth_endpoints import router as auth_router, session_factory_for
from config import DEFAULT_DATABASE_URL, get_database_url, get_log_level, is_production
from db_utils import close_db_pool, health_check, log_error_async, purge_expired_tokens
from journal_endpoints import router as journal_router

logging.basicConfig(
    level=get_log_level(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)

# Initialize FastAPI
app = FastAPI(
    title="Trading Journal API",
    description="Trade log, portfolio risk limits, goals and watchlist",
    version="1.0.0"
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv("CORS_ORIGINS", "*").split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ==================== GLOBAL EXCEPTION HANDLER ====================
# Catches unhandled exceptions and logs them to the error_logs table

@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    error_type = type(exc).__name__
    tb = traceback.format_exc()

    logger.error(f"❌ UNHANDLED EXCEPTION on {request.method} {request.url.path}: {error_type}: {exc}")

    await log_error_async(
        None,
        f"UNHANDLED_{error_type}",
        str(exc),
        {
            "endpoint": str(request.url.path),
            "method": request.method,
            "traceback": tb[:500]
        }
    )

    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "error_type": error_type}
    )


# ==================== END GLOBAL EXCEPTION HANDLER ====================

# Include routers
app.include_router(auth_router, tags=["auth"])
app.include_router(journal_router, tags=["journal"])


@app.get("/")
async def root():
    return {
        "status": "online",
        "service": "Trading Journal API",
        "version": "1.0.0",
        "endpoints": {
            "signup": "/api/auth/signup",
            "signin": "/api/auth/signin",
            "reset_password": "/api/auth/reset-password",
            "trades": "/api/trades",
            "goals": "/api/goals",
            "assets": "/api/assets",
            "portfolio": "/api/portfolio",
            "settings": "/api/settings",
            "dashboard": "/api/dashboard",
            "export": "/api/export",
            "import": "/api/import",
            "trades_csv": "/api/export/trades.csv",
        }
    }


@app.get("/health")
async def health():
    return {"status": "healthy", "database": await health_check()}


@app.on_event("startup")
async def startup_event():
    database_url = get_database_url() or DEFAULT_DATABASE_URL
    if not get_database_url():
        logger.warning(f"⚠️ DATABASE_URL not set - using {DEFAULT_DATABASE_URL}")

    session_factory_for(database_url)

    try:
        await purge_expired_tokens()
    except (OSError, asyncio.TimeoutError, asyncpg.PostgresError) as e:
        logger.warning(f"⚠️ Expired token cleanup skipped: {e}")

    logger.info("=" * 60)
    logger.info("🚀 TRADING JOURNAL API STARTED")
    logger.info(f"✅ Environment: {'production' if is_production() else 'development'}")
    logger.info("✅ Database initialized")
    logger.info("✅ Auth and journal routes loaded")
    logger.info("=" * 60)


@app.on_event("shutdown")
async def shutdown_event():
    await close_db_pool()


# Run locally for testing
if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run("main:app", host="0.0.0.0", port=port, reload=not is_production())
