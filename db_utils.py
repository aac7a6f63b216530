"""
Database Utilities with Retry Logic
====================================

Pooled asyncpg access used outside the ORM request path:
- Automatic retry on connection failures with exponential backoff
- Lazy pool creation and health checks
- Best-effort writes to the error_logs table
- Email notification via Resend when the database stays unreachable

Only PostgreSQL URLs get a pool. With any other DATABASE_URL (SQLite for
local runs and tests) error logs go to the application log only.

Usage:
    from db_utils import db_execute, log_error_async

    await db_execute("DELETE FROM auth_sessions WHERE expires_at < $1", cutoff)
    await log_error_async(user_id, "ADD_TRADE_ERROR", str(e), {"endpoint": "/api/trades"})
"""

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

import aiohttp
import asyncpg

from config import (
    ERROR_CONTEXT_MAX_LENGTH, ERROR_MESSAGE_MAX_LENGTH,
    get_admin_email, get_database_url, is_postgres_url, utc_now,
)
from email_service import RESEND_API_URL, get_email_settings

logger = logging.getLogger(__name__)

# Configuration
MAX_RETRIES = 3
INITIAL_BACKOFF = 1.0  # seconds
MAX_BACKOFF = 10.0  # seconds
POOL_MIN_SIZE = 1
POOL_MAX_SIZE = 5

# Global pool reference
_db_pool: Optional[asyncpg.Pool] = None
_pool_lock = asyncio.Lock()


async def notify_db_failure(error_type: str, error_message: str, context: Optional[dict] = None):
    """
    Send email notification via Resend for database failures.

    Args:
        error_type: Type of failure (e.g., "POOL_CREATION", "QUERY_TIMEOUT")
        error_message: Error details
        context: Additional context dict
    """
    settings = get_email_settings()
    if not settings["api_key"]:
        logger.warning("⚠️ RESEND_API_KEY not set - DB failure notification skipped")
        return

    now = utc_now()
    rows = [("Error Type", error_type), ("Timestamp", f"{now:%Y-%m-%d %H:%M:%S} UTC"),
            ("Error", str(error_message)[:500])]
    for key, value in (context or {}).items():
        rows.append((key.replace('_', ' ').title(), str(value)[:500]))

    html_rows = "".join(
        f'<tr><td style="padding: 8px; border: 1px solid #ddd; font-weight: bold;">{label}</td>'
        f'<td style="padding: 8px; border: 1px solid #ddd;">{value}</td></tr>'
        for label, value in rows
    )
    html_body = f"""
    <html>
    <body style="font-family: Arial, sans-serif; padding: 20px;">
        <h2 style="color: #e74c3c;">🚨 DATABASE CONNECTION FAILURE</h2>
        <table style="border-collapse: collapse; width: 100%; max-width: 600px;">{html_rows}</table>
    </body>
    </html>
    """

    try:
        async with aiohttp.ClientSession() as session:
            async with session.post(
                RESEND_API_URL,
                headers={
                    "Authorization": f"Bearer {settings['api_key']}",
                    "Content-Type": "application/json"
                },
                json={
                    "from": settings["from_email"],
                    "to": [get_admin_email()],
                    "subject": f"🚨 CRITICAL: DATABASE {error_type}",
                    "html": html_body
                },
                timeout=aiohttp.ClientTimeout(total=10)
            ) as resp:
                if resp.status in (200, 201):
                    logger.info(f"✅ Email notification sent: DB {error_type}")
                else:
                    error_text = await resp.text()
                    logger.warning(f"⚠️ Resend API returned {resp.status}: {error_text}")
    except aiohttp.ClientError as e:
        logger.error(f"❌ Failed to send email notification: {e}")


async def create_pool_with_retry() -> asyncpg.Pool:
    """
    Create database connection pool with retry logic.

    Uses exponential backoff on failures.
    """
    database_url = get_database_url()
    if not is_postgres_url(database_url):
        raise RuntimeError("PostgreSQL DATABASE_URL required for pooled access")

    backoff = INITIAL_BACKOFF
    last_error = None

    for attempt in range(1, MAX_RETRIES + 1):
        try:
            logger.info(f"🔌 Creating database pool (attempt {attempt}/{MAX_RETRIES})...")

            pool = await asyncpg.create_pool(
                database_url,
                min_size=POOL_MIN_SIZE,
                max_size=POOL_MAX_SIZE,
                command_timeout=30,
            )

            async with pool.acquire() as conn:
                await conn.execute("SELECT 1")

            logger.info(f"✅ Database pool created successfully (size: {POOL_MIN_SIZE}-{POOL_MAX_SIZE})")
            return pool

        except (OSError, asyncio.TimeoutError, asyncpg.PostgresError) as e:
            last_error = e
            logger.warning(f"⚠️ Database pool creation failed (attempt {attempt}/{MAX_RETRIES}): {e}")

            if attempt < MAX_RETRIES:
                logger.info(f"⏳ Retrying in {backoff:.1f}s...")
                await asyncio.sleep(backoff)
                backoff = min(backoff * 2, MAX_BACKOFF)

    logger.error(f"❌ Failed to create database pool after {MAX_RETRIES} attempts")

    await notify_db_failure(
        error_type="POOL_CREATION_FAILED",
        error_message=str(last_error),
        context={"attempts": MAX_RETRIES}
    )

    raise last_error


async def get_db_pool() -> asyncpg.Pool:
    """
    Get or create database connection pool.

    Lock prevents concurrent requests from creating two pools.
    """
    global _db_pool

    async with _pool_lock:
        if _db_pool is None:
            _db_pool = await create_pool_with_retry()
        return _db_pool


async def close_db_pool():
    """Close the database pool gracefully."""
    global _db_pool
    if _db_pool is not None:
        logger.info("🔌 Closing database pool...")
        await _db_pool.close()
        _db_pool = None
        logger.info("✅ Database pool closed")


async def _run_with_retry(op_name: str, query: str,
                          call: Callable[[asyncpg.Connection], Awaitable[Any]],
                          timeout: float) -> Any:
    """
    Run call(conn) with retries on timeouts and connection errors.

    Non-retryable errors (syntax, constraint violations, ...) propagate
    immediately.
    """
    pool = await get_db_pool()
    backoff = INITIAL_BACKOFF
    last_error = None

    for attempt in range(1, MAX_RETRIES + 1):
        try:
            async with pool.acquire(timeout=10) as conn:
                return await asyncio.wait_for(call(conn), timeout=timeout)

        except asyncio.TimeoutError:
            last_error = TimeoutError(f"Query timed out after {timeout}s")
            logger.warning(f"⚠️ Query timeout (attempt {attempt}/{MAX_RETRIES})")

        except (asyncpg.PostgresConnectionError, ConnectionError) as e:
            last_error = e
            logger.warning(f"⚠️ Connection error (attempt {attempt}/{MAX_RETRIES}): {e}")

        if attempt < MAX_RETRIES:
            await asyncio.sleep(backoff)
            backoff = min(backoff * 2, MAX_BACKOFF)

    logger.error(f"❌ Query failed after {MAX_RETRIES} attempts: {query[:100]}...")

    await notify_db_failure(
        error_type=f"QUERY_{op_name}_FAILED",
        error_message=str(last_error),
        context={"query": query[:200], "attempts": MAX_RETRIES}
    )

    raise last_error


async def db_execute(query: str, *args, timeout: float = 30.0) -> str:
    """
    Execute a query with automatic retry.

    Returns:
        Status string from execute
    """
    return await _run_with_retry("EXECUTE", query, lambda conn: conn.execute(query, *args), timeout)


async def log_error_async(user_ref: Optional[str], error_type: str, error_message: str,
                          context: Optional[Dict] = None):
    """Log error to error_logs table for later inspection"""
    logger.error(f"❌ {error_type}: {error_message}")

    if not is_postgres_url(get_database_url()):
        return

    context_json = json.dumps(context, default=str) if context else None
    if context_json and len(context_json) > ERROR_CONTEXT_MAX_LENGTH:
        context_json = json.dumps({"truncated": context_json[:ERROR_CONTEXT_MAX_LENGTH]})

    try:
        await db_execute(
            """INSERT INTO error_logs (timestamp, user_ref, error_type, error_message, context)
               VALUES ($1, $2, $3, $4, $5::json)""",
            utc_now(),
            user_ref,
            error_type,
            error_message[:ERROR_MESSAGE_MAX_LENGTH] if error_message else None,
            context_json,
        )
    except Exception as e:
        logger.error(f"Failed to log error to DB: {e}")


async def health_check() -> dict:
    """
    Check database health.

    Returns:
        Dict with health status
    """
    if not is_postgres_url(get_database_url()):
        return {"status": "skipped", "reason": "pooled checks need PostgreSQL"}

    try:
        pool = await get_db_pool()

        async with pool.acquire(timeout=5) as conn:
            await conn.fetchval("SELECT 1")

        return {
            "status": "healthy",
            "pool_size": pool.get_size(),
            "pool_free": pool.get_idle_size(),
            "pool_used": pool.get_size() - pool.get_idle_size(),
        }

    except Exception as e:
        return {
            "status": "unhealthy",
            "error": str(e)
        }


async def purge_expired_tokens():
    """Delete expired sign-in sessions and reset tokens (PostgreSQL only)."""
    if not is_postgres_url(get_database_url()):
        return

    now = utc_now()
    for table in ("auth_sessions", "password_reset_tokens"):
        status = await db_execute(f"DELETE FROM {table} WHERE expires_at < $1", now)
        logger.info(f"🧹 {table}: {status}")
