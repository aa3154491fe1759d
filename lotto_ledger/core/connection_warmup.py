"""
Connection warm-up before background jobs.

Scheduled jobs often start on a cold pool; a failing SELECT 1 here means the
whole run is skipped and the next scheduled tick retries.
"""
import asyncio
import logging
from typing import Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine

from lotto_ledger.config import settings

logger = logging.getLogger(__name__)


async def warmup_connection(
    engine: Optional[AsyncEngine] = None,
    max_attempts: Optional[int] = None,
    base_delay: Optional[float] = None,
    context: str = "warmup",
) -> bool:
    """
    Run SELECT 1 with linear backoff until it succeeds.

    Args:
        engine: Engine to check (default: the application engine)
        max_attempts: Attempts before giving up
        base_delay: Seconds multiplied by the attempt number between tries
        context: Label for logging

    Returns:
        True if the connection was established, False otherwise
    """
    if engine is None:
        from lotto_ledger import database
        engine = database.engine
    max_attempts = max_attempts or settings.WARMUP_MAX_ATTEMPTS
    base_delay = settings.WARMUP_BASE_DELAY_SECONDS if base_delay is None else base_delay

    for attempt in range(1, max_attempts + 1):
        try:
            async with engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            logger.info(f"[{context}] Connection ready (attempt {attempt}/{max_attempts})")
            return True
        except Exception as e:
            message = str(e)
            if len(message) > 200:
                message = message[:200] + "..."
            logger.warning(f"[{context}] Warm-up attempt {attempt}/{max_attempts} failed: {message}")
            if attempt < max_attempts:
                await asyncio.sleep(base_delay * attempt)

    logger.error(f"[{context}] Could not establish database connection after {max_attempts} attempts")
    return False
