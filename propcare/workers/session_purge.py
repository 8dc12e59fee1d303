import asyncio
import logging
from collections.abc import Callable
from datetime import datetime

from sqlalchemy.orm import Session

from propcare.core.config import get_settings
from propcare.core.database import SessionLocal, utcnow
from propcare.services import session_service

logger = logging.getLogger(__name__)


def run_purge_tick(
    *,
    session_factory: Callable[[], Session] = SessionLocal,
    now: datetime | None = None,
) -> int:
    """
    Run a single purge tick synchronously.

    Returns the number of expired sessions removed.
    """
    session = session_factory()
    try:
        return session_service.purge_expired_sessions(session, now=now or utcnow())
    finally:
        session.close()


async def session_purge_loop() -> None:
    interval = get_settings().session_purge_interval_seconds

    while True:
        try:
            purged = await asyncio.to_thread(run_purge_tick)
            if purged:
                logger.info("Expired sessions purged: %s", purged)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Session purge tick failed")

        await asyncio.sleep(interval)
