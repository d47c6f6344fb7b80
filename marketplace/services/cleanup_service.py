import asyncio
import logging

from sqlalchemy.orm import Session

from marketplace.config import settings
from marketplace.database import SessionLocal
from marketplace.services.auth_service import token_service
from marketplace.services.otp_service import otp_engine

logger = logging.getLogger(__name__)


def sweep(db: Session) -> dict:
    """Delete expired token ledger rows and OTP codes that can no longer be used."""
    return {
        "tokens": token_service.purge_expired(db),
        "otps": otp_engine.purge_stale(db),
    }


class ExpiredRecordSweeper:
    """Background task that runs ``sweep`` on a fixed interval."""

    def __init__(self, interval_minutes: int, enabled: bool = True):
        self.interval_seconds = max(interval_minutes, 1) * 60
        self.enabled = enabled
        self._task: asyncio.Task | None = None
        self._stop_event = asyncio.Event()

    async def start(self) -> None:
        if not self.enabled:
            logger.info("Expired record cleanup disabled by configuration.")
            return
        if self._task and not self._task.done():
            return
        logger.info("Cleaning up expired records every %s minutes", self.interval_seconds / 60)
        self._stop_event.clear()
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        if not self._task:
            return
        self._stop_event.set()
        await self._task
        self._task = None

    async def _run(self) -> None:
        while not self._stop_event.is_set():
            await asyncio.to_thread(self._sweep_once)
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                continue

    @staticmethod
    def _sweep_once() -> None:
        session = SessionLocal()
        try:
            removed = sweep(session)
            if any(removed.values()):
                logger.info("Removed %s expired tokens and %s stale OTPs", removed["tokens"], removed["otps"])
        except Exception:
            session.rollback()
            logger.exception("Expired record cleanup failed")
        finally:
            session.close()


record_sweeper = ExpiredRecordSweeper(
    interval_minutes=settings.CLEANUP_INTERVAL_MINUTES,
    enabled=settings.CLEANUP_ENABLED,
)
