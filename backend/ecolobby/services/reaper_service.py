import asyncio
from datetime import datetime, timedelta
import logging

from ecolobby.core.config import get_settings
from ecolobby.services.session_registry import Session, SessionRegistry

logger = logging.getLogger(__name__)


class ReaperService:
    """Deletes sessions that stayed empty past the grace period."""

    def __init__(
        self,
        registry: SessionRegistry,
        *,
        grace_seconds: int | None = None,
        interval_seconds: float | None = None,
        measure_from: str | None = None,
    ) -> None:
        settings = get_settings()
        self.registry = registry
        self.grace = timedelta(
            seconds=grace_seconds if grace_seconds is not None else settings.empty_session_grace_seconds
        )
        self.interval_seconds = (
            interval_seconds if interval_seconds is not None else settings.reaper_interval_seconds
        )
        self.measure_from = measure_from or settings.reaper_measure_from

    def _empty_reference(self, session: Session) -> datetime:
        if self.measure_from == "created_at" or session.empty_since is None:
            return session.created_at
        return session.empty_since

    def is_expired(self, session: Session, now: datetime) -> bool:
        if not session.is_empty:
            return False
        return now - self._empty_reference(session) > self.grace

    def sweep(self, now: datetime | None = None) -> list[str]:
        now = now or self.registry.clock()
        expired_ids = [session.id for session in self.registry.sessions() if self.is_expired(session, now)]
        for session_id in expired_ids:
            self.registry.delete(session_id)
        if expired_ids:
            logger.info("reaped %d empty sessions", len(expired_ids))
        return expired_ids

    async def run_forever(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                self.sweep()
            except Exception:
                logger.exception("session sweep failed")
