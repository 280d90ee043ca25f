"""
Invitation sweep scheduler.

Runs hourly and flips overdue pending invitations to 'expired' so that
listings and statistics stay current. Redemption never relies on it:
expiry is also checked on every lookup.
"""

import asyncio
import logging
from typing import Optional
from apscheduler.schedulers.asyncio import AsyncIOScheduler  # type: ignore
from apscheduler.triggers.cron import CronTrigger  # type: ignore

from core.constants import INVITATION_SWEEP_INTERVAL_MINUTES
from core.database import get_db_context
from services.invitation_service import InvitationService

logger = logging.getLogger(__name__)

# Global singleton instance
_invitation_cleanup_scheduler: Optional['InvitationCleanupScheduler'] = None


class InvitationCleanupScheduler:
    """
    Scheduler for the expired-invitation sweep.

    Database sessions are created fresh for each run to avoid stale
    session issues.
    """

    def __init__(self):
        self.scheduler = AsyncIOScheduler(timezone="UTC")
        self._is_started = False

    async def start_scheduler(self) -> None:
        """Start the sweep. Called during application startup."""
        if self._is_started:
            logger.warning("Invitation cleanup scheduler is already started")
            return

        self.scheduler.add_job(  # type: ignore
            self._run_sweep,
            CronTrigger(minute=0),  # Top of every hour
            id="invitation_expiry_sweep",
            name="Expire overdue invitations",
            replace_existing=True,
            misfire_grace_time=INVITATION_SWEEP_INTERVAL_MINUTES * 60,
        )

        self.scheduler.start()
        self._is_started = True
        logger.info("Invitation cleanup scheduler started (runs hourly)")

    async def stop_scheduler(self) -> None:
        """Stop the sweep. Called during application shutdown."""
        if self._is_started:
            self.scheduler.shutdown(wait=True)
            self._is_started = False
            logger.info("Invitation cleanup scheduler stopped")

    async def _run_sweep(self) -> None:
        # Blocking database work runs in a worker thread to keep the event loop free
        await asyncio.to_thread(self._execute_sweep)

    def _execute_sweep(self) -> int:
        """Expire overdue invitations in a fresh session. Returns the count."""
        try:
            with get_db_context() as db:
                return InvitationService.expire_stale_invitations(db)
        except Exception as e:
            logger.exception(f"Error during invitation expiry sweep: {e}")
            # Don't re-raise - allow scheduler to continue
            return 0


def get_invitation_cleanup_scheduler() -> InvitationCleanupScheduler:
    """Get the global invitation cleanup scheduler instance."""
    global _invitation_cleanup_scheduler
    if _invitation_cleanup_scheduler is None:
        _invitation_cleanup_scheduler = InvitationCleanupScheduler()
    return _invitation_cleanup_scheduler


async def start_invitation_cleanup_scheduler() -> None:
    scheduler = get_invitation_cleanup_scheduler()
    await scheduler.start_scheduler()


async def stop_invitation_cleanup_scheduler() -> None:
    global _invitation_cleanup_scheduler
    if _invitation_cleanup_scheduler:
        await _invitation_cleanup_scheduler.stop_scheduler()
