"""
Export Scheduler - periodic snapshot export with APScheduler.

Provides:
- Crontab-style schedule (BACKUP_CRON, hourly by default)
- Optional one-off export at startup
- Failure isolation: an export problem never reaches the live state
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional, Protocol

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from payroll_sync.core.models import PayrollState
from payroll_sync.core.state import StateStore

logger = logging.getLogger(__name__)

DEFAULT_CRON = "0 * * * *"
JOB_ID = "payroll_snapshot_export"


class SnapshotExporter(Protocol):
    async def export(self, state: PayrollState, reason: str, storage: str) -> bool:
        ...


class ExportScheduler:
    """
    Ships StateStore snapshots to an exporter on a schedule.

    The scheduler only ever reads snapshots; it never mutates the store.
    """

    def __init__(
        self,
        store: StateStore,
        exporter: SnapshotExporter,
        cron: str = DEFAULT_CRON,
        timezone_name: str = "UTC",
    ):
        self.store = store
        self.exporter = exporter
        self.cron = cron
        self.timezone_name = timezone_name
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._startup_task: Optional[asyncio.Task] = None
        self.last_run: Optional[datetime] = None
        self.last_result: Optional[bool] = None

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def start(self) -> bool:
        """
        Start the cron schedule. Must be called from inside the event loop.

        Returns:
            False if the cron expression is invalid (nothing is scheduled)
        """
        try:
            trigger = CronTrigger.from_crontab(self.cron, timezone=self.timezone_name)
        except ValueError as e:
            logger.error(f'Invalid BACKUP_CRON expression "{self.cron}": {e}')
            return False

        self._scheduler = AsyncIOScheduler(timezone=self.timezone_name)
        self._scheduler.add_job(
            self.run_export,
            trigger,
            args=["cron"],
            id=JOB_ID,
            replace_existing=True,
            coalesce=True,
            max_instances=1,
        )
        self._scheduler.start()
        logger.info(f'Backup cron started with "{self.cron}".')
        return True

    def run_on_startup(self) -> asyncio.Task:
        """Kick off one export in the background, tagged "startup"."""
        self._startup_task = asyncio.create_task(self.run_export("startup"))
        return self._startup_task

    async def run_export(self, reason: str) -> bool:
        """Export the current snapshot. Never raises."""
        self.last_run = datetime.now(timezone.utc)
        try:
            result = await self.exporter.export(
                self.store.current_snapshot(), reason, self.store.backend_name
            )
        except Exception as e:
            logger.error(f"Export ({reason}) raised: {e}", exc_info=True)
            result = False

        self.last_result = result
        return result

    def next_run_time(self) -> Optional[datetime]:
        if not self._scheduler:
            return None
        job = self._scheduler.get_job(JOB_ID)
        return job.next_run_time if job else None

    async def shutdown(self) -> None:
        if self._startup_task and not self._startup_task.done():
            self._startup_task.cancel()
            try:
                await self._startup_task
            except asyncio.CancelledError:
                pass

        if self._scheduler and self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("Backup cron stopped")
        self._scheduler = None
