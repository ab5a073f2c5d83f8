"""
Periodic export of payroll snapshots to an external durable log.
"""

import logging
from typing import Optional

from payroll_sync.config import ExportConfig
from payroll_sync.core.state import StateStore

from .scheduler import ExportScheduler, SnapshotExporter
from .sheets import SheetsExporter, resolve_service_account

logger = logging.getLogger(__name__)


def start_export(config: ExportConfig, store: StateStore) -> Optional[ExportScheduler]:
    """
    Wire up the Sheets export for a running store.

    An invalid cron expression leaves only the startup export (if enabled).

    Returns:
        The scheduler, or None when export is disabled or has no credentials
    """
    exporter = SheetsExporter.from_config(config)
    if exporter is None:
        return None

    scheduler = ExportScheduler(store, exporter, cron=config.cron)
    scheduler.start()

    if config.run_on_startup:
        scheduler.run_on_startup()

    return scheduler


__all__ = [
    "ExportScheduler",
    "SnapshotExporter",
    "SheetsExporter",
    "resolve_service_account",
    "start_export",
]
