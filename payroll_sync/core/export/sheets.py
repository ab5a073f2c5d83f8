"""
Google Sheets export of payroll snapshots.

Each export appends one row to the configured tab:

    [timestamp, reason, active storage, state JSON]
"""

import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from google.auth.exceptions import GoogleAuthError
from google.oauth2 import service_account
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from payroll_sync.config import ExportConfig
from payroll_sync.core.models import PayrollState

logger = logging.getLogger(__name__)

SHEETS_SCOPES = ["https://www.googleapis.com/auth/spreadsheets"]


def resolve_service_account(config: ExportConfig) -> Optional[Dict[str, Any]]:
    """
    Build service account info from the environment-provided credentials.

    GOOGLE_SERVICE_ACCOUNT_JSON wins; otherwise an email plus private key
    pair is used, with literal "\\n" sequences in the key turned into
    newlines (the usual way keys survive single-line env vars).

    Returns:
        Service account info dict, or None if no usable credentials are set
    """
    if config.service_account_json:
        try:
            info = json.loads(config.service_account_json)
        except ValueError as e:
            logger.error(f"GOOGLE_SERVICE_ACCOUNT_JSON is not valid JSON: {e}")
            return None
        if not isinstance(info, dict):
            logger.error("GOOGLE_SERVICE_ACCOUNT_JSON must be a JSON object")
            return None
        return info

    if config.service_account_email and config.private_key:
        return {
            "client_email": config.service_account_email,
            "private_key": config.private_key.replace("\\n", "\n"),
        }

    return None


class SheetsExporter:
    """Appends snapshots to a spreadsheet tab through the Sheets v4 API."""

    def __init__(self, spreadsheet_id: str, tab: str, service: Any):
        self.spreadsheet_id = spreadsheet_id
        self.tab = tab
        self._service = service

        # Stats
        self.exports_written = 0
        self.exports_failed = 0

    @classmethod
    def from_config(cls, config: ExportConfig) -> Optional["SheetsExporter"]:
        """Create an exporter, or None when export is not configured."""
        if not config.enabled:
            return None

        info = resolve_service_account(config)
        if not info:
            logger.warning("Sheets backup disabled: missing service account credentials.")
            return None

        if "token_uri" not in info:
            info = {**info, "token_uri": "https://oauth2.googleapis.com/token"}

        try:
            credentials = service_account.Credentials.from_service_account_info(
                info, scopes=SHEETS_SCOPES
            )
            service = build("sheets", "v4", credentials=credentials, cache_discovery=False)
        except (ValueError, KeyError, GoogleAuthError) as e:
            logger.error(f"Sheets backup disabled: invalid service account credentials ({e})")
            return None

        logger.info("Google Sheets backup enabled.")
        return cls(config.spreadsheet_id, config.tab, service)

    @property
    def range(self) -> str:
        return f"{self.tab}!A:D"

    def build_row(self, state: PayrollState, reason: str, storage: str) -> List[str]:
        return [
            datetime.now(timezone.utc).isoformat(),
            reason,
            storage,
            json.dumps(state, separators=(",", ":"), ensure_ascii=False),
        ]

    async def export(self, state: PayrollState, reason: str, storage: str) -> bool:
        """
        Append one snapshot row.

        Failures are logged and reported through the return value only.

        Returns:
            True if the row was written
        """
        row = self.build_row(state, reason, storage)
        try:
            await asyncio.to_thread(self._append_row, row)
        except (HttpError, GoogleAuthError, OSError) as e:
            self.exports_failed += 1
            logger.error(f"Sheets backup failed: {e}")
            return False

        self.exports_written += 1
        logger.info(f"Sheets backup written ({reason}).")
        return True

    def _append_row(self, row: List[str]) -> None:
        self._service.spreadsheets().values().append(
            spreadsheetId=self.spreadsheet_id,
            range=self.range,
            valueInputOption="RAW",
            body={"values": [row]},
        ).execute()
