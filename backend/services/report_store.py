"""Report history storage.

Reports are kept in a local JSON file, keyed by iteration id. A report is
written once when generation succeeds and never changed afterwards.
"""

import json
import logging
import os
import threading
from datetime import datetime, timezone
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 10


def utc_timestamp() -> str:
    """Current time as an ISO 8601 UTC string with millisecond precision."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class ReportStore:
    """Append-only history of generated reports."""

    def __init__(self, path: str):
        self.path = path
        self._lock = threading.Lock()

    def _ensure_dir(self):
        """Ensure the directory holding the history file exists."""
        directory = os.path.dirname(self.path)
        if directory and not os.path.exists(directory):
            os.makedirs(directory)

    def _load(self) -> dict:
        """Load all reports from file."""
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, "r") as f:
                return json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            logger.warning(f"Failed to read report history {self.path}: {e}")
            return {}

    def _save(self, reports: dict):
        """Save all reports to file."""
        self._ensure_dir()
        tmp_path = f"{self.path}.tmp"
        with open(tmp_path, "w") as f:
            json.dump(reports, f, indent=2)
        os.replace(tmp_path, self.path)

    def add_report(self, iteration_id, report_content: str, metrics: dict,
                   team_metrics: list, iteration_name: Optional[str] = None,
                   generated_at: Optional[str] = None) -> dict:
        """Store a newly generated report and return the stored record."""
        record = {
            "iteration_id": iteration_id,
            "iteration_name": iteration_name,
            "report_content": report_content,
            "metrics": metrics,
            "team_metrics": team_metrics,
            "generated_at": generated_at or utc_timestamp(),
        }

        with self._lock:
            reports = self._load()
            reports.setdefault(str(iteration_id), []).append(record)
            self._save(reports)

        logger.info(f"Stored report for iteration {iteration_id} ({record['generated_at']})")
        return record

    def _reports_for(self, iteration_id) -> list:
        reports = self._load().get(str(iteration_id), [])
        # Newest first; reports stored later win ties on generated_at
        ordered = sorted(
            enumerate(reports),
            key=lambda item: (item[1].get("generated_at") or "", item[0]),
            reverse=True
        )
        return [report for _, report in ordered]

    def get_history(self, iteration_id, limit: int = DEFAULT_HISTORY_LIMIT) -> dict:
        """Return up to ``limit`` reports for an iteration, newest first.

        Returns:
            {iteration_id, reports, total_count}
        """
        if limit < 1:
            raise ValueError("limit must be at least 1")

        reports = self._reports_for(iteration_id)
        return {
            "iteration_id": iteration_id,
            "reports": reports[:limit],
            "total_count": len(reports),
        }

    def get_latest(self, iteration_id) -> Optional[dict]:
        reports = self._reports_for(iteration_id)
        return reports[0] if reports else None
