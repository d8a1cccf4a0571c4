"""
Verdict cache - stores statement reports keyed by statement and trace fingerprints.

Verification is deterministic, so a report computed for a statement over a
trace view can be reused for any view with the same content.
"""

import json
import logging
import shutil
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..verdicts import StatementReport
from .hasher import compute_statement_hash, compute_trace_hash

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class VerdictCache:
    """
    Manages cached verdicts: storing, retrieving and invalidating reports.

    Layout:
        <cache_dir>/index.json           entries and statistics
        <cache_dir>/reports/<key>.json   one serialized StatementReport per entry
    """

    SCHEMA_VERSION = "1.0.0"

    def __init__(self, cache_dir: str = ".txspec_cache"):
        """
        Initialize the verdict cache.

        Args:
            cache_dir: Root directory for cached reports (default: ".txspec_cache")
        """
        self.cache_dir = Path(cache_dir)
        self.index_path = self.cache_dir / "index.json"
        self.reports_dir = self.cache_dir / "reports"

        self.reports_dir.mkdir(parents=True, exist_ok=True)
        self.index = self._load_index()
        # Statements verified in parallel share one cache
        self._lock = threading.RLock()

    def _load_index(self) -> Dict[str, Any]:
        """Load the index from index.json."""
        if self.index_path.exists():
            with open(self.index_path, 'r') as f:
                return json.load(f)
        return {
            "schema_version": self.SCHEMA_VERSION,
            "created_at": _now(),
            "last_updated": _now(),
            "entries": {},
            "stats": self._empty_stats()
        }

    @staticmethod
    def _empty_stats() -> Dict[str, Any]:
        return {
            "total_entries": 0,
            "cache_hits": 0,
            "cache_misses": 0
        }

    def _save_index(self) -> None:
        self.index["last_updated"] = _now()
        with open(self.index_path, 'w') as f:
            json.dump(self.index, f, indent=2)

    @staticmethod
    def cache_key(statement, view, variant: str = "") -> str:
        """Key combining statement hash, trace hash and engine settings"""
        return f"{compute_statement_hash(statement)[:32]}-{compute_trace_hash(view)[:24]}-{variant}".replace(":", "_")

    def lookup(self, statement, view, variant: str = "") -> Optional[StatementReport]:
        """
        Look up a cached report.

        Returns:
            The cached StatementReport, or None on a miss
        """
        key = self.cache_key(statement, view, variant)
        with self._lock:
            return self._lookup(key)

    def _lookup(self, key: str) -> Optional[StatementReport]:
        entry = self.index["entries"].get(key)
        report_path = self.reports_dir / f"{key}.json"

        if entry is None or not report_path.exists():
            if entry is not None:
                # Entry exists but the report is missing - clean up
                del self.index["entries"][key]
                self.index["stats"]["total_entries"] -= 1
            self.index["stats"]["cache_misses"] += 1
            self._save_index()
            return None

        with open(report_path, 'r') as f:
            report = StatementReport.from_dict(json.load(f))

        entry["last_accessed"] = _now()
        entry["access_count"] = entry.get("access_count", 0) + 1
        self.index["stats"]["cache_hits"] += 1
        self._save_index()
        return report

    def store(self, statement, view, report: StatementReport, variant: str = "") -> str:
        """
        Store a report after verification.

        Returns:
            Cache key of the stored entry
        """
        key = self.cache_key(statement, view, variant)
        with self._lock:
            return self._store(key, report)

    def _store(self, key: str, report: StatementReport) -> str:
        report_path = self.reports_dir / f"{key}.json"
        with open(report_path, 'w') as f:
            json.dump(report.to_dict(), f, indent=2)

        is_new_entry = key not in self.index["entries"]
        timestamp = _now()
        self.index["entries"][key] = {
            "statement": report.statement_id,
            "status": report.status.value,
            "trace_length": report.trace_length,
            "created_at": timestamp,
            "last_accessed": timestamp,
            "access_count": 0
        }
        if is_new_entry:
            self.index["stats"]["total_entries"] += 1
        self._save_index()

        logger.debug("Cached verdict for %s under %s", report.statement_id, key)
        return key

    def invalidate(self, key: str) -> bool:
        """
        Delete one cached report.

        Returns:
            True if the entry was found and deleted
        """
        with self._lock:
            if key not in self.index["entries"]:
                return False
            report_path = self.reports_dir / f"{key}.json"
            if report_path.exists():
                report_path.unlink()
            del self.index["entries"][key]
            self.index["stats"]["total_entries"] -= 1
            self._save_index()
            return True

    def clear_all(self) -> None:
        """Remove every cached report and reset statistics."""
        with self._lock:
            if self.reports_dir.exists():
                shutil.rmtree(self.reports_dir)
            self.reports_dir.mkdir(parents=True, exist_ok=True)
            self.index["entries"] = {}
            self.index["stats"] = self._empty_stats()
            self._save_index()

    def get_stats(self) -> Dict[str, Any]:
        return dict(self.index["stats"])

    def list_entries(self, status: Optional[str] = None) -> List[Dict[str, Any]]:
        """Cached entries, newest first, optionally filtered by verdict status"""
        results = [
            dict(entry, key=key)
            for key, entry in self.index["entries"].items()
            if status is None or entry["status"] == status
        ]
        return sorted(results, key=lambda x: x["created_at"], reverse=True)
