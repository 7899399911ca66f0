"""
WebCompass Proxy - Navigation History
In-memory, newest-first log of navigation attempts
"""

from dataclasses import replace
from datetime import datetime, timezone
from typing import Dict, List, Optional

from concurrency.locks import LockManager, get_lock_manager
from core.logger import log_info
from core.models import NavigationRecord


class HistoryStore:
    """
    Append-only (with clear) log of navigation attempts.

    Records are keyed by a monotonically increasing id that is never reused,
    not even after clear(). Records are immutable once inserted; the only
    change allowed is associating a screenshot with an existing record.
    Lives for the process lifetime only.
    """

    def __init__(self, lock_manager: Optional[LockManager] = None):
        self._locks = lock_manager or get_lock_manager()
        self._records: Dict[int, NavigationRecord] = {}
        self._next_id = 1

    def list(self) -> List[NavigationRecord]:
        """
        Get all records, newest first.

        Ordered by id, which follows insertion order even if the wall clock
        steps backwards between inserts.
        """
        with self._locks.acquire("history"):
            records = list(self._records.values())
        return sorted(records, key=lambda r: r.id, reverse=True)

    def get(self, record_id: int) -> Optional[NavigationRecord]:
        with self._locks.acquire("history"):
            return self._records.get(record_id)

    def add(
        self,
        url: str,
        title: Optional[str],
        response_time: int,
        status_code: int,
        content_size: int,
        screenshot_path: Optional[str] = None
    ) -> NavigationRecord:
        """
        Insert a new navigation record.

        Assigns the next id and the current UTC timestamp atomically with
        the insert.

        Returns:
            The stored NavigationRecord
        """
        with self._locks.acquire("history"):
            record = NavigationRecord(
                id=self._next_id,
                url=url,
                title=title,
                response_time=max(0, int(response_time)),
                status_code=int(status_code),
                content_size=max(0, int(content_size)),
                screenshot_path=screenshot_path,
                timestamp=datetime.now(timezone.utc),
            )
            self._records[record.id] = record
            self._next_id += 1
        return record

    def attach_screenshot(self, record_id: int, screenshot_path: str) -> Optional[NavigationRecord]:
        """
        Associate a captured screenshot with an existing record.

        Returns:
            The updated record, or None if the id is unknown
        """
        with self._locks.acquire("history"):
            existing = self._records.get(record_id)
            if existing is None:
                return None
            updated = replace(existing, screenshot_path=screenshot_path)
            self._records[record_id] = updated
        return updated

    def remove(self, record_id: int) -> None:
        """Remove one record. Unknown ids are ignored."""
        with self._locks.acquire("history"):
            self._records.pop(record_id, None)

    def clear(self) -> None:
        """Remove every record. The id counter keeps counting."""
        with self._locks.acquire("history"):
            count = len(self._records)
            self._records.clear()
        log_info(f"Navigation history cleared ({count} records)", prefix="🗑️")

    def __len__(self) -> int:
        with self._locks.acquire("history"):
            return len(self._records)
