"""Record Store: the `attendance` table.

Rows are inserted once and never updated. The bootstrap sentinel row is
filtered out of every read.
"""
import threading
from datetime import datetime, timezone
from typing import Callable, List, Optional, Tuple

from ai_attendance.errors import RecordError
from ai_attendance.schemas import AttendanceRecord
from ai_attendance.utils.logger import get_logger

logger = get_logger(__name__)

ATTENDANCE_TABLE = "attendance"

Snapshot = Tuple[AttendanceRecord, ...]


class RecordStore:
    def __init__(self, client, table: str = ATTENDANCE_TABLE):
        self._client = client
        self.table = table

    def insert(self, record: AttendanceRecord) -> AttendanceRecord:
        try:
            response = self._client.table(self.table).insert(record.to_row()).execute()
        except Exception as e:
            logger.error(f"Attendance insert failed: {e}")
            raise RecordError(f"Failed to save attendance record: {e}") from e
        rows = response.data or []
        if rows and rows[0].get("id") is not None:
            return record.model_copy(update={"id": str(rows[0]["id"])})
        return record

    def recent(self, limit: int = 30) -> List[AttendanceRecord]:
        """Most recent non-sentinel records, newest first."""
        response = (
            self._client.table(self.table)
            .select("*")
            .eq("is_initial_record", False)
            .order("timestamp", desc=True)
            .limit(limit)
            .execute()
        )
        return [
            AttendanceRecord.from_row(row)
            for row in (response.data or [])
            if not row.get("is_initial_record")
        ]

    def is_empty(self) -> bool:
        response = self._client.table(self.table).select("id").limit(1).execute()
        return not response.data

    def insert_sentinel(self):
        self._client.table(self.table).insert({
            "is_initial_record": True,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "note": "This is a system-generated record to initialize the attendance collection",
        }).execute()

    def subscribe_recent(
        self,
        limit: int,
        on_snapshot: Callable[[Snapshot], None],
        on_error: Callable[[Exception], None],
        interval: float = 5.0,
        keep_alive: Optional[Callable[[], bool]] = None,
    ) -> "LiveQuery":
        query = LiveQuery(lambda: tuple(self.recent(limit)), on_snapshot, on_error, interval, keep_alive)
        query.start()
        return query


def _fingerprint(snapshot: Snapshot):
    return tuple((r.id, r.timestamp, r.confidence) for r in snapshot)


class LiveQuery:
    """Polls a query and pushes each changed result.

    The first result is always pushed. The first error is reported once
    and ends the subscription; there is no retry. When ``keep_alive``
    returns False the query ends quietly.
    """

    def __init__(self, fetch: Callable[[], Snapshot], on_snapshot, on_error, interval: float = 5.0,
                 keep_alive: Optional[Callable[[], bool]] = None):
        self._keep_alive = keep_alive
        self._fetch = fetch
        self._on_snapshot = on_snapshot
        self._on_error = on_error
        self.interval = interval
        self._stopped = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._last = None

    @property
    def active(self) -> bool:
        return self._thread is not None and self._thread.is_alive() and not self._stopped.is_set()

    def start(self):
        self._thread = threading.Thread(target=self._run, name="attendance-live-query", daemon=True)
        self._thread.start()

    def unsubscribe(self):
        self._stopped.set()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout=self.interval + 1)

    def _run(self):
        while not self._stopped.is_set():
            if self._keep_alive is not None and not self._keep_alive():
                logger.info("Live query has no readers left, stopping")
                self._stopped.set()
                return
            try:
                snapshot = self._fetch()
            except Exception as e:
                if self._stopped.is_set():
                    return
                self._stopped.set()
                logger.error(f"Live query failed: {e}")
                self._on_error(e)
                return
            fingerprint = _fingerprint(snapshot)
            if fingerprint != self._last and not self._stopped.is_set():
                self._last = fingerprint
                self._on_snapshot(snapshot)
            self._stopped.wait(self.interval)
