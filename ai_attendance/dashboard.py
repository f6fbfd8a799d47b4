"""Dashboard Aggregator.

Follows the most recent window of attendance records and recomputes the
summary statistics from scratch on every push. The view is a frozen object
swapped in whole, so readers never see half an update.
"""
import threading
import time
from datetime import datetime, timezone
from typing import Callable, Iterable, Optional, Sequence

from ai_attendance.schemas import (
    VERIFIED_THRESHOLD,
    AttendanceRecord,
    DashboardStats,
    DashboardView,
    RecordRow,
)
from ai_attendance.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_WINDOW = 30
CONNECTION_ERROR = "Failed to connect to database. Please check your connection."
PROCESSING_ERROR = "Error processing attendance data. Please refresh."


def status_label(confidence: float) -> str:
    return "Verified" if confidence > VERIFIED_THRESHOLD else "Review"


def local_midnight(now: datetime) -> datetime:
    local_now = now.astimezone()
    return local_now.replace(hour=0, minute=0, second=0, microsecond=0)


def _aware(ts: datetime) -> datetime:
    # Naive timestamps from the store are UTC
    return ts if ts.tzinfo is not None else ts.replace(tzinfo=timezone.utc)


def summarize(records: Sequence[AttendanceRecord], now: datetime) -> DashboardStats:
    if not records:
        return DashboardStats()
    midnight = local_midnight(now)
    return DashboardStats(
        total_attendance=len(records),
        today_attendance=sum(1 for r in records if _aware(r.timestamp) >= midnight),
        average_confidence=sum(r.confidence for r in records) / len(records),
        active_users=len({r.user_id for r in records}),
    )


def to_row(record: AttendanceRecord) -> RecordRow:
    return RecordRow(
        id=record.id,
        display_name=record.name or record.user_id or "Unknown",
        user_id=record.user_id,
        timestamp=record.timestamp,
        confidence=record.confidence,
        image_url=record.image_url or None,
        status=status_label(record.confidence),
    )


def build_view(records: Iterable[AttendanceRecord], now: datetime, window: int = DEFAULT_WINDOW) -> DashboardView:
    window_records = [r for r in records if not r.is_initial_record][:window]
    return DashboardView(
        stats=summarize(window_records, now),
        rows=tuple(to_row(r) for r in window_records),
        loading=False,
        error=None,
        updated_at=now,
    )


class DashboardAggregator:
    """Keeps ``view`` current while subscribed.

    With ``idle_timeout`` set, the listener ends by itself once nobody has
    read ``view`` for that many seconds; ``start()`` brings it back.
    """

    def __init__(self, records, window: int = DEFAULT_WINDOW, poll_interval: float = 5.0,
                 clock: Callable[[], datetime] = None, idle_timeout: Optional[float] = None):
        self.records = records
        self.window = window
        self.poll_interval = poll_interval
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._view = DashboardView()
        self._lock = threading.Lock()
        self._subscription = None
        self.idle_timeout = idle_timeout
        self._last_read = time.monotonic()

    @property
    def view(self) -> DashboardView:
        with self._lock:
            self._last_read = time.monotonic()
            return self._view

    @property
    def running(self) -> bool:
        return self._subscription is not None and self._subscription.active

    def start(self):
        if self.running:
            return
        logger.info("Setting up real-time attendance listener")
        self._last_read = time.monotonic()
        self._subscription = self.records.subscribe_recent(
            self.window, self._on_snapshot, self._on_error,
            interval=self.poll_interval, keep_alive=self._has_readers,
        )

    def stop(self):
        if self._subscription is None:
            return
        logger.info("Cleaning up attendance listener")
        subscription, self._subscription = self._subscription, None
        subscription.unsubscribe()

    def _has_readers(self) -> bool:
        return self.idle_timeout is None or time.monotonic() - self._last_read < self.idle_timeout

    def _on_snapshot(self, snapshot: Sequence[AttendanceRecord]):
        try:
            view = build_view(snapshot, self._clock(), self.window)
        except Exception as e:
            logger.error(f"Error processing attendance data: {e}")
            self._replace(error=PROCESSING_ERROR)
            return
        logger.debug(f"Dashboard recomputed over {len(view.rows)} record(s)")
        with self._lock:
            self._view = view

    def _on_error(self, error: Exception):
        logger.error(f"Error listening to attendance records: {error}")
        self._replace(error=CONNECTION_ERROR)

    def _replace(self, error: Optional[str]):
        # Last good stats and rows stay on screen under the banner
        with self._lock:
            self._view = self._view.model_copy(update={"error": error, "loading": False})
