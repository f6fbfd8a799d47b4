"""Submission Pipeline: one captured image in, at most one attendance record out.

States run strictly in order:

    Idle -> Uploading -> Detecting -> Recording -> Summarizing -> Done

Uploading and Recording failures end in Failed. A detector that finds no
face sends the pipeline back to Idle without writing a record. The insight
step never fails the submission; its fallback text is used instead.
"""
import threading
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, List, Optional

from ai_attendance.capture import CaptureSurface
from ai_attendance.errors import PipelineBusyError, RecordError, StorageError, ValidationError
from ai_attendance.schemas import (
    ANONYMOUS_USER_ID,
    AttendanceRecord,
    CapturedImage,
    FaceDetection,
    InsightEntry,
    Session,
    SubmissionOutcome,
    SubmissionResult,
)
from ai_attendance.services.storage import live_capture_filename, upload_filename, user_token
from ai_attendance.utils.logger import get_logger

logger = get_logger(__name__)

FALLBACK_INSIGHT = "Attendance recorded successfully. AI insights could not be generated at this time."


class PipelineState(str, Enum):
    IDLE = "idle"
    UPLOADING = "uploading"
    DETECTING = "detecting"
    RECORDING = "recording"
    SUMMARIZING = "summarizing"
    DONE = "done"
    FAILED = "failed"


READY_STATES = (PipelineState.IDLE, PipelineState.DONE, PipelineState.FAILED)


def resolve_identity(session: Optional[Session], label: Optional[str]):
    """(user_id, display_name, email) for a submission."""
    label = (label or "").strip()
    if session is not None:
        user_id = session.user_id
    elif label:
        user_id = user_token(label)
    else:
        user_id = ANONYMOUS_USER_ID
    display_name = (session.display_name if session else None) or label or user_id
    email = session.email if session else None
    return user_id, display_name, email


class SubmissionPipeline:
    def __init__(self, blob_sink, detector, records, insights, clock: Callable[[], datetime] = None):
        self.blob_sink = blob_sink
        self.detector = detector
        self.records = records
        self.insights = insights
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._state = PipelineState.IDLE
        self._lock = threading.Lock()
        self.last_error: Optional[Exception] = None

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def can_submit(self) -> bool:
        """False while a submission is in flight; the trigger should be disabled."""
        return self._state in READY_STATES and not self._lock.locked()

    def submit(self, surface: CaptureSurface, session: Optional[Session] = None) -> SubmissionResult:
        image = surface.captured
        if image is None:
            raise ValidationError("No image captured. Please capture an image first")
        if not self._lock.acquire(blocking=False):
            raise PipelineBusyError("A submission is already in progress")
        try:
            result = self._run(image, session)
            if result.outcome is SubmissionOutcome.RECORDED:
                surface.clear()
            return result
        finally:
            self._lock.release()

    def _run(self, image: CapturedImage, session: Optional[Session]) -> SubmissionResult:
        self.last_error = None
        now = self._clock()
        user_id, display_name, email = resolve_identity(session, image.label)
        filename = upload_filename(image.label, now) if image.label else live_capture_filename(now)

        self._enter(PipelineState.UPLOADING)
        try:
            image_url = self.blob_sink.store(image, filename)
        except StorageError as e:
            self._fail(e)
            raise

        self._enter(PipelineState.DETECTING)
        faces: List[FaceDetection] = self.detector.detect(image).value_or([])
        if not faces:
            logger.warning(f"No face detected in {image_url}; nothing recorded")
            self._enter(PipelineState.IDLE)
            return SubmissionResult(outcome=SubmissionOutcome.NO_FACE, image_url=image_url)

        self._enter(PipelineState.RECORDING)
        record = AttendanceRecord(
            timestamp=now,
            image_url=image_url,
            face_detected=True,
            confidence=faces[0].detection_confidence,
            user_id=user_id,
            name=display_name,
            user_email=email,
        )
        try:
            record = self.records.insert(record)
        except RecordError as e:
            # The uploaded image stays in storage with no record pointing at it.
            logger.warning(f"Orphaned upload left at {image_url}")
            self._fail(e)
            raise
        logger.info(f"Attendance recorded: {record.id} for {user_id} ({record.confidence:.2f})")

        self._enter(PipelineState.SUMMARIZING)
        summary = [InsightEntry(date=now.isoformat(), status="present",
                                confidence=record.confidence, userId=user_id)]
        outcome = self.insights.analyze(summary)
        if not outcome.succeeded:
            logger.warning("AI insights unavailable, using fallback message")
        insight = outcome.value_or(FALLBACK_INSIGHT)

        self._enter(PipelineState.DONE)
        return SubmissionResult(
            outcome=SubmissionOutcome.RECORDED,
            image_url=image_url,
            record=record,
            insight=insight,
            faces=faces,
        )

    def _enter(self, state: PipelineState):
        logger.debug(f"Pipeline {self._state.value} -> {state.value}")
        self._state = state

    def _fail(self, error: Exception):
        self.last_error = error
        logger.error(f"Submission failed while {self._state.value}: {error}")
        self._state = PipelineState.FAILED
