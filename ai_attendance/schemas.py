from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

ANONYMOUS_USER_ID = "anonymous"
VERIFIED_THRESHOLD = 0.7

# --- Identity Schemas ---

class Session(BaseModel):
    """Authenticated identity as seen by the rest of the package."""
    model_config = ConfigDict(frozen=True)

    user_id: str
    email: Optional[str] = None
    display_name: Optional[str] = None
    access_token: Optional[str] = Field(None, repr=False)


class RegisterIn(BaseModel):
    name: str = ""
    email: str = ""
    password: str = Field("", repr=False)
    confirm_password: str = Field("", repr=False)


class LoginIn(BaseModel):
    email: str = ""
    password: str = Field("", repr=False)


class SessionOut(BaseModel):
    user_id: str
    email: Optional[str] = None
    display_name: Optional[str] = None
    access_token: Optional[str] = None


# --- Capture Schemas ---

class CapturedImage(BaseModel):
    """An encoded still image plus, on the upload path, the name typed by the user."""
    model_config = ConfigDict(frozen=True)

    data: bytes = Field(..., repr=False)
    content_type: str = "image/jpeg"
    label: Optional[str] = None


class CaptureIn(BaseModel):
    """Live-capture request body: a base64 image, with or without a data URL prefix."""
    image: str = Field(..., repr=False)


# --- Face Detection Schemas ---

class FaceBounds(BaseModel):
    model_config = ConfigDict(frozen=True)

    left: float = 0
    top: float = 0
    right: float = 0
    bottom: float = 0


class FaceDetection(BaseModel):
    model_config = ConfigDict(frozen=True)

    detection_confidence: float = Field(0.0, ge=0.0, le=1.0)
    joy_likelihood: str = "UNKNOWN"
    anger_likelihood: str = "UNKNOWN"
    sorrow_likelihood: str = "UNKNOWN"
    surprise_likelihood: str = "UNKNOWN"
    bounds: FaceBounds = FaceBounds()


# --- Attendance Schemas ---

class AttendanceRecord(BaseModel):
    """One attendance event, as stored in the `attendance` table.

    Records are written once and never updated.
    """
    model_config = ConfigDict(frozen=True)

    id: Optional[str] = None
    timestamp: datetime
    image_url: str
    face_detected: bool = False
    confidence: float = Field(0.0, ge=0.0, le=1.0)
    user_id: str = ANONYMOUS_USER_ID
    name: str = ""
    user_email: Optional[str] = None
    is_initial_record: bool = False

    def to_row(self) -> Dict[str, Any]:
        row = self.model_dump(mode="json", exclude={"id"})
        if self.user_email is None:
            row.pop("user_email")
        return row

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "AttendanceRecord":
        """Build a record from a table row, tolerating older rows with missing columns."""
        timestamp = row.get("timestamp") or datetime.now(timezone.utc)
        user_id = row.get("user_id") or "Unknown"
        return cls(
            id=str(row["id"]) if row.get("id") is not None else None,
            timestamp=timestamp,
            image_url=row.get("image_url") or "",
            face_detected=bool(row.get("face_detected", False)),
            confidence=float(row.get("confidence") or 0.0),
            user_id=user_id,
            name=row.get("name") or user_id,
            user_email=row.get("user_email"),
            is_initial_record=bool(row.get("is_initial_record", False)),
        )


class InsightEntry(BaseModel):
    """One line of the summary sent to the insight generator."""
    date: str
    status: str = "present"
    confidence: float
    userId: str


class SubmissionOutcome(str, Enum):
    RECORDED = "recorded"
    NO_FACE = "no_face"


class SubmissionResult(BaseModel):
    outcome: SubmissionOutcome
    image_url: str
    record: Optional[AttendanceRecord] = None
    insight: Optional[str] = None
    faces: List[FaceDetection] = []

    @property
    def message(self) -> str:
        if self.outcome is SubmissionOutcome.NO_FACE:
            return "No face detected. Please ensure your face is clearly visible."
        return "Your attendance has been successfully recorded."


# --- Dashboard Schemas ---

class DashboardStats(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_attendance: int = 0
    today_attendance: int = 0
    average_confidence: float = 0.0
    active_users: int = 0


class RecordRow(BaseModel):
    """A row of the recent-records table."""
    model_config = ConfigDict(frozen=True)

    id: Optional[str]
    display_name: str
    user_id: str
    timestamp: datetime
    confidence: float
    image_url: Optional[str] = None
    status: str


class DashboardView(BaseModel):
    """Everything the dashboard renders. Replaced as a whole on every push."""
    model_config = ConfigDict(frozen=True)

    stats: DashboardStats = DashboardStats()
    rows: Tuple[RecordRow, ...] = ()
    loading: bool = True
    error: Optional[str] = None
    updated_at: Optional[datetime] = None


# --- Utility Schemas ---

class Message(BaseModel):
    """Generic message schema for sending simple status responses."""
    message: str
