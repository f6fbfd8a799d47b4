import re
from datetime import datetime

from ai_attendance.errors import StorageError
from ai_attendance.schemas import CapturedImage
from ai_attendance.utils.logger import get_logger

logger = get_logger(__name__)

ATTENDANCE_PREFIX = "attendance"


def user_token(name: str) -> str:
    """'Jane Doe' -> 'jane_doe'"""
    return re.sub(r"\s+", "_", name.strip().lower())


def _epoch_ms(now: datetime) -> int:
    return int(now.timestamp() * 1000)


def live_capture_filename(now: datetime) -> str:
    return f"{_epoch_ms(now)}.jpg"


def upload_filename(name: str, now: datetime) -> str:
    return f"{user_token(name)}_{_epoch_ms(now)}.jpg"


class BlobSink:
    """Writes images under ``attendance/`` in a Supabase Storage bucket."""

    def __init__(self, client, bucket: str):
        self._client = client
        self.bucket = bucket

    def store(self, image: CapturedImage, filename: str) -> str:
        path = f"{ATTENDANCE_PREFIX}/{filename}"
        bucket = self._client.storage.from_(self.bucket)
        try:
            bucket.upload(path, image.data, {"content-type": image.content_type})
            url = bucket.get_public_url(path)
        except Exception as e:
            logger.error(f"Upload of {path} failed: {e}")
            raise StorageError(f"Failed to upload image: {e}") from e

        # Older clients hand back a dict
        if isinstance(url, dict):
            url = url.get("publicURL") or url.get("publicUrl") or ""
        url = (url or "").rstrip("?")
        if not url:
            raise StorageError(f"No download URL returned for {path}")
        logger.info(f"Image uploaded: {path}")
        return url
