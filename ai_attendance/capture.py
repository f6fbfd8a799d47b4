"""Capture Surface: where the face image for a submission comes from.

Two variants share the same output, a CapturedImage held in ``captured``
until the pipeline clears it after a successful submission.
"""
from typing import Callable, Optional

import cv2
import numpy as np

from ai_attendance.errors import CameraAccessError, ValidationError
from ai_attendance.schemas import CapturedImage
from ai_attendance.utils.image_utils import DATA_URL_PREFIX, decode_base64_image, encode_jpeg
from ai_attendance.utils.logger import get_logger

logger = get_logger(__name__)


class CaptureSurface:
    def __init__(self):
        self.captured: Optional[CapturedImage] = None

    def clear(self):
        self.captured = None


class CameraCapture(CaptureSurface):
    """Live camera. ``opener`` defaults to OpenCV's VideoCapture."""

    def __init__(self, device=0, opener: Callable = cv2.VideoCapture):
        super().__init__()
        self.device = device
        self._opener = opener
        self._camera = None

    @property
    def is_open(self) -> bool:
        return self._camera is not None

    def open(self):
        try:
            camera = self._opener(self.device)
        except Exception as e:
            raise CameraAccessError(f"Unable to access camera {self.device}: {e}") from e
        if camera is None or not camera.isOpened():
            if camera is not None:
                camera.release()
            raise CameraAccessError(
                f"Unable to access camera {self.device}. Please check permissions."
            )
        self._camera = camera
        logger.info(f"Camera {self.device} opened")

    def capture(self) -> CapturedImage:
        """Snapshot the current frame. Replaces any earlier snapshot."""
        if self._camera is None:
            raise CameraAccessError("Camera is not open")
        ok, frame = self._camera.read()
        if not ok or frame is None:
            raise CameraAccessError("Failed to capture image")
        return self.take(frame)

    def take(self, frame: np.ndarray) -> CapturedImage:
        """Use an already grabbed frame, e.g. a browser camera snapshot."""
        self.captured = CapturedImage(data=encode_jpeg(frame), content_type="image/jpeg")
        return self.captured

    def take_data_url(self, image: str) -> CapturedImage:
        """Accept a base64 snapshot as sent by a browser (data URL or bare base64)."""
        if not image or not image.strip():
            raise ValidationError("No image captured")
        content_type = "image/jpeg"
        match = DATA_URL_PREFIX.match(image.strip())
        if match:
            content_type = match.group(0)[len("data:"):].split(";")[0]
        try:
            data = decode_base64_image(image)
        except ValueError as e:
            raise ValidationError("Captured image is not valid base64") from e
        if not data:
            raise ValidationError("No image captured")
        self.captured = CapturedImage(data=data, content_type=content_type)
        return self.captured

    def retake(self):
        self.clear()

    def close(self):
        if self._camera is not None:
            self._camera.release()
            self._camera = None


class FileUploadCapture(CaptureSurface):
    """User-chosen image file plus the name typed next to it."""

    def select(self, data: Optional[bytes], name: Optional[str], content_type: str = "image/jpeg") -> CapturedImage:
        if not data or not (name or "").strip():
            raise ValidationError("Please provide both name and image")
        self.captured = CapturedImage(data=data, content_type=content_type or "image/jpeg", label=name.strip())
        return self.captured
