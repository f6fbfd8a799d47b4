"""Face detection through the Cloud Vision ``images:annotate`` endpoint."""
from typing import Any, Dict, List

import requests

from ai_attendance.config import VISION_ENDPOINT
from ai_attendance.errors import TransportError
from ai_attendance.outcome import Outcome
from ai_attendance.schemas import CapturedImage, FaceBounds, FaceDetection
from ai_attendance.utils.deadline import call_with_deadline
from ai_attendance.utils.image_utils import to_base64
from ai_attendance.utils.logger import get_logger

logger = get_logger(__name__)

MAX_RESULTS = 10


def build_request(image_b64: str) -> Dict[str, Any]:
    return {
        "requests": [{
            "image": {"content": image_b64},
            "features": [{"type": "FACE_DETECTION", "maxResults": MAX_RESULTS}],
        }]
    }


def parse_bounds(face: Dict[str, Any]) -> FaceBounds:
    # Rectangle from the first and third vertices of the bounding polygon
    vertices = (face.get("boundingPoly") or {}).get("vertices") or []
    if not vertices:
        return FaceBounds()
    first = vertices[0]
    third = vertices[2] if len(vertices) > 2 else {}
    return FaceBounds(
        left=first.get("x", 0),
        top=first.get("y", 0),
        right=third.get("x", 0),
        bottom=third.get("y", 0),
    )


def parse_faces(payload: Dict[str, Any]) -> List[FaceDetection]:
    responses = payload.get("responses") or [{}]
    first = responses[0] or {}
    if first.get("error"):
        raise TransportError(f"Vision API error: {first['error'].get('message', 'unknown error')}")
    return [
        FaceDetection(
            detection_confidence=face.get("detectionConfidence", 0) or 0,
            joy_likelihood=face.get("joyLikelihood", "UNKNOWN"),
            anger_likelihood=face.get("angerLikelihood", "UNKNOWN"),
            sorrow_likelihood=face.get("sorrowLikelihood", "UNKNOWN"),
            surprise_likelihood=face.get("surpriseLikelihood", "UNKNOWN"),
            bounds=parse_bounds(face),
        )
        for face in first.get("faceAnnotations") or []
    ]


class VisionFaceDetector:
    def __init__(self, api_key: str, endpoint: str = VISION_ENDPOINT, timeout: float = 10.0, session=None):
        self.api_key = api_key
        self.endpoint = endpoint
        self.timeout = timeout
        self._http = session or requests.Session()

    def detect(self, image: CapturedImage) -> Outcome[List[FaceDetection]]:
        """Detected faces, or a failed Outcome on timeout or any transport error."""
        logger.info("Starting face detection")
        try:
            faces = call_with_deadline(
                self._annotate, self.timeout, to_base64(image.data), label="Vision API request"
            )
        except Exception as e:
            logger.error(f"Error in face detection: {e}")
            return Outcome.failed(e)
        logger.info(f"Face detection found {len(faces)} face(s)")
        return Outcome.ok(faces)

    def _annotate(self, image_b64: str) -> List[FaceDetection]:
        response = self._http.post(
            self.endpoint,
            params={"key": self.api_key},
            json=build_request(image_b64),
            timeout=self.timeout,
        )
        if not response.ok:
            raise TransportError(f"Vision API error: {response.status_code} {response.reason}")
        return parse_faces(response.json())
