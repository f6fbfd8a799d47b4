import base64
import re

import cv2
import numpy as np

DATA_URL_PREFIX = re.compile(r"^data:image/[\w.+-]+;base64,")
JPEG_QUALITY = 90


def strip_data_url(image: str) -> str:
    """Drop a leading ``data:image/...;base64,`` prefix if present."""
    return DATA_URL_PREFIX.sub("", image.strip())


def decode_base64_image(image: str) -> bytes:
    return base64.b64decode(strip_data_url(image), validate=False)


def to_base64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def encode_jpeg(frame: np.ndarray) -> bytes:
    ok, buffer = cv2.imencode(".jpg", frame, [int(cv2.IMWRITE_JPEG_QUALITY), JPEG_QUALITY])
    if not ok:
        raise ValueError("Failed to encode frame as JPEG")
    return buffer.tobytes()
