import base64

import numpy as np
import pytest

from conftest import FakeBlobSink, FakeDetector, FakeInsights, FakeRecords
from ai_attendance.capture import CameraCapture, FileUploadCapture
from ai_attendance.errors import CameraAccessError, ValidationError
from ai_attendance.pipeline import PipelineState, SubmissionPipeline


class FakeCamera:
    def __init__(self, opened=True, frames=None):
        self.opened = opened
        self.frames = list(frames or [])
        self.released = False

    def isOpened(self):
        return self.opened

    def read(self):
        if not self.frames:
            return False, None
        return True, self.frames.pop(0)

    def release(self):
        self.released = True


def frame(value=0):
    return np.full((8, 8, 3), value, dtype=np.uint8)


def test_denied_camera_raises_and_never_reaches_the_network():
    denied = FakeCamera(opened=False)
    surface = CameraCapture(opener=lambda device: denied)
    blob_sink = FakeBlobSink()
    pipeline = SubmissionPipeline(blob_sink, FakeDetector(), FakeRecords(), FakeInsights())

    with pytest.raises(CameraAccessError):
        surface.open()

    assert denied.released
    with pytest.raises(ValidationError):
        pipeline.submit(surface)
    assert pipeline.state is PipelineState.IDLE
    assert blob_sink.calls == []


def test_camera_access_error_is_a_permission_error():
    assert issubclass(CameraAccessError, PermissionError)


def test_capture_snapshots_a_jpeg_frame():
    surface = CameraCapture(opener=lambda device: FakeCamera(frames=[frame(10)]))
    surface.open()

    image = surface.capture()

    assert image.content_type == "image/jpeg"
    assert image.data[:2] == b"\xff\xd8"
    assert surface.captured is image


def test_retake_discards_the_previous_snapshot():
    surface = CameraCapture(opener=lambda device: FakeCamera(frames=[frame(10), frame(200)]))
    surface.open()
    first = surface.capture()

    surface.retake()
    assert surface.captured is None

    second = surface.capture()
    assert second.data != first.data


def test_close_releases_the_device():
    camera = FakeCamera()
    surface = CameraCapture(opener=lambda device: camera)
    surface.open()
    surface.close()
    assert camera.released
    assert not surface.is_open


def test_take_data_url_strips_prefix_and_keeps_type():
    payload = base64.b64encode(b"\x89PNGdata").decode()
    surface = CameraCapture()

    image = surface.take_data_url(f"data:image/png;base64,{payload}")

    assert image.data == b"\x89PNGdata"
    assert image.content_type == "image/png"


def test_take_data_url_rejects_empty_payload():
    with pytest.raises(ValidationError):
        CameraCapture().take_data_url("   ")


@pytest.mark.parametrize("data,name", [
    (None, "Jane Doe"),
    (b"", "Jane Doe"),
    (b"bytes", ""),
    (b"bytes", "   "),
])
def test_upload_requires_both_file_and_name(data, name):
    surface = FileUploadCapture()
    with pytest.raises(ValidationError, match="both name and image"):
        surface.select(data, name)
    assert surface.captured is None


def test_upload_keeps_the_trimmed_name_as_label():
    image = FileUploadCapture().select(b"bytes", "  Jane Doe ", "image/png")
    assert image.label == "Jane Doe"
    assert image.content_type == "image/png"
