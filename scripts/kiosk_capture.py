"""
Kiosk mode: snapshot a face from a local camera and record attendance.

USAGE:
    python scripts/kiosk_capture.py --device 0 [--name "Jane Doe"]

Without --name the record is written for the anonymous user.
"""
import argparse
import sys
from pathlib import Path

# Add project root to PYTHONPATH
ROOT_DIR = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT_DIR))

from ai_attendance.capture import CameraCapture
from ai_attendance.config import load_settings
from ai_attendance.dependencies import build_services
from ai_attendance.errors import CameraAccessError, TransportError, ValidationError
from ai_attendance.pipeline import SubmissionPipeline
from ai_attendance.schemas import CapturedImage, SubmissionOutcome


def run(device: int, name: str = None) -> int:
    camera = CameraCapture(device)
    try:
        camera.open()
    except CameraAccessError as e:
        print(f"❌ Camera Access Error: {e}")
        return 2

    try:
        image = camera.capture()
    except CameraAccessError as e:
        print(f"❌ Capture Error: {e}")
        return 2
    finally:
        camera.close()

    if name:
        # Same identity rules as the upload form
        camera.captured = CapturedImage(data=image.data, content_type=image.content_type, label=name)

    services = build_services(load_settings())
    pipeline = SubmissionPipeline(services.blob_sink, services.detector, services.records, services.insights)
    try:
        result = pipeline.submit(camera)
    except (ValidationError, TransportError) as e:
        print(f"❌ Error recording attendance: {e}")
        return 1

    if result.outcome is SubmissionOutcome.NO_FACE:
        print("⚠️ No face detected. Please ensure your face is clearly visible.")
        return 3

    print(f"✅ Recorded {result.record.name} ({result.record.confidence:.2f})")
    print(f"🤖 {result.insight}")
    return 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Record attendance from a local camera")
    parser.add_argument("--device", type=int, default=0)
    parser.add_argument("--name", default=None)
    args = parser.parse_args()
    sys.exit(run(args.device, args.name))
