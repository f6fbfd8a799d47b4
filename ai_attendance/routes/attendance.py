# ai_attendance/routes/attendance.py
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile

from ai_attendance.capture import CameraCapture, CaptureSurface, FileUploadCapture
from ai_attendance.dependencies import Services, get_services, optional_session
from ai_attendance.errors import PipelineBusyError, TransportError, ValidationError
from ai_attendance.pipeline import resolve_identity
from ai_attendance.schemas import CaptureIn, Session, SubmissionOutcome, SubmissionResult
from ai_attendance.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(
    prefix="/attendance",
    tags=["Attendance"]
)


def submission_response(result: SubmissionResult) -> Dict[str, Any]:
    body = {
        "status": "success" if result.outcome is SubmissionOutcome.RECORDED else "no_face",
        "message": result.message,
        "image_url": result.image_url,
        "faces": [face.model_dump() for face in result.faces],
    }
    if result.record is not None:
        body["record"] = result.record.model_dump(mode="json")
        body["insight"] = result.insight
    return body


def run_submission(services: Services, surface: CaptureSurface, session: Optional[Session]) -> Dict[str, Any]:
    submitter, _, _ = resolve_identity(session, surface.captured.label if surface.captured else None)
    with services.pipeline_for(submitter) as pipeline:
        try:
            result = pipeline.submit(surface, session)
        except PipelineBusyError as e:
            raise HTTPException(status_code=409, detail=str(e))
        except ValidationError as e:
            raise HTTPException(status_code=400, detail=str(e))
        except TransportError as e:
            raise HTTPException(status_code=502, detail=f"Error recording attendance: {e}")
    return submission_response(result)


@router.post("/capture")
def capture(
    body: CaptureIn,
    session: Optional[Session] = Depends(optional_session),
    services: Services = Depends(get_services),
):
    """Live-capture path: a browser snapshot, recorded for the signed-in user or anonymously."""
    surface = CameraCapture()
    try:
        surface.take_data_url(body.image)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return run_submission(services, surface, session)


@router.post("/upload")
async def upload(
    file: Optional[UploadFile] = File(None),
    name: str = Form(""),
    services: Services = Depends(get_services),
):
    """File-upload path: the typed name identifies the submitter."""
    surface = FileUploadCapture()
    data = await file.read() if file is not None else None
    try:
        surface.select(data, name, file.content_type if file is not None else None)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return run_submission(services, surface, None)
