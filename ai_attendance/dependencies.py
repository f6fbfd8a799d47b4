import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterator, Optional

from fastapi import Depends, Header, HTTPException, Request

from ai_attendance.config import Settings
from ai_attendance.dashboard import DashboardAggregator
from ai_attendance.face_engine.vision_client import VisionFaceDetector
from ai_attendance.pipeline import SubmissionPipeline
from ai_attendance.schemas import Session
from ai_attendance.services.identity import IdentityGate
from ai_attendance.services.insights import InsightGenerator
from ai_attendance.services.records import RecordStore
from ai_attendance.services.storage import BlobSink


@dataclass
class Services:
    """External collaborators shared by the API routes."""

    identity: IdentityGate
    identity_factory: Callable[[], IdentityGate]
    blob_sink: BlobSink
    detector: VisionFaceDetector
    records: RecordStore
    insights: InsightGenerator
    aggregator: DashboardAggregator
    # Only submitters with a request in flight have an entry
    pipelines: Dict[str, SubmissionPipeline] = field(default_factory=dict)
    _holders: Dict[str, int] = field(default_factory=dict, repr=False)
    _pipelines_lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    @contextmanager
    def pipeline_for(self, submitter: str) -> Iterator[SubmissionPipeline]:
        """The submitter's pipeline, shared by its concurrent requests so the busy guard applies per user."""
        with self._pipelines_lock:
            pipeline = self.pipelines.get(submitter)
            if pipeline is None:
                pipeline = SubmissionPipeline(self.blob_sink, self.detector, self.records, self.insights)
                self.pipelines[submitter] = pipeline
            self._holders[submitter] = self._holders.get(submitter, 0) + 1
        try:
            yield pipeline
        finally:
            with self._pipelines_lock:
                self._holders[submitter] -= 1
                if not self._holders[submitter]:
                    del self._holders[submitter]
                    del self.pipelines[submitter]


def build_services(settings: Settings) -> Services:
    from supabase import create_client

    if not settings.supabase_url or not settings.supabase_key:
        raise RuntimeError("Supabase credentials not found in environment variables.")

    def new_client():
        return create_client(settings.supabase_url, settings.supabase_key)

    client = new_client()
    records = RecordStore(client)
    return Services(
        identity=IdentityGate(client),
        # Sign-in state lives on the client, so each auth request gets its own
        identity_factory=lambda: IdentityGate(new_client()),
        blob_sink=BlobSink(client, settings.supabase_bucket),
        detector=VisionFaceDetector(settings.vision_api_key, settings.vision_endpoint, settings.detect_timeout),
        records=records,
        insights=InsightGenerator(settings.gemini_api_key, settings.gemini_model,
                                  settings.gemini_endpoint, settings.insight_timeout),
        aggregator=DashboardAggregator(records, settings.dashboard_window, settings.dashboard_poll_seconds),
    )


def get_services(request: Request) -> Services:
    return request.app.state.services


def bearer_token(authorization: Optional[str] = Header(None)) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def optional_session(
    token: Optional[str] = Depends(bearer_token),
    services: Services = Depends(get_services),
) -> Optional[Session]:
    if token is None:
        return None
    session = services.identity.session_from_token(token)
    if session is None:
        raise HTTPException(status_code=401, detail="Session expired. Please sign in again")
    return session


def require_session(session: Optional[Session] = Depends(optional_session)) -> Session:
    if session is None:
        raise HTTPException(status_code=401, detail="Not signed in")
    return session
