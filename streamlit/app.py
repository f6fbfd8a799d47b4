import sys
from pathlib import Path

import cv2
import numpy as np
import pandas as pd
import streamlit as st
from PIL import Image

# -----------------------------
# 1. Path & Environment Setup
# -----------------------------
# Add project root to sys.path so we can import 'ai_attendance' without installing it
project_root = Path(__file__).resolve().parent.parent
sys.path.append(str(project_root))

from ai_attendance.bootstrap import ensure_attendance_collection
from ai_attendance.capture import CameraCapture, FileUploadCapture
from ai_attendance.config import load_settings
from ai_attendance.dashboard import DashboardAggregator
from ai_attendance.errors import AuthError, TransportError, ValidationError
from ai_attendance.face_engine.vision_client import VisionFaceDetector
from ai_attendance.pipeline import SubmissionPipeline
from ai_attendance.schemas import LoginIn, RegisterIn, SubmissionOutcome
from ai_attendance.services.identity import GuardDecision, IdentityGate, guard_route
from ai_attendance.services.insights import InsightGenerator
from ai_attendance.services.records import RecordStore
from ai_attendance.services.storage import BlobSink
from ai_attendance.utils.logger import get_logger

logger = get_logger("ui")

settings = load_settings()

PAGES = ["Attendance", "Dashboard"]
PUBLIC_PAGES = ["Login", "Register"]
IDLE_POLLS = 3


# -----------------------------
# 2. Shared services
# -----------------------------
@st.cache_resource(show_spinner="Initializing application...")
def get_backend():
    from supabase import create_client

    if not settings.supabase_url or not settings.supabase_key:
        st.error("⚠️ Supabase credentials not found in environment variables.")
        st.stop()
    client = create_client(settings.supabase_url, settings.supabase_key)
    records = RecordStore(client)
    if not ensure_attendance_collection(records):
        st.error("There was a problem setting up the application. Please refresh the page.")
    return {
        "blob_sink": BlobSink(client, settings.supabase_bucket),
        "detector": VisionFaceDetector(settings.vision_api_key, settings.vision_endpoint, settings.detect_timeout),
        "insights": InsightGenerator(settings.gemini_api_key, settings.gemini_model,
                                     settings.gemini_endpoint, settings.insight_timeout),
        "records": records,
    }


def get_gate() -> IdentityGate:
    """Per browser session; the auth client keeps the signed-in user."""
    if "gate" not in st.session_state:
        from supabase import create_client
        st.session_state.gate = IdentityGate(create_client(settings.supabase_url, settings.supabase_key))
    return st.session_state.gate


def get_pipeline(backend) -> SubmissionPipeline:
    if "pipeline" not in st.session_state:
        st.session_state.pipeline = SubmissionPipeline(
            backend["blob_sink"], backend["detector"], backend["records"], backend["insights"]
        )
        st.session_state.camera = CameraCapture()
        st.session_state.upload = FileUploadCapture()
    return st.session_state.pipeline


@st.cache_resource
def get_dashboard() -> DashboardAggregator:
    """One listener for the whole server, shared by every open dashboard.

    It stops by itself a few polls after the last dashboard stops reading.
    """
    return DashboardAggregator(
        get_backend()["records"],
        settings.dashboard_window,
        settings.dashboard_poll_seconds,
        idle_timeout=settings.dashboard_poll_seconds * IDLE_POLLS,
    )


# -----------------------------
# 3. Pages
# -----------------------------
def login_page(gate: IdentityGate):
    st.header("Sign in to access your account")
    with st.form("login"):
        email = st.text_input("Email")
        password = st.text_input("Password", type="password")
        submitted = st.form_submit_button("Sign in", type="primary")

    if submitted:
        try:
            with st.spinner("Signing in..."):
                gate.sign_in(LoginIn(email=email, password=password))
            st.toast("Login successful", icon="✅")
            st.session_state.page = "Attendance"
            st.rerun()
        except ValidationError as e:
            st.error(str(e))
        except AuthError as e:
            st.error(f"Login failed: {e.message}")


def register_page(gate: IdentityGate):
    st.header("Create an account")
    with st.form("register"):
        name = st.text_input("Full name")
        email = st.text_input("Email")
        password = st.text_input("Password", type="password")
        confirm = st.text_input("Confirm password", type="password")
        submitted = st.form_submit_button("Create account", type="primary")

    if submitted:
        form = RegisterIn(name=name, email=email, password=password, confirm_password=confirm)
        try:
            with st.spinner("Creating account..."):
                gate.sign_up(form)
            st.toast("Account created successfully", icon="✅")
            st.session_state.page = "Attendance"
            st.rerun()
        except ValidationError as e:
            st.error(str(e))
        except AuthError as e:
            st.error(e.message)


def show_result(result):
    if result.outcome is SubmissionOutcome.NO_FACE:
        st.warning("⚠️ No face detected. Please ensure your face is clearly visible.")
        return
    st.success("✅ Your attendance has been successfully recorded")
    st.balloons()
    st.caption(f"Confidence: {result.record.confidence:.2f}")
    st.image(result.image_url, caption="Uploaded image", width=240)
    with st.expander("🤖 AI Insights", expanded=True):
        st.write(result.insight)


def submit(pipeline, surface, session):
    try:
        with st.spinner("Recording attendance..."):
            result = pipeline.submit(surface, session)
        st.session_state.last_result = result
        if result.outcome is SubmissionOutcome.RECORDED:
            # Fresh camera widget for the next submission
            st.session_state.camera_round = st.session_state.get("camera_round", 0) + 1
    except ValidationError as e:
        st.warning(str(e))
    except TransportError as e:
        st.error(f"Error recording attendance: {e}")


def attendance_page(gate: IdentityGate, backend):
    st.header("📸 AI Attendance System")
    st.caption("Quick and secure attendance tracking with AI")
    pipeline = get_pipeline(backend)
    session = gate.current_session()

    tab1, tab2 = st.tabs(["📷 Webcam Capture", "📤 File Upload"])

    with tab1:
        camera: CameraCapture = st.session_state.camera
        snapshot = st.camera_input("Capture Face", key=f"camera_{st.session_state.get('camera_round', 0)}")
        if snapshot is None:
            camera.retake()
        else:
            img = Image.open(snapshot).convert("RGB")
            camera.take(cv2.cvtColor(np.array(img), cv2.COLOR_RGB2BGR))

        if st.button("Record Attendance", type="primary", use_container_width=True,
                     disabled=camera.captured is None or not pipeline.can_submit):
            submit(pipeline, camera, session)

    with tab2:
        upload: FileUploadCapture = st.session_state.upload
        with st.form("upload", clear_on_submit=True):
            name = st.text_input("Name", placeholder="Enter your full name")
            image_file = st.file_uploader("Image", type=["jpg", "jpeg", "png"])
            submitted = st.form_submit_button("Mark Attendance", disabled=not pipeline.can_submit)

        if submitted:
            try:
                upload.select(image_file.getvalue() if image_file else None, name,
                              image_file.type if image_file else None)
            except ValidationError as e:
                st.warning(f"Missing information: {e}")
            else:
                submit(pipeline, upload, None)

    result = st.session_state.get("last_result")
    if result is not None:
        st.divider()
        show_result(result)


@st.fragment(run_every=settings.dashboard_poll_seconds)
def dashboard_body(aggregator: DashboardAggregator):
    aggregator.start()
    view = aggregator.view
    if view.error:
        st.error(view.error)
    if view.loading:
        st.info("Loading attendance records...")
        return

    c1, c2, c3, c4 = st.columns(4)
    c1.metric("Total Attendance", view.stats.total_attendance)
    c2.metric("Today", view.stats.today_attendance)
    c3.metric("Average Confidence", f"{view.stats.average_confidence * 100:.1f}%")
    c4.metric("Active Users", view.stats.active_users)

    st.subheader("Recent Attendance")
    if not view.rows:
        st.info("No attendance records yet.")
        return
    table = pd.DataFrame([
        {
            "Name": row.display_name,
            "Time": row.timestamp.astimezone().strftime("%Y-%m-%d %H:%M"),
            "Confidence": f"{row.confidence * 100:.1f}%",
            "Status": row.status,
        }
        for row in view.rows
    ])
    st.dataframe(table, hide_index=True, use_container_width=True)


def dashboard_page():
    st.header("📊 Attendance Dashboard")
    dashboard_body(get_dashboard())


# -----------------------------
# 4. Streamlit UI
# -----------------------------
def main():
    st.set_page_config(page_title="AI Attendance", page_icon="📸", layout="wide")

    backend = get_backend()
    gate = get_gate()
    if gate.pending:
        with st.spinner("Loading your profile..."):
            gate.resolve()

    session = gate.current_session()
    with st.sidebar:
        st.title("AI Attendance")
        if session is not None:
            st.caption(f"Signed in as {session.display_name or session.email}")
            page = st.radio("Go to", PAGES, key="page")
            if st.button("Sign out"):
                try:
                    gate.sign_out()
                    st.session_state.pop("last_result", None)
                    st.rerun()
                except AuthError as e:
                    st.error(e.message)
        else:
            page = st.radio("Go to", PUBLIC_PAGES, key="public_page")

    if page == "Login":
        login_page(gate)
        return
    if page == "Register":
        register_page(gate)
        return

    decision = guard_route(gate)
    if decision is GuardDecision.LOADING:
        st.info("Loading your profile...")
    elif decision is GuardDecision.REDIRECT:
        login_page(gate)
    elif page == "Dashboard":
        dashboard_page()
    else:
        attendance_page(gate, backend)


if __name__ == "__main__":
    main()
