import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel

load_dotenv()

PROJECT_ROOT = Path(__file__).resolve().parent.parent

VISION_ENDPOINT = "https://vision.googleapis.com/v1/images:annotate"
GEMINI_ENDPOINT = "https://generativelanguage.googleapis.com/v1beta/models"


class Settings(BaseModel):
    """Runtime options, read from the environment (and .env) once at startup."""

    supabase_url: str = ""
    supabase_key: str = ""
    supabase_bucket: str = "attendance-images"

    vision_api_key: str = ""
    vision_endpoint: str = VISION_ENDPOINT
    gemini_api_key: str = ""
    gemini_model: str = "gemini-pro"
    gemini_endpoint: str = GEMINI_ENDPOINT

    detect_timeout: float = 10.0
    insight_timeout: float = 15.0

    dashboard_window: int = 30
    dashboard_poll_seconds: float = 5.0


def load_settings() -> Settings:
    return Settings(
        supabase_url=os.getenv("SUPABASE_URL", ""),
        supabase_key=os.getenv("SUPABASE_KEY", ""),
        supabase_bucket=os.getenv("SUPABASE_BUCKET", "attendance-images"),
        vision_api_key=os.getenv("GOOGLE_CLOUD_API_KEY", ""),
        vision_endpoint=os.getenv("VISION_API_ENDPOINT", VISION_ENDPOINT),
        gemini_api_key=os.getenv("GEMINI_API_KEY", ""),
        gemini_model=os.getenv("GEMINI_MODEL", "gemini-pro"),
        detect_timeout=float(os.getenv("DETECT_TIMEOUT_SECONDS", "10")),
        insight_timeout=float(os.getenv("INSIGHT_TIMEOUT_SECONDS", "15")),
        dashboard_window=int(os.getenv("DASHBOARD_WINDOW", "30")),
        dashboard_poll_seconds=float(os.getenv("DASHBOARD_POLL_SECONDS", "5")),
    )
