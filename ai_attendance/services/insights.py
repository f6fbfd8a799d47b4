import json
from typing import List

import requests

from ai_attendance.config import GEMINI_ENDPOINT
from ai_attendance.errors import TransportError
from ai_attendance.outcome import Outcome
from ai_attendance.schemas import InsightEntry
from ai_attendance.utils.deadline import call_with_deadline
from ai_attendance.utils.logger import get_logger

logger = get_logger(__name__)

PROMPT_HEADER = (
    "Analyze the following attendance data and provide insights about attendance patterns, "
    "frequent absentees, and recommendations for improvement:\n"
)


def build_prompt(entries: List[InsightEntry]) -> str:
    return PROMPT_HEADER + json.dumps([e.model_dump() for e in entries], indent=2)


def extract_text(payload: dict) -> str:
    candidates = payload.get("candidates") or []
    if not candidates:
        raise TransportError("Gemini returned no candidates")
    parts = (candidates[0].get("content") or {}).get("parts") or []
    text = "".join(part.get("text", "") for part in parts)
    if not text:
        raise TransportError("Gemini returned an empty response")
    return text


class InsightGenerator:
    """Free-text analysis of recent attendance from the Gemini generateContent API."""

    def __init__(self, api_key: str, model: str = "gemini-pro", endpoint: str = GEMINI_ENDPOINT,
                 timeout: float = 15.0, session=None):
        self.api_key = api_key
        self.model = model
        self.endpoint = endpoint
        self.timeout = timeout
        self._http = session or requests.Session()

    def analyze(self, entries: List[InsightEntry]) -> Outcome[str]:
        logger.info("Starting AI insight generation")
        try:
            text = call_with_deadline(
                self._generate, self.timeout, build_prompt(entries), label="Gemini AI request"
            )
        except Exception as e:
            logger.error(f"Error analyzing attendance patterns: {e}")
            return Outcome.failed(e)
        logger.info("AI insights received")
        return Outcome.ok(text)

    def _generate(self, prompt: str) -> str:
        if not self.api_key:
            raise TransportError("GEMINI_API_KEY is missing")
        response = self._http.post(
            f"{self.endpoint}/{self.model}:generateContent",
            params={"key": self.api_key},
            json={"contents": [{"parts": [{"text": prompt}]}]},
            timeout=self.timeout,
        )
        if not response.ok:
            raise TransportError(f"Gemini API error: {response.status_code} {response.reason}")
        return extract_text(response.json())
