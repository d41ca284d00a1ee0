"""
Narrative insight over recent site logs, generated by the Gemini REST API.

Read-only and fail-soft: any configuration or HTTP problem yields a fixed
fallback string instead of an error.
"""
from typing import List, Optional

import httpx
import structlog

from buildstream.config import settings
from buildstream.models.records import SiteLogRecord

logger = structlog.get_logger(__name__)

MISSING_KEY_MESSAGE = (
    "AI Insights require a valid Google API Key. Please configure your environment variables."
)
UNAVAILABLE_MESSAGE = "Unable to generate AI insights at this time. Manual review recommended."
NO_LOGS_MESSAGE = "No site logs available for analysis."

SYSTEM_INSTRUCTION = "You are a senior construction analyst providing concise project summaries."
PROMPT = (
    "Analyze the following site logs and provide a 2-sentence executive summary "
    "highlighting any productivity trends or potential risks: \n\n{summary}"
)


def build_prompt(logs: List[SiteLogRecord]) -> str:
    summary = "\n".join(
        f"- {log.date}: {log.work_completed} (Status: {log.status.value})" for log in logs
    )
    return PROMPT.format(summary=summary)


class InsightClient:
    """Summarize(logs) -> text."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.gemini_api_key
        self.model = model or settings.gemini_model
        self.base_url = (base_url or settings.gemini_base_url).rstrip("/")
        self.timeout = timeout or settings.insight_timeout_seconds
        self.transport = transport

    def summarize(self, logs: List[SiteLogRecord]) -> str:
        if not logs:
            return NO_LOGS_MESSAGE
        if not self.api_key:
            return MISSING_KEY_MESSAGE

        payload = {
            "systemInstruction": {"parts": [{"text": SYSTEM_INSTRUCTION}]},
            "contents": [{"role": "user", "parts": [{"text": build_prompt(logs)}]}],
            "generationConfig": {"temperature": 0.7},
        }
        url = f"{self.base_url}/models/{self.model}:generateContent"

        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                r = client.post(url, params={"key": self.api_key}, json=payload)
                r.raise_for_status()
                data = r.json()
            parts = data["candidates"][0]["content"]["parts"]
            text = "".join(part.get("text", "") for part in parts).strip()
        except httpx.HTTPError as e:
            logger.error("insight_request_failed", error=str(e))
            return UNAVAILABLE_MESSAGE
        except (KeyError, IndexError, TypeError, ValueError) as e:
            logger.error("insight_response_malformed", error=e.__class__.__name__)
            return UNAVAILABLE_MESSAGE

        return text or UNAVAILABLE_MESSAGE
