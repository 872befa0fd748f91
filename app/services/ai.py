# services/ai.py - Gemini ticket analysis
# ============================================================================

import json
import logging
import re
from typing import List, Literal, Optional

import httpx
from pydantic import BaseModel

from app.core.config import settings

logger = logging.getLogger(__name__)

PRIORITIES = ("low", "medium", "high")

_FENCED_JSON = re.compile(r"```json\s*([\s\S]*?)\s*```", re.IGNORECASE)
_OBJECT_LIKE = re.compile(r"\{[\s\S]*\}")

PROMPT_TEMPLATE = """
You are an expert AI assistant that processes technical support tickets.
Respond ONLY in strict JSON format with keys:
summary, priority, helpfulNotes, relatedSkills.

Priority must be one of: low, medium, high.

Analyze this support ticket:

Title: {title}
Description: {description}
"""


class TicketAnalysis(BaseModel):
    summary: str = ""
    priority: Literal["low", "medium", "high"] = "medium"
    helpful_notes: str = ""
    related_skills: List[str] = []


def extract_json_string(raw: str) -> str:
    fenced = _FENCED_JSON.search(raw)
    if fenced:
        return fenced.group(1)
    object_like = _OBJECT_LIKE.search(raw)
    if object_like:
        return object_like.group(0)
    return raw.strip()


def parse_analysis(raw: Optional[str]) -> Optional[TicketAnalysis]:
    """Turn free model text into a TicketAnalysis, or None if it holds no JSON object."""
    if not raw:
        return None
    try:
        parsed = json.loads(extract_json_string(raw))
    except ValueError as e:
        logger.error(f"AI parsing error: {e}")
        return None
    if not isinstance(parsed, dict):
        return None

    priority = str(parsed.get("priority") or "").strip().lower()
    skills = parsed.get("relatedSkills")
    return TicketAnalysis(
        summary=str(parsed.get("summary") or ""),
        priority=priority if priority in PRIORITIES else "medium",
        helpful_notes=str(parsed.get("helpfulNotes") or ""),
        related_skills=[str(s).strip() for s in skills if str(s).strip()] if isinstance(skills, list) else [],
    )


def read_response_text(data) -> str:
    """Pull the model text out of a generateContent response; "" for anything unexpected."""
    if not isinstance(data, dict):
        return ""
    candidates = data.get("candidates")
    if not isinstance(candidates, list) or not candidates or not isinstance(candidates[0], dict):
        return ""
    content = candidates[0].get("content")
    parts = content.get("parts") if isinstance(content, dict) else None
    if not isinstance(parts, list):
        return ""
    return "\n".join(str(part.get("text") or "") for part in parts if isinstance(part, dict))


class TicketAnalyzer:
    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None):
        self.api_key = settings.GEMINI_API_KEY if api_key is None else api_key
        self.model = model or settings.GEMINI_MODEL

    async def _request(self, prompt: str):
        async with httpx.AsyncClient(timeout=settings.AI_TIMEOUT_SECONDS) as client:
            response = await client.post(
                f"{settings.GEMINI_API_URL}/models/{self.model}:generateContent",
                params={"key": self.api_key},
                json={"contents": [{"parts": [{"text": prompt}]}]},
            )
            response.raise_for_status()
            return response.json()

    async def analyze(self, title: str, description: str) -> Optional[TicketAnalysis]:
        if not self.api_key:
            logger.warning("GEMINI_API_KEY is missing. Skipping AI analysis.")
            return None

        try:
            data = await self._request(PROMPT_TEMPLATE.format(title=title, description=description))
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"❌ AI request failed: {e}")
            return None

        raw = read_response_text(data)
        if not raw:
            logger.warning("AI response carried no text")
            return None
        return parse_analysis(raw)
