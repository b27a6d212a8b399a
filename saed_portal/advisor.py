"""AI helpers for report summaries and skill recommendations."""

from __future__ import annotations

import json
import logging
from typing import Any, List, Optional

from openai import AsyncOpenAI, OpenAIError
from pydantic import BaseModel, Field, ValidationError

from .config import Settings

logger = logging.getLogger(__name__)

SUMMARY_FALLBACK = "Error generating summary."

RECOMMENDATION_INSTRUCTIONS = (
    "You advise NYSC corps members on SAED (Skill Acquisition and Entrepreneurship Development) paths. "
    "Reply with JSON of the form {\"recommendations\": [{\"skill_name\": str, \"reason\": str, "
    "\"potential_earnings\": str}]} containing exactly three entries."
)

RESUME_INSTRUCTIONS = (
    "You are a career strategist for the Nigerian job market. Read the resume, identify existing strengths and "
    "suggest three SAED skills that close market gaps. Reply with JSON of the form {\"market_analysis\": str, "
    "\"strategic_goal\": str, \"recommendations\": [{\"skill_name\": str, \"strategic_value\": str, "
    "\"demand_level\": str}]}."
)

SUMMARY_INSTRUCTIONS = (
    "Write a professional executive summary of quarterly SAED activity for the NYSC Director-General. "
    "Focus on growth, the most active regions and the skills with the highest placement rates."
)


class SkillRecommendation(BaseModel):
    skill_name: str
    reason: str
    potential_earnings: Optional[str] = None


class _RecommendationPayload(BaseModel):
    recommendations: List[SkillRecommendation] = Field(default_factory=list)


class ResumeSkill(BaseModel):
    skill_name: str
    strategic_value: str
    demand_level: str


class ResumeAnalysis(BaseModel):
    market_analysis: str
    strategic_goal: str
    recommendations: List[ResumeSkill] = Field(default_factory=list)


class PortalAdvisor:
    """Single-shot completion calls. Every failure becomes an empty result."""

    def __init__(self, settings: Settings, *, client: Optional[AsyncOpenAI] = None) -> None:
        self._model = settings.advisor_model
        self._api_key = settings.openai_api_key
        self._client = client

    def _get_client(self) -> Optional[AsyncOpenAI]:
        if self._client is None:
            if not self._api_key:
                logger.warning("OPENAI_API_KEY not configured; advisor disabled")
                return None
            self._client = AsyncOpenAI(api_key=self._api_key)
        return self._client

    async def _complete(self, instructions: str, content: str, *, json_mode: bool) -> Optional[str]:
        client = self._get_client()
        if client is None:
            return None
        kwargs: dict[str, Any] = {}
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}
        response = await client.chat.completions.create(
            model=self._model,
            messages=[
                {"role": "system", "content": instructions},
                {"role": "user", "content": content},
            ],
            **kwargs,
        )
        if not response.choices:
            return None
        return response.choices[0].message.content

    async def summarize_report(self, data: Any) -> str:
        try:
            text = await self._complete(SUMMARY_INSTRUCTIONS, json.dumps(data, default=str), json_mode=False)
        except OpenAIError as exc:
            logger.error("Report summary failed: %s", exc)
            return SUMMARY_FALLBACK
        return text or SUMMARY_FALLBACK

    async def recommend_skills(self, interests: str) -> List[SkillRecommendation]:
        try:
            text = await self._complete(RECOMMENDATION_INSTRUCTIONS, f"Interests: {interests}", json_mode=True)
            if not text:
                return []
            return _RecommendationPayload.model_validate_json(text).recommendations
        except (OpenAIError, ValidationError, ValueError) as exc:
            logger.error("Skill recommendation failed: %s", exc)
            return []

    async def analyze_resume(self, resume_text: str) -> Optional[ResumeAnalysis]:
        try:
            text = await self._complete(RESUME_INSTRUCTIONS, resume_text, json_mode=True)
            if not text:
                return None
            return ResumeAnalysis.model_validate_json(text)
        except (OpenAIError, ValidationError, ValueError) as exc:
            logger.error("Resume analysis failed: %s", exc)
            return None


__all__ = [
    "PortalAdvisor",
    "ResumeAnalysis",
    "ResumeSkill",
    "SkillRecommendation",
    "SUMMARY_FALLBACK",
]
