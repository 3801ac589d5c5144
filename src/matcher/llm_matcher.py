"""
LLM-based job matching: send a batch prompt, get back validated match items.
"""

import math
from typing import Any, Optional

from loguru import logger
from pydantic import field_validator, model_validator

from shared.ai import AIService, parse_json_response
from shared.exceptions import LLMResponseError
from shared.models import AISettings, CamelModel, JobPosting, MatchResult, coerce_str_list


def _score(value: Any) -> int:
    if value is None or value == "":
        return 0
    if isinstance(value, str):
        value = float(value.strip().rstrip("%"))
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"score must be numeric, got {value!r}")
    if not math.isfinite(value):
        raise ValueError(f"score must be finite, got {value!r}")
    return max(0, min(100, int(round(value))))


class LLMMatchItem(CamelModel):
    """
    One match object as returned by the model.

    Tolerates the usual drift in model output: ``id`` instead of ``jobId``,
    ``relevanceScore`` instead of ``matchScore``, numeric strings and missing
    fields. Non-numeric scores fail validation.
    """

    job_id: Optional[str] = None
    title: str = ""
    company: str = ""
    location: str = ""
    match_score: int = 0
    match_reasons: list[str] = []
    missing_skills: list[str] = []
    skills_score: int = 0
    experience_score: int = 0
    education_score: int = 0
    location_score: int = 0

    @model_validator(mode="before")
    @classmethod
    def _aliases(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        data["jobId"] = data.get("jobId") or data.get("job_id") or data.get("id")
        data["matchScore"] = (
            data.get("matchScore") or data.get("match_score") or data.get("relevanceScore") or 0
        )
        return data

    @field_validator("job_id", mode="before")
    @classmethod
    def _job_id(cls, v: Any) -> Optional[str]:
        return str(v).strip() if v not in (None, "") else None

    @field_validator("title", "company", "location", mode="before")
    @classmethod
    def _text(cls, v: Any) -> str:
        return "" if v is None else str(v)

    @field_validator(
        "match_score",
        "skills_score",
        "experience_score",
        "education_score",
        "location_score",
        mode="before",
    )
    @classmethod
    def _scores(cls, v: Any) -> int:
        return _score(v)

    @field_validator("match_reasons", "missing_skills", mode="before")
    @classmethod
    def _lists(cls, v: Any) -> list[str]:
        return coerce_str_list(v)

    def to_result(self, job: JobPosting) -> MatchResult:
        """Bind the item to its input posting; the id always comes from the posting."""
        return MatchResult(
            job_id=job.id,
            title=self.title or job.title,
            company=self.company or job.company,
            location=self.location or job.location,
            match_score=self.match_score,
            match_reasons=self.match_reasons,
            missing_skills=self.missing_skills,
            skills_score=self.skills_score,
            experience_score=self.experience_score,
            education_score=self.education_score,
            location_score=self.location_score,
        )


def extract_match_items(parsed: Any) -> list[dict[str, Any]]:
    """Accept a bare array, ``{"matches": [...]}`` or a single match object."""
    if isinstance(parsed, dict):
        if isinstance(parsed.get("matches"), list):
            parsed = parsed["matches"]
        elif any(k in parsed for k in ("jobId", "id", "job_id")):
            parsed = [parsed]
    if not isinstance(parsed, list):
        logger.warning(f"Unexpected match response shape: {type(parsed).__name__}")
        return []
    return [item for item in parsed if isinstance(item, dict)]


class LLMMatcher:
    """
    Requests match scores from a language model.

    With per-user AI settings the prompt goes to the user's provider/model and
    the raw completion text is parsed here; otherwise the service's default
    provider is used through its JSON helper. Unparseable output yields an
    empty batch; provider errors propagate to the caller.
    """

    def __init__(self, ai_service: AIService, ai_settings: Optional[AISettings] = None):
        self.ai_service = ai_service
        self.ai_settings = ai_settings

    async def query_json(self, prompt: str, system_prompt: str) -> Any:
        """Raw JSON from the model; raises LLMResponseError on bad output."""
        if self.ai_settings is not None:
            response = await self.ai_service.query(prompt, system_prompt, self.ai_settings)
            return parse_json_response(response.content)
        return await self.ai_service.query_json(prompt, system_prompt)

    async def request_matches(self, prompt: str, system_prompt: str) -> list[dict[str, Any]]:
        """Match objects for one batch, or [] if the output is not usable JSON."""
        try:
            parsed = await self.query_json(prompt, system_prompt)
        except LLMResponseError as e:
            logger.error(f"Failed to parse LLM match response: {e}")
            return []

        items = extract_match_items(parsed)
        logger.debug(f"LLM returned {len(items)} match objects")
        return items
