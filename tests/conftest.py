"""Shared fixtures and in-memory fakes for the store and the AI service."""

import json
import re
from datetime import date, datetime, timezone
from typing import Any, Callable, Optional, Union

import pytest

from shared.ai import AIResponse, parse_json_response
from shared.config import Settings
from shared.models import AISettings, CandidateProfile, JobPosting, JobRequirements

JOBS_SECTION = re.compile(r"## Jobs to Match:\n(.*?)\n\n## Task:", re.DOTALL)


def jobs_in_prompt(prompt: str) -> list[dict[str, Any]]:
    """The job payload embedded in a match prompt."""
    match = JOBS_SECTION.search(prompt)
    assert match, "prompt has no jobs section"
    return json.loads(match.group(1))


Outcome = Union[str, list, dict, Exception]


class FakeAIService:
    """
    Stands in for AIService.

    ``responder`` receives the prompt and returns the completion: a string
    (raw content), a list/dict (serialized to JSON) or an exception to raise.
    """

    def __init__(self, responder: Optional[Callable[[str], Outcome]] = None):
        self.responder = responder or (lambda prompt: [])
        self.calls: list[dict[str, Any]] = []
        self.closed = False

    async def query(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        ai_settings: Optional[AISettings] = None,
    ) -> AIResponse:
        self.calls.append(
            {"prompt": prompt, "system_prompt": system_prompt, "ai_settings": ai_settings}
        )
        outcome = self.responder(prompt)
        if isinstance(outcome, Exception):
            raise outcome
        content = outcome if isinstance(outcome, str) else json.dumps(outcome)
        return AIResponse(content=content, model="fake-model")

    async def query_json(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        ai_settings: Optional[AISettings] = None,
    ) -> Any:
        response = await self.query(prompt, system_prompt, ai_settings)
        return parse_json_response(response.content)

    async def close(self) -> None:
        self.closed = True


def score_by_id(scores: dict[str, int], default: int = 75) -> Callable[[str], list]:
    """Responder that scores every job in the prompt from a lookup."""

    def responder(prompt: str) -> list:
        return [
            {
                "jobId": job["id"],
                "title": job["title"],
                "company": job["company"],
                "location": job["location"],
                "matchScore": scores.get(job["id"], default),
                "matchReasons": ["Relevant experience"],
                "missingSkills": [],
                "skillsScore": 70,
                "experienceScore": 80,
                "educationScore": 90,
                "locationScore": 100,
            }
            for job in jobs_in_prompt(prompt)
        ]

    return responder


class InMemoryDatabase:
    """Dict-backed stand-in for shared.database.Database."""

    def __init__(self):
        self.resumes: dict[str, dict[str, Any]] = {}
        self.job_descriptions: dict[str, dict[str, Any]] = {}
        self.user_settings: dict[str, dict[str, Any]] = {}
        self.match_rows: list[dict[str, Any]] = []
        self.tokens: dict[str, str] = {}
        self.fail_insert_for: set[str] = set()
        self.fail_job_update = False
        self.fail_job_fetch = False
        self.fail_stats = False
        self.connected = False

    async def connect(self) -> None:
        self.connected = True

    async def disconnect(self) -> None:
        self.connected = False

    async def get_user_id(self, access_token: str) -> Optional[str]:
        return self.tokens.get(access_token)

    async def get_resume(self, user_id: str, resume_id: str) -> Optional[dict[str, Any]]:
        row = self.resumes.get(resume_id)
        return row if row and row["user_id"] == user_id else None

    async def get_primary_resume(self, user_id: str) -> Optional[dict[str, Any]]:
        for row in self.resumes.values():
            if row["user_id"] == user_id and row.get("is_primary"):
                return row
        return None

    async def get_job_description(self, user_id: str, job_description_id: str):
        row = self.job_descriptions.get(job_description_id)
        return row if row and row["user_id"] == user_id else None

    async def get_parsed_job_descriptions(self, user_id: str, job_description_ids=None):
        if self.fail_job_fetch:
            raise ConnectionError("database unavailable")
        return [
            row
            for row in self.job_descriptions.values()
            if row["user_id"] == user_id
            and row.get("parsed_data") is not None
            and (not job_description_ids or row["id"] in job_description_ids)
        ]

    async def update_job_match_score(self, job_description_id: str, match_score: int, resume_id: str):
        if self.fail_job_update:
            raise ConnectionError("update failed")
        row = self.job_descriptions.get(job_description_id)
        if row is not None:
            row.update(match_score=match_score, matched_resume_id=resume_id, last_matched_at="now")

    async def get_user_settings(self, user_id: str) -> Optional[dict[str, Any]]:
        return self.user_settings.get(user_id)

    @staticmethod
    def _same_key(row: dict[str, Any], user_id: str, resume_id: str, job_description_id: str) -> bool:
        return (row["user_id"], row["resume_id"], row["job_description_id"]) == (
            user_id,
            resume_id,
            job_description_id,
        )

    async def delete_match_record(self, user_id: str, resume_id: str, job_description_id: str):
        self.match_rows = [
            r for r in self.match_rows if not self._same_key(r, user_id, resume_id, job_description_id)
        ]

    async def insert_match_record(self, record: dict[str, Any]) -> None:
        if record["job_description_id"] in self.fail_insert_for:
            raise ConnectionError("insert failed")
        self.match_rows.append({"created_at": datetime.now(timezone.utc).isoformat(), **record})

    async def upsert_match_record(self, record: dict[str, Any]) -> None:
        await self.delete_match_record(
            record["user_id"], record["resume_id"], record["job_description_id"]
        )
        self.match_rows.append({**record, "created_at": datetime.now(timezone.utc).isoformat()})

    async def get_match_scores(self, user_id: str) -> list[dict[str, Any]]:
        if self.fail_stats:
            raise ConnectionError("database unavailable")
        return [
            {"match_score": r["match_score"], "created_at": r.get("created_at")}
            for r in self.match_rows
            if r["user_id"] == user_id
        ]

    async def count_match_records(self, user_id: str) -> int:
        return sum(1 for r in self.match_rows if r["user_id"] == user_id)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        openrouter_api_key="test-openrouter-key",
        openai_api_key="test-openai-key",
        anthropic_api_key="",
        gemini_api_key="",
        requesty_api_key="",
        matcher_retry_base_delay=0,
        log_format="text",
    )


@pytest.fixture
def today() -> date:
    return date(2024, 6, 1)


@pytest.fixture
def profile() -> CandidateProfile:
    return CandidateProfile.from_parsed(
        {
            "skills": ["Python", "SQL", "Docker"],
            "summary": "Backend engineer focused on data services.",
            "contactInfo": {"location": "Zurich, Switzerland", "email": "jane@example.com"},
            "experience": [
                {"company": "Acme", "title": "Senior Engineer", "startDate": "2021-03", "endDate": "Present"},
                {"company": "Initech", "title": "Engineer", "startDate": "2019-01", "endDate": "2021-02"},
            ],
            "education": [{"degree": "Bachelor of Science in Computer Science", "institution": "ETH"}],
        }
    )


def make_job(job_id: str, **requirements: Any) -> JobPosting:
    return JobPosting(
        id=job_id,
        title=f"Engineer {job_id}",
        company="Globex",
        location=requirements.get("location", "Remote"),
        description="Build data services.",
        requirements=JobRequirements(**requirements),
    )


@pytest.fixture
def jobs() -> list[JobPosting]:
    return [make_job(f"job-{i}", required_skills=["Python"]) for i in range(1, 13)]
