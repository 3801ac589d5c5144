"""
Request handling for matching: load rows, run the matcher, persist, respond.
"""

import json
import math
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from dateutil import parser as date_parser
from loguru import logger
from pydantic import ValidationError

from shared.ai import AIService
from shared.config import Settings, get_settings
from shared.database import Database
from shared.exceptions import InvalidRequestError, NotFoundError, StorageError
from shared.models import (
    AISettings,
    CandidateProfile,
    JobPosting,
    MatchAfterParseResponse,
    MatchingCriteria,
    MatchRequest,
    MatchResponse,
    MatchStats,
    ResumeUsed,
    score_bucket,
)

from .job_matcher import JobMatcher
from .persistence import MatchPersistence
from .scoring import calculate_detailed_match_score


def _parsed(value: Any) -> Optional[dict[str, Any]]:
    """parsed_data columns are jsonb, but older rows hold the JSON as text."""
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except json.JSONDecodeError:
            return None
    return value if isinstance(value, dict) and value else None


def _timestamp(value: Any) -> Optional[datetime]:
    """Parse a timestamptz column; naive values are taken as UTC."""
    if isinstance(value, datetime):
        parsed = value
    elif value:
        try:
            parsed = date_parser.isoparse(str(value))
        except ValueError:
            return None
    else:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


class MatchService:
    """Entry point used by the HTTP layer and the CLI."""

    def __init__(
        self,
        db: Database,
        ai_service: AIService,
        settings: Optional[Settings] = None,
    ):
        self.db = db
        self.ai_service = ai_service
        self.settings = settings or get_settings()
        self.persistence = MatchPersistence(db, self.settings)

    async def load_ai_settings(self, user_id: str) -> AISettings:
        """The user's provider/model preference, or the configured default."""
        default = AISettings(ai_provider=self.settings.ai_provider, ai_model=self.settings.ai_model)
        try:
            stored = await self.db.get_user_settings(user_id)
        except Exception as e:
            logger.warning(f"Could not load AI settings for user {user_id}: {e}")
            return default
        if not stored:
            return default
        try:
            return AISettings.model_validate({**default.model_dump(by_alias=True), **stored})
        except ValidationError as e:
            logger.warning(f"Ignoring invalid AI settings for user {user_id}: {e}")
            return default

    async def _load_profile(self, user_id: str, resume_id: Optional[str]) -> tuple[dict, CandidateProfile]:
        if not resume_id:
            raise InvalidRequestError("Resume ID is required")

        resume = await self.db.get_resume(user_id, resume_id)
        if not resume:
            raise NotFoundError("Resume not found")

        parsed = _parsed(resume.get("parsed_data"))
        if parsed is None:
            raise NotFoundError("Resume has not been parsed yet")
        return resume, CandidateProfile.from_parsed(parsed)

    @staticmethod
    def _to_postings(rows: list[dict[str, Any]]) -> list[JobPosting]:
        jobs = []
        for row in rows:
            try:
                jobs.append(JobPosting.from_row({**row, "parsed_data": _parsed(row.get("parsed_data"))}))
            except (KeyError, ValidationError) as e:
                logger.warning(f"Skipping unusable job description {row.get('id')}: {e}")
        return jobs

    async def match_stored(self, user_id: str, request: MatchRequest) -> MatchResponse:
        """Match a resume against the user's stored, parsed job descriptions."""
        resume, profile = await self._load_profile(user_id, request.resume_id)

        job_ids = None if request.match_all else (request.job_description_ids or None)
        try:
            rows = await self.db.get_parsed_job_descriptions(user_id, job_ids)
        except Exception as e:
            logger.error(f"Error fetching job descriptions for user {user_id}: {e}")
            raise StorageError("Failed to fetch job descriptions") from e

        ai_settings = await self.load_ai_settings(user_id)
        resume_used = ResumeUsed(id=str(resume["id"]), file_name=resume.get("file_name"))

        if not rows:
            return MatchResponse(
                resume_used=resume_used,
                ai_model=ai_settings.label,
                message="No job descriptions found to match",
            )

        logger.info(f"Matching resume {resume_used.id} against {len(rows)} jobs with {ai_settings.label}")

        matcher = JobMatcher(self.ai_service, ai_settings, self.settings)
        run = await matcher.match_jobs(profile, self._to_postings(rows))

        summary = await self.persistence.save_matches(user_id, resume_used.id, run.matches)
        saved = summary.stored_count if summary.stored_count is not None else summary.written

        return MatchResponse(
            matches=run.matches,
            resume_used=resume_used,
            total_jobs_analyzed=len(rows),
            total_matches=len(run.matches),
            saved_matches=saved,
            ai_model=ai_settings.label,
            degraded=run.degraded,
        )

    async def match_after_parse(
        self, user_id: str, job_description_id: Optional[str]
    ) -> MatchAfterParseResponse:
        """Score a freshly parsed job description against the primary resume."""
        if not job_description_id:
            raise InvalidRequestError("Job description ID is required")

        job_row = await self.db.get_job_description(user_id, job_description_id)
        if not job_row:
            raise NotFoundError("Job description not found")

        job_parsed = _parsed(job_row.get("parsed_data"))
        if job_parsed is None:
            raise InvalidRequestError("Job description has not been parsed yet")

        resume = await self.db.get_primary_resume(user_id)
        resume_parsed = _parsed(resume.get("parsed_data")) if resume else None
        if resume_parsed is None:
            return MatchAfterParseResponse(
                success=False,
                message="No primary resume found or resume not parsed",
            )

        profile = CandidateProfile.from_parsed(resume_parsed)
        posting = JobPosting.from_row({**job_row, "parsed_data": job_parsed})
        detailed = calculate_detailed_match_score(profile, posting.requirements)

        resume_id = str(resume["id"])
        await self.persistence.save_detailed_score(user_id, resume_id, posting.id, detailed)

        return MatchAfterParseResponse(
            match_score=detailed.score,
            breakdown=detailed.breakdown,
            resume_id=resume_id,
        )

    async def extract_criteria(self, user_id: str, resume_id: Optional[str]) -> MatchingCriteria:
        """Matching preferences implied by one of the user's resumes."""
        _, profile = await self._load_profile(user_id, resume_id)
        ai_settings = await self.load_ai_settings(user_id)
        matcher = JobMatcher(self.ai_service, ai_settings, self.settings)
        return await matcher.extract_matching_criteria(profile)

    async def match_stats(self, user_id: str, now: Optional[datetime] = None) -> MatchStats:
        """Totals, score bands and distribution over the user's stored matches."""
        try:
            rows = await self.db.get_match_scores(user_id)
        except Exception as e:
            logger.error(f"Error fetching match stats for user {user_id}: {e}")
            raise StorageError("Failed to fetch match statistics") from e

        recent_since = (now or datetime.now(timezone.utc)) - timedelta(days=7)
        stats = MatchStats(total=len(rows))
        scores = []

        for row in rows:
            score = int(row.get("match_score") or 0)
            scores.append(score)
            stats.score_distribution[score_bucket(score)] += 1
            if score >= 80:
                stats.high_matches += 1
            elif score >= 70:
                stats.medium_matches += 1

            created_at = _timestamp(row.get("created_at"))
            if created_at is not None and created_at >= recent_since:
                stats.recent_matches += 1

        if scores:
            stats.average_score = math.floor(sum(scores) / len(scores) + 0.5)
        return stats
