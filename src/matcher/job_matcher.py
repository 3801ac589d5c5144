"""
Job matching orchestrator: batch jobs, score them with the LLM, normalize,
filter and sort.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Optional, Sequence

from loguru import logger
from pydantic import ValidationError
from tenacity import AsyncRetrying, RetryCallState, stop_after_attempt, wait_exponential

from shared.ai import AIService
from shared.config import Settings, get_settings
from shared.exceptions import LLMResponseError
from shared.models import (
    AISettings,
    CandidateProfile,
    DetailedMatchScore,
    JobPosting,
    JobRequirements,
    MatchingCriteria,
    MatchResult,
)

from .llm_matcher import LLMMatcher, LLMMatchItem
from .prompts import (
    CRITERIA_SYSTEM_PROMPT,
    build_criteria_prompt,
    build_match_prompt,
    build_match_system_prompt,
)
from .scoring import calculate_detailed_match_score, calculate_experience_years


@dataclass
class MatchRun:
    """Outcome of one matching run."""

    matches: list[MatchResult] = field(default_factory=list)
    batches_total: int = 0
    batches_failed: int = 0

    @property
    def degraded(self) -> bool:
        """True when every batch failed, as opposed to nothing clearing the floor."""
        return self.batches_total > 0 and self.batches_failed == self.batches_total


def chunk_jobs(jobs: Sequence[JobPosting], size: int) -> list[list[JobPosting]]:
    return [list(jobs[i : i + size]) for i in range(0, len(jobs), size)]


def normalize_matches(
    items: Sequence[dict[str, Any]], jobs: Sequence[JobPosting]
) -> list[MatchResult]:
    """
    Validate raw match objects and bind them to their input postings.

    Items that fail validation, reference a job id that was not in the
    batch, or repeat an id already seen are dropped.
    """
    jobs_by_id = {job.id: job for job in jobs}
    results: list[MatchResult] = []
    seen: set[str] = set()

    for raw in items:
        try:
            item = LLMMatchItem.model_validate(raw)
        except ValidationError as e:
            logger.warning(f"Dropping malformed match object: {e.errors()[0]['msg']}")
            continue

        job = jobs_by_id.get(item.job_id) if item.job_id else None
        if job is None:
            logger.warning(f"Dropping match with unknown jobId {item.job_id!r}")
            continue
        if job.id in seen:
            logger.debug(f"Ignoring duplicate match for job {job.id}")
            continue

        seen.add(job.id)
        results.append(item.to_result(job))

    return results


def apply_match_floor(matches: Sequence[MatchResult], floor: int) -> list[MatchResult]:
    """Keep matches scoring at least ``floor``, best first; ties keep input order."""
    kept = [m for m in matches if m.match_score >= floor]
    return sorted(kept, key=lambda m: m.match_score, reverse=True)


class JobMatcher:
    """Matches job postings to a candidate profile."""

    def __init__(
        self,
        ai_service: AIService,
        ai_settings: Optional[AISettings] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.llm = LLMMatcher(ai_service, ai_settings)

    async def match_jobs_to_profile(
        self,
        profile: CandidateProfile,
        jobs: Sequence[JobPosting],
        criteria: Optional[MatchingCriteria] = None,
    ) -> list[MatchResult]:
        """Matches at or above the floor, sorted by score descending."""
        run = await self.match_jobs(profile, jobs, criteria)
        return run.matches

    async def match_jobs(
        self,
        profile: CandidateProfile,
        jobs: Sequence[JobPosting],
        criteria: Optional[MatchingCriteria] = None,
    ) -> MatchRun:
        """
        Score jobs in batches and collect the results.

        Batches run under a concurrency cap (1 by default, i.e. strictly
        sequential). A batch that raises is logged and contributes nothing;
        the run itself never raises for provider failures.
        """
        batches = chunk_jobs(jobs, self.settings.matcher_batch_size)
        run = MatchRun(batches_total=len(batches))
        if not batches:
            return run

        logger.info(
            f"Matching {len(jobs)} jobs in {len(batches)} batches "
            f"(concurrency {self.settings.matcher_max_concurrency})"
        )

        system_prompt = build_match_system_prompt(self.settings.matcher_prompt_threshold)
        semaphore = asyncio.Semaphore(self.settings.matcher_max_concurrency)

        async def run_batch(index: int, batch: list[JobPosting]) -> Optional[list[MatchResult]]:
            async with semaphore:
                return await self._match_batch(
                    index, len(batches), profile, batch, criteria, system_prompt
                )

        outcomes = await asyncio.gather(
            *(run_batch(i, batch) for i, batch in enumerate(batches, start=1))
        )

        collected: list[MatchResult] = []
        for outcome in outcomes:
            if outcome is None:
                run.batches_failed += 1
            else:
                collected.extend(outcome)

        run.matches = apply_match_floor(collected, self.settings.matcher_match_floor)

        if run.degraded:
            logger.error(f"All {run.batches_total} matching batches failed")
        logger.info(
            f"Matching complete: {len(collected)} scored, {len(run.matches)} kept, "
            f"{run.batches_failed}/{run.batches_total} batches failed"
        )
        return run

    async def _match_batch(
        self,
        index: int,
        total: int,
        profile: CandidateProfile,
        batch: list[JobPosting],
        criteria: Optional[MatchingCriteria],
        system_prompt: str,
    ) -> Optional[list[MatchResult]]:
        prompt = build_match_prompt(
            profile, batch, criteria, threshold=self.settings.matcher_prompt_threshold
        )
        attempts = 1 + self.settings.matcher_batch_retries

        def log_retry(retry_state: RetryCallState) -> None:
            logger.warning(
                f"Batch {index}/{total} attempt {retry_state.attempt_number}/{attempts} "
                f"failed, retrying: {retry_state.outcome.exception()}"
            )

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(attempts),
                wait=wait_exponential(multiplier=self.settings.matcher_retry_base_delay),
                before_sleep=log_retry,
                reraise=True,
            ):
                with attempt:
                    items = await self.llm.request_matches(prompt, system_prompt)
            results = normalize_matches(items, batch)
        except Exception as e:
            logger.error(f"Batch {index}/{total} failed after {attempts} attempt(s): {e}")
            return None

        logger.debug(f"Batch {index}/{total}: {len(results)} of {len(batch)} jobs scored")
        return results

    async def extract_matching_criteria(self, profile: CandidateProfile) -> MatchingCriteria:
        """Criteria implied by the resume; falls back to profile-derived defaults."""
        try:
            parsed = await self.llm.query_json(
                build_criteria_prompt(profile), CRITERIA_SYSTEM_PROMPT
            )
            if not isinstance(parsed, dict):
                raise LLMResponseError("criteria response is not a JSON object")
            return MatchingCriteria.model_validate(parsed)
        except Exception as e:
            logger.warning(f"Criteria extraction failed, using profile defaults: {e}")
            return self.default_criteria(profile)

    @staticmethod
    def default_criteria(profile: CandidateProfile) -> MatchingCriteria:
        latest_degree = profile.education[0].degree if profile.education else ""
        return MatchingCriteria(
            required_skills=list(profile.skills),
            preferred_skills=[],
            experience_years=calculate_experience_years(profile),
            education_level=latest_degree or None,
            job_types=["full-time"],
            locations=[],
            remote_preference="any",
        )

    @staticmethod
    def calculate_detailed_match_score(
        profile: CandidateProfile,
        requirements: JobRequirements,
        today: Optional[date] = None,
    ) -> DetailedMatchScore:
        return calculate_detailed_match_score(profile, requirements, today)
