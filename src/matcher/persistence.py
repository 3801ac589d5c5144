"""
Persist match results and keep the denormalized job scores current.
"""

from dataclasses import dataclass
from typing import Optional, Sequence

from loguru import logger

from shared.config import Settings, get_settings
from shared.database import Database
from shared.models import DetailedMatchScore, MatchRecord, MatchResult


@dataclass
class SaveSummary:
    """Result of writing one run's matches."""

    written: int = 0
    failed: int = 0
    stored_count: Optional[int] = None


class MatchPersistence:
    """
    Writes job_match_results rows, one per (user, resume, job description).

    The default write is delete-then-insert. It needs no unique constraint but
    leaves a window between the two statements where the row is absent, and
    two concurrent runs for the same key race with last-writer-wins. Setting
    ``matcher_use_upsert`` switches to a single upsert on the key columns.
    """

    def __init__(self, db: Database, settings: Optional[Settings] = None):
        self.db = db
        self.settings = settings or get_settings()

    async def save_matches(
        self,
        user_id: str,
        resume_id: str,
        matches: Sequence[MatchResult],
    ) -> SaveSummary:
        """Write match records and update job scores; failures are logged and skipped."""
        summary = SaveSummary()

        for match in matches:
            record = MatchRecord.from_result(user_id, resume_id, match)
            try:
                await self._write_record(record)
                summary.written += 1
            except Exception as e:
                summary.failed += 1
                logger.error(f"Failed to save match for job {match.job_id}: {e}")

        for match in matches:
            await self._update_job_score(match.job_id, match.match_score, resume_id)

        try:
            summary.stored_count = await self.db.count_match_records(user_id)
        except Exception as e:
            logger.warning(f"Could not count stored matches for user {user_id}: {e}")

        logger.info(
            f"Saved {summary.written}/{len(matches)} matches for resume {resume_id} "
            f"({summary.stored_count} stored for user)"
        )
        return summary

    async def save_detailed_score(
        self,
        user_id: str,
        resume_id: str,
        job_description_id: str,
        detailed: DetailedMatchScore,
    ) -> bool:
        """Upsert a deterministic score for a single job description."""
        record = MatchRecord(
            user_id=user_id,
            resume_id=resume_id,
            job_description_id=job_description_id,
            match_score=detailed.score,
            match_breakdown=detailed.breakdown,
        )
        await self._update_job_score(job_description_id, detailed.score, resume_id)
        try:
            await self.db.upsert_match_record(record.to_row())
        except Exception as e:
            logger.error(f"Failed to save match for job {job_description_id}: {e}")
            return False
        return True

    async def _write_record(self, record: MatchRecord) -> None:
        if self.settings.matcher_use_upsert:
            await self.db.upsert_match_record(record.to_row())
            return

        await self.db.delete_match_record(**record.key)
        await self.db.insert_match_record(record.to_row())

    async def _update_job_score(self, job_description_id: str, score: int, resume_id: str) -> None:
        try:
            await self.db.update_job_match_score(job_description_id, score, resume_id)
        except Exception as e:
            logger.warning(f"Failed to update match score on job {job_description_id}: {e}")
