"""
Supabase (Postgres) access using the async supabase client.
"""

from datetime import datetime, timezone
from typing import Any, Optional

from loguru import logger
from supabase import AsyncClient, acreate_client

from .config import Settings, get_settings

MATCH_KEY_COLUMNS = "user_id,resume_id,job_description_id"


class Database:
    """Async Supabase wrapper for resumes, job descriptions and match results."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self._client: Optional[AsyncClient] = None

    async def connect(self) -> None:
        """Create the service-role client."""
        if self._client is not None:
            return

        logger.info(f"Connecting to Supabase: {self.settings.supabase_url}")
        self._client = await acreate_client(
            self.settings.supabase_url,
            self.settings.supabase_service_key.get_secret_value(),
        )
        logger.info("Supabase client ready")

    async def disconnect(self) -> None:
        """Drop the client."""
        if self._client:
            self._client = None
            logger.info("Supabase client released")

    @property
    def client(self) -> AsyncClient:
        """Get client instance."""
        if self._client is None:
            raise RuntimeError("Database not connected. Call connect() first.")
        return self._client

    # -------------------------------------------------------------------------
    # Auth
    # -------------------------------------------------------------------------

    async def get_user_id(self, access_token: str) -> Optional[str]:
        """Resolve a session access token to a user id."""
        try:
            response = await self.client.auth.get_user(access_token)
        except Exception as e:
            logger.warning(f"Session lookup failed: {e}")
            return None
        if response is None or response.user is None:
            return None
        return str(response.user.id)

    # -------------------------------------------------------------------------
    # Resumes
    # -------------------------------------------------------------------------

    async def get_resume(self, user_id: str, resume_id: str) -> Optional[dict[str, Any]]:
        """Get a resume owned by the user."""
        response = await (
            self.client.table("resumes")
            .select("id, file_name, parsed_data")
            .eq("id", resume_id)
            .eq("user_id", user_id)
            .limit(1)
            .execute()
        )
        return response.data[0] if response.data else None

    async def get_primary_resume(self, user_id: str) -> Optional[dict[str, Any]]:
        """Get the user's primary resume."""
        response = await (
            self.client.table("resumes")
            .select("id, file_name, parsed_data")
            .eq("user_id", user_id)
            .eq("is_primary", True)
            .limit(1)
            .execute()
        )
        return response.data[0] if response.data else None

    # -------------------------------------------------------------------------
    # Job descriptions
    # -------------------------------------------------------------------------

    async def get_job_description(
        self, user_id: str, job_description_id: str
    ) -> Optional[dict[str, Any]]:
        response = await (
            self.client.table("job_descriptions")
            .select("*")
            .eq("id", job_description_id)
            .eq("user_id", user_id)
            .limit(1)
            .execute()
        )
        return response.data[0] if response.data else None

    async def get_parsed_job_descriptions(
        self, user_id: str, job_description_ids: Optional[list[str]] = None
    ) -> list[dict[str, Any]]:
        """Get parsed job descriptions, optionally restricted to the given ids."""
        query = (
            self.client.table("job_descriptions")
            .select("*")
            .eq("user_id", user_id)
            .not_.is_("parsed_data", "null")
        )
        if job_description_ids:
            query = query.in_("id", job_description_ids)
        response = await query.execute()
        return response.data or []

    async def update_job_match_score(
        self, job_description_id: str, match_score: int, resume_id: str
    ) -> None:
        """Update the denormalized score shown in job lists."""
        await (
            self.client.table("job_descriptions")
            .update(
                {
                    "match_score": match_score,
                    "last_matched_at": datetime.now(timezone.utc).isoformat(),
                    "matched_resume_id": resume_id,
                }
            )
            .eq("id", job_description_id)
            .execute()
        )

    # -------------------------------------------------------------------------
    # User settings
    # -------------------------------------------------------------------------

    async def get_user_settings(self, user_id: str) -> Optional[dict[str, Any]]:
        response = await (
            self.client.table("user_settings")
            .select("settings")
            .eq("user_id", user_id)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return response.data[0].get("settings")

    # -------------------------------------------------------------------------
    # Match results
    # -------------------------------------------------------------------------

    async def delete_match_record(
        self, user_id: str, resume_id: str, job_description_id: str
    ) -> None:
        await (
            self.client.table("job_match_results")
            .delete()
            .match(
                {
                    "user_id": user_id,
                    "resume_id": resume_id,
                    "job_description_id": job_description_id,
                }
            )
            .execute()
        )

    async def insert_match_record(self, record: dict[str, Any]) -> None:
        await self.client.table("job_match_results").insert(record).execute()

    async def upsert_match_record(self, record: dict[str, Any]) -> None:
        """Insert or replace the row for the record's (user, resume, job) key."""
        record = {**record, "created_at": datetime.now(timezone.utc).isoformat()}
        await (
            self.client.table("job_match_results")
            .upsert(record, on_conflict=MATCH_KEY_COLUMNS)
            .execute()
        )

    async def get_match_scores(self, user_id: str) -> list[dict[str, Any]]:
        """Score and creation time of every stored match for the user."""
        response = await (
            self.client.table("job_match_results")
            .select("match_score, created_at")
            .eq("user_id", user_id)
            .execute()
        )
        return response.data or []

    async def count_match_records(self, user_id: str) -> int:
        response = await (
            self.client.table("job_match_results")
            .select("*", count="exact", head=True)
            .eq("user_id", user_id)
            .execute()
        )
        return response.count or 0
