"""
Matching endpoints.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Request

from matcher.service import MatchService
from shared.exceptions import AuthenticationError
from shared.models import (
    MatchAfterParseRequest,
    MatchAfterParseResponse,
    MatchingCriteria,
    MatchRequest,
    MatchResponse,
    MatchStatsResponse,
)

router = APIRouter(prefix="/api", tags=["matching"])


def get_match_service(request: Request) -> MatchService:
    return request.app.state.match_service


def _session_token(request: Request) -> Optional[str]:
    cookie_name = request.app.state.settings.session_cookie_name
    token = request.cookies.get(cookie_name)
    if token:
        return token
    auth_header = request.headers.get("Authorization", "")
    if auth_header.lower().startswith("bearer "):
        return auth_header[7:].strip() or None
    return None


async def get_current_user_id(request: Request) -> str:
    """Resolve the session cookie (or bearer token) to a user id."""
    token = _session_token(request)
    if not token:
        raise AuthenticationError()
    user_id = await request.app.state.db.get_user_id(token)
    if not user_id:
        raise AuthenticationError()
    return user_id


@router.get("/health")
async def health():
    return {"status": "ok"}


@router.post(
    "/jobs/match-stored",
    response_model=MatchResponse,
    response_model_exclude_none=True,
)
async def match_stored(
    body: MatchRequest,
    user_id: str = Depends(get_current_user_id),
    service: MatchService = Depends(get_match_service),
):
    """
    Match a resume against the user's stored job descriptions.

    Matches are returned sorted by score, highest first. ``degraded`` is set
    when every LLM batch failed, so an empty list can be told apart from
    "nothing cleared the threshold".
    """
    return await service.match_stored(user_id, body)


@router.post(
    "/job-descriptions/match-after-parse",
    response_model=MatchAfterParseResponse,
    response_model_exclude_none=True,
)
async def match_after_parse(
    body: MatchAfterParseRequest,
    user_id: str = Depends(get_current_user_id),
    service: MatchService = Depends(get_match_service),
):
    """Deterministic score for a newly parsed job description."""
    return await service.match_after_parse(user_id, body.job_description_id)


@router.post("/jobs/matching-criteria", response_model=MatchingCriteria)
async def matching_criteria(
    body: MatchRequest,
    user_id: str = Depends(get_current_user_id),
    service: MatchService = Depends(get_match_service),
):
    return await service.extract_criteria(user_id, body.resume_id)


@router.get("/jobs/match-stats", response_model=MatchStatsResponse)
async def match_stats(
    user_id: str = Depends(get_current_user_id),
    service: MatchService = Depends(get_match_service),
):
    """Counts and score distribution over the user's stored match results."""
    return MatchStatsResponse(stats=await service.match_stats(user_id))
