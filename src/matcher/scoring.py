"""
Deterministic match scoring.

Each rule returns an integer 0-100 for one dimension of fit; the detailed
score combines them with fixed weights. The LLM produces the primary score,
these rules give a reproducible breakdown when called directly.
"""

import re
from datetime import date, datetime
from typing import Optional

from dateutil import parser as date_parser

from shared.models import CandidateProfile, DetailedMatchScore, JobRequirements, MatchBreakdown

WEIGHTS = {
    "skills": 0.4,
    "experience": 0.3,
    "education": 0.2,
    "location": 0.1,
}

EDUCATION_LEVELS = {
    "high school": 1,
    "associate": 2,
    "bachelor": 3,
    "master": 4,
    "phd": 5,
    "ph.d": 5,
    "doctorate": 5,
}
DEFAULT_REQUIRED_EDUCATION = EDUCATION_LEVELS["bachelor"]

YEAR_PATTERN = re.compile(r"\b(19|20)\d{2}\b")
_SENTINEL = datetime(1, 1, 1)


def _clamp(score: float) -> int:
    return max(0, min(100, int(round(score))))


def parse_start_year(value: str) -> Optional[int]:
    """Year of a free-text resume date ("2019", "Jan 2020", "2018-03-01")."""
    if not value:
        return None
    match = YEAR_PATTERN.search(value)
    if match:
        return int(match.group())
    try:
        parsed = date_parser.parse(value, fuzzy=True, default=_SENTINEL)
    except (ValueError, OverflowError):
        return None
    return parsed.year if parsed.year != _SENTINEL.year else None


def calculate_experience_years(profile: CandidateProfile, today: Optional[date] = None) -> int:
    """Years since the earliest dated experience entry started."""
    start_years = []
    for entry in profile.experience:
        year = parse_start_year(entry.start_date)
        if year is not None:
            start_years.append(year)
    if not start_years:
        return 0

    current_year = (today or date.today()).year
    return max(0, current_year - min(start_years))


def education_level_of(degree: str) -> Optional[int]:
    degree = degree.lower()
    for key, level in EDUCATION_LEVELS.items():
        if key in degree:
            return level
    return None


def calculate_skills_match(profile: CandidateProfile, requirements: JobRequirements) -> int:
    """Required coverage is worth 80 points, preferred coverage 20."""
    user_skills = {s.lower().strip() for s in profile.skills}
    required = [s.lower().strip() for s in requirements.required_skills]
    preferred = [s.lower().strip() for s in requirements.preferred_skills]

    if not required:
        return 100

    required_matches = sum(1 for s in required if s in user_skills)
    required_score = required_matches / len(required) * 80

    preferred_score = 0.0
    if preferred:
        preferred_matches = sum(1 for s in preferred if s in user_skills)
        preferred_score = preferred_matches / len(preferred) * 20

    return _clamp(required_score + preferred_score)


def calculate_experience_match(
    profile: CandidateProfile,
    requirements: JobRequirements,
    today: Optional[date] = None,
) -> int:
    user_years = calculate_experience_years(profile, today)
    required_years = requirements.experience_years

    if user_years >= required_years:
        return 100
    if user_years >= required_years * 0.8:
        return 80
    if user_years >= required_years * 0.6:
        return 60
    return _clamp(40 - (required_years - user_years) * 10)


def calculate_education_match(profile: CandidateProfile, requirements: JobRequirements) -> int:
    if not requirements.education_level:
        return 100

    user_degree = profile.education[0].degree if profile.education else ""
    user_level = education_level_of(user_degree) or 0
    required_level = education_level_of(requirements.education_level) or DEFAULT_REQUIRED_EDUCATION

    if user_level >= required_level:
        return 100
    if user_level == required_level - 1:
        return 80
    return _clamp(60 - (required_level - user_level) * 20)


def calculate_location_match(profile: CandidateProfile, requirements: JobRequirements) -> int:
    """A location mismatch lowers the score but never disqualifies."""
    job_location = requirements.location.lower().strip()
    if not job_location:
        return 100
    if "remote" in job_location or requirements.remote:
        return 100

    user_location = profile.location.lower().strip()
    if user_location and (user_location in job_location or job_location in user_location):
        return 100

    user_parts = {p.strip() for p in user_location.split(",") if p.strip()}
    job_parts = {p.strip() for p in job_location.split(",") if p.strip()}
    if user_parts & job_parts:
        return 80

    return 50


def calculate_detailed_match_score(
    profile: CandidateProfile,
    requirements: JobRequirements,
    today: Optional[date] = None,
) -> DetailedMatchScore:
    """Weighted average of the four sub-scores."""
    breakdown = MatchBreakdown(
        skills_score=calculate_skills_match(profile, requirements),
        experience_score=calculate_experience_match(profile, requirements, today),
        education_score=calculate_education_match(profile, requirements),
        location_score=calculate_location_match(profile, requirements),
    )

    score = (
        breakdown.skills_score * WEIGHTS["skills"]
        + breakdown.experience_score * WEIGHTS["experience"]
        + breakdown.education_score * WEIGHTS["education"]
        + breakdown.location_score * WEIGHTS["location"]
    )
    return DetailedMatchScore(score=_clamp(score), breakdown=breakdown)
