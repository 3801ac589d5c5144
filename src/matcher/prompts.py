"""
Prompt construction for LLM job matching and criteria extraction.
"""

import json
from typing import Any, Optional, Sequence

from shared.models import CandidateProfile, JobPosting, MatchingCriteria

MATCH_SYSTEM_PROMPT = """You are an expert job matching AI. Analyze the user profile and job descriptions to determine match scores.

Consider these factors:
1. Skills match (both required and preferred) - 40% weight
2. Experience level alignment - 30% weight
3. Education requirements - 20% weight
4. Location preferences - 10% weight
5. Salary expectations (if provided)
6. Job type preferences
7. Career progression fit
8. Industry/domain alignment

Score each job from 0-100 based on how well it matches the candidate's profile.
Return ALL jobs with their scores, even if below {threshold}.
Provide specific, actionable reasons for the match and identify key missing skills."""

MATCH_OUTPUT_SCHEMA = """[
  {
    "jobId": "<use the exact job.id from the input>",
    "title": "<job title>",
    "company": "<company name>",
    "location": "<location>",
    "matchScore": <number 0-100>,
    "matchReasons": ["reason 1", "reason 2", ...],
    "missingSkills": ["skill 1", "skill 2", ...],
    "skillsScore": <number 0-100>,
    "experienceScore": <number 0-100>,
    "educationScore": <number 0-100>,
    "locationScore": <number 0-100>
  }
]"""

CRITERIA_SYSTEM_PROMPT = "Extract job matching criteria from a user's resume profile."


def _to_json(value: Any) -> str:
    return json.dumps(value, indent=2, default=str, ensure_ascii=False)


def build_match_system_prompt(threshold: int = 60) -> str:
    return MATCH_SYSTEM_PROMPT.format(threshold=threshold)


def build_match_prompt(
    profile: CandidateProfile,
    jobs: Sequence[JobPosting],
    criteria: Optional[MatchingCriteria] = None,
    threshold: int = 60,
) -> str:
    """User prompt for one batch of jobs."""
    criteria_payload = (
        criteria.model_dump(by_alias=True, exclude_none=True) if criteria else {}
    )

    return f"""## User Profile:
{_to_json(profile.to_prompt_dict())}

## Matching Criteria:
{_to_json(criteria_payload)}

## Jobs to Match:
{_to_json([job.to_prompt_dict() for job in jobs])}

## Task:
Analyze each job and return matches with scores above {threshold}%.

Return an array of objects with EXACTLY this structure:
{MATCH_OUTPUT_SCHEMA}

CRITICAL: The jobId MUST be the exact id from the input jobs list, not a generated value."""


def build_criteria_prompt(profile: CandidateProfile) -> str:
    return f"""Based on this resume profile, extract job matching criteria:

{_to_json(profile.model_dump(by_alias=True))}

Return a JSON object with:
- requiredSkills: Array of must-have skills based on their experience
- preferredSkills: Array of nice-to-have skills
- experienceYears: Number of years of experience
- educationLevel: Highest education level
- jobTypes: Preferred job types (full-time, contract, etc.)
- locations: Preferred locations (if mentioned)
- salaryMin: Minimum expected salary (if determinable from seniority)
- remotePreference: remote/hybrid/onsite/any"""
