"""
Pydantic models for candidate profiles, job postings and match records.
"""

import re
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

YEARS_PATTERN = re.compile(r"(\d+)\+?\s*years?", re.IGNORECASE)


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return " ".join(_as_text(v) for v in value if v)
    return str(value)


def coerce_str_list(value: Any) -> list[str]:
    """Coerce loosely shaped JSON (None, str, dict of lists, list of dicts) to a list of strings."""
    if value is None:
        return []
    if isinstance(value, str):
        return [s.strip() for s in value.split(",") if s.strip()]
    if isinstance(value, dict):
        items: list[str] = []
        for group in value.values():
            items.extend(coerce_str_list(group))
        return items
    items = []
    for item in value:
        if isinstance(item, dict):
            item = item.get("name") or item.get("skill") or ""
        text = str(item).strip() if item is not None else ""
        if text:
            items.append(text)
    return items


def _as_int(value: Any, default: int = 0) -> int:
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return int(round(value))
    match = re.search(r"-?\d+(\.\d+)?", str(value))
    return int(round(float(match.group()))) if match else default


class CamelModel(BaseModel):
    """Base model accepting both camelCase (wire) and snake_case (Python) keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


# -------------------------------------------------------------------------
# Candidate profile
# -------------------------------------------------------------------------


class ExperienceEntry(CamelModel):
    """Work experience entry from a parsed resume."""

    company: str = ""
    title: str = ""
    start_date: str = ""
    end_date: str = ""
    description: str = ""

    @field_validator("company", "title", "start_date", "end_date", "description", mode="before")
    @classmethod
    def _text(cls, v: Any) -> str:
        return _as_text(v)


class EducationEntry(CamelModel):
    """Education entry from a parsed resume."""

    degree: str = ""
    institution: str = ""
    year: str = ""

    @field_validator("degree", "institution", "year", mode="before")
    @classmethod
    def _text(cls, v: Any) -> str:
        return _as_text(v)


class CandidateProfile(CamelModel):
    """Immutable snapshot of a parsed resume used for one matching run."""

    model_config = ConfigDict(frozen=True)

    skills: list[str] = Field(default_factory=list)
    experience: list[ExperienceEntry] = Field(default_factory=list)
    education: list[EducationEntry] = Field(default_factory=list)
    summary: str = ""
    location: str = ""

    @field_validator("skills", mode="before")
    @classmethod
    def _skills(cls, v: Any) -> list[str]:
        return coerce_str_list(v)

    @field_validator("experience", "education", mode="before")
    @classmethod
    def _entries(cls, v: Any) -> list:
        return [e for e in (v or []) if isinstance(e, (dict, BaseModel))]

    @field_validator("summary", "location", mode="before")
    @classmethod
    def _text(cls, v: Any) -> str:
        return _as_text(v)

    @classmethod
    def from_parsed(cls, parsed: dict[str, Any]) -> "CandidateProfile":
        """Build a profile from the stored parsed-resume JSON."""
        contact = parsed.get("contactInfo") or parsed.get("contact_info") or {}
        return cls.model_validate(
            {
                "skills": parsed.get("skills"),
                "experience": parsed.get("experience"),
                "education": parsed.get("education"),
                "summary": parsed.get("summary"),
                "location": contact.get("location") or parsed.get("location"),
            }
        )

    def to_prompt_dict(self) -> dict[str, Any]:
        """Fields shared with the model; contact details stay out of the prompt."""
        return self.model_dump(
            by_alias=True, include={"skills", "experience", "education", "summary"}
        )


# -------------------------------------------------------------------------
# Job postings
# -------------------------------------------------------------------------


class JobRequirements(CamelModel):
    """Parsed requirements of a job description."""

    required_skills: list[str] = Field(default_factory=list)
    preferred_skills: list[str] = Field(default_factory=list)
    technologies: list[str] = Field(default_factory=list)
    qualifications: list[str] = Field(default_factory=list)
    responsibilities: list[str] = Field(default_factory=list)
    experience_years: int = 0
    education_level: str = ""
    employment_type: str = ""
    salary_range: Optional[Any] = None
    benefits: list[str] = Field(default_factory=list)
    keywords: list[str] = Field(default_factory=list)
    location: str = ""
    remote: bool = False

    @field_validator(
        "required_skills",
        "preferred_skills",
        "technologies",
        "qualifications",
        "responsibilities",
        "benefits",
        "keywords",
        mode="before",
    )
    @classmethod
    def _lists(cls, v: Any) -> list[str]:
        return coerce_str_list(v)

    @field_validator("experience_years", mode="before")
    @classmethod
    def _years(cls, v: Any) -> int:
        return max(0, _as_int(v))

    @field_validator("education_level", "employment_type", "location", mode="before")
    @classmethod
    def _text(cls, v: Any) -> str:
        if isinstance(v, (list, tuple)):
            v = v[0] if v else ""
        return _as_text(v)

    @field_validator("remote", mode="before")
    @classmethod
    def _remote(cls, v: Any) -> bool:
        if isinstance(v, str):
            return v.strip().lower() in {"true", "yes", "1", "remote"}
        return bool(v)


def extract_experience_years(parsed: Optional[dict[str, Any]]) -> int:
    """Pull a required-years figure out of free-text requirement fields."""
    if not parsed:
        return 0
    text = parsed.get("experience_required") or _as_text(
        parsed.get("required_qualifications")
    )
    match = YEARS_PATTERN.search(_as_text(text))
    return int(match.group(1)) if match else 0


class JobPosting(CamelModel):
    """Stored job description reduced to its matchable fields."""

    model_config = ConfigDict(frozen=True)

    id: str
    title: str = ""
    company: str = ""
    location: str = "Not specified"
    url: str = ""
    description: str = ""
    posted_date: Optional[str] = None
    requirements: JobRequirements = Field(default_factory=JobRequirements)

    @field_validator("id", mode="before")
    @classmethod
    def _id(cls, v: Any) -> str:
        return str(v)

    @field_validator("title", "company", "url", "description", mode="before")
    @classmethod
    def _text(cls, v: Any) -> str:
        return _as_text(v)

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "JobPosting":
        """Convert a job_descriptions row into a posting."""
        parsed = row.get("parsed_data") or {}
        requirements = JobRequirements(
            required_skills=parsed.get("required_skills"),
            preferred_skills=parsed.get("preferred_skills"),
            technologies=parsed.get("technologies"),
            qualifications=parsed.get("required_qualifications"),
            responsibilities=parsed.get("responsibilities"),
            experience_years=extract_experience_years(parsed),
            education_level=parsed.get("education_requirements"),
            employment_type=parsed.get("employment_type") or "Full-time",
            salary_range=parsed.get("salary_range"),
            benefits=parsed.get("benefits"),
            keywords=parsed.get("ats_keywords"),
            location=row.get("location"),
            remote=parsed.get("remote") or parsed.get("is_remote"),
        )
        return cls(
            id=row["id"],
            title=row.get("job_title") or row.get("title"),
            company=row.get("company_name") or row.get("company"),
            location=row.get("location") or "Not specified",
            url=row.get("url"),
            description=row.get("description"),
            posted_date=row.get("posted_date") or row.get("created_at"),
            requirements=requirements,
        )

    def to_prompt_dict(self) -> dict[str, Any]:
        reqs = self.requirements
        return {
            "id": self.id,
            "title": self.title,
            "company": self.company,
            "location": self.location,
            "description": self.description,
            "requirements": reqs.model_dump(
                by_alias=True,
                include={
                    "required_skills",
                    "preferred_skills",
                    "technologies",
                    "qualifications",
                    "responsibilities",
                    "experience_years",
                    "education_level",
                    "benefits",
                    "keywords",
                },
            ),
            "salary": reqs.salary_range,
            "jobType": reqs.employment_type,
            "postedDate": self.posted_date,
            "url": self.url,
        }


# -------------------------------------------------------------------------
# Match results
# -------------------------------------------------------------------------


class MatchBreakdown(CamelModel):
    """Per-dimension sub-scores, each 0-100."""

    skills_score: int = Field(default=0, ge=0, le=100)
    experience_score: int = Field(default=0, ge=0, le=100)
    education_score: int = Field(default=0, ge=0, le=100)
    location_score: int = Field(default=0, ge=0, le=100)


class DetailedMatchScore(CamelModel):
    """Deterministic weighted score with its breakdown."""

    score: int = Field(ge=0, le=100)
    breakdown: MatchBreakdown


class MatchResult(CamelModel):
    """One job scored against one candidate."""

    model_config = ConfigDict(frozen=True)

    job_id: str
    title: str = ""
    company: str = ""
    location: str = ""
    match_score: int = Field(ge=0, le=100)
    match_reasons: list[str] = Field(default_factory=list)
    missing_skills: list[str] = Field(default_factory=list)
    skills_score: int = Field(default=0, ge=0, le=100)
    experience_score: int = Field(default=0, ge=0, le=100)
    education_score: int = Field(default=0, ge=0, le=100)
    location_score: int = Field(default=0, ge=0, le=100)

    @property
    def breakdown(self) -> MatchBreakdown:
        return MatchBreakdown(
            skills_score=self.skills_score,
            experience_score=self.experience_score,
            education_score=self.education_score,
            location_score=self.location_score,
        )


class MatchRecord(BaseModel):
    """Row in job_match_results, unique per (user_id, resume_id, job_description_id)."""

    user_id: str
    resume_id: str
    job_description_id: str
    match_score: int = Field(ge=0, le=100)
    match_breakdown: Optional[MatchBreakdown] = None
    match_reasons: Optional[list[str]] = None
    missing_skills: Optional[list[str]] = None

    @property
    def key(self) -> dict[str, str]:
        return {
            "user_id": self.user_id,
            "resume_id": self.resume_id,
            "job_description_id": self.job_description_id,
        }

    @classmethod
    def from_result(cls, user_id: str, resume_id: str, result: MatchResult) -> "MatchRecord":
        return cls(
            user_id=user_id,
            resume_id=resume_id,
            job_description_id=result.job_id,
            match_score=result.match_score,
            match_breakdown=result.breakdown,
            match_reasons=result.match_reasons or None,
            missing_skills=result.missing_skills or None,
        )

    def to_row(self) -> dict[str, Any]:
        row = self.model_dump(exclude_none=True, exclude={"match_breakdown"})
        if self.match_breakdown is not None:
            row["match_breakdown"] = self.match_breakdown.model_dump(by_alias=True)
        return row


# -------------------------------------------------------------------------
# Criteria and settings
# -------------------------------------------------------------------------


class MatchingCriteria(CamelModel):
    """Matching preferences implied by a resume."""

    required_skills: list[str] = Field(default_factory=list)
    preferred_skills: list[str] = Field(default_factory=list)
    experience_years: int = 0
    education_level: Optional[str] = None
    job_types: list[str] = Field(default_factory=list)
    locations: list[str] = Field(default_factory=list)
    salary_min: Optional[int] = None
    remote_preference: Literal["remote", "hybrid", "onsite", "any"] = "any"

    @field_validator("required_skills", "preferred_skills", "job_types", "locations", mode="before")
    @classmethod
    def _lists(cls, v: Any) -> list[str]:
        return coerce_str_list(v)

    @field_validator("experience_years", mode="before")
    @classmethod
    def _years(cls, v: Any) -> int:
        return max(0, _as_int(v))

    @field_validator("remote_preference", mode="before")
    @classmethod
    def _remote(cls, v: Any) -> str:
        return str(v).lower().strip() if v else "any"


class AISettings(CamelModel):
    """Per-user AI provider preference, stored as {aiProvider, aiModel}."""

    ai_provider: str = "openrouter"
    ai_model: str = "qwen/qwq-32b-preview"

    @property
    def label(self) -> str:
        return f"{self.ai_provider}/{self.ai_model}"


# -------------------------------------------------------------------------
# Request / response payloads
# -------------------------------------------------------------------------


class MatchRequest(CamelModel):
    resume_id: Optional[str] = None
    job_description_ids: Optional[list[str]] = None
    match_all: bool = False


class ResumeUsed(CamelModel):
    id: str
    file_name: Optional[str] = None


class MatchResponse(CamelModel):
    success: bool = True
    matches: list[MatchResult] = Field(default_factory=list)
    resume_used: Optional[ResumeUsed] = None
    total_jobs_analyzed: int = 0
    total_matches: int = 0
    saved_matches: int = 0
    ai_model: str = ""
    degraded: bool = False
    message: Optional[str] = None


SCORE_BUCKETS = ("90-100", "80-89", "70-79", "60-69", "below60")


def score_bucket(score: int) -> str:
    if score >= 90:
        return "90-100"
    if score >= 80:
        return "80-89"
    if score >= 70:
        return "70-79"
    if score >= 60:
        return "60-69"
    return "below60"


class MatchStats(CamelModel):
    """Aggregates over a user's stored match records."""

    total: int = 0
    high_matches: int = 0
    medium_matches: int = 0
    recent_matches: int = 0
    score_distribution: dict[str, int] = Field(
        default_factory=lambda: dict.fromkeys(SCORE_BUCKETS, 0)
    )
    average_score: int = 0


class MatchStatsResponse(CamelModel):
    stats: MatchStats


class MatchAfterParseRequest(CamelModel):
    job_description_id: Optional[str] = None


class MatchAfterParseResponse(CamelModel):
    success: bool = True
    match_score: Optional[int] = None
    breakdown: Optional[MatchBreakdown] = None
    resume_id: Optional[str] = None
    message: Optional[str] = None
