# Shared module for configuration, models, storage and the AI provider layer
from .config import Settings, get_settings
from .database import Database
from .logging_config import setup_logging
from .models import (
    AISettings,
    CandidateProfile,
    JobPosting,
    JobRequirements,
    MatchingCriteria,
    MatchRecord,
    MatchResult,
)

__all__ = [
    "Settings",
    "get_settings",
    "Database",
    "setup_logging",
    "AISettings",
    "CandidateProfile",
    "JobPosting",
    "JobRequirements",
    "MatchingCriteria",
    "MatchRecord",
    "MatchResult",
]
