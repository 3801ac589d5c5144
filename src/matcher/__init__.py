"""
Matcher Service - LLM-based resume-to-job matching.

Scores batches of stored job descriptions against a parsed resume with a
language model, keeps the matches above the floor, and persists them.
Deterministic scoring rules provide a reproducible breakdown.
"""

from .job_matcher import JobMatcher, MatchRun
from .llm_matcher import LLMMatcher
from .persistence import MatchPersistence
from .scoring import calculate_detailed_match_score
from .service import MatchService

__all__ = [
    "JobMatcher",
    "LLMMatcher",
    "MatchPersistence",
    "MatchRun",
    "MatchService",
    "calculate_detailed_match_score",
]
