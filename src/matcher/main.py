"""
Matcher Service - Main entry point.
Matches stored job descriptions against a resume using the configured LLM.
"""

import asyncio
import json
from pathlib import Path
from typing import Optional

import click
from loguru import logger

from shared.ai import AIService
from shared.config import get_settings
from shared.database import Database
from shared.logging_config import setup_logging
from shared.models import CandidateProfile, JobPosting, JobRequirements, MatchRequest, MatchResponse

from .scoring import calculate_detailed_match_score
from .service import MatchService


async def run_match(
    user_id: str,
    resume_id: str,
    job_ids: Optional[list[str]] = None,
    match_all: bool = False,
) -> MatchResponse:
    """
    Run one matching pass for a user's resume.

    Args:
        user_id: Owner of the resume and job descriptions
        resume_id: Resume to match
        job_ids: Restrict matching to these job descriptions
        match_all: Match every parsed job description (ignores job_ids)

    Returns:
        The same response the HTTP endpoint returns
    """
    settings = get_settings()

    db = Database(settings)
    await db.connect()
    ai_service = AIService(settings)

    try:
        service = MatchService(db, ai_service, settings)
        return await service.match_stored(
            user_id,
            MatchRequest(resume_id=resume_id, job_description_ids=job_ids or None, match_all=match_all),
        )
    finally:
        await ai_service.close()
        await db.disconnect()


def _load_json(path: Path) -> dict:
    with open(path) as f:
        return json.load(f)


@click.group()
def cli():
    """Job Matcher - scores resumes against job descriptions."""
    setup_logging()


@cli.command()
@click.option("--user-id", "-u", required=True, help="User who owns the resume")
@click.option("--resume-id", "-r", required=True, help="Resume to match")
@click.option(
    "--job-id",
    "-j",
    "job_ids",
    multiple=True,
    help="Job description to match (repeatable)",
)
@click.option("--all", "match_all", is_flag=True, help="Match every parsed job description")
def match(user_id: str, resume_id: str, job_ids: tuple[str, ...], match_all: bool):
    """Match a resume against stored job descriptions and save the results."""
    response = asyncio.run(
        run_match(user_id=user_id, resume_id=resume_id, job_ids=list(job_ids), match_all=match_all)
    )

    if response.degraded:
        logger.warning("Every matching batch failed; results are empty")
    click.echo(response.model_dump_json(by_alias=True, exclude_none=True, indent=2))


@cli.command()
@click.argument("resume_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("job_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def score(resume_file: Path, job_file: Path):
    """Deterministic score for a parsed resume and a job description (JSON files)."""
    profile = CandidateProfile.from_parsed(_load_json(resume_file))

    job = _load_json(job_file)
    if "parsed_data" in job:
        requirements = JobPosting.from_row({"id": job.get("id", job_file.stem), **job}).requirements
    else:
        requirements = JobRequirements.model_validate(job)

    detailed = calculate_detailed_match_score(profile, requirements)
    click.echo(detailed.model_dump_json(by_alias=True, indent=2))


@cli.command()
@click.option("--host", default=None, help="Bind address (default from settings)")
@click.option("--port", type=int, default=None, help="Port (default from settings)")
def serve(host: Optional[str], port: Optional[int]):
    """Run the HTTP API."""
    import uvicorn

    from api.app import create_app

    settings = get_settings()
    uvicorn.run(
        create_app(settings),
        host=host or settings.api_host,
        port=port or settings.api_port,
        log_config=None,
    )


if __name__ == "__main__":
    cli()
