"""Tests for the batching orchestrator."""

import asyncio

import pytest

from matcher import job_matcher
from matcher.job_matcher import JobMatcher, apply_match_floor, chunk_jobs, normalize_matches
from shared.exceptions import AIProviderError
from shared.models import MatchResult

from conftest import FakeAIService, jobs_in_prompt, make_job, score_by_id


def result(job_id: str, score: int) -> MatchResult:
    return MatchResult(job_id=job_id, match_score=score)


class TestHelpers:
    def test_chunk_jobs(self, jobs):
        assert [len(batch) for batch in chunk_jobs(jobs, 5)] == [5, 5, 2]
        assert chunk_jobs([], 5) == []

    def test_floor_keeps_fifty_and_above_sorted(self):
        matches = [result(f"j{s}", s) for s in (30, 49, 50, 51, 100)]
        kept = apply_match_floor(matches, 50)
        assert [m.match_score for m in kept] == [100, 51, 50]

    def test_floor_sort_is_stable_for_ties(self):
        matches = [result("first", 70), result("top", 90), result("second", 70)]
        assert [m.job_id for m in apply_match_floor(matches, 50)] == ["top", "first", "second"]

    def test_normalize_drops_unknown_duplicate_and_malformed(self):
        jobs = [make_job("a"), make_job("b")]
        items = [
            {"jobId": "a", "matchScore": 80},
            {"jobId": "made-up-id", "matchScore": 95},
            {"jobId": "a", "matchScore": 60},
            {"jobId": "b", "matchScore": "n/a"},
            {"matchScore": 99},
        ]
        results = normalize_matches(items, jobs)
        assert [(r.job_id, r.match_score) for r in results] == [("a", 80)]

    @pytest.mark.parametrize("score", [float("inf"), float("-inf"), float("nan"), "inf", "1e999"])
    def test_normalize_drops_non_finite_scores(self, score):
        jobs = [make_job("a"), make_job("b")]
        items = [{"jobId": "a", "matchScore": score}, {"jobId": "b", "matchScore": 80}]

        assert [r.job_id for r in normalize_matches(items, jobs)] == ["b"]


class TestMatchJobs:
    @pytest.mark.asyncio
    async def test_sends_batches_of_five(self, settings, profile, jobs):
        ai = FakeAIService(score_by_id({}))
        run = await JobMatcher(ai, settings=settings).match_jobs(profile, jobs)

        assert [len(jobs_in_prompt(call["prompt"])) for call in ai.calls] == [5, 5, 2]
        assert run.batches_total == 3
        assert len(run.matches) == 12

    @pytest.mark.asyncio
    async def test_matches_filtered_and_sorted(self, settings, profile):
        jobs = [make_job(f"j{i}") for i in range(5)]
        scores = {"j0": 30, "j1": 49, "j2": 50, "j3": 51, "j4": 100}
        ai = FakeAIService(score_by_id(scores))

        matches = await JobMatcher(ai, settings=settings).match_jobs_to_profile(profile, jobs)

        assert [(m.job_id, m.match_score) for m in matches] == [("j4", 100), ("j3", 51), ("j2", 50)]

    @pytest.mark.asyncio
    async def test_job_id_comes_from_input_when_model_uses_id(self, settings, profile):
        uuid = "3f1e2d4c-0000-4a5b-9c8d-123456789abc"
        ai = FakeAIService(lambda prompt: [{"id": uuid, "matchScore": 77, "title": "Engineer"}])

        matches = await JobMatcher(ai, settings=settings).match_jobs_to_profile(
            profile, [make_job(uuid)]
        )

        assert [m.job_id for m in matches] == [uuid]

    @pytest.mark.asyncio
    async def test_hallucinated_ids_are_dropped(self, settings, profile):
        ai = FakeAIService(lambda prompt: [{"jobId": "job-123", "matchScore": 90}])
        matches = await JobMatcher(ai, settings=settings).match_jobs_to_profile(
            profile, [make_job("real-id")]
        )
        assert matches == []

    @pytest.mark.asyncio
    async def test_failed_batch_is_isolated(self, settings, profile, jobs):
        calls = {"n": 0}
        responder = score_by_id({})

        def flaky(prompt):
            calls["n"] += 1
            if calls["n"] == 2:
                return AIProviderError("upstream timeout")
            return responder(prompt)

        ai = FakeAIService(flaky)
        run = await JobMatcher(ai, settings=settings).match_jobs(profile, jobs)

        expected = {job.id for job in jobs[:5] + jobs[10:]}
        assert {m.job_id for m in run.matches} == expected
        assert run.batches_failed == 1
        assert not run.degraded

    @pytest.mark.asyncio
    async def test_all_batches_failing_is_degraded(self, settings, profile, jobs):
        ai = FakeAIService(lambda prompt: AIProviderError("provider down"))
        run = await JobMatcher(ai, settings=settings).match_jobs(profile, jobs)

        assert run.matches == []
        assert run.batches_failed == 3
        assert run.degraded

    @pytest.mark.asyncio
    async def test_unparseable_batch_is_empty_not_failed(self, settings, profile, jobs):
        ai = FakeAIService(lambda prompt: "no json here")
        run = await JobMatcher(ai, settings=settings).match_jobs(profile, jobs)

        assert run.matches == []
        assert run.batches_failed == 0
        assert not run.degraded

    @pytest.mark.asyncio
    async def test_no_jobs(self, settings, profile):
        ai = FakeAIService()
        run = await JobMatcher(ai, settings=settings).match_jobs(profile, [])

        assert run.matches == []
        assert not run.degraded
        assert ai.calls == []

    @pytest.mark.asyncio
    async def test_batch_retry(self, settings, profile):
        settings = settings.model_copy(update={"matcher_batch_retries": 1})
        attempts = {"n": 0}

        def once_failing(prompt):
            attempts["n"] += 1
            if attempts["n"] == 1:
                return AIProviderError("transient")
            return score_by_id({})(prompt)

        ai = FakeAIService(once_failing)
        run = await JobMatcher(ai, settings=settings).match_jobs(profile, [make_job("a")])

        assert [m.job_id for m in run.matches] == ["a"]
        assert run.batches_failed == 0

    @pytest.mark.asyncio
    async def test_batch_retries_exhausted(self, settings, profile):
        settings = settings.model_copy(update={"matcher_batch_retries": 2})
        ai = FakeAIService(lambda prompt: AIProviderError("still down"))

        run = await JobMatcher(ai, settings=settings).match_jobs(profile, [make_job("a")])

        assert len(ai.calls) == 3
        assert run.batches_failed == 1
        assert run.degraded

    @pytest.mark.asyncio
    async def test_infinite_score_from_model_is_dropped(self, settings, profile):
        ai = FakeAIService(
            lambda prompt: '[{"jobId": "a", "matchScore": Infinity}, {"jobId": "b", "matchScore": 80}]'
        )
        run = await JobMatcher(ai, settings=settings).match_jobs(
            profile, [make_job("a"), make_job("b")]
        )

        assert [m.job_id for m in run.matches] == ["b"]
        assert not run.degraded

    @pytest.mark.asyncio
    async def test_normalization_error_fails_only_its_batch(self, settings, profile, jobs, monkeypatch):
        calls = {"n": 0}
        real_normalize = job_matcher.normalize_matches

        def normalize_once_broken(items, batch):
            calls["n"] += 1
            if calls["n"] == 1:
                raise OverflowError("cannot convert float infinity to integer")
            return real_normalize(items, batch)

        monkeypatch.setattr(job_matcher, "normalize_matches", normalize_once_broken)
        run = await JobMatcher(FakeAIService(score_by_id({})), settings=settings).match_jobs(
            profile, jobs
        )

        assert {m.job_id for m in run.matches} == {job.id for job in jobs[5:]}
        assert run.batches_failed == 1

    @pytest.mark.asyncio
    async def test_concurrency_cap(self, settings, profile, jobs):
        settings = settings.model_copy(update={"matcher_max_concurrency": 2, "matcher_batch_size": 2})
        in_flight = {"now": 0, "peak": 0}
        responder = score_by_id({})

        class SlowAI(FakeAIService):
            async def query(self, prompt, system_prompt=None, ai_settings=None):
                in_flight["now"] += 1
                in_flight["peak"] = max(in_flight["peak"], in_flight["now"])
                await asyncio.sleep(0.01)
                in_flight["now"] -= 1
                return await super().query(prompt, system_prompt, ai_settings)

        run = await JobMatcher(SlowAI(responder), settings=settings).match_jobs(profile, jobs)

        assert in_flight["peak"] == 2
        assert len(run.matches) == 12

    @pytest.mark.asyncio
    async def test_sequential_by_default(self, settings, profile, jobs):
        in_flight = {"now": 0, "peak": 0}

        class SlowAI(FakeAIService):
            async def query(self, prompt, system_prompt=None, ai_settings=None):
                in_flight["now"] += 1
                in_flight["peak"] = max(in_flight["peak"], in_flight["now"])
                await asyncio.sleep(0.01)
                in_flight["now"] -= 1
                return await super().query(prompt, system_prompt, ai_settings)

        await JobMatcher(SlowAI(score_by_id({})), settings=settings).match_jobs(profile, jobs)
        assert in_flight["peak"] == 1


class TestMatchingCriteria:
    @pytest.mark.asyncio
    async def test_parsed_from_model(self, settings, profile):
        ai = FakeAIService(
            lambda prompt: {
                "requiredSkills": ["Python"],
                "experienceYears": "5",
                "remotePreference": "Remote",
                "salaryMin": 90000,
            }
        )
        criteria = await JobMatcher(ai, settings=settings).extract_matching_criteria(profile)

        assert criteria.required_skills == ["Python"]
        assert criteria.experience_years == 5
        assert criteria.remote_preference == "remote"
        assert criteria.salary_min == 90000

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "outcome",
        [AIProviderError("down"), "not json", ["a", "list"], {"remotePreference": "sometimes"}],
    )
    async def test_falls_back_to_profile_defaults(self, settings, profile, outcome):
        ai = FakeAIService(lambda prompt: outcome)
        criteria = await JobMatcher(ai, settings=settings).extract_matching_criteria(profile)

        assert criteria.required_skills == ["Python", "SQL", "Docker"]
        assert criteria.education_level == "Bachelor of Science in Computer Science"
        assert criteria.job_types == ["full-time"]
        assert criteria.remote_preference == "any"
        assert criteria.experience_years >= 5


class TestDetailedScoreDelegate:
    def test_matches_scoring_module(self, profile, today):
        job = make_job("a", required_skills=["Python", "SQL", "AWS"], experience_years=3)
        detailed = JobMatcher.calculate_detailed_match_score(profile, job.requirements, today)
        assert detailed.breakdown.skills_score == 53
        assert detailed.breakdown.experience_score == 100
