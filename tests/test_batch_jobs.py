"""
Tests for the seed / repair / regenerate / filter batch jobs
"""
import json
from unittest.mock import AsyncMock, Mock

import pytest

from codepuzzles.models import RepoSearchItem
from codepuzzles.services.batch_jobs import BatchRunner, JobStats, filter_puzzles, language_track
from codepuzzles.services.credential_rotator import CredentialRotator
from codepuzzles.services.repo_list_store import PersistedRepos, RepoListStore
from codepuzzles.utils.exceptions import (
    GitHubRateLimitError,
    LLMRateLimitError,
    NoPuzzleAvailableError,
    UpstreamUnavailableError,
)

CORRECTED = {
    "task_type": "TRACE",
    "question": "What does line 5 return for n=2?",
    "given": {"n": 2},
    "choices": ["4", "5"],
    "answer": "4",
    "explanation": "n * 2",
    "common_mistakes": [],
    "startLine": 4,
    "endLine": 6,
}


class FakeGroq:
    def __init__(self, outputs):
        self.outputs = list(outputs)
        self.calls = []

    async def complete(self, system_prompt, user_prompt, model=None, api_key=None, json_mode=False, **kwargs):
        self.calls.append({"model": model, "api_key": api_key, "json_mode": json_mode})
        output = self.outputs.pop(0)
        if isinstance(output, Exception):
            raise output
        return output


def make_runner(repository=None, generator=None, github=None, groq=None, tmp_path=None, sleep=None):
    sleep = sleep or AsyncMock()
    return BatchRunner(
        repository=repository or Mock(),
        generator=generator or Mock(generate=AsyncMock()),
        github=github or Mock(),
        groq=groq or FakeGroq([]),
        rotator=CredentialRotator(api_keys=["k1", "k2"], models=["m1"], sleep=sleep),
        repo_store=RepoListStore(tmp_path) if tmp_path is not None else Mock(),
        throttle_seconds=0,
        sleep=sleep,
    )


def test_language_track():
    assert language_track(["Go", "Rust", "C"], 1) == "Go ✓  |  Rust ◐  |  C ○"
    assert language_track(["Go"], 0, current_done=True) == "Go ✓"


def test_job_stats_summary_lists_nonzero():
    assert JobStats(updated=2, errors=1).summary() == "updated: 2, errors: 1"


class TestRepair:
    @pytest.mark.asyncio
    async def test_approved_leaves_puzzle(self, make_puzzle):
        repository = Mock()
        repository.list_puzzles.return_value = [make_puzzle()]
        runner = make_runner(repository=repository, groq=FakeGroq(["APPROVED\n{}"]))

        stats = await runner.repair()

        assert stats.approved == 1
        repository.update_puzzle_content.assert_not_called()

    @pytest.mark.asyncio
    async def test_rejected_stores_correction(self, make_puzzle):
        repository = Mock()
        repository.list_puzzles.return_value = [make_puzzle()]
        response = "REJECTED\n```json\n" + json.dumps(CORRECTED) + "\n```"
        runner = make_runner(repository=repository, groq=FakeGroq([response]))

        stats = await runner.repair()

        assert stats.rejected == 1
        assert stats.updated == 1
        args, kwargs = repository.update_puzzle_content.call_args
        assert args == ("octo:demo:src/app.py:abc123",)
        assert kwargs["question"] == CORRECTED["question"]
        assert kwargs["answer_key"].start_line == 4
        assert kwargs["grading_rubric"] == "Correct answer: 4. Grade by exact match or rubric in explanation."

    @pytest.mark.asyncio
    async def test_correction_with_answer_outside_choices_is_error(self, make_puzzle):
        repository = Mock()
        repository.list_puzzles.return_value = [make_puzzle()]
        bad = dict(CORRECTED, answer="7")
        runner = make_runner(repository=repository, groq=FakeGroq(["REJECTED\n" + json.dumps(bad)]))

        stats = await runner.repair()

        assert stats.rejected == 1
        assert stats.errors == 1
        repository.update_puzzle_content.assert_not_called()

    @pytest.mark.asyncio
    async def test_rate_limit_retries_same_puzzle(self, make_puzzle):
        repository = Mock()
        repository.list_puzzles.return_value = [make_puzzle()]
        groq = FakeGroq([LLMRateLimitError(model="m1"), "APPROVED"])
        runner = make_runner(repository=repository, groq=groq)

        stats = await runner.repair()

        assert stats.approved == 1
        assert stats.errors == 0
        assert [c["api_key"] for c in groq.calls] == ["k1", "k2"]


class TestRegenerate:
    @pytest.mark.asyncio
    async def test_regenerates_from_start_index(self, make_puzzle):
        repository = Mock()
        repository.list_puzzles.return_value = [
            make_puzzle(puzzle_id="p1"),
            make_puzzle(puzzle_id="p2"),
        ]
        groq = FakeGroq(["not json", json.dumps(CORRECTED)])
        runner = make_runner(repository=repository, groq=groq)

        stats = await runner.regenerate(start_index=2)

        assert stats.updated == 1
        assert repository.update_puzzle_content.call_args.args == ("p2",)
        assert all(call["json_mode"] for call in groq.calls)

    @pytest.mark.asyncio
    async def test_new_question_without_answer_clears_old_rubric(self, make_puzzle):
        repository = Mock()
        repository.list_puzzles.return_value = [make_puzzle(puzzle_id="p1")]
        output = {"task_type": "INVARIANT", "question": "New, unrelated?", "startLine": 2, "endLine": 4}
        runner = make_runner(repository=repository, groq=FakeGroq([json.dumps(output)]))

        stats = await runner.regenerate()

        assert stats.updated == 1
        stored = repository.update_puzzle_content.call_args.kwargs
        assert stored["question"] == "New, unrelated?"
        assert stored["grading_rubric"] == ""

    @pytest.mark.asyncio
    async def test_skips_after_three_bad_outputs(self, make_puzzle):
        repository = Mock()
        repository.list_puzzles.return_value = [make_puzzle()]
        runner = make_runner(repository=repository, groq=FakeGroq(["x", "y", "z"]))

        stats = await runner.regenerate(start_puzzle_id="missing-id")

        assert stats.skipped == 1
        repository.update_puzzle_content.assert_not_called()


class TestSeed:
    @pytest.mark.asyncio
    async def test_tops_up_to_target(self, make_puzzle, tmp_path):
        repository = Mock()
        repository.count_puzzles_by_language.return_value = 1
        generator = Mock(generate=AsyncMock(return_value=make_puzzle()))
        runner = make_runner(repository=repository, generator=generator, tmp_path=tmp_path)
        runner.repo_store.save(PersistedRepos(
            language="Python",
            repos=[RepoSearchItem(full_name="octo/demo")],
            last_fetched_page=10,
        ))

        counts = await runner.seed(languages=["Python"], target=3)

        assert counts == {"Python": 3}
        assert repository.insert_puzzle.call_count == 2
        seeds = [call.kwargs["seed"] for call in generator.generate.call_args_list]
        assert seeds == ["Python:1", "Python:2"]

    @pytest.mark.asyncio
    async def test_skips_language_at_target(self):
        repository = Mock()
        repository.count_puzzles_by_language.return_value = 5
        runner = make_runner(repository=repository)

        counts = await runner.seed(languages=["Go"], target=5)

        assert counts == {"Go": 5}
        runner.generator.generate.assert_not_called()

    @pytest.mark.asyncio
    async def test_stops_after_consecutive_errors(self, monkeypatch, tmp_path):
        from codepuzzles.config import settings

        monkeypatch.setattr(settings, "max_consecutive_errors", 3)
        repository = Mock()
        repository.count_puzzles_by_language.return_value = 0
        generator = Mock(generate=AsyncMock(side_effect=NoPuzzleAvailableError("nothing")))
        runner = make_runner(repository=repository, generator=generator, tmp_path=tmp_path)
        runner.repo_store.save(PersistedRepos(
            language="Go", repos=[RepoSearchItem(full_name="octo/demo")], last_fetched_page=10
        ))

        counts = await runner.seed(languages=["Go"], target=10)

        assert counts == {"Go": 0}
        assert generator.generate.await_count == 3


class TestLoadRepos:
    @pytest.mark.asyncio
    async def test_resumes_after_github_rate_limit(self, tmp_path):
        github = Mock()
        calls = []

        async def fetch(language, existing, start_page, on_page):
            calls.append(start_page)
            if len(calls) == 1:
                on_page([RepoSearchItem(full_name="octo/a")], 1)
                raise GitHubRateLimitError(403)
            repos = list(existing) + [RepoSearchItem(full_name="octo/b")]
            on_page(repos, start_page)
            return repos

        github.fetch_repos_for_language = fetch
        sleep = AsyncMock()
        runner = make_runner(github=github, tmp_path=tmp_path, sleep=sleep)

        repos = await runner.load_repos("Python")

        assert [r.full_name for r in repos] == ["octo/a", "octo/b"]
        assert calls == [1, 2]
        sleep.assert_awaited_once()
        assert runner.repo_store.load("Python").last_fetched_page == 2

    @pytest.mark.asyncio
    async def test_upstream_failure_returns_saved(self, tmp_path):
        github = Mock()
        github.fetch_repos_for_language = AsyncMock(side_effect=UpstreamUnavailableError("GitHub", "502"))
        runner = make_runner(github=github, tmp_path=tmp_path)

        assert await runner.load_repos("Python") == []


def test_filter_deletes_markdown_and_short_files(make_puzzle):
    repository = Mock()
    repository.list_puzzles.return_value = [
        make_puzzle(puzzle_id="readme", path="README.md"),
        make_puzzle(puzzle_id="short", content="a\nb\nc"),
        make_puzzle(puzzle_id="keep", path="lib/server.go"),
    ]

    stats = filter_puzzles(repository)

    assert stats.deleted == 2
    assert stats.updated == 1
    deleted = [call.args[0] for call in repository.delete_puzzle.call_args_list]
    assert deleted == ["readme", "short"]
    repository.update_classification.assert_called_once_with("keep", "systems", "Go")
