"""
Tests for turning model output into puzzles
"""
import json

import pytest

from codepuzzles.models import ArchetypeTaskPayload, ExtensionTaskPayload, FileInfo
from codepuzzles.services.puzzle_assembler import (
    PuzzleSource,
    assemble_puzzle,
    check_answer_in_choices,
    clamp_line_range,
    normalize_raw_puzzle,
    proposed_question_json,
    revise_puzzle,
)
from codepuzzles.services.puzzle_repository import puzzle_to_row, row_to_puzzle
from codepuzzles.utils.exceptions import InvalidPuzzleOutputError
from codepuzzles.utils.json_parser import extract_json_object


@pytest.fixture
def source():
    content = "\n".join(f"x{n} = {n}" for n in range(1, 11))
    return PuzzleSource(
        owner="octo",
        name="demo",
        ref="main",
        sha="deadbeef",
        file=FileInfo(path="pkg/mod.py", content=content, language="python", size_bytes=len(content)),
        target_language="Python",
    )


class TestAssemblePuzzle:
    """Test cases for assemble_puzzle"""

    def test_fenced_output_with_reversed_lines(self, source):
        """Reversed bounds are swapped and the rubric is derived from the answer"""
        raw = '```json\n{"question":"Q","startLine":3,"endLine":2,"answer":"X"}\n```'
        puzzle = assemble_puzzle(extract_json_object(raw), 10, source)

        assert puzzle.answer_key.start_line == 2
        assert puzzle.answer_key.end_line == 3
        assert puzzle.grading_rubric == "Correct answer: X. Grade by exact match or rubric in explanation."
        assert puzzle.question == "Q"

    def test_identity_and_provenance(self, source):
        puzzle = assemble_puzzle({"question": "Q", "startLine": 1, "endLine": 2}, 10, source)

        assert puzzle.puzzle_id == "octo:demo:pkg/mod.py:deadbeef"
        assert puzzle.repo.license_url == "https://github.com/octo/demo/blob/main/LICENSE"
        assert puzzle.repo.default_branch == "main"
        assert puzzle.commit.sha == "deadbeef"
        assert puzzle.commit.branch == "main"
        assert puzzle.category == "data"
        assert puzzle.language == "Python"
        assert puzzle.file == source.file

    def test_same_source_gives_same_identity(self, source):
        first = assemble_puzzle({"question": "A", "startLine": 1, "endLine": 1}, 10, source)
        second = assemble_puzzle({"question": "B", "startLine": 4, "endLine": 5}, 10, source)
        assert first.puzzle_id == second.puzzle_id

    def test_model_rubric_used_without_answer(self, source):
        puzzle = assemble_puzzle(
            {"question": "Q", "startLine": 1, "endLine": 2, "gradingRubric": "Mentions the cache"},
            10,
            source,
        )
        assert puzzle.grading_rubric == "Mentions the cache"

    def test_free_text_task_key_survives_store_round_trip(self, source):
        raw = '{"task":"trace the loop","question":"Q","startLine":1,"endLine":2,"answer":"X"}'
        puzzle = assemble_puzzle(extract_json_object(raw), 10, source)

        reloaded = row_to_puzzle(puzzle_to_row(puzzle))

        assert reloaded.answer_key == puzzle.answer_key
        assert reloaded.answer_key.answer == "X"

    def test_answer_key_excludes_puzzle_level_fields(self, source):
        puzzle = assemble_puzzle(
            {
                "question": "Which lines build the cache key?",
                "startLine": 2,
                "endLine": 3,
                "explanation": "Lines 2-3 join the parts.",
                "gradingRubric": "Mentions the join",
                "insufficient_context_allowed": False,
            },
            10,
            source,
        )

        answer_key = puzzle.answer_key.model_dump(mode="json", by_alias=True)

        assert answer_key["startLine"] == 2
        assert answer_key["endLine"] == 3
        for key in ("question", "explanation", "gradingRubric", "insufficient_context_allowed", "task"):
            assert key not in answer_key

    def test_snake_case_keys(self, source):
        puzzle = assemble_puzzle(
            {
                "question": "Q",
                "start_line": "2",
                "end_line": 4.0,
                "taskType": "bug_root_cause",
                "grading_rubric": "ignored when answer present",
                "answer": "x2",
                "choices": ["x1", " x2 "],
            },
            10,
            source,
        )
        assert (puzzle.answer_key.start_line, puzzle.answer_key.end_line) == (2, 4)
        assert isinstance(puzzle.answer_key.task, ArchetypeTaskPayload)
        assert puzzle.answer_key.task.task_type == "BUG_ROOT_CAUSE"

    def test_missing_question_is_rejected(self, source):
        with pytest.raises(InvalidPuzzleOutputError):
            assemble_puzzle({"startLine": 1, "endLine": 2}, 10, source)

    @pytest.mark.parametrize(
        "start,end",
        [(0, 2), (1, -1), ("abc", 2), (1.5, 2), (None, 3), (True, 2)],
    )
    def test_invalid_line_bounds_are_rejected(self, source, start, end):
        with pytest.raises(InvalidPuzzleOutputError):
            assemble_puzzle({"question": "Q", "startLine": start, "endLine": end}, 10, source)

    def test_answer_outside_choices_is_rejected(self, source):
        with pytest.raises(InvalidPuzzleOutputError) as exc_info:
            assemble_puzzle(
                {"question": "Q", "startLine": 1, "endLine": 2, "choices": ["a", "b"], "answer": "c"},
                10,
                source,
            )
        assert "choices" in exc_info.value.reason

    def test_capitalised_question_key(self, source):
        puzzle = assemble_puzzle({"Question": "Q?", "startLine": 1, "endLine": 1}, 10, source)
        assert puzzle.question == "Q?"


@pytest.mark.parametrize(
    "start,end,line_count,expected",
    [
        (3, 2, 10, (2, 3)),
        (1, 50, 10, (1, 10)),
        (40, 50, 10, (10, 10)),
        (50, 5, 10, (5, 10)),
        (7, 7, 10, (7, 7)),
        (2, 3, 0, (1, 1)),
    ],
)
def test_clamp_line_range(start, end, line_count, expected):
    assert clamp_line_range(start, end, line_count) == expected


def test_check_answer_in_choices_allows_missing_parts():
    check_answer_in_choices(ArchetypeTaskPayload(task_type="TRACE", choices=[], answer="free text"))
    check_answer_in_choices(ArchetypeTaskPayload(task_type="TRACE", choices=["a"], answer=None))
    check_answer_in_choices(ExtensionTaskPayload(choices=["a ", "b"], answer=" a"))


def test_normalize_raw_puzzle_collects_optional_fields():
    raw = normalize_raw_puzzle({
        "question": "Q",
        "startLine": 1,
        "endLine": 2,
        "explanation": "because",
        "insufficientContextAllowed": True,
        "explanation_hints": ["look at 2"],
    })
    assert raw.explanation == "because"
    assert raw.insufficient_context_allowed is True
    assert raw.explanation_hints == ["look at 2"]
    assert raw.grading_rubric is None


class TestRevisePuzzle:
    """Test cases for revise_puzzle"""

    def test_replaces_question_fields_and_keeps_identity(self, make_puzzle):
        puzzle = make_puzzle()
        revised = revise_puzzle(puzzle, {
            "question": "New?",
            "startLine": 40,
            "endLine": 10,
            "task_type": "EDGE_CASE",
            "answer": "None",
            "explanation": "new explanation",
        })

        assert revised.puzzle_id == puzzle.puzzle_id
        assert revised.file == puzzle.file
        assert revised.question == "New?"
        assert (revised.answer_key.start_line, revised.answer_key.end_line) == (10, 30)
        assert revised.answer_key.insufficient_context_allowed is False
        assert revised.answer_key.task.task_type == "EDGE_CASE"
        assert revised.explanation == "new explanation"
        assert revised.grading_rubric == "Correct answer: None. Grade by exact match or rubric in explanation."

    def test_nested_answer_key_and_fallbacks(self, make_puzzle):
        puzzle = make_puzzle()
        revised = revise_puzzle(puzzle, {"answerKey": {"endLine": 8, "answer": "41", "choices": ["41", "42"]}})

        assert revised.question == puzzle.question
        assert revised.answer_key.start_line == puzzle.answer_key.start_line
        assert revised.answer_key.end_line == 8
        assert revised.answer_key.answer == "41"
        assert revised.explanation == puzzle.explanation

    def test_inconsistent_correction_is_rejected(self, make_puzzle):
        with pytest.raises(InvalidPuzzleOutputError):
            revise_puzzle(make_puzzle(), {"question": "Q", "choices": ["a"], "answer": "b"})

    def test_stored_rubric_kept_by_default_without_answer(self, make_puzzle):
        puzzle = make_puzzle()
        revised = revise_puzzle(puzzle, {"task_type": "INVARIANT", "question": "New, unrelated?"})

        assert revised.grading_rubric == puzzle.grading_rubric

    def test_stored_rubric_dropped_when_not_kept(self, make_puzzle):
        revised = revise_puzzle(
            make_puzzle(),
            {"task_type": "INVARIANT", "question": "New, unrelated?"},
            keep_rubric=False,
        )

        assert revised.question == "New, unrelated?"
        assert revised.grading_rubric == ""


def test_proposed_question_json_is_flat(make_puzzle):
    data = json.loads(proposed_question_json(make_puzzle()))
    assert data["question"] == "Which lines decide the return value?"
    assert data["startLine"] == 3
    assert data["endLine"] == 5
    assert data["task_type"] == "TRACE"
    assert data["answer"] == "42"
