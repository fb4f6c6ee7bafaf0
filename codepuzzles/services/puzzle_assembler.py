"""
Turns a parsed model object into a validated Puzzle.

The raw object is first normalised into ``RawPuzzle`` (accepting both
snake_case and camelCase keys), then line bounds are clamped into the file,
the answer key is built and the identity key is derived from
(owner, repo, path, commit). Stateless: callers own any retrying.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any

from codepuzzles.models import (
    AnswerKey,
    ArchetypeTaskPayload,
    Commit,
    ExtensionTaskPayload,
    FileInfo,
    Puzzle,
    Repo,
    task_payload_from_raw,
)
from codepuzzles.utils.exceptions import InvalidPuzzleOutputError
from codepuzzles.utils.json_parser import get_key
from codepuzzles.utils.languages import get_category_for_language

logger = logging.getLogger(__name__)

PUZZLE_ID_DELIMITER = ":"
RUBRIC_TEMPLATE = "Correct answer: {answer}. Grade by exact match or rubric in explanation."


@dataclass
class PuzzleSource:
    """Where a puzzle's code came from."""

    owner: str
    name: str
    ref: str
    sha: str
    file: FileInfo
    target_language: str


@dataclass
class RawPuzzle:
    """Model output with both key spellings resolved to one canonical field each."""

    question: str
    start_line: int
    end_line: int
    task: ArchetypeTaskPayload | ExtensionTaskPayload
    explanation: str = ""
    grading_rubric: str | None = None
    insufficient_context_allowed: bool = False
    explanation_hints: list[str] = field(default_factory=list)


def _coerce_line(value: Any) -> int | None:
    """Accept ints, integral floats and integral numeric strings; anything else is invalid."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    if isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
        return int(number) if number.is_integer() else None
    return None


def normalize_raw_puzzle(obj: dict[str, Any]) -> RawPuzzle:
    """
    Map a loosely-typed model object onto ``RawPuzzle``.

    Raises:
        InvalidPuzzleOutputError: question missing, or line bounds not positive integers
    """
    question = obj.get("question")
    if question is None:
        question = obj.get("Question")
    if not isinstance(question, str):
        raise InvalidPuzzleOutputError("missing question")

    start_line = _coerce_line(get_key(obj, "startLine", "start_line"))
    end_line = _coerce_line(get_key(obj, "endLine", "end_line"))
    if start_line is None or end_line is None or start_line < 1 or end_line < 1:
        raise InvalidPuzzleOutputError("startLine/endLine must be positive integers")

    explanation = obj.get("explanation")
    rubric = get_key(obj, "gradingRubric", "grading_rubric")
    hints = get_key(obj, "explanationHints", "explanation_hints")

    return RawPuzzle(
        question=question,
        start_line=start_line,
        end_line=end_line,
        task=task_payload_from_raw(obj),
        explanation=str(explanation) if explanation is not None else "",
        grading_rubric=str(rubric) if rubric is not None else None,
        insufficient_context_allowed=bool(
            get_key(obj, "insufficientContextAllowed", "insufficient_context_allowed")
        ),
        explanation_hints=[str(h) for h in hints] if isinstance(hints, list) else [],
    )


def clamp_line_range(start_line: int, end_line: int, line_count: int) -> tuple[int, int]:
    """Clamp both bounds into [1, line_count] independently, then order them."""
    upper = max(1, line_count)
    start = max(1, min(start_line, upper))
    end = max(1, min(end_line, upper))
    if start > end:
        start, end = end, start
    return start, end


def check_answer_in_choices(task: ArchetypeTaskPayload | ExtensionTaskPayload) -> None:
    """
    Raises:
        InvalidPuzzleOutputError: choices are present and the answer is not one of them
    """
    if not task.choices or task.answer is None:
        return
    answer = task.answer.strip()
    if not any(choice.strip() == answer for choice in task.choices):
        raise InvalidPuzzleOutputError("answer is not one of the choices")


def build_grading_rubric(answer: str | None, model_rubric: str | None) -> str:
    if answer is not None:
        return RUBRIC_TEMPLATE.format(answer=answer)
    return model_rubric or ""


def build_puzzle_id(owner: str, name: str, path: str, sha: str) -> str:
    return PUZZLE_ID_DELIMITER.join((owner, name, path, sha))


def build_license_url(owner: str, name: str, ref: str) -> str:
    return f"https://github.com/{owner}/{name}/blob/{ref}/LICENSE"


def count_lines(content: str) -> int:
    return len(content.split("\n"))


def proposed_question_json(puzzle: Puzzle) -> str:
    """A stored puzzle in the same flat JSON shape the generation prompt asks for."""
    key = puzzle.answer_key
    return json.dumps(
        {
            "task_type": key.task.task_type,
            "question": puzzle.question,
            "given": key.task.given,
            "choices": key.task.choices,
            "answer": key.task.answer,
            "explanation": puzzle.explanation,
            "common_mistakes": key.task.common_mistakes,
            "startLine": key.start_line,
            "endLine": key.end_line,
        },
        ensure_ascii=False,
    )


def assemble_puzzle(obj: dict[str, Any], total_line_count: int, source: PuzzleSource) -> Puzzle:
    """
    Build a Puzzle from a parsed model object.

    Out-of-range or reversed line bounds are corrected, never rejected.

    Args:
        obj: Object recovered by ``extract_json_object``
        total_line_count: Line count of the file shown to the model
        source: Repository, commit and file the snippet came from

    Returns:
        Validated Puzzle

    Raises:
        InvalidPuzzleOutputError: the object cannot become a puzzle (caller should regenerate)
    """
    raw = normalize_raw_puzzle(obj)
    check_answer_in_choices(raw.task)

    start_line, end_line = clamp_line_range(raw.start_line, raw.end_line, total_line_count)
    if (start_line, end_line) != (raw.start_line, raw.end_line):
        logger.debug(
            f"Corrected line range {raw.start_line}-{raw.end_line} -> {start_line}-{end_line} "
            f"({total_line_count} lines)"
        )

    answer_key = AnswerKey(
        start_line=start_line,
        end_line=end_line,
        insufficient_context_allowed=raw.insufficient_context_allowed,
        explanation_hints=raw.explanation_hints,
        task=raw.task,
    )

    return Puzzle(
        puzzle_id=build_puzzle_id(source.owner, source.name, source.file.path, source.sha),
        repo=Repo(
            owner=source.owner,
            name=source.name,
            default_branch=source.ref,
            license_url=build_license_url(source.owner, source.name, source.ref),
        ),
        file=source.file,
        commit=Commit(sha=source.sha, branch=source.ref),
        question=raw.question,
        answer_key=answer_key,
        explanation=raw.explanation,
        grading_rubric=build_grading_rubric(raw.task.answer, raw.grading_rubric),
        category=get_category_for_language(source.target_language),
        language=source.target_language,
    )


def revise_puzzle(puzzle: Puzzle, obj: dict[str, Any], keep_rubric: bool = True) -> Puzzle:
    """
    Replace a stored puzzle's question, answer key, explanation and rubric
    wholesale from a corrected model object. Identity, source and
    classification are kept.

    Missing question or line bounds fall back to the current values. With
    ``keep_rubric`` false a missing answer and rubric leave the rubric empty
    instead of reusing the stored one.

    Raises:
        InvalidPuzzleOutputError: the corrected answer is not one of its choices
    """
    nested = get_key(obj, "answerKey", "answer_key")
    if isinstance(nested, dict):
        obj = {**nested, **{k: v for k, v in obj.items() if k not in ("answerKey", "answer_key")}}

    question = obj.get("question")
    if not isinstance(question, str) or not question.strip():
        question = puzzle.question

    start = _coerce_line(get_key(obj, "startLine", "start_line"))
    end = _coerce_line(get_key(obj, "endLine", "end_line"))
    start_line, end_line = clamp_line_range(
        start if start is not None else puzzle.answer_key.start_line,
        end if end is not None else puzzle.answer_key.end_line,
        puzzle.line_count,
    )

    task = task_payload_from_raw(obj)
    check_answer_in_choices(task)

    explanation = obj.get("explanation")
    rubric = get_key(obj, "gradingRubric", "grading_rubric")
    fallback_rubric = puzzle.grading_rubric if keep_rubric else ""

    return puzzle.model_copy(
        update={
            "question": question,
            "answer_key": AnswerKey(
                start_line=start_line,
                end_line=end_line,
                insufficient_context_allowed=False,
                task=task,
            ),
            "explanation": str(explanation) if explanation is not None else puzzle.explanation,
            "grading_rubric": build_grading_rubric(
                task.answer, str(rubric) if rubric is not None else fallback_rubric
            ),
        }
    )
