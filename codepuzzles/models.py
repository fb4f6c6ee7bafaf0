"""
Pydantic models for puzzles, submissions and grade results.

Field names are snake_case in Python and camelCase on the wire and in the
stored JSON columns (``startLine``, ``answerKey``...), matching what the web
client sends and renders.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    SerializerFunctionWrapHandler,
    field_validator,
    model_serializer,
    model_validator,
)
from pydantic.alias_generators import to_camel

from codepuzzles.config import settings


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


PuzzleCategory = Literal["web", "systems", "mobile", "config", "data", "other"]

TaskType = Literal[
    "TRACE",
    "INVARIANT",
    "BUG_ROOT_CAUSE",
    "CHANGE_IMPACT",
    "EDGE_CASE",
]

TASK_TYPES: tuple[str, ...] = (
    "TRACE",
    "INVARIANT",
    "BUG_ROOT_CAUSE",
    "CHANGE_IMPACT",
    "EDGE_CASE",
)


class Repo(CamelModel):
    owner: str
    name: str
    default_branch: str
    license_url: str | None = None

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"


class FileInfo(CamelModel):
    path: str
    content: str
    language: str
    size_bytes: int


class Commit(CamelModel):
    sha: str
    branch: str


class SelectedRange(CamelModel):
    start_line: int = Field(ge=1, le=settings.max_line_number)
    end_line: int = Field(ge=1, le=settings.max_line_number)

    @field_validator("start_line", "end_line", mode="before")
    @classmethod
    def _require_number(cls, value: Any) -> Any:
        # bool is an int subclass but not a line number
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError("line numbers must be numbers")
        return value

    def describe(self) -> str:
        if self.start_line == self.end_line:
            return f"line {self.start_line}"
        return f"lines {self.start_line}-{self.end_line}"


# ---------------------------------------------------------------------------
# Answer key task payload
# ---------------------------------------------------------------------------


class _TaskPayloadBase(CamelModel):
    # Stored answer keys keep these two in snake_case
    given: dict[str, Any] = Field(default_factory=dict)
    choices: list[str] = Field(default_factory=list)
    answer: str | None = None
    common_mistakes: list[str] = Field(default_factory=list, alias="common_mistakes")


class ArchetypeTaskPayload(_TaskPayloadBase):
    """Payload for one of the known task archetypes."""

    kind: Literal["archetype"] = "archetype"
    task_type: TaskType = Field(alias="task_type")


class ExtensionTaskPayload(_TaskPayloadBase):
    """Payload for an unrecognised or missing task type; unknown keys kept in ``extra``."""

    kind: Literal["extension"] = "extension"
    task_type: str | None = Field(default=None, alias="task_type")
    extra: dict[str, Any] = Field(default_factory=dict)


TaskPayload = Annotated[
    Union[ArchetypeTaskPayload, ExtensionTaskPayload],
    Field(discriminator="kind"),
]

_ANSWER_KEY_CORE_FIELDS = {
    "startLine", "start_line",
    "endLine", "end_line",
    "insufficientContextAllowed", "insufficient_context_allowed",
    "explanationHints", "explanation_hints",
}
_TASK_FIELDS = {
    "task_type", "taskType",
    "given", "choices", "answer",
    "common_mistakes", "commonMistakes",
    "kind", "extra",
}
# Puzzle-level keys that arrive alongside the answer key in model output.
_PUZZLE_FIELDS = {
    "task",
    "question", "Question",
    "explanation",
    "gradingRubric", "grading_rubric",
    "answerKey", "answer_key",
}


def _first_present(raw: dict[str, Any], *names: str) -> Any:
    for name in names:
        value = raw.get(name)
        if value is not None:
            return value
    return None


def task_payload_from_raw(raw: dict[str, Any]) -> ArchetypeTaskPayload | ExtensionTaskPayload:
    """
    Normalise a loosely-typed map (either key spelling) into a task payload.

    Values of the wrong shape are dropped rather than rejected: ``given`` must
    be an object, ``choices`` and ``common_mistakes`` lists, ``answer`` a
    string. Known task types yield an archetype payload; anything else yields
    an extension payload that keeps the unrecognised keys.
    """
    task_type = _first_present(raw, "task_type", "taskType")
    given = raw.get("given")
    choices = raw.get("choices")
    answer = raw.get("answer")
    common_mistakes = _first_present(raw, "common_mistakes", "commonMistakes")

    fields = {
        "given": given if isinstance(given, dict) else {},
        "choices": [str(c) for c in choices] if isinstance(choices, list) else [],
        "answer": answer if isinstance(answer, str) else None,
        "common_mistakes": (
            [str(m) for m in common_mistakes] if isinstance(common_mistakes, list) else []
        ),
    }

    if isinstance(task_type, str) and task_type.strip().upper() in TASK_TYPES:
        return ArchetypeTaskPayload(task_type=task_type.strip().upper(), **fields)

    extra = raw.get("extra")
    if not isinstance(extra, dict):
        extra = {
            key: value
            for key, value in raw.items()
            if key not in _TASK_FIELDS
            and key not in _ANSWER_KEY_CORE_FIELDS
            and key not in _PUZZLE_FIELDS
        }
    return ExtensionTaskPayload(
        task_type=task_type if isinstance(task_type, str) else None,
        extra=extra,
        **fields,
    )


class AnswerKey(CamelModel):
    """
    Gradeable ground truth of a puzzle.

    Serialized flat (``startLine``, ``task_type``, ``given``...) as the web
    client and stored rows expect; in Python the task-specific fields live in
    the ``task`` tagged union.
    """

    start_line: int
    end_line: int
    insufficient_context_allowed: bool = False
    explanation_hints: list[str] = Field(default_factory=list)
    task: TaskPayload = Field(default_factory=ExtensionTaskPayload)

    @model_validator(mode="before")
    @classmethod
    def _lift_task_fields(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        task = data.get("task")
        if isinstance(task, _TaskPayloadBase) or (isinstance(task, dict) and "kind" in task):
            return data
        return {
            "start_line": _first_present(data, "start_line", "startLine"),
            "end_line": _first_present(data, "end_line", "endLine"),
            "insufficient_context_allowed": bool(
                _first_present(data, "insufficient_context_allowed", "insufficientContextAllowed")
            ),
            "explanation_hints": _first_present(data, "explanation_hints", "explanationHints") or [],
            "task": task_payload_from_raw(data),
        }

    @model_serializer(mode="wrap")
    def _flatten_task(self, handler: SerializerFunctionWrapHandler) -> dict[str, Any]:
        data = handler(self)
        task = data.pop("task", None) or {}
        task.pop("kind", None)
        extra = task.pop("extra", None) or {}
        for key, value in extra.items():
            data.setdefault(key, value)
        data.update(task)
        return data

    @property
    def expected_range(self) -> SelectedRange:
        return SelectedRange(start_line=self.start_line, end_line=self.end_line)

    @property
    def choices(self) -> list[str]:
        return self.task.choices

    @property
    def answer(self) -> str | None:
        return self.task.answer


class Puzzle(CamelModel):
    puzzle_id: str
    repo: Repo
    file: FileInfo
    commit: Commit
    question: str
    answer_key: AnswerKey
    explanation: str = ""
    grading_rubric: str = ""
    category: PuzzleCategory | None = None
    language: str | None = None

    @property
    def line_count(self) -> int:
        return len(self.file.content.split("\n"))


# ---------------------------------------------------------------------------
# Grading
# ---------------------------------------------------------------------------


class Submission(CamelModel):
    puzzle_id: str
    selected_ranges: list[SelectedRange] = Field(default_factory=list)
    optional_explanation: str | None = None
    insufficient_context: bool = False


class GradeJudgment(BaseModel):
    """What the grading model must return, for both grading modes."""

    correct: bool
    explanation: str = ""
    what_you_missed: str | None = None
    insufficient_context_allowed: bool | None = None


class GradeResult(CamelModel):
    correct: bool
    insufficient_context_allowed: bool
    explanation: str
    what_you_missed: str | None = None
    expected_range: SelectedRange | None = None


# ---------------------------------------------------------------------------
# Code hosting
# ---------------------------------------------------------------------------


class RepoSearchItem(BaseModel):
    model_config = ConfigDict(extra="ignore")

    full_name: str
    default_branch: str = "main"
    name: str | None = None

    @property
    def owner_and_name(self) -> tuple[str, str]:
        owner, _, name = self.full_name.partition("/")
        return owner, name


class TreeFile(BaseModel):
    path: str
    size: int | None = None


class Report(CamelModel):
    puzzle_id: str
    reason: str
    optional_detail: str | None = None
    client_reported_at: str | None = None
