"""
Grading engine.

Asks the grading model for a ``GradeJudgment`` and normalises it into a
``GradeResult``. A judgment that cannot be obtained or validated yields
``None`` ("grading failed"), which callers must never show as a wrong
answer. Rate limits propagate so the caller can rotate credentials.
"""

import logging
from collections.abc import Awaitable, Callable, Sequence

from pydantic import ValidationError
from pydantic_ai.exceptions import UnexpectedModelBehavior

from codepuzzles.config import settings
from codepuzzles.models import GradeJudgment, GradeResult, Puzzle, SelectedRange, Submission
from codepuzzles.prompts import (
    GRADING_SYSTEM_PROMPT,
    build_insufficient_context_prompt,
    build_range_submission_prompt,
)
from codepuzzles.services.pydantic_ai_client import run_groq_structured
from codepuzzles.utils.exceptions import RateLimitError, UpstreamUnavailableError

logger = logging.getLogger(__name__)

StructuredRunner = Callable[..., Awaitable[GradeJudgment]]


def format_ranges(ranges: Sequence[SelectedRange]) -> str:
    """Render ranges as ``line N`` / ``lines N-M`` joined by ``; `` (``(none)`` when empty)."""
    if not ranges:
        return "(none)"
    return "; ".join(r.describe() for r in ranges)


def build_grade_result(
    judgment: GradeJudgment,
    puzzle: Puzzle,
    insufficient_context: bool,
) -> GradeResult:
    """
    Normalise a judgment from either grading mode.

    The expected range is revealed only on an incorrect verdict, and
    "what you missed" is dropped on a correct one.
    """
    answer_key = puzzle.answer_key

    if insufficient_context:
        allowed = judgment.insufficient_context_allowed
        if allowed is None:
            allowed = answer_key.insufficient_context_allowed
        what_you_missed = None
    else:
        allowed = answer_key.insufficient_context_allowed
        what_you_missed = None if judgment.correct else judgment.what_you_missed

    return GradeResult(
        correct=judgment.correct,
        insufficient_context_allowed=allowed,
        explanation=judgment.explanation,
        what_you_missed=what_you_missed,
        expected_range=None if judgment.correct else answer_key.expected_range,
    )


class GradingEngine:
    def __init__(self, runner: StructuredRunner = run_groq_structured):
        self.runner = runner

    def build_prompt(self, puzzle: Puzzle, submission: Submission) -> str:
        answer_key = puzzle.answer_key
        if submission.insufficient_context:
            return build_insufficient_context_prompt(
                question=puzzle.question,
                rubric=puzzle.grading_rubric,
                allowed=answer_key.insufficient_context_allowed,
            )
        return build_range_submission_prompt(
            question=puzzle.question,
            start_line=answer_key.start_line,
            end_line=answer_key.end_line,
            rubric=puzzle.grading_rubric,
            ranges=format_ranges(submission.selected_ranges),
            explanation=submission.optional_explanation,
        )

    async def grade(
        self,
        puzzle: Puzzle,
        submission: Submission,
        api_key: str | None = None,
        model: str | None = None,
    ) -> GradeResult | None:
        """
        Grade one submission.

        Returns:
            GradeResult, or None when grading failed

        Raises:
            LLMRateLimitError: the credential/model is rate limited; rotate and retry
        """
        mode = "insufficient-context" if submission.insufficient_context else "range"
        logger.info(f"📝 Grading {puzzle.puzzle_id} ({mode} mode)")

        try:
            judgment = await self.runner(
                user_prompt=self.build_prompt(puzzle, submission),
                system_prompt=GRADING_SYSTEM_PROMPT,
                output_type=GradeJudgment,
                model=model or settings.groq_grading_model,
                api_key=api_key,
            )
        except RateLimitError:
            raise
        except (UnexpectedModelBehavior, ValidationError) as e:
            logger.warning(f"⚠️  Grading judgment did not validate: {e}")
            return None
        except UpstreamUnavailableError as e:
            logger.warning(f"⚠️  Grading upstream failure: {e}")
            return None

        result = build_grade_result(judgment, puzzle, submission.insufficient_context)
        logger.info(f"✅ Graded {puzzle.puzzle_id}: correct={result.correct}")
        return result


# Lazy singleton instance
_grading_engine_instance = None


def get_grading_engine() -> GradingEngine:
    global _grading_engine_instance
    if _grading_engine_instance is None:
        _grading_engine_instance = GradingEngine()
    return _grading_engine_instance
