import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import Field, StrictBool, field_validator, model_validator
from pydantic_core import PydanticCustomError

from codepuzzles.config import settings
from codepuzzles.models import CamelModel, Report, SelectedRange, Submission
from codepuzzles.services.cache import BoundedCache, get_puzzle_cache
from codepuzzles.services.credential_rotator import CredentialRotator, get_grading_rotator
from codepuzzles.services.grading import GradingEngine, get_grading_engine
from codepuzzles.services.puzzle_generator import PuzzleGenerator, get_puzzle_generator
from codepuzzles.services.puzzle_repository import PuzzleRepository, get_puzzle_repository
from codepuzzles.utils.exceptions import (
    GradingUnavailableError,
    NoPuzzleAvailableError,
    PuzzleNotFoundError,
    RateLimitError,
)
from codepuzzles.utils.request_validation import NO_SELECTION_MESSAGE

MAX_CLIENT_TIMESTAMP_LENGTH = 50

router = APIRouter(
    tags=["Puzzles"],
)

logger = logging.getLogger(__name__)


def get_optional_grading_rotator() -> Optional[CredentialRotator]:
    """The grading rotator, or None when no Groq key is configured."""
    try:
        return get_grading_rotator()
    except ValueError as e:
        logger.error(f"❌ Grading is not configured: {e}")
        return None


class GradeRequest(CamelModel):
    puzzle_id: str = Field(..., min_length=1, max_length=settings.max_puzzle_id_length)
    insufficient_context: StrictBool
    selected_ranges: list[SelectedRange] = Field(default_factory=list)
    selected_range: Optional[SelectedRange] = Field(
        default=None, description="Single range sent by older clients"
    )
    optional_explanation: Optional[str] = Field(
        default=None, max_length=settings.max_explanation_length
    )

    @model_validator(mode="after")
    def _require_selection(self) -> "GradeRequest":
        if not self.selected_ranges and self.selected_range is not None:
            self.selected_ranges = [self.selected_range]
        if not self.insufficient_context and not self.selected_ranges:
            raise PydanticCustomError("no_selection", NO_SELECTION_MESSAGE)
        return self

    def to_submission(self) -> Submission:
        return Submission(
            puzzle_id=self.puzzle_id,
            selected_ranges=self.selected_ranges,
            optional_explanation=self.optional_explanation,
            insufficient_context=self.insufficient_context,
        )


class ReportRequest(CamelModel):
    puzzle_id: str = Field(..., min_length=1, max_length=settings.max_puzzle_id_length)
    reason: str = Field(..., min_length=1, max_length=settings.max_reason_length)
    optional_detail: Optional[str] = Field(
        default=None, max_length=settings.max_report_detail_length
    )
    client_reported_at: Optional[str] = None

    @field_validator("client_reported_at", mode="before")
    @classmethod
    def _keep_short_timestamp(cls, value: Any) -> Optional[str]:
        # Informational only; anything but a string is dropped
        if not isinstance(value, str):
            return None
        return value[:MAX_CLIENT_TIMESTAMP_LENGTH]


@router.get("/puzzle")
async def get_puzzle(
    seed: Optional[str] = None,
    language: Optional[str] = None,
    category: Optional[str] = None,
    repository: PuzzleRepository = Depends(get_puzzle_repository),
    generator: PuzzleGenerator = Depends(get_puzzle_generator),
    puzzle_cache: BoundedCache = Depends(get_puzzle_cache),
):
    """
    Serve one puzzle.

    A random stored puzzle is preferred (filtered by language/category when
    given). With an empty store, or when the store cannot be read, a puzzle is
    generated on demand and stored.
    """
    try:
        try:
            if repository.count_puzzles() > 0:
                stored = repository.get_random_puzzle(language=language, category=category)
                if stored is not None:
                    puzzle_cache.set(stored.puzzle_id, stored)
                    report_count = repository.count_reports(stored.puzzle_id)
                    logger.info(f"📚 Serving stored puzzle {stored.puzzle_id} ({report_count} reports)")
                    return {
                        **stored.model_dump(mode="json", by_alias=True),
                        "reportCount": report_count,
                    }
        except Exception as store_error:
            logger.warning(f"⚠️  Puzzle store unavailable, generating instead: {store_error}")

        try:
            puzzle = await generator.generate(seed=seed, language=language, category=category)
        except NoPuzzleAvailableError as e:
            raise e.to_http_exception()
        except RateLimitError as e:
            logger.warning(f"⚠️  Generation rate limited: {e}")
            raise NoPuzzleAvailableError(str(e)).to_http_exception()

        try:
            repository.insert_puzzle(puzzle)
        except Exception as insert_error:
            logger.warning(f"⚠️  Could not store generated puzzle {puzzle.puzzle_id}: {insert_error}")

        return puzzle.model_dump(mode="json", by_alias=True)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error serving puzzle: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Something went wrong.") from e


@router.post("/grade")
async def grade_submission(
    body: GradeRequest,
    repository: PuzzleRepository = Depends(get_puzzle_repository),
    puzzle_cache: BoundedCache = Depends(get_puzzle_cache),
    engine: GradingEngine = Depends(get_grading_engine),
    rotator: Optional[CredentialRotator] = Depends(get_optional_grading_rotator),
):
    """
    Grade one submission.

    The puzzle is resolved from the cache first, then the store. Rate-limited
    grading calls rotate through the configured keys; a grading failure is
    reported as 503 and never as a wrong answer.
    """
    submission = body.to_submission()

    try:
        puzzle = puzzle_cache.get(submission.puzzle_id)
        if puzzle is None:
            puzzle = repository.get_puzzle(submission.puzzle_id)
            if puzzle is None:
                raise PuzzleNotFoundError(submission.puzzle_id).to_http_exception()
            puzzle_cache.set(puzzle.puzzle_id, puzzle)

        if rotator is None:
            raise GradingUnavailableError("no Groq API key configured").to_http_exception()

        async def grade_with(api_key: str, model: str):
            return await engine.grade(puzzle, submission, api_key=api_key, model=model)

        try:
            result = await rotator.run(grade_with, wait_when_exhausted=False)
        except RateLimitError as e:
            logger.warning(f"⚠️  Grading rate limited on every key: {e}")
            result = None

        if result is None:
            raise GradingUnavailableError("no verdict").to_http_exception()

        return result.model_dump(mode="json", by_alias=True)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error grading submission for {submission.puzzle_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Something went wrong.") from e


@router.post("/report")
async def report_puzzle(
    body: ReportRequest,
    repository: PuzzleRepository = Depends(get_puzzle_repository),
):
    """Record a learner report against a puzzle."""
    report = Report(**body.model_dump())

    try:
        repository.insert_report(report)
        logger.info(f"🚩 Report for {report.puzzle_id}: {report.reason}")
        return {"ok": True}
    except Exception as e:
        logger.error(f"Error storing report for {report.puzzle_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Something went wrong.") from e
