"""Exception hierarchy for the puzzle pipeline and its HTTP boundary."""
from fastapi import HTTPException, status


class CodePuzzlesException(Exception):
    """Base exception for all application errors."""
    pass


class UpstreamUnavailableError(CodePuzzlesException):
    """Raised when GitHub or the inference service fails (network, 5xx, bad payload)."""

    def __init__(self, service: str, message: str):
        self.service = service
        super().__init__(f"{service} unavailable: {message}")


class RateLimitError(UpstreamUnavailableError):
    """Raised when an upstream service refuses the request because of rate limiting."""

    def __init__(self, service: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(service, f"rate limited (HTTP {status_code})")


class GitHubRateLimitError(RateLimitError):
    """GitHub answered 403/429."""

    def __init__(self, status_code: int | None = None):
        super().__init__("GitHub", status_code)


class LLMRateLimitError(RateLimitError):
    """The inference service answered 429 for the active credential/model."""

    def __init__(self, status_code: int | None = 429, model: str | None = None):
        self.model = model
        super().__init__("Groq", status_code)


class InvalidPuzzleOutputError(CodePuzzlesException):
    """The model output cannot become a puzzle; the caller should regenerate."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid puzzle output: {reason}")


class PuzzleNotFoundError(CodePuzzlesException):
    """Raised when a puzzle id is neither cached nor stored."""

    def __init__(self, puzzle_id: str):
        self.puzzle_id = puzzle_id
        super().__init__(f"Puzzle {puzzle_id} not found")

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Puzzle not found",
        )


class NoPuzzleAvailableError(CodePuzzlesException):
    """Raised when every repository/file candidate was exhausted without a puzzle."""

    def __init__(self, last_error: str):
        self.last_error = last_error
        super().__init__(f"No puzzle produced: {last_error}")

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Could not generate a puzzle. Try again.",
        )


class GradingUnavailableError(CodePuzzlesException):
    """Raised when grading could not produce a verdict (never shown as a wrong answer)."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Grading failed: {reason}")

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Grading is temporarily unavailable.",
        )
