"""
Stable 400 messages for rejected request bodies.

Bodies are validated by the request models in the route signatures; this
module turns the first pydantic error into the short, user-facing message
the web client shows, instead of FastAPI's default 422 error list.
"""

import logging
from typing import Any

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)

NO_SELECTION_MESSAGE = "Select at least one line range or choose Insufficient context"

_INVALID_FIELD_MESSAGES = {
    "puzzleId": "Invalid puzzleId",
    "insufficientContext": "Invalid insufficientContext",
    "selectedRanges": "Invalid selectedRanges item",
    "selectedRange": "Invalid selectedRange",
    "optionalExplanation": "Invalid optionalExplanation",
    "reason": "Invalid reason",
    "optionalDetail": "Invalid optionalDetail",
}

_LINE_NUMBER_MESSAGES = {
    "selectedRanges": "Invalid selectedRanges line numbers",
    "selectedRange": "Invalid selectedRange line numbers",
}

_TOO_LONG_MESSAGES = {
    "optionalExplanation": "optionalExplanation too long",
    "optionalDetail": "optionalDetail too long",
}


def validation_error_message(error: dict[str, Any]) -> str:
    """
    Map one pydantic error (as reported by FastAPI) to a user-facing message.

    Args:
        error: An item of ``RequestValidationError.errors()``

    Returns:
        The message for the 400 response
    """
    loc = error.get("loc", ())
    error_type = error.get("type")

    if error_type == "no_selection":
        return NO_SELECTION_MESSAGE
    if not loc or loc[0] != "body":
        return "Invalid request"
    if len(loc) == 1 or error_type == "json_invalid":
        return "Invalid body"

    field = loc[1]
    if field in _LINE_NUMBER_MESSAGES and loc[-1] in ("startLine", "endLine"):
        return _LINE_NUMBER_MESSAGES[field]
    if error_type == "string_too_long" and field in _TOO_LONG_MESSAGES:
        return _TOO_LONG_MESSAGES[field]
    return _INVALID_FIELD_MESSAGES.get(field, "Invalid body")


async def request_validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = exc.errors()
    message = validation_error_message(errors[0]) if errors else "Invalid body"
    logger.info(f"🚫 Rejected {request.method} {request.url.path}: {message}")
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": message})
