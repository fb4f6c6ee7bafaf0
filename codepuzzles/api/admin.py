import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Response
from pydantic import BaseModel, field_validator

from codepuzzles.config import settings
from codepuzzles.services.puzzle_repository import PuzzleRepository, get_puzzle_repository
from codepuzzles.utils.admin_auth import (
    ADMIN_COOKIE_MAX_AGE,
    ADMIN_COOKIE_NAME,
    build_admin_token,
    verify_admin_token,
)

router = APIRouter(
    tags=["Admin"],
)

logger = logging.getLogger(__name__)


class LoginRequest(BaseModel):
    password: str = ""

    @field_validator("password", mode="before")
    @classmethod
    def _password_or_empty(cls, value: Any) -> str:
        return value if isinstance(value, str) else ""


@router.post("/login")
async def login(response: Response, body: Optional[LoginRequest] = None):
    """Exchange the admin password for the ``admin_token`` cookie."""
    password = body.password if body is not None else ""

    if not settings.admin_password or password != settings.admin_password:
        logger.warning("🔒 Failed admin login")
        raise HTTPException(401, "Invalid password")

    response.set_cookie(
        key=ADMIN_COOKIE_NAME,
        value=build_admin_token(settings.admin_password),
        httponly=True,
        secure=settings.environment == "production",
        samesite="lax",
        path="/",
        max_age=ADMIN_COOKIE_MAX_AGE,
    )
    logger.info("🔓 Admin logged in")
    return {"ok": True}


@router.get("/puzzles", dependencies=[Depends(verify_admin_token)])
async def list_reported_puzzles(
    repository: PuzzleRepository = Depends(get_puzzle_repository),
):
    """Reported puzzles, most reported first."""
    try:
        return repository.list_reported_puzzles()
    except Exception as e:
        logger.error(f"Error listing reported puzzles: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Something went wrong.") from e


@router.delete("/puzzles/{puzzle_id:path}", dependencies=[Depends(verify_admin_token)])
async def delete_puzzle(
    puzzle_id: str,
    repository: PuzzleRepository = Depends(get_puzzle_repository),
):
    try:
        repository.delete_puzzle(puzzle_id)
        return {"ok": True}
    except Exception as e:
        logger.error(f"Error deleting puzzle {puzzle_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Something went wrong.") from e


@router.post("/puzzles/{puzzle_id:path}/dismiss", dependencies=[Depends(verify_admin_token)])
async def dismiss_reports(
    puzzle_id: str,
    repository: PuzzleRepository = Depends(get_puzzle_repository),
):
    """Clear the reports on a puzzle and keep the puzzle."""
    try:
        repository.dismiss_reports(puzzle_id)
        return {"ok": True}
    except Exception as e:
        logger.error(f"Error dismissing reports for {puzzle_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Something went wrong.") from e
