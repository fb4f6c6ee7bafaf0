"""
Supabase-backed store for puzzles and learner reports.

Puzzles are keyed by ``puzzle_id``; inserting an existing id is a no-op.
Reports reference puzzles loosely by id and outlive them until dismissed.
"""

import logging
import random
import time
from collections.abc import Callable
from typing import Any

from supabase import Client

from codepuzzles.core.supabase_client import get_supabase_client
from codepuzzles.models import AnswerKey, Puzzle, Report

logger = logging.getLogger(__name__)

PUZZLES_TABLE = "puzzles"
REPORTS_TABLE = "reports"

# PostgREST caps a single response; larger reads are paged
PAGE_SIZE = 1000

SUMMARY_FIELDS = "id, puzzle_id, question, language, category"


def _now_ms() -> int:
    return int(time.time() * 1000)


def puzzle_to_row(puzzle: Puzzle) -> dict[str, Any]:
    return {
        "puzzle_id": puzzle.puzzle_id,
        "repo": puzzle.repo.model_dump(mode="json", by_alias=True),
        "file": puzzle.file.model_dump(mode="json", by_alias=True),
        "commit": puzzle.commit.model_dump(mode="json", by_alias=True),
        "question": puzzle.question,
        "answer_key": puzzle.answer_key.model_dump(mode="json", by_alias=True),
        "explanation": puzzle.explanation,
        "grading_rubric": puzzle.grading_rubric,
        "category": puzzle.category,
        "language": puzzle.language,
    }


def row_to_puzzle(row: dict[str, Any]) -> Puzzle:
    return Puzzle.model_validate(
        {
            "puzzle_id": row["puzzle_id"],
            "repo": row["repo"],
            "file": row["file"],
            "commit": row["commit"],
            "question": row["question"],
            "answer_key": row["answer_key"],
            "explanation": row.get("explanation") or "",
            "grading_rubric": row.get("grading_rubric") or "",
            "category": row.get("category"),
            "language": row.get("language"),
        }
    )


class PuzzleRepository:
    def __init__(self, supabase: Client | None = None, rng: Callable[[int], int] = random.randrange):
        self._supabase = supabase
        self._randrange = rng

    @property
    def supabase(self) -> Client:
        if self._supabase is None:
            self._supabase = get_supabase_client()
        return self._supabase

    # -----------------------------
    # Puzzles
    # -----------------------------

    def insert_puzzle(self, puzzle: Puzzle) -> None:
        """Insert a puzzle; an existing ``puzzle_id`` is left untouched."""
        row = puzzle_to_row(puzzle)
        row["created_at"] = _now_ms()
        self.supabase.table(PUZZLES_TABLE).upsert(
            row, on_conflict="puzzle_id", ignore_duplicates=True
        ).execute()
        logger.info(f"💾 Stored puzzle {puzzle.puzzle_id}")

    def get_puzzle(self, puzzle_id: str) -> Puzzle | None:
        response = (
            self.supabase.table(PUZZLES_TABLE)
            .select("*")
            .eq("puzzle_id", puzzle_id)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return row_to_puzzle(response.data[0])

    def count_puzzles(self, language: str | None = None, category: str | None = None) -> int:
        query = self.supabase.table(PUZZLES_TABLE).select("id", count="exact")
        if language:
            query = query.eq("language", language)
        if category:
            query = query.eq("category", category)
        response = query.execute()
        return response.count or 0

    def count_puzzles_by_language(self, language: str) -> int:
        return self.count_puzzles(language=language)

    def get_random_puzzle(self, language: str | None = None, category: str | None = None) -> Puzzle | None:
        """Uniformly sample one stored puzzle matching the optional filters."""
        total = self.count_puzzles(language=language, category=category)
        if total == 0:
            return None

        offset = self._randrange(total)
        query = self.supabase.table(PUZZLES_TABLE).select("*")
        if language:
            query = query.eq("language", language)
        if category:
            query = query.eq("category", category)
        response = query.order("id").range(offset, offset).execute()
        if not response.data:
            return None
        return row_to_puzzle(response.data[0])

    def list_puzzles(self) -> list[Puzzle]:
        """All stored puzzles in insertion order."""
        puzzles: list[Puzzle] = []
        start = 0
        while True:
            response = (
                self.supabase.table(PUZZLES_TABLE)
                .select("*")
                .order("id")
                .range(start, start + PAGE_SIZE - 1)
                .execute()
            )
            rows = response.data or []
            for row in rows:
                try:
                    puzzles.append(row_to_puzzle(row))
                except ValueError as e:
                    logger.warning(f"⚠️  Skipping unreadable puzzle row {row.get('puzzle_id')}: {e}")
            if len(rows) < PAGE_SIZE:
                break
            start += PAGE_SIZE
        return puzzles

    def update_puzzle_content(
        self,
        puzzle_id: str,
        question: str,
        answer_key: AnswerKey,
        explanation: str,
        grading_rubric: str,
    ) -> None:
        """Replace the question fields of a stored puzzle; source and identity never change."""
        self.supabase.table(PUZZLES_TABLE).update(
            {
                "question": question,
                "answer_key": answer_key.model_dump(mode="json", by_alias=True),
                "explanation": explanation,
                "grading_rubric": grading_rubric,
            }
        ).eq("puzzle_id", puzzle_id).execute()

    def update_classification(self, puzzle_id: str, category: str, language: str) -> None:
        self.supabase.table(PUZZLES_TABLE).update(
            {"category": category, "language": language}
        ).eq("puzzle_id", puzzle_id).execute()

    def delete_puzzle(self, puzzle_id: str) -> None:
        """Delete a puzzle together with its reports."""
        self.supabase.table(REPORTS_TABLE).delete().eq("puzzle_id", puzzle_id).execute()
        self.supabase.table(PUZZLES_TABLE).delete().eq("puzzle_id", puzzle_id).execute()
        logger.info(f"🗑️  Deleted puzzle {puzzle_id}")

    # -----------------------------
    # Reports
    # -----------------------------

    def insert_report(self, report: Report) -> None:
        self.supabase.table(REPORTS_TABLE).insert(
            {
                "puzzle_id": report.puzzle_id,
                "reason": report.reason,
                "optional_detail": report.optional_detail,
                "client_reported_at": report.client_reported_at,
                "reported_at": _now_ms(),
            }
        ).execute()

    def count_reports(self, puzzle_id: str) -> int:
        response = (
            self.supabase.table(REPORTS_TABLE)
            .select("id", count="exact")
            .eq("puzzle_id", puzzle_id)
            .execute()
        )
        return response.count or 0

    def list_reported_puzzles(self) -> list[dict[str, Any]]:
        """
        Reports grouped by puzzle, most reported first.

        Returns:
            [{"puzzleId", "reportCount", "reasons", "latestReport", "puzzle"}]
            where ``puzzle`` is a summary row or None if the puzzle is gone
        """
        groups: dict[str, dict[str, Any]] = {}
        start = 0
        while True:
            response = (
                self.supabase.table(REPORTS_TABLE)
                .select("puzzle_id, reason, reported_at")
                .order("id")
                .range(start, start + PAGE_SIZE - 1)
                .execute()
            )
            rows = response.data or []
            for row in rows:
                group = groups.setdefault(
                    row["puzzle_id"],
                    {"puzzleId": row["puzzle_id"], "reportCount": 0, "reasons": [], "latestReport": None},
                )
                group["reportCount"] += 1
                group["reasons"].append(row["reason"])
                reported_at = row.get("reported_at")
                if reported_at is not None and (
                    group["latestReport"] is None or reported_at > group["latestReport"]
                ):
                    group["latestReport"] = reported_at
            if len(rows) < PAGE_SIZE:
                break
            start += PAGE_SIZE

        if not groups:
            return []

        summaries = (
            self.supabase.table(PUZZLES_TABLE)
            .select(SUMMARY_FIELDS)
            .in_("puzzle_id", list(groups))
            .execute()
        )
        summary_by_id = {
            row["puzzle_id"]: {
                "id": row.get("id"),
                "puzzleId": row["puzzle_id"],
                "question": row.get("question"),
                "language": row.get("language"),
                "category": row.get("category"),
            }
            for row in summaries.data or []
        }

        result = []
        for puzzle_id, group in groups.items():
            group["reasons"] = ", ".join(group["reasons"])
            group["puzzle"] = summary_by_id.get(puzzle_id)
            result.append(group)

        # Stable sort keeps first-reported order among equal counts
        result.sort(key=lambda g: g["reportCount"], reverse=True)
        return result

    def dismiss_reports(self, puzzle_id: str) -> None:
        self.supabase.table(REPORTS_TABLE).delete().eq("puzzle_id", puzzle_id).execute()


# Lazy singleton instance
_puzzle_repository_instance = None


def get_puzzle_repository() -> PuzzleRepository:
    global _puzzle_repository_instance
    if _puzzle_repository_instance is None:
        _puzzle_repository_instance = PuzzleRepository()
    return _puzzle_repository_instance
