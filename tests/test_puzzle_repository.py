"""
Tests for PuzzleRepository
"""
from unittest.mock import Mock

from codepuzzles.models import Report
from codepuzzles.services.puzzle_repository import (
    PuzzleRepository,
    puzzle_to_row,
    row_to_puzzle,
)


class InMemoryQuery:
    """Just enough of the PostgREST builder for upsert / select-by-id / count"""

    def __init__(self, rows):
        self.rows = rows
        self.filters = []
        self.payload = None
        self.ignore_duplicates = False
        self.counting = False

    def upsert(self, row, on_conflict, ignore_duplicates=False):
        self.payload = (row, on_conflict)
        self.ignore_duplicates = ignore_duplicates
        return self

    def select(self, columns, count=None):
        self.counting = count == "exact"
        return self

    def eq(self, column, value):
        self.filters.append((column, value))
        return self

    def limit(self, n):
        return self

    def execute(self):
        if self.payload is not None:
            row, key = self.payload
            existing = [r for r in self.rows if r[key] == row[key]]
            if not existing:
                self.rows.append(dict(row, id=len(self.rows) + 1))
            elif not self.ignore_duplicates:
                existing[0].update(row)
            return Mock(data=[], count=None)
        matched = [r for r in self.rows if all(r.get(c) == v for c, v in self.filters)]
        return Mock(data=matched, count=len(matched) if self.counting else None)


class InMemorySupabase:
    def __init__(self):
        self.tables = {}

    def table(self, name):
        return InMemoryQuery(self.tables.setdefault(name, []))


class TestPuzzles:
    def test_row_round_trip_keeps_flat_answer_key(self, make_puzzle):
        puzzle = make_puzzle()
        row = puzzle_to_row(puzzle)

        assert row["answer_key"]["startLine"] == 3
        assert row["answer_key"]["task_type"] == "TRACE"
        assert "task" not in row["answer_key"]
        assert row_to_puzzle(row) == puzzle

    def test_repeated_insert_keeps_one_record(self, make_puzzle):
        supabase = InMemorySupabase()
        repository = PuzzleRepository(supabase=supabase)
        first = make_puzzle()
        second = make_puzzle(question="A different question for the same file")

        repository.insert_puzzle(first)
        repository.insert_puzzle(second)

        assert repository.count_puzzles() == 1
        assert repository.get_puzzle(first.puzzle_id).question == first.question

    def test_insert_uses_ignore_duplicates_upsert(self, mock_supabase_client, make_puzzle):
        PuzzleRepository().insert_puzzle(make_puzzle())

        args, kwargs = mock_supabase_client.chain.upsert.call_args
        assert args[0]["puzzle_id"] == "octo:demo:src/app.py:abc123"
        assert "created_at" in args[0]
        assert kwargs == {"on_conflict": "puzzle_id", "ignore_duplicates": True}

    def test_get_missing_puzzle(self, mock_supabase_client):
        assert PuzzleRepository().get_puzzle("nope") is None

    def test_random_puzzle_reads_sampled_offset(self, make_puzzle, query_chain):
        supabase = Mock()
        chain = query_chain(data=[puzzle_to_row(make_puzzle())], count=7)
        supabase.table = Mock(return_value=chain)
        repository = PuzzleRepository(supabase=supabase, rng=lambda n: 4)

        puzzle = repository.get_random_puzzle(language="Python")

        assert puzzle.puzzle_id == "octo:demo:src/app.py:abc123"
        chain.eq.assert_any_call("language", "Python")
        chain.range.assert_called_with(4, 4)

    def test_random_puzzle_empty_store(self, mock_supabase_client):
        mock_supabase_client.chain.execute.return_value = Mock(data=[], count=0)
        assert PuzzleRepository().get_random_puzzle() is None

    def test_list_puzzles_skips_unreadable_rows(self, make_puzzle, query_chain):
        supabase = Mock()
        good = puzzle_to_row(make_puzzle())
        bad = dict(good, puzzle_id="broken", answer_key={"startLine": "x"})
        supabase.table = Mock(return_value=query_chain(data=[good, bad]))

        puzzles = PuzzleRepository(supabase=supabase).list_puzzles()

        assert [p.puzzle_id for p in puzzles] == [good["puzzle_id"]]

    def test_delete_removes_reports_first(self, mock_supabase_client):
        PuzzleRepository().delete_puzzle("octo:demo:a.py:1")

        tables = [call.args[0] for call in mock_supabase_client.table.call_args_list]
        assert tables == ["reports", "puzzles"]


class TestReports:
    def test_insert_report_stamps_time(self, mock_supabase_client):
        PuzzleRepository().insert_report(Report(puzzle_id="p1", reason="Wrong answer"))

        row = mock_supabase_client.chain.insert.call_args.args[0]
        assert row["puzzle_id"] == "p1"
        assert row["reason"] == "Wrong answer"
        assert isinstance(row["reported_at"], int)

    def test_list_reported_puzzles_groups_and_sorts(self, query_chain):
        report_rows = [
            {"puzzle_id": "p1", "reason": "Typo", "reported_at": 10},
            {"puzzle_id": "p2", "reason": "Wrong", "reported_at": 20},
            {"puzzle_id": "p2", "reason": "Unclear", "reported_at": 30},
        ]
        summary_rows = [
            {"id": 2, "puzzle_id": "p2", "question": "Q2", "language": "Go", "category": "systems"},
        ]
        chains = {
            "reports": query_chain(data=report_rows),
            "puzzles": query_chain(data=summary_rows),
        }
        supabase = Mock()
        supabase.table = Mock(side_effect=lambda name: chains[name])

        result = PuzzleRepository(supabase=supabase).list_reported_puzzles()

        assert [g["puzzleId"] for g in result] == ["p2", "p1"]
        assert result[0]["reportCount"] == 2
        assert result[0]["reasons"] == "Wrong, Unclear"
        assert result[0]["latestReport"] == 30
        assert result[0]["puzzle"]["question"] == "Q2"
        assert result[1]["puzzle"] is None

    def test_no_reports(self, mock_supabase_client):
        assert PuzzleRepository().list_reported_puzzles() == []
