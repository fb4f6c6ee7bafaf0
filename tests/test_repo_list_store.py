"""
Tests for the on-disk repository lists
"""
import json

from codepuzzles.models import RepoSearchItem
from codepuzzles.services.repo_list_store import PersistedRepos, RepoListStore


def test_save_and_load(tmp_path):
    store = RepoListStore(tmp_path / "seed-data")
    store.save(PersistedRepos(
        language="C++",
        repos=[RepoSearchItem(full_name="octo/engine", default_branch="dev")],
        last_fetched_page=3,
    ))

    path = tmp_path / "seed-data" / "repos-C__.json"
    assert json.loads(path.read_text())["lastFetchedPage"] == 3

    loaded = store.load("C++")
    assert loaded.last_fetched_page == 3
    assert loaded.repos[0].default_branch == "dev"


def test_missing_file(tmp_path):
    assert RepoListStore(tmp_path).load("Go") is None


def test_corrupt_file_is_ignored(tmp_path):
    store = RepoListStore(tmp_path)
    store.path_for("Go").write_text("{not json")
    assert store.load("Go") is None


def test_other_language_is_ignored(tmp_path):
    store = RepoListStore(tmp_path)
    store.path_for("Go").write_text(json.dumps({"language": "Rust", "repos": [], "lastFetchedPage": 1}))
    assert store.load("Go") is None
