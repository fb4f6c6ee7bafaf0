"""
Tests for the language catalogue and file filters
"""
import pytest

from codepuzzles.utils.languages import (
    detect_language,
    get_all_languages,
    get_category_and_language_from_path,
    get_category_for_language,
    get_github_language_name,
    is_blocked_file,
    is_path_for_language,
    is_source_file,
    repo_slug,
)


@pytest.mark.parametrize(
    "path,expected",
    [("src/main.rs", "rust"), ("App.TSX", "typescript"), ("Makefile", "plaintext"), ("x.cs", "csharp")],
)
def test_detect_language(path, expected):
    assert detect_language(path) == expected


def test_source_and_blocked_files():
    assert is_source_file("lib/util.py")
    assert not is_source_file("logo.png")
    assert is_blocked_file("dist/app.min.js")
    assert is_blocked_file("static/bundle.MIN.css")
    assert not is_blocked_file("src/app.js")


def test_categories():
    assert get_category_for_language("Kotlin") == "mobile"
    assert get_category_for_language("Brainfuck") == "other"
    languages = get_all_languages()
    assert len(languages) == len(set(languages))
    assert "C#" in languages


def test_category_and_language_from_path():
    assert get_category_and_language_from_path("a/b.tsx") == ("web", "TypeScript")
    assert get_category_and_language_from_path("config.yml") == ("config", "YAML")
    assert get_category_and_language_from_path("LICENSE") == ("other", "Other")


def test_path_for_language():
    assert is_path_for_language("main.go", "Go")
    assert not is_path_for_language("main.py", "Go")
    assert is_path_for_language("anything.xyz", "Brainfuck")


def test_github_names_and_slugs():
    assert get_github_language_name("C#") == "C%23"
    assert get_github_language_name("Python") == "Python"
    assert repo_slug("C++") == "C__"
    assert repo_slug("C#") == "C_"
