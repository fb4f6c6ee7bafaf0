"""
Language catalogue: puzzle categories, per-language file extensions, and the
allowlist / blocklist used to pick candidate source files.
"""

import re

from codepuzzles.config import settings

# -----------------------------
# Categories
# -----------------------------

LANGUAGES_BY_CATEGORY: dict[str, list[str]] = {
    "web": ["TypeScript", "JavaScript", "Vue", "Svelte", "HTML", "CSS", "SCSS"],
    "systems": ["C", "C++", "Rust", "Go", "Zig", "Nim"],
    "mobile": ["Swift", "Kotlin", "Dart"],
    "config": ["YAML", "JSON", "TOML", "INI"],
    "data": ["Python", "SQL", "R", "Julia"],
    "other": [
        "Ruby", "Java", "C#", "PHP", "Haskell",
        "OCaml", "Elixir", "Clojure", "Scala", "Shell",
    ],
}

# GitHub search qualifier names that differ from display names
GITHUB_LANGUAGE_NAMES = {
    "C#": "C%23",
}

EXTENSIONS_BY_LANGUAGE: dict[str, list[str]] = {
    "TypeScript": [".ts", ".tsx"],
    "JavaScript": [".js", ".jsx", ".mjs", ".cjs"],
    "Vue": [".vue"],
    "Svelte": [".svelte"],
    "HTML": [".html", ".htm"],
    "CSS": [".css"],
    "SCSS": [".scss", ".sass"],
    "C": [".c", ".h"],
    "C++": [".cpp", ".hpp", ".cc", ".cxx"],
    "Rust": [".rs"],
    "Go": [".go"],
    "Zig": [".zig"],
    "Nim": [".nim"],
    "Swift": [".swift"],
    "Kotlin": [".kt", ".kts"],
    "Dart": [".dart"],
    "YAML": [".yaml", ".yml"],
    "JSON": [".json"],
    "TOML": [".toml"],
    "INI": [".ini", ".cfg"],
    "Python": [".py"],
    "SQL": [".sql"],
    "R": [".r"],
    "Julia": [".jl"],
    "Ruby": [".rb"],
    "Java": [".java"],
    "C#": [".cs"],
    "PHP": [".php"],
    "Haskell": [".hs"],
    "OCaml": [".ml", ".mli"],
    "Elixir": [".ex", ".exs"],
    "Clojure": [".clj", ".cljs"],
    "Scala": [".scala", ".sc"],
    "Shell": [".sh", ".bash"],
}

# -----------------------------
# File allowlist / blocklist
# -----------------------------

BLOCKED_EXTENSIONS = {
    ".min.js", ".min.css", ".min.mjs", ".bundle.js", ".map",
    ".png", ".jpg", ".jpeg", ".gif", ".ico", ".svg",
    ".woff", ".woff2", ".ttf", ".eot",
    ".mp4", ".webm", ".mp3", ".wav",
    ".pdf", ".zip", ".tar", ".gz",
}

MINIFIED_PATTERN = re.compile(r"\.min\.", re.IGNORECASE)

SOURCE_EXTENSIONS = {
    ext for exts in EXTENSIONS_BY_LANGUAGE.values() for ext in exts
} | {".md"}

MARKDOWN_EXTENSIONS = (".md", ".markdown")

# Lowercase highlighter names for the code view
EXTENSION_LANGUAGE_MAP = {
    "ts": "typescript",
    "tsx": "typescript",
    "js": "javascript",
    "jsx": "javascript",
    "mjs": "javascript",
    "cjs": "javascript",
    "vue": "vue",
    "svelte": "svelte",
    "html": "html",
    "htm": "html",
    "css": "css",
    "scss": "scss",
    "sass": "scss",
    "c": "c",
    "h": "c",
    "cpp": "cpp",
    "hpp": "cpp",
    "cc": "cpp",
    "cxx": "cpp",
    "rs": "rust",
    "go": "go",
    "zig": "zig",
    "nim": "nim",
    "swift": "swift",
    "kt": "kotlin",
    "kts": "kotlin",
    "dart": "dart",
    "yaml": "yaml",
    "yml": "yaml",
    "json": "json",
    "toml": "toml",
    "ini": "ini",
    "cfg": "ini",
    "py": "python",
    "rb": "ruby",
    "java": "java",
    "cs": "csharp",
    "php": "php",
    "hs": "haskell",
    "ml": "ocaml",
    "mli": "ocaml",
    "ex": "elixir",
    "exs": "elixir",
    "clj": "clojure",
    "cljs": "clojure",
    "scala": "scala",
    "sc": "scala",
    "sh": "shell",
    "bash": "shell",
    "md": "markdown",
    "sql": "sql",
    "r": "r",
    "jl": "julia",
}

# Reverse map: extension -> display language (first language listing it wins)
EXTENSION_TO_DISPLAY_LANGUAGE: dict[str, str] = {}
for _language, _exts in EXTENSIONS_BY_LANGUAGE.items():
    for _ext in _exts:
        EXTENSION_TO_DISPLAY_LANGUAGE.setdefault(_ext, _language)


# -----------------------------
# Helpers
# -----------------------------

def is_source_file(path: str) -> bool:
    lower = path.lower()
    return any(lower.endswith(ext) for ext in SOURCE_EXTENSIONS)


def is_blocked_file(path: str) -> bool:
    lower = path.lower()
    if any(lower.endswith(ext) for ext in BLOCKED_EXTENSIONS):
        return True
    return bool(MINIFIED_PATTERN.search(lower))


def is_allowed_size(size_bytes: int) -> bool:
    return 0 < size_bytes <= settings.max_file_bytes


def is_markdown_file(path: str) -> bool:
    return path.lower().endswith(MARKDOWN_EXTENSIONS)


def detect_language(file_path: str) -> str:
    """Highlighter language for a path, ``plaintext`` when unknown."""
    ext = file_path.rsplit(".", 1)[-1].lower() if "." in file_path else ""
    return EXTENSION_LANGUAGE_MAP.get(ext, "plaintext")


def get_category_for_language(language: str) -> str:
    for category, languages in LANGUAGES_BY_CATEGORY.items():
        if language in languages:
            return category
    return "other"


def get_all_languages() -> list[str]:
    languages: list[str] = []
    for category_languages in LANGUAGES_BY_CATEGORY.values():
        for language in category_languages:
            if language not in languages:
                languages.append(language)
    return languages


def get_languages_for_category(category: str) -> list[str]:
    return list(LANGUAGES_BY_CATEGORY.get(category, []))


def get_github_language_name(language: str) -> str:
    return GITHUB_LANGUAGE_NAMES.get(language, language)


def is_path_for_language(path: str, language: str) -> bool:
    """True when ``path`` carries one of the language's extensions (always True for unknown languages)."""
    exts = EXTENSIONS_BY_LANGUAGE.get(language)
    if not exts:
        return True
    lower = path.lower()
    return any(lower.endswith(ext) for ext in exts)


def get_category_and_language_from_path(path: str) -> tuple[str, str]:
    """
    Derive (category, display language) from a file extension.

    Unknown extensions map to language ``Other`` in category ``other``.
    """
    lower = path.lower()
    dot = lower.rfind(".")
    ext = lower[dot:] if dot >= 0 else ""
    language = EXTENSION_TO_DISPLAY_LANGUAGE.get(ext, "Other")
    return get_category_for_language(language), language


def repo_slug(language: str) -> str:
    """Filesystem-safe language slug, e.g. ``C++`` -> ``C__``."""
    return re.sub(r"[^a-zA-Z0-9-]", "_", language)
