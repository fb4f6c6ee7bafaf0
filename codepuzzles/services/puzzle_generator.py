"""
Puzzle generation pipeline.

Selector -> sanitizer -> prompt builder -> Groq -> parser -> assembler, with
bounded retries: a few repository candidates, a few shuffled files per
repository, and a few model calls per file. Rate limits are not handled
here; they propagate so the caller can back off or rotate credentials.
"""

import logging
from collections.abc import Sequence

from codepuzzles.config import settings
from codepuzzles.models import FileInfo, Puzzle, RepoSearchItem
from codepuzzles.prompts import (
    GENERATION_SYSTEM_PROMPT,
    build_generation_user_prompt,
    build_supporting_context,
)
from codepuzzles.services.cache import BoundedCache, get_puzzle_cache
from codepuzzles.services.github_service import GitHubService, get_github_service
from codepuzzles.services.groq_service import GroqService, get_groq_service
from codepuzzles.services.puzzle_assembler import PuzzleSource, assemble_puzzle, count_lines
from codepuzzles.utils.content_sanitizer import strip_think_tags
from codepuzzles.utils.exceptions import (
    InvalidPuzzleOutputError,
    NoPuzzleAvailableError,
    RateLimitError,
    UpstreamUnavailableError,
)
from codepuzzles.utils.json_parser import extract_json_object
from codepuzzles.utils.languages import (
    get_all_languages,
    get_languages_for_category,
    is_path_for_language,
)
from codepuzzles.utils.seeded_random import RandomSource, pick, seed_random, shuffle

logger = logging.getLogger(__name__)

# Lazy singleton instance
_puzzle_generator_instance = None


def get_puzzle_generator() -> "PuzzleGenerator":
    global _puzzle_generator_instance

    if _puzzle_generator_instance is None:
        _puzzle_generator_instance = PuzzleGenerator(
            github=get_github_service(),
            groq=get_groq_service(),
            puzzle_cache=get_puzzle_cache(),
        )
    return _puzzle_generator_instance


def choose_language(rng: RandomSource, language: str | None = None, category: str | None = None) -> str:
    """Explicit language wins; otherwise draw from the category's languages, else from all."""
    if language:
        return language
    candidates = get_languages_for_category(category) if category else []
    if not candidates:
        candidates = get_all_languages()
    return pick(candidates, rng)


class PuzzleGenerator:
    def __init__(
        self,
        github: GitHubService,
        groq: GroqService,
        puzzle_cache: BoundedCache | None = None,
    ):
        self.github = github
        self.groq = groq
        self.puzzle_cache = puzzle_cache

    async def generate(
        self,
        seed: str | None = None,
        language: str | None = None,
        category: str | None = None,
        api_key: str | None = None,
        model: str | None = None,
        repos: Sequence[RepoSearchItem] | None = None,
    ) -> Puzzle:
        """
        Generate one puzzle.

        Args:
            seed: Makes language, repository, file and sort choices reproducible
            language: Target language (display name); drawn at random when omitted
            category: Restrict the random language draw to one category
            api_key: Groq credential for this attempt
            model: Groq model for this attempt
            repos: Pre-fetched repository list to pick from instead of searching

        Returns:
            The assembled puzzle (also put into the puzzle cache)

        Raises:
            GitHubRateLimitError / LLMRateLimitError: upstream rate limit, caller backs off
            NoPuzzleAvailableError: every candidate was exhausted
        """
        rng = seed_random(seed)
        target_language = choose_language(rng, language, category)
        logger.info(f"🧩 Generating puzzle (language: {target_language}, seed: {seed})")

        last_error = f"All {settings.max_repo_attempts} repo attempts failed."

        for repo_attempt in range(1, settings.max_repo_attempts + 1):
            try:
                repo_item = await self._pick_repo(target_language, rng, repos)
            except RateLimitError:
                raise
            except UpstreamUnavailableError as e:
                last_error = f"Repo attempt {repo_attempt}: {e}"
                logger.warning(f"⚠️  {last_error}")
                continue

            if repo_item is None:
                last_error = f"Repo attempt {repo_attempt}: no repos found for language {target_language}."
                logger.warning(f"⚠️  {last_error}")
                continue

            owner, name = repo_item.owner_and_name
            ref = repo_item.default_branch or "main"
            logger.info(f"📦 Repo attempt {repo_attempt}/{settings.max_repo_attempts}: {owner}/{name}@{ref}")

            puzzle, error = await self._try_repo(owner, name, ref, target_language, rng, api_key, model)
            if puzzle is not None:
                if self.puzzle_cache is not None:
                    self.puzzle_cache.set(puzzle.puzzle_id, puzzle)
                logger.info(f"✅ Built puzzle: {puzzle.puzzle_id}")
                return puzzle

            last_error = f"Repo attempt {repo_attempt}: {error}"
            logger.info(f"   {last_error}")

        logger.warning(f"❌ No puzzle produced for {target_language}: {last_error}")
        raise NoPuzzleAvailableError(last_error)

    async def _pick_repo(
        self,
        language: str,
        rng: RandomSource,
        repos: Sequence[RepoSearchItem] | None,
    ) -> RepoSearchItem | None:
        if repos:
            return pick(repos, rng)
        return await self.github.get_random_repo_for_language(language, rng)

    async def _try_repo(
        self,
        owner: str,
        name: str,
        ref: str,
        target_language: str,
        rng: RandomSource,
        api_key: str | None,
        model: str | None,
    ) -> tuple[Puzzle | None, str]:
        """Try up to ``max_file_tries_per_repo`` shuffled files; returns (puzzle, last diagnostic)."""
        tree = await self.github.list_allowed_files(owner, name, ref)
        if not tree:
            return None, f"no files in tree for {owner}/{name}."

        for_language = [f for f in tree if is_path_for_language(f.path, target_language)]
        candidates = shuffle(for_language or tree, rng)
        sha = await self.github.resolve_commit(owner, name, ref)

        error = f"no suitable file in {owner}/{name}."
        for entry in candidates[: settings.max_file_tries_per_repo]:
            file_info = await self.github.fetch_file(owner, name, entry.path, ref)
            if file_info is None or len(file_info.content) < settings.min_file_chars:
                error = f"file too short or missing ({entry.path})."
                logger.debug(f"   {error}")
                continue

            content = strip_think_tags(file_info.content)
            line_count = count_lines(content)
            if line_count < settings.min_lines or line_count > settings.max_lines:
                error = f"file has {line_count} lines, outside {settings.min_lines}-{settings.max_lines} ({entry.path})."
                logger.debug(f"   {error}")
                continue

            source = PuzzleSource(
                owner=owner,
                name=name,
                ref=ref,
                sha=sha,
                file=file_info,
                target_language=target_language,
            )
            puzzle, error = await self._ask_model(content, line_count, source, api_key, model)
            if puzzle is not None:
                return puzzle, ""

        return None, error

    async def _ask_model(
        self,
        content: str,
        line_count: int,
        source: PuzzleSource,
        api_key: str | None,
        model: str | None,
    ) -> tuple[Puzzle | None, str]:
        file_info: FileInfo = source.file
        snippet = content[: settings.max_snippet_chars]
        context = build_supporting_context(
            file_info.language, file_info.path, source.owner, source.name, line_count
        )
        user_prompt = build_generation_user_prompt(snippet, context)

        error = ""
        for llm_attempt in range(1, settings.max_llm_attempts_per_file + 1):
            logger.info(f"   {line_count} lines, calling Groq for {file_info.path} (attempt {llm_attempt})")
            try:
                raw = await self.groq.complete(
                    GENERATION_SYSTEM_PROMPT,
                    user_prompt,
                    model=model,
                    api_key=api_key,
                )
            except RateLimitError:
                raise
            except UpstreamUnavailableError as e:
                return None, f"Groq error: {e}"

            obj = extract_json_object(raw)
            if obj is None:
                error = "LLM returned invalid JSON."
                logger.debug(f"   {error} raw: {raw[:200]}")
                continue

            try:
                return assemble_puzzle(obj, line_count, source), ""
            except InvalidPuzzleOutputError as e:
                error = str(e)
                logger.debug(f"   {error}")

        return None, error
