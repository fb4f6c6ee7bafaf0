"""
Offline batch jobs over the puzzle store: seed, repair, regenerate, filter.

Every model call goes through a ``CredentialRotator`` over the configured
Groq keys and seed models, so a rate limit retries the same item on the
next key/model instead of skipping it. GitHub rate limits pause for a fixed
cooldown and resume where they stopped.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass

from codepuzzles.config import settings
from codepuzzles.models import Puzzle, RepoSearchItem
from codepuzzles.prompts import (
    GENERATION_SYSTEM_PROMPT,
    REPAIR_SYSTEM_PROMPT,
    build_generation_user_prompt,
    build_repair_user_prompt,
    build_supporting_context,
    parse_repair_response,
)
from codepuzzles.services.credential_rotator import CredentialRotator
from codepuzzles.services.github_service import SEARCH_MAX_PAGE, GitHubService, get_github_service
from codepuzzles.services.groq_service import GroqService, get_groq_service
from codepuzzles.services.puzzle_assembler import (
    count_lines,
    normalize_raw_puzzle,
    proposed_question_json,
    revise_puzzle,
)
from codepuzzles.services.puzzle_generator import PuzzleGenerator, get_puzzle_generator
from codepuzzles.services.puzzle_repository import PuzzleRepository, get_puzzle_repository
from codepuzzles.services.repo_list_store import PersistedRepos, RepoListStore
from codepuzzles.utils.content_sanitizer import strip_think_tags
from codepuzzles.utils.exceptions import (
    GitHubRateLimitError,
    InvalidPuzzleOutputError,
    UpstreamUnavailableError,
)
from codepuzzles.utils.json_parser import extract_json_object
from codepuzzles.utils.languages import (
    get_all_languages,
    get_category_and_language_from_path,
    is_markdown_file,
)

logger = logging.getLogger(__name__)

REGENERATE_LLM_ATTEMPTS = 3
PROGRESS_EVERY = 50

Sleep = Callable[[float], Awaitable[None]]


@dataclass
class JobStats:
    approved: int = 0
    rejected: int = 0
    updated: int = 0
    skipped: int = 0
    deleted: int = 0
    errors: int = 0

    def summary(self) -> str:
        return ", ".join(f"{name}: {value}" for name, value in vars(self).items() if value)


def language_track(languages: Sequence[str], current_index: int, current_done: bool = False) -> str:
    """One-line progress strip: ``✓`` done, ``◐`` current, ``○`` pending."""
    marks = []
    for index, language in enumerate(languages):
        if index < current_index or (index == current_index and current_done):
            marks.append(f"{language} ✓")
        elif index == current_index:
            marks.append(f"{language} ◐")
        else:
            marks.append(f"{language} ○")
    return "  |  ".join(marks)


def build_seed_rotator(sleep: Sleep = asyncio.sleep) -> CredentialRotator:
    """Rotator over every configured Groq key and the seed model list."""
    return CredentialRotator(
        api_keys=settings.groq_api_keys,
        models=settings.groq_seed_models,
        sleep=sleep,
    )


class BatchRunner:
    def __init__(
        self,
        repository: PuzzleRepository,
        generator: PuzzleGenerator,
        github: GitHubService,
        groq: GroqService,
        rotator: CredentialRotator,
        repo_store: RepoListStore | None = None,
        throttle_seconds: float | None = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.repository = repository
        self.generator = generator
        self.github = github
        self.groq = groq
        self.rotator = rotator
        self.repo_store = repo_store or RepoListStore()
        self.throttle_seconds = (
            settings.batch_throttle_seconds if throttle_seconds is None else throttle_seconds
        )
        self._sleep = sleep

    async def _throttle(self) -> None:
        if self.throttle_seconds:
            await self._sleep(self.throttle_seconds)

    async def _github_cooldown(self, context: str) -> None:
        seconds = settings.github_rate_limit_cooldown_seconds
        logger.warning(f"⏳ [{context}] GitHub rate limit. Sleeping {seconds}s, then resuming...")
        await self._sleep(seconds)

    # -----------------------------
    # Seed
    # -----------------------------

    async def load_repos(self, language: str) -> list[RepoSearchItem]:
        """
        Repositories for ``language``, resuming the saved search from the next page.

        Progress is saved after every page; a GitHub rate limit sleeps and
        resumes from the last saved page. Other search failures return
        whatever was saved so far.
        """
        while True:
            saved = self.repo_store.load(language)
            existing = saved.repos if saved else []
            start_page = saved.last_fetched_page + 1 if saved else 1
            if saved:
                logger.info(
                    f"📂 [{language}] Loaded {len(existing)} repos from file "
                    f"(lastFetchedPage={saved.last_fetched_page})"
                )
            if start_page > SEARCH_MAX_PAGE:
                return existing

            def save_page(repos: list[RepoSearchItem], page: int) -> None:
                self.repo_store.save(
                    PersistedRepos(language=language, repos=repos, last_fetched_page=page)
                )

            try:
                return await self.github.fetch_repos_for_language(
                    language, existing=existing, start_page=start_page, on_page=save_page
                )
            except GitHubRateLimitError:
                await self._github_cooldown(language)
            except UpstreamUnavailableError as e:
                logger.error(f"❌ [{language}] Failed to fetch repos: {e}")
                saved = self.repo_store.load(language)
                return saved.repos if saved else []

    async def seed(
        self,
        languages: Sequence[str] | None = None,
        target: int | None = None,
        start_from_repo: str | None = None,
    ) -> dict[str, int]:
        """
        Top up every language to ``target`` stored puzzles.

        Args:
            languages: Languages to seed (all known languages by default)
            target: Puzzles wanted per language
            start_from_repo: ``owner/name`` to start from in each saved repo list

        Returns:
            Final puzzle count per language
        """
        languages = list(languages or get_all_languages())
        target = target or settings.target_puzzles_per_language
        counts: dict[str, int] = {}

        logger.info(
            f"🌱 Seeding {len(languages)} languages to {target} puzzles each "
            f"({len(self.rotator.api_keys)} keys, models: {', '.join(self.rotator.models)})"
        )

        for index, language in enumerate(languages):
            count = self.repository.count_puzzles_by_language(language)
            done = count >= target
            logger.info(language_track(languages, index, done))
            if done:
                logger.info(f"✅ [{language}] Already at target ({count}/{target}). Skipping.")
                counts[language] = count
                continue

            repos = await self.load_repos(language)
            if start_from_repo:
                names = [repo.full_name for repo in repos]
                if start_from_repo in names:
                    repos = repos[names.index(start_from_repo):]
                else:
                    logger.warning(f"⚠️  [{language}] {start_from_repo} not in repo list; using all repos")
            if not repos:
                logger.warning(f"⚠️  [{language}] No repos available. Skipping language.")
                counts[language] = count
                continue

            counts[language] = await self._seed_language(language, repos, count, target)

        logger.info("🌱 Seed run complete")
        return counts

    async def _seed_language(
        self,
        language: str,
        repos: list[RepoSearchItem],
        count: int,
        target: int,
    ) -> int:
        logger.info(f"🧩 [{language}] {count} in store, generating up to {target - count} more from {len(repos)} repos")
        consecutive_errors = 0

        while count < target:
            seed = f"{language}:{count}"

            async def generate(api_key: str, model: str) -> Puzzle:
                return await self.generator.generate(
                    seed=seed, language=language, api_key=api_key, model=model, repos=repos
                )

            try:
                puzzle = await self.rotator.run(generate)
                self.repository.insert_puzzle(puzzle)
            except GitHubRateLimitError:
                await self._github_cooldown(language)
                continue
            except Exception as e:
                consecutive_errors += 1
                logger.warning(
                    f"⚠️  [{language}] Error ({consecutive_errors}/{settings.max_consecutive_errors}): {e}"
                )
                if consecutive_errors >= settings.max_consecutive_errors:
                    logger.warning(f"⏭️  [{language}] Too many consecutive errors. Moving to next language.")
                    break
            else:
                count += 1
                consecutive_errors = 0
                if count % PROGRESS_EVERY == 0 or count >= target:
                    logger.info(f"📊 [{language}] Progress: {count}/{target}")

            await self._throttle()

        logger.info(f"🏁 [{language}] Done. Final count: {count}/{target}")
        return count

    # -----------------------------
    # Repair
    # -----------------------------

    async def repair(self) -> JobStats:
        """Review every stored puzzle; replace the question fields of rejected ones."""
        stats = JobStats()
        puzzles = self.repository.list_puzzles()
        logger.info(f"🔍 Reviewing {len(puzzles)} puzzles with the repair prompt")

        for position, puzzle in enumerate(puzzles, start=1):
            logger.info(f"--- Puzzle {position}/{len(puzzles)}: {puzzle.puzzle_id}")
            try:
                await self._repair_one(puzzle, stats)
            except Exception as e:
                stats.errors += 1
                logger.warning(f"⚠️  Error repairing {puzzle.puzzle_id}: {e}")

            if position % PROGRESS_EVERY == 0:
                logger.info(f"📊 Progress: {position}/{len(puzzles)} ({stats.summary()})")
            await self._throttle()

        logger.info(f"🏁 Repair complete ({stats.summary()})")
        return stats

    async def _repair_one(self, puzzle: Puzzle, stats: JobStats) -> None:
        user_prompt = build_repair_user_prompt(
            puzzle.file.content[: settings.max_snippet_chars],
            build_supporting_context(
                puzzle.file.language,
                puzzle.file.path,
                puzzle.repo.owner,
                puzzle.repo.name,
                puzzle.line_count,
            ),
            proposed_question_json(puzzle),
        )

        async def review(api_key: str, model: str) -> str:
            return await self.groq.complete(
                REPAIR_SYSTEM_PROMPT, user_prompt, model=model, api_key=api_key
            )

        verdict = parse_repair_response(await self.rotator.run(review))

        if verdict.status == "APPROVED":
            stats.approved += 1
            logger.info("   APPROVED (no change)")
            return

        stats.rejected += 1
        if verdict.json_text is None:
            logger.warning("   REJECTED but no JSON in response")
            return

        corrected = extract_json_object(verdict.json_text)
        if corrected is None:
            stats.errors += 1
            logger.warning("   REJECTED but corrected JSON is invalid")
            return

        try:
            revised = revise_puzzle(puzzle, corrected)
        except InvalidPuzzleOutputError as e:
            stats.errors += 1
            logger.warning(f"   REJECTED but correction is unusable: {e.reason}")
            return

        self._store_revision(revised)
        stats.updated += 1
        logger.info("   REJECTED -> stored corrected question")

    def _store_revision(self, revised: Puzzle) -> None:
        self.repository.update_puzzle_content(
            revised.puzzle_id,
            question=revised.question,
            answer_key=revised.answer_key,
            explanation=revised.explanation,
            grading_rubric=revised.grading_rubric,
        )

    # -----------------------------
    # Regenerate
    # -----------------------------

    async def regenerate(
        self,
        start_index: int | None = None,
        start_puzzle_id: str | None = None,
    ) -> JobStats:
        """
        Re-run the generation prompt over every stored puzzle's file.

        Args:
            start_index: 1-based position to start from
            start_puzzle_id: Start at this puzzle (ignored when ``start_index`` is set)
        """
        stats = JobStats()
        puzzles = self.repository.list_puzzles()

        first = 0
        if start_index is not None and start_index >= 1:
            first = min(start_index - 1, len(puzzles))
        elif start_puzzle_id:
            ids = [puzzle.puzzle_id for puzzle in puzzles]
            if start_puzzle_id in ids:
                first = ids.index(start_puzzle_id)
            else:
                logger.warning(f"⚠️  {start_puzzle_id} not found; starting from puzzle 1")

        logger.info(f"♻️  Regenerating puzzles {first + 1}-{len(puzzles)} of {len(puzzles)}")

        for position in range(first + 1, len(puzzles) + 1):
            puzzle = puzzles[position - 1]
            logger.info(f"--- Puzzle {position}/{len(puzzles)}: {puzzle.puzzle_id}")
            try:
                revised = await self.rotator.run(
                    lambda api_key, model: self._regenerate_one(puzzle, api_key, model)
                )
                if revised is None:
                    stats.skipped += 1
                    logger.info(f"   Skipped (no valid output after {REGENERATE_LLM_ATTEMPTS} attempts)")
                else:
                    self._store_revision(revised)
                    stats.updated += 1
                    logger.info("   Stored regenerated question")
            except Exception as e:
                stats.errors += 1
                logger.warning(f"⚠️  Error regenerating {puzzle.puzzle_id}: {e}")

            if position % PROGRESS_EVERY == 0:
                logger.info(f"📊 Progress: {position}/{len(puzzles)} ({stats.summary()})")
            await self._throttle()

        logger.info(f"🏁 Regenerate complete ({stats.summary()})")
        return stats

    async def _regenerate_one(self, puzzle: Puzzle, api_key: str, model: str) -> Puzzle | None:
        user_prompt = build_generation_user_prompt(
            strip_think_tags(puzzle.file.content)[: settings.max_snippet_chars],
            build_supporting_context(
                puzzle.file.language,
                puzzle.file.path,
                puzzle.repo.owner,
                puzzle.repo.name,
                puzzle.line_count,
            ),
        )

        for attempt in range(1, REGENERATE_LLM_ATTEMPTS + 1):
            raw = await self.groq.complete(
                GENERATION_SYSTEM_PROMPT, user_prompt, model=model, api_key=api_key, json_mode=True
            )
            obj = extract_json_object(raw)
            if obj is None:
                logger.info(f"   Invalid JSON (attempt {attempt}/{REGENERATE_LLM_ATTEMPTS})")
                continue
            try:
                normalize_raw_puzzle(obj)
                return revise_puzzle(puzzle, obj, keep_rubric=False)
            except InvalidPuzzleOutputError as e:
                logger.info(f"   {e.reason} (attempt {attempt}/{REGENERATE_LLM_ATTEMPTS})")
        return None


def filter_puzzles(repository: PuzzleRepository) -> JobStats:
    """
    Delete puzzles over Markdown files or files shorter than the minimum
    line count; re-derive category and language for the rest.
    """
    stats = JobStats()
    puzzles = repository.list_puzzles()
    logger.info(f"🧹 Filtering {len(puzzles)} puzzles")

    for puzzle in puzzles:
        path = puzzle.file.path
        lines = count_lines(puzzle.file.content)
        markdown = is_markdown_file(path)
        if markdown or lines < settings.min_lines:
            repository.delete_puzzle(puzzle.puzzle_id)
            stats.deleted += 1
            reason = "markdown" if markdown else f"< {settings.min_lines} lines"
            logger.info(f"   Deleted {puzzle.puzzle_id} ({reason})")
            continue

        category, language = get_category_and_language_from_path(path)
        repository.update_classification(puzzle.puzzle_id, category, language)
        stats.updated += 1

    logger.info(f"🏁 Filter complete ({stats.summary()})")
    return stats


def build_batch_runner(sleep: Sleep = asyncio.sleep) -> BatchRunner:
    """Runner wired to the process-wide services and a fresh seed rotator."""
    return BatchRunner(
        repository=get_puzzle_repository(),
        generator=get_puzzle_generator(),
        github=get_github_service(),
        groq=get_groq_service(),
        rotator=build_seed_rotator(sleep=sleep),
        sleep=sleep,
    )
