import logging
from collections.abc import Awaitable, Callable, Sequence
from urllib.parse import quote

import httpx

from codepuzzles.config import settings
from codepuzzles.models import FileInfo, RepoSearchItem, TreeFile
from codepuzzles.services.cache import TTLCache, get_file_cache
from codepuzzles.utils.content_sanitizer import sanitize_content
from codepuzzles.utils.exceptions import GitHubRateLimitError, UpstreamUnavailableError
from codepuzzles.utils.languages import (
    detect_language,
    get_github_language_name,
    is_allowed_size,
    is_blocked_file,
    is_source_file,
)
from codepuzzles.utils.seeded_random import RandomSource

logger = logging.getLogger(__name__)

# -----------------------------
# Configuration
# -----------------------------

GITHUB_API_URL = "https://api.github.com"
GITHUB_API_VERSION = "2022-11-28"

SEARCH_PER_PAGE = 100
# Search API caps results at 1000: pages 1..10 of 100
SEARCH_MAX_PAGE = 10

# Lazy singleton instance
_github_service_instance = None


def get_github_service() -> "GitHubService":
    """
    Get or create singleton GitHubService instance (lazy initialization).
    """
    global _github_service_instance

    if _github_service_instance is None:
        _github_service_instance = GitHubService(file_cache=get_file_cache())
        logger.info("✅ GitHubService ready")

    return _github_service_instance


def _file_cache_key(owner: str, repo: str, path: str, ref: str) -> str:
    return f"{owner}:{repo}:{path}:{ref}"


def _is_rate_limited(response: httpx.Response) -> bool:
    if response.status_code == 429:
        return True
    return (
        response.status_code == 403
        and response.headers.get("x-ratelimit-remaining") == "0"
    )


class GitHubService:
    """
    Read-only GitHub REST client for repository search, trees, file content
    and commit resolution.

    Rate limiting (HTTP 429, or 403 from search / with an exhausted quota)
    raises ``GitHubRateLimitError`` so callers can back off instead of
    treating the candidate as empty.
    """

    def __init__(
        self,
        file_cache: TTLCache | None = None,
        token: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.file_cache = file_cache if file_cache is not None else TTLCache(settings.file_cache_ttl_seconds)
        self.token = token if token is not None else settings.github_access_token
        self.timeout = timeout or settings.github_timeout
        self.transport = transport

        if not self.token:
            logger.warning("⚠️  No GitHub access token configured, using unauthenticated requests")

    def _headers(self, accept: str = "application/vnd.github+json") -> dict[str, str]:
        headers = {
            "Accept": accept,
            "X-GitHub-Api-Version": GITHUB_API_VERSION,
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def _get(self, url: str, headers: dict[str, str]) -> httpx.Response:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            return await client.get(url, headers=headers)

    # -----------------------------
    # Search
    # -----------------------------

    async def search_repositories(
        self,
        language: str,
        page: int = 1,
        sort: str = "updated",
        per_page: int = SEARCH_PER_PAGE,
    ) -> list[RepoSearchItem]:
        """
        Search public, non-fork, non-archived repositories by language.

        Raises:
            GitHubRateLimitError: GitHub answered 403 or 429
            UpstreamUnavailableError: Any other non-2xx or network failure
        """
        language_qualifier = quote(get_github_language_name(language), safe="%")
        url = (
            f"{GITHUB_API_URL}/search/repositories"
            f"?q=language:{language_qualifier}+fork:false+archived:false"
            f"&sort={sort}&order=desc&per_page={per_page}&page={page}"
        )
        logger.debug(f"🔎 GitHub search: language={language} page={page} sort={sort}")

        try:
            response = await self._get(url, self._headers())
        except httpx.HTTPError as e:
            raise UpstreamUnavailableError("GitHub", f"search request failed: {e}") from e

        if response.status_code in (403, 429):
            logger.warning(f"⚠️  GitHub search rate limited (HTTP {response.status_code})")
            raise GitHubRateLimitError(response.status_code)
        if response.is_error:
            raise UpstreamUnavailableError("GitHub", f"search failed: HTTP {response.status_code}")

        items = response.json().get("items") or []
        return [RepoSearchItem.model_validate(item) for item in items]

    async def get_random_repo_for_language(
        self, language: str, rng: RandomSource
    ) -> RepoSearchItem | None:
        """Pick a random repository from a random search page (1..10) and sort order."""
        page = min(SEARCH_MAX_PAGE, max(1, int(rng() * SEARCH_MAX_PAGE) + 1))
        sort = "updated" if rng() < 0.5 else "stars"
        items = await self.search_repositories(language, page=page, sort=sort, per_page=SEARCH_PER_PAGE)
        if not items:
            return None
        return items[int(rng() * len(items))]

    async def fetch_repos_for_language(
        self,
        language: str,
        existing: Sequence[RepoSearchItem] = (),
        start_page: int = 1,
        on_page: Callable[[list[RepoSearchItem], int], Awaitable[None] | None] | None = None,
    ) -> list[RepoSearchItem]:
        """
        Page through search results (up to page 10), de-duplicating by full name.

        Args:
            language: Display language name
            existing: Already collected repositories (kept, used for de-duplication)
            start_page: First page to request
            on_page: Called with (repos so far, page) after every page so progress can be saved

        Returns:
            De-duplicated repositories in discovery order
        """
        seen: set[str] = set()
        repos: list[RepoSearchItem] = []
        for item in existing:
            if item.full_name not in seen:
                seen.add(item.full_name)
                repos.append(item)

        for page in range(start_page, SEARCH_MAX_PAGE + 1):
            items = await self.search_repositories(language, page=page, sort="updated")
            for item in items:
                if item.full_name in seen:
                    continue
                seen.add(item.full_name)
                repos.append(item)

            logger.info(f"📄 {language} page {page}: {len(items)} repos (total unique: {len(repos)})")
            if on_page is not None:
                result = on_page(repos, page)
                if result is not None:
                    await result

            if len(items) < SEARCH_PER_PAGE:
                break

        return repos

    # -----------------------------
    # Trees, files, commits
    # -----------------------------

    async def list_allowed_files(self, owner: str, repo: str, ref: str) -> list[TreeFile] | None:
        """
        List blobs of the recursive tree that pass the source allowlist,
        the binary/minified blocklist and the size window.

        Returns:
            Allowed files, or None when the tree could not be read
        """
        url = f"{GITHUB_API_URL}/repos/{owner}/{repo}/git/trees/{ref}?recursive=1"
        try:
            response = await self._get(url, self._headers())
        except httpx.HTTPError as e:
            logger.warning(f"⚠️  Tree fetch failed for {owner}/{repo}@{ref}: {e}")
            return None

        if _is_rate_limited(response):
            raise GitHubRateLimitError(response.status_code)
        if response.is_error:
            logger.debug(f"Tree fetch for {owner}/{repo}@{ref} returned HTTP {response.status_code}")
            return None

        files: list[TreeFile] = []
        for item in response.json().get("tree") or []:
            if item.get("type") != "blob":
                continue
            path = item["path"]
            if not is_source_file(path) or is_blocked_file(path):
                continue
            size = item.get("size")
            if size is not None and not is_allowed_size(size):
                continue
            files.append(TreeFile(path=path, size=size))

        logger.debug(f"🌳 {owner}/{repo}@{ref}: {len(files)} allowed files")
        return files

    async def fetch_file(self, owner: str, repo: str, path: str, ref: str) -> FileInfo | None:
        """
        Fetch raw file content, sanitized, through the TTL cache.

        Returns:
            FileInfo, or None when missing, unreadable or larger than the size ceiling
        """
        key = _file_cache_key(owner, repo, path, ref)
        cached = self.file_cache.get(key)
        if cached is not None:
            return cached

        encoded_path = "/".join(quote(part, safe="") for part in path.split("/"))
        url = f"{GITHUB_API_URL}/repos/{owner}/{repo}/contents/{encoded_path}?ref={quote(ref, safe='')}"
        try:
            response = await self._get(url, self._headers(accept="application/vnd.github.raw"))
        except httpx.HTTPError as e:
            logger.warning(f"⚠️  File fetch failed for {owner}/{repo}/{path}: {e}")
            return None

        if _is_rate_limited(response):
            raise GitHubRateLimitError(response.status_code)
        if response.is_error:
            return None

        raw = response.text
        if len(raw) > settings.max_file_bytes:
            logger.debug(f"📦 Skipping large file ({len(raw)} chars): {path}")
            return None

        content = sanitize_content(raw)
        file_info = FileInfo(
            path=path,
            content=content,
            language=detect_language(path),
            size_bytes=len(content.encode("utf-8")),
        )
        self.file_cache.set(key, file_info)
        return file_info

    async def resolve_commit(self, owner: str, repo: str, ref: str) -> str:
        """Resolve ``ref`` to a commit sha; falls back to ``ref`` itself on any failure."""
        url = f"{GITHUB_API_URL}/repos/{owner}/{repo}/commits/{quote(ref, safe='')}"
        try:
            response = await self._get(url, self._headers())
            if response.is_error:
                return ref
            return response.json().get("sha") or ref
        except (httpx.HTTPError, ValueError) as e:
            logger.debug(f"Commit resolution failed for {owner}/{repo}@{ref}: {e}")
            return ref
