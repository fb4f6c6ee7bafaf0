"""
On-disk repository lists for batch seeding.

One JSON file per language (``repos-<slug>.json``) holds the de-duplicated
search results and the last page fetched, written after every page so a
GitHub rate limit or restart resumes from the exact page.
"""

import json
import logging
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from codepuzzles.config import settings
from codepuzzles.models import RepoSearchItem
from codepuzzles.utils.languages import repo_slug

logger = logging.getLogger(__name__)


class PersistedRepos(BaseModel):
    language: str
    repos: list[RepoSearchItem] = Field(default_factory=list)
    last_fetched_page: int = Field(default=0, alias="lastFetchedPage")

    model_config = ConfigDict(populate_by_name=True)


class RepoListStore:
    def __init__(self, directory: str | Path | None = None):
        self.directory = Path(directory or settings.seed_data_dir)

    def path_for(self, language: str) -> Path:
        return self.directory / f"repos-{repo_slug(language)}.json"

    def load(self, language: str) -> PersistedRepos | None:
        """Saved progress for ``language``, or None when missing, unreadable or for another language."""
        path = self.path_for(language)
        if not path.exists():
            return None
        try:
            data = PersistedRepos.model_validate_json(path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as e:
            logger.warning(f"⚠️  Ignoring unreadable repo list {path.name}: {e}")
            return None
        if data.language != language:
            return None
        return data

    def save(self, data: PersistedRepos) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        payload = {
            "language": data.language,
            "repos": [repo.model_dump(mode="json") for repo in data.repos],
            "lastFetchedPage": data.last_fetched_page,
        }
        self.path_for(data.language).write_text(json.dumps(payload), encoding="utf-8")
