"""
Delete puzzles over Markdown files or short files, then backfill category
and language from the file path for the rest.
"""

import argparse
import logging
import sys
from pathlib import Path

# Add parent directory to path to import codepuzzles modules
sys.path.insert(0, str(Path(__file__).parent.parent))

from codepuzzles.config import settings
from codepuzzles.services.batch_jobs import filter_puzzles
from codepuzzles.services.puzzle_repository import get_puzzle_repository

logging.basicConfig(
    level=settings.log_level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


if __name__ == "__main__":
    argparse.ArgumentParser(description="Filter stored puzzles.").parse_args()
    try:
        stats = filter_puzzles(get_puzzle_repository())
        logger.info(f"Deleted: {stats.deleted}, Updated category/language: {stats.updated}")
    except Exception as e:
        logger.error(f"❌ Fatal error during filter: {e}", exc_info=True)
        sys.exit(1)
