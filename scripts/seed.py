"""
Seed the puzzle store.

For each language:
1. Load (or resume) the repository list saved under scripts/seed-data/
2. Generate puzzles from those repositories until the language reaches the target
3. Insert every puzzle into the store

Groq rate limits rotate to the next model, then the next key; GitHub rate
limits sleep for a cooldown and resume.
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Add parent directory to path to import codepuzzles modules
sys.path.insert(0, str(Path(__file__).parent.parent))

from codepuzzles.config import settings
from codepuzzles.services.batch_jobs import build_batch_runner

logging.basicConfig(
    level=settings.log_level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Seed the puzzle store per language.")
    parser.add_argument(
        "--language",
        action="append",
        dest="languages",
        help="Language to seed (repeatable; default: all languages)",
    )
    parser.add_argument(
        "--target",
        type=int,
        default=settings.target_puzzles_per_language,
        help="Puzzles wanted per language",
    )
    parser.add_argument(
        "--start-from-repo",
        help="owner/repo to start from in each saved repository list",
    )
    return parser.parse_args()


async def main() -> None:
    args = parse_args()
    runner = build_batch_runner()
    counts = await runner.seed(
        languages=args.languages,
        target=args.target,
        start_from_repo=args.start_from_repo,
    )

    logger.info(f"{'=' * 60}")
    logger.info("SEED SUMMARY")
    logger.info(f"{'=' * 60}")
    for language, count in counts.items():
        logger.info(f"  {language}: {count}/{args.target}")


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except Exception as e:
        logger.error(f"❌ Fatal error during seed: {e}", exc_info=True)
        sys.exit(1)
