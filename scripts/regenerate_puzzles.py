"""
Regenerate every stored puzzle's question fields with the generation prompt.
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
    parser = argparse.ArgumentParser(description="Regenerate stored puzzles.")
    start = parser.add_mutually_exclusive_group()
    start.add_argument("--start-index", type=int, help="1-based puzzle position to start from")
    start.add_argument("--start-puzzle-id", help="Puzzle id to start from")
    return parser.parse_args()


async def main() -> None:
    args = parse_args()
    stats = await build_batch_runner().regenerate(
        start_index=args.start_index,
        start_puzzle_id=args.start_puzzle_id,
    )
    logger.info(f"Updated: {stats.updated}, Skipped: {stats.skipped}, Errors: {stats.errors}")


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except Exception as e:
        logger.error(f"❌ Fatal error during regenerate: {e}", exc_info=True)
        sys.exit(1)
