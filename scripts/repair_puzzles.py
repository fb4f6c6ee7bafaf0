"""
Review every stored puzzle with the repair prompt.
REJECTED puzzles get their question, answer key, explanation and rubric
replaced by the reviewer's corrected version.
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


async def main() -> None:
    argparse.ArgumentParser(description="Review and repair stored puzzles.").parse_args()
    stats = await build_batch_runner().repair()
    logger.info(
        f"Approved: {stats.approved}, Rejected: {stats.rejected} "
        f"(updated: {stats.updated}), Errors: {stats.errors}"
    )


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except Exception as e:
        logger.error(f"❌ Fatal error during repair: {e}", exc_info=True)
        sys.exit(1)
