"""
Application startup initialization.
Call this on app startup to initialize services.
"""

import logging

from codepuzzles.services.rate_limiter import close_rate_limiter, initialize_rate_limiter

logger = logging.getLogger(__name__)


async def startup_services():
    """
    Initialize all services on application startup.
    Call this from the FastAPI lifespan.
    """
    logger.info("🚀 Initializing application services...")

    # Rate limiter uses Redis when configured, in-memory otherwise
    try:
        await initialize_rate_limiter()
        logger.info("✅ Rate limiter initialized")
    except Exception as e:
        logger.warning(f"⚠️  Rate limiter initialization failed: {e}")
        logger.info("   Application will continue with the in-memory limiter")

    logger.info("✅ Startup services initialized")


async def shutdown_services():
    """
    Cleanup services on application shutdown.
    Call this from the FastAPI lifespan.
    """
    logger.info("🛑 Shutting down application services...")
    await close_rate_limiter()
    logger.info("✅ Services shut down")
