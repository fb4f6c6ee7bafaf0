import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from codepuzzles.api.admin import router as admin_router
from codepuzzles.api.puzzles import router as puzzles_router
from codepuzzles.api.routes import router
from codepuzzles.config import settings
from codepuzzles.core.startup import shutdown_services, startup_services
from codepuzzles.utils.request_validation import request_validation_exception_handler

# Configure logging from settings
logging.basicConfig(level=settings.log_level)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    # Startup: Code that runs when the app starts
    logging.info("=" * 60)
    logging.info(f"🚀 {settings.app_name} starting up...")
    logging.info("=" * 60)

    # App Settings
    logging.info("📋 App Configuration:")
    logging.info(f"  Environment: {settings.environment}")
    logging.info(f"  Debug mode: {settings.debug}")
    logging.info(f"  Log level: {settings.log_level}")

    # Server Settings
    logging.info("🌐 Server Configuration:")
    logging.info(f"  Host: {settings.host}")
    logging.info(f"  Port: {settings.port}")
    logging.info(f"  CORS Origins: {settings.cors_origins}")

    # Store Settings
    logging.info("💾 Store Configuration:")
    logging.info(f"  Supabase URL: {'✓ Configured' if settings.supabase_url else '✗ Not set'}")
    logging.info(f"  Redis URL: {'✓ Configured' if settings.redis_url else '✗ Not set (in-memory rate limiter)'}")

    # LLM Settings
    logging.info("🤖 LLM Configuration:")
    logging.info(f"  Groq API keys: {len(settings.groq_api_keys)} configured")
    logging.info(f"  Generation model: {settings.groq_generation_model}")
    logging.info(f"  Grading model: {settings.groq_grading_model}")

    # GitHub Settings
    logging.info("🔧 GitHub Configuration:")
    logging.info(f"  GitHub Token: {'✓ Configured' if settings.github_access_token else '✗ Not set'}")

    # Admin Settings
    logging.info("🔐 Admin Configuration:")
    logging.info(f"  Admin password: {'✓ Configured' if settings.admin_password else '✗ Not set (admin disabled)'}")

    await startup_services()

    logging.info("=" * 60)
    logging.info("✅ Startup complete - Ready to accept requests")
    logging.info("=" * 60)

    yield  # App runs here

    # Shutdown: Code that runs when the app shuts down
    logging.info("=" * 60)
    logging.info("🛑 App is shutting down...")
    logging.info("=" * 60)
    await shutdown_services()


app = FastAPI(title=settings.app_name, debug=settings.debug, lifespan=lifespan)

# Rejected request bodies answer 400 with a single stable message
app.add_exception_handler(RequestValidationError, request_validation_exception_handler)

# Add CORS middleware - configured from settings
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router, prefix="/api")
app.include_router(puzzles_router, prefix="/api")
app.include_router(admin_router, prefix="/api/admin", tags=["admin"])
