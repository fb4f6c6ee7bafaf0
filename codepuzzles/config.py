from pydantic_settings import BaseSettings
from typing import Optional, Union
from functools import lru_cache
from pathlib import Path
from pydantic import field_validator

# Get the project root directory (one level up from codepuzzles/)
PROJECT_ROOT = Path(__file__).parent.parent

# Export these for app-wide use
__all__ = ["Settings", "settings", "get_settings", "PROJECT_ROOT"]

class Settings(BaseSettings):
    # App Settings
    app_name: str = "Code Puzzles"
    debug: Union[bool, str] = False

    @field_validator('debug', mode='before')
    @classmethod
    def parse_debug(cls, v):
        """Parse debug from various formats"""
        if isinstance(v, bool):
            return v
        if isinstance(v, str):
            v_lower = v.lower().strip()
            if v_lower in ('true', '1', 'yes', 'on'):
                return True
            if v_lower in ('false', '0', 'no', 'off'):
                return False
            # Anything else (like 'WARN') is treated as enabled
            return True
        return bool(v)

    # Server Settings
    host: str = "127.0.0.1"
    port: int = 8000

    # CORS Settings - Allowed frontend URLs
    cors_origins: Union[str, list[str]] = ["*"]

    @field_validator('cors_origins', mode='before')
    @classmethod
    def parse_cors_origins(cls, v):
        """Parse CORS origins from comma-separated string or list"""
        if isinstance(v, str):
            if v.strip() == "*":
                return ["*"]
            return [origin.strip() for origin in v.split(',') if origin.strip()]
        return v

    # Environment (development or production)
    environment: str = "development"

    # Persistent store - Supabase
    supabase_url: Optional[str] = None
    supabase_service_key: Optional[str] = None

    # Rate limiter backend (optional, in-memory when unset)
    redis_url: Optional[str] = None
    groq_requests_per_minute: int = 30
    groq_min_delay_seconds: float = 0.0

    # LLM API Keys - Groq. GROQ_API_KEY plus GROQ_API_KEY2..GROQ_API_KEY7 form the pool.
    groq_api_key: Optional[str] = None
    groq_api_key2: Optional[str] = None
    groq_api_key3: Optional[str] = None
    groq_api_key4: Optional[str] = None
    groq_api_key5: Optional[str] = None
    groq_api_key6: Optional[str] = None
    groq_api_key7: Optional[str] = None
    groq_generation_model: str = "openai/gpt-oss-120b"
    groq_grading_model: str = "openai/gpt-oss-20b"
    groq_seed_models: Union[str, list[str]] = [
        "openai/gpt-oss-120b",
        "llama-3.3-70b-versatile",
        "groq/compound",
        "moonshotai/kimi-k2-instruct-0905",
    ]
    groq_timeout: float = 60.0

    @field_validator('groq_seed_models', mode='before')
    @classmethod
    def parse_seed_models(cls, v):
        """Parse seed models from comma-separated string or list"""
        if isinstance(v, str):
            return [model.strip() for model in v.split(',') if model.strip()]
        return v

    # GitHub API
    github_access_token: Optional[str] = None  # Maps to GITHUB_ACCESS_TOKEN
    github_timeout: float = 30.0

    # Puzzle pipeline limits
    puzzle_cache_max_entries: int = 50
    file_cache_ttl_seconds: int = 3600
    max_file_bytes: int = 50 * 1024
    min_file_chars: int = 100
    min_lines: int = 20
    max_lines: int = 200
    max_snippet_chars: int = 12000
    max_repo_attempts: int = 5
    max_file_tries_per_repo: int = 20
    max_llm_attempts_per_file: int = 2

    # Request validation limits
    max_puzzle_id_length: int = 500
    max_line_number: int = 100_000
    max_explanation_length: int = 2000
    max_reason_length: int = 200
    max_report_detail_length: int = 1000

    # Admin
    admin_password: Optional[str] = None

    # Batch tooling
    batch_throttle_seconds: float = 3.0
    github_rate_limit_cooldown_seconds: int = 60
    pool_exhausted_sleep_seconds: int = 24 * 60 * 60
    target_puzzles_per_language: int = 1000
    max_consecutive_errors: int = 5
    seed_data_dir: str = str(PROJECT_ROOT / "scripts" / "seed-data")

    # Logging
    log_level: str = "INFO"

    @property
    def groq_api_keys(self) -> list[str]:
        """Configured Groq keys in pool order, skipping unset slots."""
        keys = [
            self.groq_api_key,
            self.groq_api_key2,
            self.groq_api_key3,
            self.groq_api_key4,
            self.groq_api_key5,
            self.groq_api_key6,
            self.groq_api_key7,
        ]
        return [key for key in keys if key]

    class Config:
        # Look for .env in project root
        env_file = str(PROJECT_ROOT / ".env")
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"  # Ignore extra fields in .env that aren't defined

@lru_cache()
def get_settings() -> Settings:
    """
    Create and cache a single Settings instance (Singleton pattern).
    Returns the same instance on subsequent calls.
    """
    return Settings()

# Create a global settings instance for convenience
settings = get_settings()
