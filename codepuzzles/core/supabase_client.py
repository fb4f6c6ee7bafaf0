from supabase import create_client, Client
from codepuzzles.config import settings
import logging


logger = logging.getLogger(__name__)

_supabase_client : Client | None = None

def get_supabase_client() -> Client:
    """Create (once) and return the Supabase client backing the puzzle store"""
    global _supabase_client

    if _supabase_client is None:
        if not settings.supabase_url or not settings.supabase_service_key:
            raise ValueError("Supabase URL or service key is not configured")

        _supabase_client = create_client(settings.supabase_url, settings.supabase_service_key)
        logger.info("🗄️  Supabase client initialized for puzzle store")

    return _supabase_client
