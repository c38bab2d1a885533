"""Supabase client construction. Credentials come from .env (SUPABASE_URL, SUPABASE_KEY)."""
import logging
import os
from typing import Optional

from dotenv import load_dotenv
from supabase import create_client, Client, ClientOptions

load_dotenv()

logger = logging.getLogger(__name__)

PERSISTENCE_RETRIES = int(os.getenv("PERSISTENCE_RETRIES", "3"))
PERSISTENCE_TIMEOUT = float(os.getenv("PERSISTENCE_TIMEOUT", "10"))

_client: Optional[Client] = None


def _env_client() -> Client:
    url = os.environ.get("SUPABASE_URL")
    key = os.environ.get("SUPABASE_KEY")
    if not url or not key:
        raise ValueError("SUPABASE_URL and SUPABASE_KEY must be set")
    options = ClientOptions(postgrest_client_timeout=PERSISTENCE_TIMEOUT)
    return create_client(url, key, options=options)


def get_supabase() -> Client:
    """Shared client for the running process."""
    global _client
    if _client is None:
        _client = _env_client()
        logger.info(f"Supabase client created (timeout {PERSISTENCE_TIMEOUT}s)")
    return _client
