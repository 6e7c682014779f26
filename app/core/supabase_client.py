import os
import logging
from functools import lru_cache

from dotenv import load_dotenv
from supabase import create_client, acreate_client, Client, AsyncClient


load_dotenv()
logger = logging.getLogger(__name__)


def _credentials() -> tuple[str, str]:
    supabase_url = os.getenv("PUBLIC_SUPABASE_URL")
    supabase_key = os.getenv("SECRET_API_KEY")

    if not supabase_url or not supabase_key:
        raise RuntimeError(
            "PUBLIC_SUPABASE_URL and SECRET_API_KEY must be set to reach Supabase."
        )

    return supabase_url, supabase_key


@lru_cache(maxsize=1)
def get_supabase() -> Client:
    """Shared sync client used for table queries and RPC calls."""
    supabase_url, supabase_key = _credentials()
    logger.info(f"supabase_client_created url={supabase_url}")
    return create_client(supabase_url, supabase_key)


_realtime_client: AsyncClient | None = None


async def get_realtime_client() -> AsyncClient:
    """
    Shared async client for Realtime subscriptions.

    Realtime channels are only available on the async client, so it is
    created once on first use and reused by every live view.
    """
    global _realtime_client

    if _realtime_client is None:
        supabase_url, supabase_key = _credentials()
        _realtime_client = await acreate_client(supabase_url, supabase_key)
        logger.info(f"supabase_realtime_client_created url={supabase_url}")

    return _realtime_client
