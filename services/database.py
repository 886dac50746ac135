"""
Supabase database service - single source of truth for DB connection
"""

import os
from functools import lru_cache
from supabase import create_client, Client
from supabase.lib.client_options import ClientOptions
from dotenv import load_dotenv

load_dotenv()


def get_schema() -> str:
    """Postgres schema holding quotes, sales, tickets and interest configs"""
    return os.getenv("SUPABASE_SCHEMA", "public")


@lru_cache()
def get_supabase() -> Client:
    """Get Supabase client (cached singleton) with the service role key"""
    url = os.getenv("SUPABASE_URL")
    key = os.getenv("SUPABASE_SERVICE_ROLE_KEY")

    if not url or not key:
        raise RuntimeError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set")

    opts = ClientOptions(schema=get_schema())
    return create_client(url, key, options=opts)
