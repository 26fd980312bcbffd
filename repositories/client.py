"""
Supabase client initialization.

This module contains *only* the database connection setup. The client is
created lazily on first use so that modules importing the repositories (and
the in-memory backend) do not require Supabase credentials.

Environment variables required for the supabase backend:
- SUPABASE_URL: Your Supabase project URL
- SUPABASE_KEY: Your Supabase API key (use a server-side key only on the backend)
"""

from __future__ import annotations

from functools import lru_cache

# The dependency is `supabase` (supabase-py).
from supabase import Client, create_client  # type: ignore[import-not-found]

import config


@lru_cache(maxsize=1)
def get_supabase_client() -> Client:
    """Create (once) and return the shared Supabase client."""

    if not config.SUPABASE_URL:
        raise RuntimeError(
            "Missing environment variable: SUPABASE_URL. "
            "Set SUPABASE_URL to your Supabase project URL."
        )

    if not config.SUPABASE_KEY:
        raise RuntimeError(
            "Missing environment variable: SUPABASE_KEY. "
            "Set SUPABASE_KEY to your Supabase API key."
        )

    return create_client(config.SUPABASE_URL, config.SUPABASE_KEY)


__all__ = ["get_supabase_client"]
