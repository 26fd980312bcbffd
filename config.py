"""
Application configuration.

This module only reads environment variables (optionally from a `.env` file in
the project root). Every setting has a development default; in production
override them through the environment.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from dotenv import load_dotenv

env_path = Path(__file__).parent / ".env"
load_dotenv(dotenv_path=env_path)

# --- Storage -----------------------------------------------------------------
# "supabase" persists to the Supabase tables; "memory" keeps everything in
# process (handy for local runs and demos).
STORAGE_BACKEND: str = os.getenv("STORAGE_BACKEND", "memory").strip().lower()

# Required only when STORAGE_BACKEND=supabase.
SUPABASE_URL: str | None = os.getenv("SUPABASE_URL")
SUPABASE_KEY: str | None = os.getenv("SUPABASE_KEY")

# --- Consistency engine ------------------------------------------------------
# Attempts at writing a customer's aggregates before a ConflictError surfaces.
RECONCILE_MAX_ATTEMPTS: int = int(os.getenv("RECONCILE_MAX_ATTEMPTS", "3"))

# Per-shop outbound queue bound for change notifications. When a shop's queue
# is full, new events for that shop are dropped (best-effort delivery).
NOTIFIER_QUEUE_SIZE: int = int(os.getenv("NOTIFIER_QUEUE_SIZE", "1000"))

# --- HTTP --------------------------------------------------------------------
# Allowed CORS origin for the frontend.
CLIENT_URL: str = os.getenv("CLIENT_URL", "*")

# --- Logging -----------------------------------------------------------------
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

_LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str | None = None) -> None:
    """Configure root logging once at process start."""

    logging.basicConfig(level=level or LOG_LEVEL, format=_LOG_FORMAT)
