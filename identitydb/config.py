# identitydb/config.py
from __future__ import annotations

import os
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent.parent

DATA_DIR = PROJECT_ROOT / "data"

DB_PATH = DATA_DIR / "identity.db"
DATABASE_URL: str = os.getenv("IDENTITY_DATABASE_URL", f"sqlite:///{DB_PATH.as_posix()}")

# Defaults used when a session is created or renewed without explicit lifetimes
SESSION_LIFETIME_DAYS: float = float(os.getenv("IDENTITY_SESSION_DAYS", "30"))
SESSION_RENEWAL_DAYS: float = float(os.getenv("IDENTITY_RENEWAL_DAYS", "90"))

LOG_LEVEL: str = os.getenv("IDENTITY_LOG_LEVEL", "INFO")

# Example service: create the demo accounts and groups on startup
SEED_EXAMPLE_ACCOUNTS: bool = os.getenv("IDENTITY_SEED_EXAMPLES", "0") == "1"
