from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# DB SQLite su file nella root del progetto, se non configurato altrimenti
DEFAULT_DB_PATH = Path(__file__).resolve().parents[1] / "clinic.sqlite"
DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{DEFAULT_DB_PATH}")

SQL_ECHO = os.getenv("SQL_ECHO", "0").strip().lower() in ("1", "true", "yes")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
# se vuoto: solo console
LOG_DIR = os.getenv("LOG_DIR", "")
