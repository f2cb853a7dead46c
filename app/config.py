import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./practice.db")

# Firebase Configuration
FIREBASE_PROJECT_ID = os.getenv("FIREBASE_PROJECT_ID")

# Frontend base URL (used for CORS defaults)
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000")

# Scheduling defaults
DEFAULT_SESSION_DURATION = int(os.getenv("DEFAULT_SESSION_DURATION", "50"))
MIN_SESSION_DURATION = 15
MAX_SESSION_DURATION = 180
# How far before a candidate start existing sessions are fetched for overlap checks.
# Must be >= MAX_SESSION_DURATION so the longest session is always seen.
CONFLICT_LOOKBACK_MINUTES = max(
    int(os.getenv("CONFLICT_LOOKBACK_MINUTES", "180")), MAX_SESSION_DURATION
)

# Recurrence bounds
MIN_RECURRENCE_OCCURRENCES = 2
MAX_RECURRENCE_OCCURRENCES = 52  # one year of weekly sessions

# Rate limiting for destructive routes (per client IP)
DELETE_RATE_LIMIT = int(os.getenv("DELETE_RATE_LIMIT", "30"))
DELETE_RATE_WINDOW_SECONDS = int(os.getenv("DELETE_RATE_WINDOW_SECONDS", "60"))
