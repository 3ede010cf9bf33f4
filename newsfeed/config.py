import os
from dotenv import load_dotenv
from pathlib import Path

# Go up one level from newsfeed/ to root/
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

# AI analysis collaborator
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
OPENAI_TIMEOUT_SECONDS = float(os.getenv("OPENAI_TIMEOUT_SECONDS", "20"))

# Storage
DB_FILE = os.getenv("DB_FILE", "newsfeed.db")

# Feed sessions
TIMEZONE = os.getenv("TIMEZONE", "UTC")
AUTO_REFRESH_SECONDS = int(os.getenv("AUTO_REFRESH_SECONDS", "300"))
INITIAL_LOAD_ATTEMPTS = int(os.getenv("INITIAL_LOAD_ATTEMPTS", "3"))
INITIAL_LOAD_BACKOFF_SECONDS = float(os.getenv("INITIAL_LOAD_BACKOFF_SECONDS", "2.0"))

# Candidate generation
CANDIDATE_WINDOW_HOURS = int(os.getenv("CANDIDATE_WINDOW_HOURS", "48"))
CANDIDATE_LIMIT = int(os.getenv("CANDIDATE_LIMIT", "300"))
INTERACTION_HISTORY_LIMIT = int(os.getenv("INTERACTION_HISTORY_LIMIT", "200"))
