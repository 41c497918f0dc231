"""Shared environment configuration constants for the negotiation analysis backend."""
import os

# --- Database ---
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./negotiation.db")

# Convert postgres:// URLs to the asyncpg driver for SQLAlchemy async
if DATABASE_URL.startswith("postgres://"):
    DATABASE_URL = DATABASE_URL.replace("postgres://", "postgresql+asyncpg://", 1)
elif DATABASE_URL.startswith("postgresql://"):
    DATABASE_URL = DATABASE_URL.replace("postgresql://", "postgresql+asyncpg://", 1)

# --- Daily LLM token budget ---
DAILY_TOKEN_LIMIT = int(os.getenv("DAILY_TOKEN_LIMIT", "512000"))
TOKEN_LOCK_HOURS = float(os.getenv("TOKEN_LOCK_HOURS", "24"))

# --- Analysis input limits ---
MIN_TEXT_LENGTH = int(os.getenv("MIN_TEXT_LENGTH", "20"))
MAX_TEXT_LENGTH = int(os.getenv("MAX_TEXT_LENGTH", "200000"))  # ~30 pages
ANALYSIS_CHUNK_SIZE = int(os.getenv("ANALYSIS_CHUNK_SIZE", "4000"))

# --- Logging ---
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# --- HTTP ---
CORS_ALLOWED_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ALLOWED_ORIGINS", "http://localhost:5173,http://localhost:3000").split(",")
    if origin.strip()
]
