"""
backend/matka/config.py

Purpose:
    Central settings loading for the settlement and wallet backend.

Dependencies:
    - pydantic-settings
    - pathlib
"""

from pathlib import Path

from pydantic_settings import BaseSettings

# Prefer backend/.env, fallback to project-root .env.
_BACKEND_ENV_FILE = Path(__file__).resolve().parent.parent / ".env"
_ROOT_ENV_FILE = Path(__file__).resolve().parent.parent.parent / ".env"


class Settings(BaseSettings):
    MONGO_URI: str
    MONGO_DB: str = "matka"
    JWT_SECRET: str
    JWT_SECRET_OLD: str = ""  # Set during rotation; cleared after expiry window
    BACKEND_CORS_ORIGINS: str = "http://localhost:5173"

    # JWT settings
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 15

    # Game defaults (per-game values override these)
    DEFAULT_TIMEZONE: str = "Asia/Kolkata"
    DEFAULT_JODI_PAYOUT: float = 95.0
    DEFAULT_HARUF_PAYOUT: float = 9.0
    DEFAULT_CROSSING_PAYOUT: float = 95.0
    DEFAULT_COMMISSION_PCT: float = 5.0

    # Crossing matching strategy: permutation | pairs | exact
    CROSSING_MATCH_POLICY: str = "permutation"

    # Segments drained (in order) when a withdrawal is approved
    WITHDRAWAL_SEGMENT_ORDER: str = "winning,deposit"

    # Transactions
    TRANSACTION_MAX_COMMIT_MS: int = 5000

    # Game lifecycle worker (open/close transitions)
    LIFECYCLE_WORKER_ENABLED: bool = True
    GAME_LIFECYCLE_TICK_SECONDS: int = 60

    model_config = {
        "env_file": (str(_BACKEND_ENV_FILE), str(_ROOT_ENV_FILE)),
        "extra": "ignore",
    }

    @property
    def withdrawal_segments(self) -> list[str]:
        return [s.strip() for s in self.WITHDRAWAL_SEGMENT_ORDER.split(",") if s.strip()]


settings = Settings()
