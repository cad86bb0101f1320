import logging

from pydantic_settings import BaseSettings
from pydantic import ConfigDict
from typing import Optional

class Settings(BaseSettings):
    # Environment
    ENV: str = "development"
    ENVIRONMENT: str = "dev"  # "dev" | "test" | "prod"
    CONFIG_STRICT: bool = False
    CORS_ALLOWED_ORIGINS: str = "http://localhost:3000"  # comma-separated
    HOST: str = "127.0.0.1"
    PORT: int = 8000

    # Key-value store
    REDIS_URL: Optional[str] = None  # unset = process-local in-memory store
    REDIS_SOCKET_TIMEOUT: float = 5.0
    STORE_KEY_PREFIX: str = "app:"
    STORE_SCAN_COUNT: int = 1000

    # Gamification
    GAMIFICATION_DISABLED: bool = False  # season kill switch: reads only
    MISSION_CAS_MAX_ATTEMPTS: int = 5
    MISSION_COUNT_CAP: int = 1000
    LEADERBOARD_TOP_N: int = 50
    ADMIN_RESET_BATCH_SIZE: int = 100

    # Side effects (leaderboards, activity sets, proofs, rewards)
    SIDE_EFFECTS_MODE: str = "thread"  # thread | inline | rq
    SIDE_EFFECTS_QUEUE: str = "gm-side-effects"

    # Audit logging
    AUDIT_ENABLED: bool = True

    # Admin access
    ADMIN_KEY: Optional[str] = None
    ADMIN_AUTH_MODE: str = "legacy"  # "legacy" | "disabled"

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )
settings = Settings()


def validate_config(strict: Optional[bool] = None, settings_obj: Optional[Settings] = None, logger: Optional[logging.Logger] = None) -> bool:
    """Validate required configuration.

    In strict mode raise RuntimeError; otherwise emit warnings only.
    Secrets are not logged, only missing keys.
    """
    cfg = settings_obj or settings
    log = logger or logging.getLogger("gm")
    strict_mode = strict if strict is not None else getattr(cfg, "CONFIG_STRICT", False)

    required_keys = [
        "REDIS_URL",
        "ADMIN_KEY",
    ]

    missing = [key for key in required_keys if not getattr(cfg, key, None)]
    if missing:
        message = f"Missing required configuration: {', '.join(missing)}"
        if strict_mode:
            raise RuntimeError(message)
        log.warning(message)

    return True
