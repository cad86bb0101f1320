"""
Environment validation utilities.

Ensures the backend fails fast on misconfiguration while
remaining bypassable for tests via SKIP_ENV_VALIDATION.
"""

import os
from typing import Optional, Iterable
from urllib.parse import urlparse

from backend.core.config import settings


SIDE_EFFECT_MODES = {"thread", "inline", "rq"}


class EnvValidationError(RuntimeError):
    """Raised when environment validation fails."""


def _is_valid_redis_url(url: str) -> bool:
    parsed = urlparse(url)
    return parsed.scheme in {"redis", "rediss", "unix"} and bool(parsed.netloc or parsed.path)


def _require(vars_required: Iterable[str], source: object) -> None:
    for var in vars_required:
        if not getattr(source, var, None):
            raise EnvValidationError(f"{var} is required in production")


def validate_env(env: Optional[str] = None, settings_obj=None) -> bool:
    """Validate environment configuration.

    Args:
        env: Override environment name (defaults to settings.ENV)
        settings_obj: Override settings object (defaults to backend.core.config.settings)

    Returns:
        True if validation passes.

    Raises:
        EnvValidationError when a rule is violated.
    """
    if os.getenv("SKIP_ENV_VALIDATION") == "1":
        return True

    cfg = settings_obj or settings
    mode = (env or getattr(cfg, "ENV", "development") or "development").lower()
    redis_url = getattr(cfg, "REDIS_URL", None)

    if redis_url and not _is_valid_redis_url(redis_url):
        raise EnvValidationError("REDIS_URL must be a valid URL (e.g. redis://host:6379/0)")

    side_effects_mode = (getattr(cfg, "SIDE_EFFECTS_MODE", "thread") or "").lower()
    if side_effects_mode not in SIDE_EFFECT_MODES:
        raise EnvValidationError(
            f"SIDE_EFFECTS_MODE must be one of {', '.join(sorted(SIDE_EFFECT_MODES))}"
        )

    if side_effects_mode == "rq" and not redis_url:
        raise EnvValidationError("SIDE_EFFECTS_MODE=rq requires REDIS_URL")

    for name in ("MISSION_CAS_MAX_ATTEMPTS", "MISSION_COUNT_CAP", "LEADERBOARD_TOP_N", "ADMIN_RESET_BATCH_SIZE"):
        value = getattr(cfg, name, 1)
        if value is not None and int(value) < 1:
            raise EnvValidationError(f"{name} must be a positive integer")

    if mode == "production":
        # Instances share state only through Redis
        _require(["REDIS_URL", "ADMIN_KEY"], cfg)

    return True
