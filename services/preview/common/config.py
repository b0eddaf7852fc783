# Centralised configuration and logging setup for the preview service.

# What this module provides:
#   1) A Settings dataclass holding all env-driven configuration
#   2) get_settings(): reads env vars once, configures logging once
#   3) settings: a module-level singleton (import and use anywhere)

import os
import logging
from functools import lru_cache
from dataclasses import dataclass
from typing import Optional

# -----------------------------------------------------------------------------
# Settings dataclass (immutable)
# -----------------------------------------------------------------------------
@dataclass(frozen=True)
class Settings:
    # service identity
    service_name: str
    service_port: int
    log_level: str # One of: DEBUG, INFO, WARNING, ERROR, CRITICAL

    # origin
    origin_base_url: str
    origin_timeout: Optional[float] # None = no timeout

    # discovery
    discovery_concurrency: int
    retry_attempts: int
    retry_delay: float
    max_pages: int # 0 = unbounded

    # cache
    cache_single_use: bool
    cache_clear_weekday: int # 0=Monday .. 6=Sunday, negative disables the timer
    cache_clear_hour: int

# -----------------------------------------------------------------------------
# Small helpers for robust environment variable parsing
# -----------------------------------------------------------------------------
def _env_str(key: str, default: str) -> str:
    """
    Read a string environment variable & fall back to default if unset or empty
    """
    val = os.getenv(key)
    return val.strip() if val and val.strip() else default

def _env_int(key: str, default: int) -> int:
    raw = os.getenv(key)
    try:
        return int(raw) if raw is not None else default
    except ValueError:
        return default

def _env_float(key: str, default: float) -> float:
    raw = os.getenv(key)
    try:
        return float(raw) if raw is not None else default
    except ValueError:
        return default

def _env_bool(key: str, default: bool = False) -> bool:
    raw = os.getenv(key)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "t", "yes", "y", "on"}

# -----------------------------------------------------------------------------
# Logging configuration
# -----------------------------------------------------------------------------
def setup_logging(level: str) -> None:
    """
    Configure the root logger ONCE per process (idempotent) and keep the
    uvicorn loggers on the same level.
    """
    if getattr(setup_logging, "_configured", False):
        return
    lvl = getattr(logging, level.upper(), logging.INFO) # Fallback to INFO on bad input
    logging.basicConfig(
        # 2025-10-25 12:34:56,789 INFO [preview.discovery] Batch 0-4 complete
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        level=lvl,
    )
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logging.getLogger(name).setLevel(lvl)
    setup_logging._configured = True

# -----------------------------------------------------------------------------
# Read and cache settings once
# -----------------------------------------------------------------------------
@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Read all environment variables, configure logging once, and return a
    frozen Settings object.
    """
    service_name = _env_str("SERVICE_NAME", "preview-service")
    # PORT is what hosting platforms inject; SERVICE_PORT kept for compose files
    service_port = _env_int("PORT", _env_int("SERVICE_PORT", 3000))
    log_level    = _env_str("LOG_LEVEL", "INFO")

    origin_base_url = _env_str("ORIGIN_BASE_URL", "https://www.handbellworld.com").rstrip("/")
    timeout_s       = _env_float("ORIGIN_TIMEOUT_SECONDS", 0.0)

    concurrency = max(1, _env_int("DISCOVERY_CONCURRENCY", 5))
    attempts    = max(1, _env_int("RETRY_ATTEMPTS", 2))
    delay       = max(0.0, _env_float("RETRY_DELAY_SECONDS", 1.0))
    max_pages   = max(0, _env_int("MAX_PAGES", 0))

    single_use    = _env_bool("CACHE_SINGLE_USE", True)
    clear_weekday = _env_int("CACHE_CLEAR_WEEKDAY", -1)
    clear_hour    = min(23, max(0, _env_int("CACHE_CLEAR_HOUR", 3)))

    setup_logging(log_level)
    logging.getLogger("config").info(
        "Loaded settings service=%s port=%s origin=%s concurrency=%s retry=%sx/%ss single_use=%s",
        service_name, service_port, origin_base_url, concurrency, attempts, delay, single_use
    )
    if timeout_s <= 0:
        logging.getLogger("config").warning(
            "ORIGIN_TIMEOUT_SECONDS not set: origin requests have no timeout"
        )

    return Settings(
        service_name=service_name,
        service_port=service_port,
        log_level=log_level,
        origin_base_url=origin_base_url,
        origin_timeout=timeout_s if timeout_s > 0 else None,
        discovery_concurrency=concurrency,
        retry_attempts=attempts,
        retry_delay=delay,
        max_pages=max_pages,
        cache_single_use=single_use,
        cache_clear_weekday=clear_weekday,
        cache_clear_hour=clear_hour,
    )

# -----------------------------------------------------------------------------
# Public, module-level singleton
# -----------------------------------------------------------------------------
# Import this from anywhere in the service: from common.config import settings
settings = get_settings()
