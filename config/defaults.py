"""Default pipeline settings."""

import logging
import os

DEFAULTS = {
    "model": "claude-sonnet-4-5-20250929",
    "max_tokens": 8192,
    "request_timeout": 600,         # seconds per LLM call
    "max_retries": 2,               # transport-level retries inside the SDK
    "specialist_temperature": 0.2,
    "integration_temperature": 0.2,
    "synthesis_temperature": 0.2,
    "vision_excerpt_chars": 2000,   # how much of the integrated vision each file prompt sees
    "log_level": "INFO",
    "server_port": 5001,
    "job_ttl": 3600,
    "max_jobs": 50,
}

# Environment overrides: ARCHITECT_<KEY>, e.g. ARCHITECT_MODEL
_ENV_PREFIX = "ARCHITECT_"


def _coerce(value, default):
    if isinstance(default, bool):
        return value.strip().lower() in ("1", "true", "yes", "on")
    if isinstance(default, int):
        return int(value)
    if isinstance(default, float):
        return float(value)
    return value


def load_settings(environ=None):
    """Return DEFAULTS merged with any ARCHITECT_* environment overrides."""
    environ = os.environ if environ is None else environ
    settings = dict(DEFAULTS)
    for key, default in DEFAULTS.items():
        raw = environ.get(_ENV_PREFIX + key.upper())
        if raw is None or raw == "":
            continue
        try:
            settings[key] = _coerce(raw, default)
        except ValueError:
            raise ValueError(
                f"Invalid value for {_ENV_PREFIX + key.upper()}: {raw!r}"
            ) from None
    return settings


def configure_logging(level=None):
    """Configure root logging once for CLI and server entry points."""
    level = level or load_settings()["log_level"]
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
