"""
Generation queue configuration.

All settings come from environment variables so the same image runs the API
and the cron-driven queue processor. Provider endpoints may additionally be
listed in a YAML file; environment variables win over the file.

Environment:
    CRON_SECRET                          Shared secret for the trigger endpoint
    GENERATION_QUEUE_WORKERS             Worker pool size per pass (default: 4)
    GENERATION_QUEUE_MAX_RETRIES         Retry budget for new jobs (default: 3)
    GENERATION_BACKEND_TIMEOUT_SECONDS   Provider request timeout (default: 120)
    GENERATION_API_KEY                   Bearer token sent to providers
    GENERATION_<KIND>_URL                Provider endpoint per kind, e.g.
                                         GENERATION_TALKING_HEAD_URL
    GENERATION_ENDPOINTS_FILE            Optional YAML file:
                                             endpoints:
                                               talking_head: https://...
                                               tts: https://...
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional

import yaml

from reelqueue.models.generation_job import GenerationKind, DEFAULT_MAX_RETRIES

logger = logging.getLogger(__name__)

DEFAULT_WORKER_COUNT = 4
DEFAULT_BACKEND_TIMEOUT_SECONDS = 120.0


def _int_env(name: str, default: int, minimum: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning(
            "Invalid integer in environment, using default",
            extra={"variable": name, "value": raw, "default": default},
        )
        return default
    return max(value, minimum)


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(
            "Invalid number in environment, using default",
            extra={"variable": name, "value": raw, "default": default},
        )
        return default


def endpoint_env_var(kind: str) -> str:
    """Name of the environment variable holding a kind's provider URL."""
    return f"GENERATION_{kind.upper()}_URL"


def load_endpoints_file(path: str) -> Dict[str, str]:
    """
    Read kind -> provider URL mappings from a YAML file.

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If `endpoints` is not a mapping
    """
    config_path = Path(path)
    logger.info("Loading generation endpoints from %s", config_path)

    with open(config_path, "r") as f:
        raw = yaml.safe_load(f) or {}

    endpoints = raw.get("endpoints", {}) or {}
    if not isinstance(endpoints, dict):
        raise ValueError(f"'endpoints' in {config_path} must be a mapping")

    return {
        str(kind).strip(): str(url).rstrip("/")
        for kind, url in endpoints.items()
        if url
    }


@dataclass(frozen=True)
class QueueSettings:
    """Runtime settings for the generation queue."""

    cron_secret: Optional[str] = None
    worker_count: int = DEFAULT_WORKER_COUNT
    default_max_retries: int = DEFAULT_MAX_RETRIES
    backend_timeout_seconds: float = DEFAULT_BACKEND_TIMEOUT_SECONDS
    api_key: Optional[str] = None
    endpoints: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_env(cls) -> "QueueSettings":
        endpoints: Dict[str, str] = {}

        endpoints_file = os.getenv("GENERATION_ENDPOINTS_FILE")
        if endpoints_file:
            endpoints.update(load_endpoints_file(endpoints_file))

        for kind in GenerationKind:
            url = os.getenv(endpoint_env_var(kind.value))
            if url:
                endpoints[kind.value] = url.rstrip("/")

        return cls(
            cron_secret=os.getenv("CRON_SECRET") or None,
            worker_count=_int_env("GENERATION_QUEUE_WORKERS", DEFAULT_WORKER_COUNT, 1),
            default_max_retries=_int_env(
                "GENERATION_QUEUE_MAX_RETRIES", DEFAULT_MAX_RETRIES, 0
            ),
            backend_timeout_seconds=_float_env(
                "GENERATION_BACKEND_TIMEOUT_SECONDS", DEFAULT_BACKEND_TIMEOUT_SECONDS
            ),
            api_key=os.getenv("GENERATION_API_KEY") or None,
            endpoints=endpoints,
        )
