"""Hardcoded default configuration values."""

from __future__ import annotations

from typing import Any

from .schema import DEFAULT_SOURCE_URL

DEFAULT_CONFIG: dict[str, Any] = {
    "app_name": "mirrorgate",
    "environment": "dev",
    "http": {
        "timeout_seconds": 15.0,
        "user_agent": "mirrorgate/0.1.0",
    },
    "logging": {
        "level": "INFO",
        "format": None,  # Derived from environment in schema.py
    },
    "registry": {
        "source_url": DEFAULT_SOURCE_URL,
        "fallback_url": None,
        "default_api_path": "/api/v1",
    },
    "snapshot": {
        "ttl_seconds": 300,
        "path": "./public/instances.json",
        "mode": "probe",
        "refresh_interval_seconds": 0,
    },
    "probing": {
        "terms_per_instance": 3,
        "preflight_timeout_seconds": 5.0,
        "preflight_backoff_seconds": 5.0,
        "request_timeout_seconds": 10.0,
        "jitter_min_seconds": 0.3,
        "jitter_max_seconds": 2.5,
        "drop_policy": "drop",
    },
}
