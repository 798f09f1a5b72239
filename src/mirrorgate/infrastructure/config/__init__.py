from __future__ import annotations

from .load import load_config
from .schema import AppConfig, EnvOverrides, ProbingConfig

__all__ = ["AppConfig", "EnvOverrides", "ProbingConfig", "load_config"]
