"""
Configuration module for the insight service.

Single source of truth for:
- The fallback cost per hour used by the metric engine
- Presentation defaults (visible insight cap)
- Service logging level

All values can be overridden via environment variables. The engine
modules never read this themselves; the service layer passes values in.
"""

from __future__ import annotations

from dataclasses import dataclass
import os
from typing import Optional

from .metrics import DEFAULT_COST_PER_HOUR


def _get_env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "y", "on"}


def _get_env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _get_env_int(name: str, default: Optional[int]) -> Optional[int]:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError:
        return default


@dataclass
class Config:
    """
    Runtime configuration for the insight service.

    All fields default from environment variables but can be overridden
    programmatically by constructing Config(...) manually if needed.
    """

    fallback_cost_per_hour: float = DEFAULT_COST_PER_HOUR

    # None shows every insight
    max_visible: Optional[int] = None

    include_portfolio: bool = True
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Config":
        """
        Construct a Config object by reading environment variables.

        Environment variables (all optional):
        - EVMI_FALLBACK_COST_PER_HOUR  (float)
        - EVMI_MAX_VISIBLE             (int)
        - EVMI_INCLUDE_PORTFOLIO       (true/false)
        - EVMI_LOG_LEVEL               (e.g. DEBUG, INFO)
        """
        return cls(
            fallback_cost_per_hour=_get_env_float(
                "EVMI_FALLBACK_COST_PER_HOUR", default=DEFAULT_COST_PER_HOUR
            ),
            max_visible=_get_env_int("EVMI_MAX_VISIBLE", default=None),
            include_portfolio=_get_env_bool("EVMI_INCLUDE_PORTFOLIO", default=True),
            log_level=os.getenv("EVMI_LOG_LEVEL", "INFO").strip().upper(),
        )


_DEFAULT_CONFIG: Optional[Config] = None


def get_config(force_reload: bool = False) -> Config:
    """
    Return a process-wide Config instance.

    Use `force_reload=True` if environment variables changed at runtime
    and you want to refresh.
    """
    global _DEFAULT_CONFIG
    if _DEFAULT_CONFIG is None or force_reload:
        _DEFAULT_CONFIG = Config.from_env()
    return _DEFAULT_CONFIG
