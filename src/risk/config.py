"""Environment-driven configuration for the risk engine."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Mapping, MutableMapping

from .metrics import DEFAULT_PARAMETRIC_TABLE, ParametricTable


class EngineConfigError(ValueError):
    """Raised when an engine setting is missing or invalid."""


def _get_env(source: Mapping[str, str] | None) -> Mapping[str, str]:
    if source is None:
        return os.environ
    return source


def _get_int(source: Mapping[str, str], key: str, default: int) -> int:
    raw = source.get(key)
    if raw is None:
        return default
    stripped = raw.strip()
    if not stripped:
        return default
    try:
        value = int(stripped)
    except ValueError as exc:
        raise EngineConfigError(f"{key} must be an integer, got {raw!r}") from exc
    if value <= 0:
        raise EngineConfigError(f"{key} must be positive, got {value}")
    return value


def _get_float(
    source: Mapping[str, str],
    key: str,
    default: float,
    *,
    minimum: float = 0.0,
) -> float:
    raw = source.get(key)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw.strip())
    except ValueError as exc:
        raise EngineConfigError(f"{key} must be a number, got {raw!r}") from exc
    if value < minimum:
        raise EngineConfigError(f"{key} must be >= {minimum}, got {value}")
    return value


def _get_bool(source: Mapping[str, str], key: str, default: bool) -> bool:
    raw = source.get(key)
    if raw is None:
        return default
    lowered = raw.strip().lower()
    if not lowered:
        return default
    if lowered in {"1", "true", "yes", "on"}:
        return True
    if lowered in {"0", "false", "no", "off"}:
        return False
    raise EngineConfigError(f"{key} must be a boolean string, got {raw!r}")


@dataclass(frozen=True)
class EngineConfig:
    """Tunables for caching, risk-free rate, concentration limits and the worker pool."""

    cache_ttl_seconds: int = 3600
    cache_enabled: bool = True
    risk_free_rate: float = 0.02
    max_concentration_pct: float = 25.0
    baseline_volatility: float = 0.5
    monte_carlo_workers: int = 4
    auto_recommendations: bool = True
    parametric_table: ParametricTable = field(default=DEFAULT_PARAMETRIC_TABLE)

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "EngineConfig":
        env_map = _get_env(env)
        max_concentration = _get_float(env_map, "RISK_MAX_CONCENTRATION_PCT", 25.0)
        if max_concentration > 100.0:
            raise EngineConfigError(
                f"RISK_MAX_CONCENTRATION_PCT must be <= 100, got {max_concentration}"
            )
        return cls(
            cache_ttl_seconds=_get_int(env_map, "RISK_CACHE_TTL_SECONDS", 3600),
            cache_enabled=_get_bool(env_map, "RISK_CACHE_ENABLED", True),
            risk_free_rate=_get_float(env_map, "RISK_FREE_RATE", 0.02, minimum=-1.0),
            max_concentration_pct=max_concentration,
            baseline_volatility=_get_float(env_map, "RISK_BASELINE_VOLATILITY", 0.5),
            monte_carlo_workers=_get_int(env_map, "RISK_MC_WORKERS", 4),
            auto_recommendations=_get_bool(env_map, "RISK_AUTO_RECOMMENDATIONS", True),
        )

    def as_dict(self) -> MutableMapping[str, str | int | float | bool]:
        """Expose configuration for debugging/log serialization."""

        return {
            "cache_ttl_seconds": self.cache_ttl_seconds,
            "cache_enabled": self.cache_enabled,
            "risk_free_rate": self.risk_free_rate,
            "max_concentration_pct": self.max_concentration_pct,
            "baseline_volatility": self.baseline_volatility,
            "monte_carlo_workers": self.monte_carlo_workers,
            "auto_recommendations": self.auto_recommendations,
        }


__all__ = ["EngineConfig", "EngineConfigError"]
