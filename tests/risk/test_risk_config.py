from __future__ import annotations

import pytest

from risk.config import EngineConfig, EngineConfigError


def test_defaults_when_environment_is_empty() -> None:
    config = EngineConfig.from_env({})
    assert config.cache_ttl_seconds == 3600
    assert config.cache_enabled is True
    assert config.risk_free_rate == 0.02
    assert config.max_concentration_pct == 25.0
    assert config.monte_carlo_workers == 4
    assert config.parametric_table.z(0.99) == 2.326


def test_values_are_parsed_from_environment() -> None:
    config = EngineConfig.from_env(
        {
            "RISK_CACHE_TTL_SECONDS": "60",
            "RISK_CACHE_ENABLED": "off",
            "RISK_FREE_RATE": "0.045",
            "RISK_MAX_CONCENTRATION_PCT": "30",
            "RISK_MC_WORKERS": " 8 ",
            "RISK_AUTO_RECOMMENDATIONS": "no",
        }
    )
    assert config.cache_ttl_seconds == 60
    assert config.cache_enabled is False
    assert config.risk_free_rate == 0.045
    assert config.max_concentration_pct == 30.0
    assert config.monte_carlo_workers == 8
    assert config.auto_recommendations is False
    assert config.as_dict()["cache_ttl_seconds"] == 60


@pytest.mark.parametrize(
    "env",
    [
        {"RISK_CACHE_TTL_SECONDS": "soon"},
        {"RISK_CACHE_TTL_SECONDS": "0"},
        {"RISK_CACHE_ENABLED": "maybe"},
        {"RISK_BASELINE_VOLATILITY": "-0.1"},
        {"RISK_MAX_CONCENTRATION_PCT": "150"},
    ],
)
def test_invalid_values_raise(env: dict[str, str]) -> None:
    with pytest.raises(EngineConfigError):
        EngineConfig.from_env(env)


def test_reads_process_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("RISK_BASELINE_VOLATILITY", "0.75")
    assert EngineConfig.from_env().baseline_volatility == 0.75
