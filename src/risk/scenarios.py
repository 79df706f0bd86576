"""Built-in shock scenario catalog."""

from __future__ import annotations

from types import MappingProxyType
from typing import Mapping

from .models import CustomScenario, Scenario, ScenarioKind, ScenarioTemplate


def _template(
    name: str,
    description: str,
    price_shocks: Mapping[str, float],
    volume_shocks: Mapping[str, float],
    *,
    volatility_multiplier: float,
    correlation_breakdown: bool,
    liquidity_crisis: bool,
    duration_days: int,
    recovery_days: int,
) -> ScenarioTemplate:
    return ScenarioTemplate(
        name=name,
        description=description,
        price_shocks=MappingProxyType(dict(price_shocks)),
        volume_shocks=MappingProxyType(dict(volume_shocks)),
        volatility_multiplier=volatility_multiplier,
        correlation_breakdown=correlation_breakdown,
        liquidity_crisis=liquidity_crisis,
        duration_days=duration_days,
        recovery_days=recovery_days,
    )


def _build_catalog() -> Mapping[ScenarioKind, ScenarioTemplate]:
    catalog = {
        ScenarioKind.HISTORICAL_MARKET_CRASH: _template(
            "Historical Market Crash",
            "Replay of a broad crypto crash with a liquidity freeze",
            {"BTC": -0.50, "ETH": -0.60, "USDC": -0.05, "USDT": -0.10},
            {"BTC": 3.0, "ETH": 4.0, "USDC": 2.0, "USDT": 2.5},
            volatility_multiplier=3.0,
            correlation_breakdown=True,
            liquidity_crisis=True,
            duration_days=30,
            recovery_days=180,
        ),
        ScenarioKind.CRYPTO_WINTER: _template(
            "Crypto Winter",
            "Prolonged bear market with steady capital outflows",
            {"BTC": -0.80, "ETH": -0.85, "USDC": -0.02, "USDT": -0.05},
            {"BTC": 2.0, "ETH": 2.5, "USDC": 1.5, "USDT": 1.8},
            volatility_multiplier=2.5,
            correlation_breakdown=True,
            liquidity_crisis=False,
            duration_days=365,
            recovery_days=365,
        ),
        ScenarioKind.DEFI_CONTAGION: _template(
            "DeFi Contagion",
            "Protocol failure spreading across lending and DEX governance tokens",
            {"UNI": -0.70, "AAVE": -0.75, "COMP": -0.80, "USDC": -0.15},
            {"UNI": 5.0, "AAVE": 6.0, "COMP": 7.0, "USDC": 3.0},
            volatility_multiplier=4.0,
            correlation_breakdown=True,
            liquidity_crisis=True,
            duration_days=14,
            recovery_days=90,
        ),
        ScenarioKind.REGULATORY_SHOCK: _template(
            "Regulatory Shock",
            "Sudden enforcement action against major issuers and exchanges",
            {"BTC": -0.30, "ETH": -0.40, "USDC": -0.20, "USDT": -0.25},
            {"BTC": 2.5, "ETH": 3.0, "USDC": 2.0, "USDT": 2.2},
            volatility_multiplier=2.0,
            correlation_breakdown=False,
            liquidity_crisis=False,
            duration_days=7,
            recovery_days=120,
        ),
        ScenarioKind.BLACK_SWAN: _template(
            "Black Swan Event",
            "Extreme tail event with stablecoin de-pegs",
            {"BTC": -0.90, "ETH": -0.95, "USDC": -0.50, "USDT": -0.60},
            {"BTC": 10.0, "ETH": 12.0, "USDC": 8.0, "USDT": 9.0},
            volatility_multiplier=5.0,
            correlation_breakdown=True,
            liquidity_crisis=True,
            duration_days=3,
            recovery_days=730,
        ),
    }
    return MappingProxyType(catalog)


SCENARIO_CATALOG: Mapping[ScenarioKind, ScenarioTemplate] = _build_catalog()


def resolve_scenario(
    scenario: Scenario,
    catalog: Mapping[ScenarioKind, ScenarioTemplate] = SCENARIO_CATALOG,
) -> ScenarioTemplate:
    """Return the template a scenario refers to; custom scenarios carry their own."""
    if isinstance(scenario, CustomScenario):
        return scenario.as_template()
    return catalog[ScenarioKind(scenario)]


def scenario_identifier(scenario: Scenario) -> str:
    if isinstance(scenario, CustomScenario):
        return f"Custom:{scenario.name}"
    return ScenarioKind(scenario).value


def _shock_items(shocks: Mapping[str, float]) -> str:
    return ",".join(f"{asset}={float(shock)!r}" for asset, shock in sorted(shocks.items()))


def scenario_cache_key(scenario: Scenario) -> str:
    """Identifier for result caching; custom scenarios contribute every field, not just the name."""
    identifier = scenario_identifier(scenario)
    if not isinstance(scenario, CustomScenario):
        return identifier
    return "|".join(
        (
            identifier,
            _shock_items(scenario.price_shocks),
            _shock_items(scenario.volume_shocks),
            repr(float(scenario.volatility_multiplier)),
            str(bool(scenario.correlation_breakdown)),
            str(bool(scenario.liquidity_crisis)),
            str(scenario.duration_days),
            str(scenario.recovery_days),
        )
    )


def parse_scenario(value: str) -> ScenarioKind:
    """Accept either the enum value (``BlackSwan``) or its name (``black_swan``)."""
    normalized = value.strip()
    for kind in ScenarioKind:
        if normalized in (kind.value, kind.name, kind.name.lower()):
            return kind
    raise ValueError(f"unknown scenario {value!r}")


__all__ = [
    "SCENARIO_CATALOG",
    "parse_scenario",
    "resolve_scenario",
    "scenario_cache_key",
    "scenario_identifier",
]
