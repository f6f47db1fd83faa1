# backend/retrofit/engine/energy.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, List, Tuple

from .domain import DEFAULT_CONFIG, EngineConfig, to_number

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EnergySavings:
    operating_hours: float
    operating_days: float
    electric_rate: float
    annual_hours: float
    annual_savings_kwh: float
    annual_savings_dollars: float
    defaulted: Tuple[str, ...] = ()


def _resolve(name: str, value: Any, default: float, defaulted: List[str]) -> float:
    num = to_number(value)
    if num is None:
        logger.warning("%s missing or non-numeric (%r); using default %s", name, value, default)
        defaulted.append(name)
        return default
    return num


def compute_energy_savings(
    watts_reduced: float,
    operating_hours: Any = None,
    operating_days: Any = None,
    electric_rate: Any = None,
    config: EngineConfig = DEFAULT_CONFIG,
) -> EnergySavings:
    """
    Annual kWh and dollar savings for a watt reduction.
    Absent or non-numeric schedule/rate inputs fall back to the configured
    planning defaults (10 h/day, 260 days/yr, $0.12/kWh unless overridden);
    an explicit 0 is kept as 0.
    Results carry the sign of watts_reduced.
    """
    defaulted: List[str] = []
    hours = _resolve("operating_hours", operating_hours, config.default_operating_hours, defaulted)
    days = _resolve("operating_days", operating_days, config.default_operating_days, defaulted)
    rate = _resolve("electric_rate", electric_rate, config.default_electric_rate, defaulted)

    annual_hours = hours * days
    kwh = watts_reduced * annual_hours / 1000.0
    dollars = kwh * rate

    return EnergySavings(
        operating_hours=hours,
        operating_days=days,
        electric_rate=rate,
        annual_hours=annual_hours,
        annual_savings_kwh=kwh,
        annual_savings_dollars=dollars,
        defaulted=tuple(defaulted),
    )
