# backend/retrofit/engine/aggregation.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from .domain import AuditArea


@dataclass(frozen=True)
class AreaTotals:
    total_fixtures: int = 0
    total_existing_watts: float = 0.0
    total_proposed_watts: float = 0.0
    watts_reduced: float = 0.0


def aggregate_areas(areas: Sequence[AuditArea]) -> AreaTotals:
    """
    Sum fixture counts and wattages over the areas.
    Per-area totals come from count * wattage, never from stored columns,
    so a stale denormalised row cannot drift into the audit totals.
    """
    if not isinstance(areas, (list, tuple)):
        raise TypeError(f"areas must be a list or tuple, got {type(areas).__name__}")

    fixtures = 0
    existing = 0.0
    proposed = 0.0
    for a in areas:
        fixtures += a.fixture_count
        existing += a.total_existing_watts
        proposed += a.total_led_watts

    return AreaTotals(
        total_fixtures=fixtures,
        total_existing_watts=existing,
        total_proposed_watts=proposed,
        watts_reduced=existing - proposed,
    )
