# backend/retrofit/engine/calculator.py
from __future__ import annotations

import logging
from datetime import date
from typing import Any, Optional, Sequence

from .aggregation import aggregate_areas
from .domain import (
    DEFAULT_CONFIG,
    AggregateResult,
    AreaResult,
    AuditArea,
    AuditSettings,
    EngineConfig,
    ReferenceData,
)
from .energy import compute_energy_savings
from .financials import compute_financials
from .incentives import IncentiveResolver, ResolverContext

logger = logging.getLogger(__name__)


def _as_areas(areas: Any) -> list:
    if not isinstance(areas, (list, tuple)):
        raise TypeError(f"areas must be a list or tuple, got {type(areas).__name__}")
    return [a if isinstance(a, AuditArea) else AuditArea.from_record(a) for a in areas]


class AuditRecalculator:
    """
    Runs the whole chain for one audit:
      aggregate -> energy savings + incentives -> project financials.
    Pure: same inputs (and same as_of date) give the same AggregateResult.
    Area records are read, never modified.
    """

    def __init__(self, config: EngineConfig = DEFAULT_CONFIG, resolver: Optional[IncentiveResolver] = None):
        self.config = config
        self.resolver = resolver or IncentiveResolver()

    def recalculate(
        self,
        settings: Any,
        areas: Sequence[Any],
        reference: Optional[ReferenceData] = None,
        as_of: Optional[date] = None,
    ) -> AggregateResult:
        area_list = _as_areas(areas)
        if not isinstance(settings, AuditSettings):
            settings = AuditSettings.from_record(settings)
        reference = reference or ReferenceData()
        as_of = as_of or date.today()

        totals = aggregate_areas(area_list)

        energy = compute_energy_savings(
            totals.watts_reduced,
            operating_hours=settings.operating_hours,
            operating_days=settings.operating_days,
            electric_rate=settings.electric_rate,
            config=self.config,
        )

        ctx = ResolverContext(
            reference=reference,
            as_of=as_of,
            provider_id=settings.utility_provider_id,
            config=self.config,
        )
        incentives, rebate_total = self.resolver.resolve_all(area_list, ctx)

        fin = compute_financials(
            totals.watts_reduced,
            rebate_total,
            energy.annual_savings_dollars,
            config=self.config,
        )

        area_results = tuple(
            AreaResult(
                area_id=a.id,
                area_name=a.area_name,
                fixture_category=a.fixture_category,
                total_existing_watts=a.total_existing_watts,
                total_led_watts=a.total_led_watts,
                area_watts_reduced=a.area_watts_reduced,
                incentive=inc,
                defaulted_fields=a.defaulted_fields,
                truncated_fields=a.truncated_fields,
            )
            for a, inc in zip(area_list, incentives)
        )

        warnings = []
        for a in area_results:
            label = a.area_id or a.area_name or "?"
            if a.defaulted_fields:
                warnings.append(f"area {label}: {', '.join(a.defaulted_fields)} missing or non-numeric, defaulted to 0")
            if a.truncated_fields:
                warnings.append(f"area {label}: {', '.join(a.truncated_fields)} not a whole number, truncated")
            warnings.extend(f"area {label}: {n}" for n in a.incentive.notes)
        for w in warnings:
            logger.warning("Estimate degraded: %s", w)

        return AggregateResult(
            total_fixtures=totals.total_fixtures,
            total_existing_watts=round(totals.total_existing_watts, 2),
            total_proposed_watts=round(totals.total_proposed_watts, 2),
            watts_reduced=round(totals.watts_reduced, 2),
            annual_savings_kwh=round(energy.annual_savings_kwh, 2),
            annual_savings_dollars=round(energy.annual_savings_dollars, 2),
            estimated_rebate=round(rebate_total, 2),
            est_project_cost=round(fin.est_project_cost, 2),
            net_cost=round(fin.net_cost, 2),
            payback_months=round(fin.payback_months, 2),
            payback_computable=fin.payback_computable,
            areas=area_results,
            defaulted_settings=energy.defaulted,
            as_of=as_of,
            warnings=tuple(warnings),
        )


def compute(
    areas: Sequence[Any],
    settings: Any,
    reference: Optional[ReferenceData] = None,
    config: EngineConfig = DEFAULT_CONFIG,
    as_of: Optional[date] = None,
) -> AggregateResult:
    """Live preview entry point: nothing needs to be persisted."""
    return AuditRecalculator(config).recalculate(settings, areas, reference, as_of=as_of)
