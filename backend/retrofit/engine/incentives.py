# backend/retrofit/engine/incentives.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional, Sequence, Tuple

from .domain import (
    DEFAULT_CONFIG,
    TIER_PRESCRIPTIVE,
    TIER_REBATE_RATE,
    AuditArea,
    EngineConfig,
    IncentiveResult,
    PrescriptiveMeasure,
    ReferenceData,
)

logger = logging.getLogger(__name__)


class UnsupportedIncentiveUnit(ValueError):
    """Raised under the 'error' policy when a matched rule has an unknown unit."""


@dataclass(frozen=True)
class ResolverContext:
    reference: ReferenceData
    as_of: date
    provider_id: Optional[object] = None
    config: EngineConfig = DEFAULT_CONFIG


@dataclass
class MatchTrace:
    """Filled in by strategies while matching; copied into the result."""

    candidates: int = 0
    excluded_expired: int = 0
    excluded_provider: int = 0
    notes: List[str] = field(default_factory=list)


# ----------------- Strategies -----------------
class IncentiveStrategy:
    """One tier of the chain. Return None to let the next tier try."""

    tier: str = ""

    def try_match(self, area: AuditArea, ctx: ResolverContext, trace: MatchTrace) -> Optional[IncentiveResult]:
        raise NotImplementedError


def _same_text(a: Optional[str], b: Optional[str]) -> bool:
    if a is None or b is None:
        return False
    return a.strip().lower() == b.strip().lower()


def _same_provider(a: object, b: object) -> bool:
    return str(a).strip() == str(b).strip()


def _baseline_distance(rule: PrescriptiveMeasure, existing_wattage: float) -> float:
    if rule.baseline_wattage is None:
        return float("inf")
    return abs(rule.baseline_wattage - existing_wattage)


def convert_incentive(
    unit: Optional[str],
    amount: float,
    area: AuditArea,
    policy: str,
    trace: MatchTrace,
) -> Optional[float]:
    """
    Turn a rule's incentive_amount into dollars for the area.
    Returns None only under the 'skip' policy for an unknown unit.
    """
    u = (unit or "").strip().lower()
    if u == "per_watt_reduced":
        return area.area_watts_reduced * amount
    if u in ("per_fixture", "per_lamp"):
        return area.fixture_count * amount
    if u == "per_kw":
        return (area.area_watts_reduced / 1000.0) * amount
    if u == "flat":
        return amount

    if policy == "error":
        raise UnsupportedIncentiveUnit(f"Unsupported incentive_unit {unit!r}")
    if policy == "skip":
        trace.notes.append(f"unit {unit!r} not supported; rule skipped")
        logger.warning("Incentive unit %r not supported; rule skipped", unit)
        return None
    trace.notes.append(f"unit {unit!r} not recognised; amount taken as flat area total")
    logger.warning("Incentive unit %r not recognised; amount taken as flat area total", unit)
    return amount


class PrescriptiveMeasureStrategy(IncentiveStrategy):
    """Tier 1: precise utility rule, closest baseline wattage wins."""

    tier = TIER_PRESCRIPTIVE

    def candidates(self, area: AuditArea, ctx: ResolverContext, trace: MatchTrace) -> List[PrescriptiveMeasure]:
        out: List[PrescriptiveMeasure] = []
        for rule in ctx.reference.measures:
            if not _same_text(rule.measure_category, ctx.config.lighting_category):
                continue
            if not _same_text(rule.measure_subcategory, area.fixture_category):
                continue
            if rule.expiration_date is not None and rule.expiration_date < ctx.as_of:
                trace.excluded_expired += 1
                continue
            # provider filter only applies when the audit has one selected
            if (
                ctx.provider_id is not None
                and rule.provider_id is not None
                and not _same_provider(rule.provider_id, ctx.provider_id)
            ):
                trace.excluded_provider += 1
                continue
            out.append(rule)
        trace.candidates = len(out)
        return out

    def select(self, rules: Sequence[PrescriptiveMeasure], area: AuditArea) -> PrescriptiveMeasure:
        # min() keeps the first rule on equal distance
        return min(rules, key=lambda r: _baseline_distance(r, area.existing_wattage))

    def try_match(self, area: AuditArea, ctx: ResolverContext, trace: MatchTrace) -> Optional[IncentiveResult]:
        rules = self.candidates(area, ctx, trace)
        if not rules:
            return None
        rule = self.select(rules, area)

        raw = convert_incentive(rule.incentive_unit, rule.incentive_amount, area, ctx.config.unknown_unit_policy, trace)
        if raw is None:
            return None
        if rule.defaulted_fields:
            trace.notes.append(f"rule fields defaulted to 0: {', '.join(rule.defaulted_fields)}")

        amount = raw
        capped = False
        if rule.max_incentive is not None and amount > rule.max_incentive:
            amount = rule.max_incentive
            capped = True

        return IncentiveResult(
            amount=amount,
            tier=self.tier,
            rule_id=rule.id,
            rule_name=rule.measure_name,
            basis=rule.incentive_unit,
            raw_amount=raw,
            capped=capped,
        )


class RebateRateStrategy(IncentiveStrategy):
    """Tier 2: coarse per-category rate, first exact category match."""

    tier = TIER_REBATE_RATE

    def try_match(self, area: AuditArea, ctx: ResolverContext, trace: MatchTrace) -> Optional[IncentiveResult]:
        if area.fixture_category is None:
            return None
        rate = next(
            (r for r in ctx.reference.rebate_rates if r.fixture_category == area.fixture_category),
            None,
        )
        if rate is None:
            return None

        method = (rate.calc_method or "").strip().lower()
        if method == "per_watt":
            raw = area.area_watts_reduced * rate.rate
        elif method == "per_fixture":
            raw = area.fixture_count * rate.rate
        else:
            trace.notes.append(f"calc_method {rate.calc_method!r} not supported; contributes 0")
            logger.warning("Rebate rate %s has unsupported calc_method %r", rate.id, rate.calc_method)
            raw = 0.0
        if rate.defaulted_fields:
            trace.notes.append(f"rate fields defaulted to 0: {', '.join(rate.defaulted_fields)}")

        return IncentiveResult(
            amount=raw,
            tier=self.tier,
            rule_id=rate.id,
            basis=rate.calc_method,
            raw_amount=raw,
        )


DEFAULT_STRATEGIES: Tuple[IncentiveStrategy, ...] = (
    PrescriptiveMeasureStrategy(),
    RebateRateStrategy(),
)


# ----------------- Resolver -----------------
class IncentiveResolver:
    """Try each strategy in order; the first one that matches wins the area."""

    def __init__(self, strategies: Optional[Sequence[IncentiveStrategy]] = None):
        self.strategies: Tuple[IncentiveStrategy, ...] = tuple(strategies or DEFAULT_STRATEGIES)

    def resolve(self, area: AuditArea, ctx: ResolverContext) -> IncentiveResult:
        trace = MatchTrace()
        result: Optional[IncentiveResult] = None
        for strategy in self.strategies:
            result = strategy.try_match(area, ctx, trace)
            if result is not None:
                break

        if result is None:
            logger.debug("Area %s (%s): no incentive rule matched", area.id, area.fixture_category)
            return IncentiveResult(
                excluded_expired=trace.excluded_expired,
                excluded_provider=trace.excluded_provider,
                notes=tuple(trace.notes),
            )

        amount = result.amount
        if amount < 0:
            trace.notes.append("negative incentive floored at 0")
            amount = 0.0

        logger.debug(
            "Area %s (%s): %s rule %s -> %.2f%s",
            area.id, area.fixture_category, result.tier, result.rule_id, amount,
            " (capped)" if result.capped else "",
        )
        return IncentiveResult(
            amount=round(amount, 2),
            tier=result.tier,
            rule_id=result.rule_id,
            rule_name=result.rule_name,
            basis=result.basis,
            raw_amount=round(result.raw_amount, 2),
            capped=result.capped,
            candidates=trace.candidates,
            excluded_expired=trace.excluded_expired,
            excluded_provider=trace.excluded_provider,
            notes=tuple(trace.notes),
        )

    def resolve_all(self, areas: Sequence[AuditArea], ctx: ResolverContext) -> Tuple[List[IncentiveResult], float]:
        results = [self.resolve(a, ctx) for a in areas]
        return results, sum(r.amount for r in results)
