# backend/retrofit/engine/__init__.py
from .domain import (
    AI_CATEGORY_MAP,
    COMMON_WATTAGES,
    DEFAULT_CONFIG,
    FIXTURE_CATEGORIES,
    INCENTIVE_UNITS,
    LAMP_TYPES,
    REBATE_CALC_METHODS,
    TIER_PRESCRIPTIVE,
    TIER_REBATE_RATE,
    UNIT_POLICIES,
    AggregateResult,
    AreaResult,
    AuditArea,
    AuditSettings,
    EngineConfig,
    IncentiveResult,
    PrescriptiveMeasure,
    RebateRate,
    ReferenceData,
    fallback_led_wattage,
    normalize_fixture_category,
)
from .aggregation import AreaTotals, aggregate_areas
from .energy import EnergySavings, compute_energy_savings
from .financials import ProjectFinancials, compute_financials
from .incentives import (
    IncentiveResolver,
    IncentiveStrategy,
    PrescriptiveMeasureStrategy,
    RebateRateStrategy,
    ResolverContext,
    UnsupportedIncentiveUnit,
)
from .calculator import AuditRecalculator, compute
from .coordinator import RecalcCoordinator
