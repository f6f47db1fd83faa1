# backend/retrofit/engine/domain.py
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Mapping, Optional, Tuple

logger = logging.getLogger(__name__)

# ----------------- Closed vocabularies -----------------
FIXTURE_CATEGORIES = [
    "Linear", "High Bay", "Low Bay", "Outdoor", "Recessed",
    "Track", "Wall Pack", "Flood", "Area Light", "Canopy", "Other",
]

LAMP_TYPES = [
    "T12", "T8", "T5", "HID", "Metal Halide", "HPS",
    "Incandescent", "CFL", "LED", "Other",
]

INCENTIVE_UNITS = [
    "per_fixture", "per_lamp", "per_watt_reduced", "per_kw",
    "flat", "per_ton", "per_unit",
]

REBATE_CALC_METHODS = ["per_watt", "per_fixture"]

# what to do with a matched rule whose incentive_unit is not one of the convertible units
UNIT_POLICIES = ("flat", "skip", "error")

# quick-select wattages offered per lamp type
COMMON_WATTAGES: Dict[str, List[int]] = {
    "T12": [40, 80, 120, 150, 160],
    "T8": [32, 64, 96, 128],
    "T5": [28, 54, 108],
    "HID": [175, 250, 400, 1000],
    "Metal Halide": [175, 250, 400, 1000],
    "HPS": [70, 100, 150, 250, 400, 1000],
    "Incandescent": [60, 75, 100, 150, 200],
    "CFL": [13, 26, 42],
    "LED": [10, 20, 30, 50, 100, 150, 200, 300],
    "Other": [],
}

# photo-inference categories -> fixture categories
AI_CATEGORY_MAP: Dict[str, str] = {
    "Indoor Linear": "Linear",
    "Indoor High Bay": "High Bay",
    "Outdoor": "Outdoor",
    "Decorative": "Other",
    "Other": "Other",
}

LED_FALLBACK_RATIO = 0.5


def normalize_fixture_category(raw: Optional[str]) -> str:
    """Map a photo-inference category (or a loose spelling) onto FIXTURE_CATEGORIES."""
    if not raw:
        return "Other"
    s = str(raw).strip()
    if s in AI_CATEGORY_MAP:
        return AI_CATEGORY_MAP[s]
    for cat in FIXTURE_CATEGORIES:
        if cat.lower() == s.lower():
            return cat
    return "Other"


def fallback_led_wattage(existing_wattage: float) -> int:
    """LED wattage assumed for a detected fixture when no product was picked."""
    return int(round(existing_wattage * LED_FALLBACK_RATIO))


# ----------------- Coercion helpers -----------------
def to_number(value: Any) -> Optional[float]:
    """Return a finite float for numeric-looking input, else None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        try:
            out = float(value)
        except (InvalidOperation, ValueError):
            return None
    elif isinstance(value, (int, float)):
        out = float(value)
    elif isinstance(value, str):
        s = value.strip()
        if not s:
            return None
        try:
            out = float(s)
        except ValueError:
            return None
    else:
        return None
    if math.isnan(out) or math.isinf(out):
        return None
    return out


def to_date(value: Any) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except ValueError:
        logger.warning("Unparseable date %r treated as absent", value)
        return None


def _get(src: Any, name: str) -> Any:
    if isinstance(src, Mapping):
        return src.get(name)
    return getattr(src, name, None)


def _opt_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    s = str(value).strip()
    return s or None


# ----------------- Engine configuration -----------------
@dataclass(frozen=True)
class EngineConfig:
    default_operating_hours: float = 10.0
    default_operating_days: float = 260.0
    default_electric_rate: float = 0.12
    project_cost_per_watt: float = 5.0
    lighting_category: str = "Lighting"
    unknown_unit_policy: str = "flat"  # flat | skip | error

    def __post_init__(self) -> None:
        if self.unknown_unit_policy not in UNIT_POLICIES:
            raise ValueError(
                f"unknown_unit_policy must be one of {UNIT_POLICIES}, got {self.unknown_unit_policy!r}"
            )

    @classmethod
    def from_settings(cls, settings: Any) -> "EngineConfig":
        return cls(
            default_operating_hours=float(settings.DEFAULT_OPERATING_HOURS),
            default_operating_days=float(settings.DEFAULT_OPERATING_DAYS),
            default_electric_rate=float(settings.DEFAULT_ELECTRIC_RATE),
            project_cost_per_watt=float(settings.PROJECT_COST_PER_WATT),
            lighting_category=str(settings.LIGHTING_MEASURE_CATEGORY),
            unknown_unit_policy=str(settings.UNKNOWN_INCENTIVE_UNIT_POLICY).lower(),
        )


DEFAULT_CONFIG = EngineConfig()


# ----------------- Inputs -----------------
@dataclass(frozen=True)
class AuditArea:
    """One surveyed fixture group. Totals are always derived, never trusted."""

    fixture_category: Optional[str]
    fixture_count: int
    existing_wattage: float
    led_wattage: float
    lighting_type: Optional[str] = None
    confirmed: bool = False
    id: Optional[int] = None
    area_name: Optional[str] = None
    defaulted_fields: Tuple[str, ...] = ()
    truncated_fields: Tuple[str, ...] = ()

    @property
    def total_existing_watts(self) -> float:
        return self.fixture_count * self.existing_wattage

    @property
    def total_led_watts(self) -> float:
        return self.fixture_count * self.led_wattage

    @property
    def area_watts_reduced(self) -> float:
        return self.total_existing_watts - self.total_led_watts

    @classmethod
    def from_record(cls, src: Any) -> "AuditArea":
        """Build from a dict or an ORM row; blank/non-numeric numbers become 0 and are flagged."""
        defaulted: List[str] = []
        truncated: List[str] = []

        count = to_number(_get(src, "fixture_count"))
        if count is None:
            defaulted.append("fixture_count")
            count = 0.0
        elif not count.is_integer():
            truncated.append("fixture_count")
        existing = to_number(_get(src, "existing_wattage"))
        if existing is None:
            defaulted.append("existing_wattage")
            existing = 0.0
        led = to_number(_get(src, "led_wattage"))
        if led is None:
            defaulted.append("led_wattage")
            led = 0.0

        return cls(
            id=_get(src, "id"),
            area_name=_opt_str(_get(src, "area_name")),
            fixture_category=_opt_str(_get(src, "fixture_category")),
            lighting_type=_opt_str(_get(src, "lighting_type")),
            fixture_count=int(count),
            existing_wattage=existing,
            led_wattage=led,
            confirmed=bool(_get(src, "confirmed") or False),
            defaulted_fields=tuple(defaulted),
            truncated_fields=tuple(truncated),
        )


@dataclass(frozen=True)
class AuditSettings:
    electric_rate: Any = None
    operating_hours: Any = None
    operating_days: Any = None
    utility_provider_id: Any = None

    @classmethod
    def from_record(cls, src: Any) -> "AuditSettings":
        return cls(
            electric_rate=_get(src, "electric_rate"),
            operating_hours=_get(src, "operating_hours"),
            operating_days=_get(src, "operating_days"),
            utility_provider_id=_get(src, "utility_provider_id"),
        )


@dataclass(frozen=True)
class PrescriptiveMeasure:
    measure_category: Optional[str]
    measure_subcategory: Optional[str]
    incentive_amount: float
    incentive_unit: Optional[str]
    baseline_wattage: Optional[float] = None
    max_incentive: Optional[float] = None
    expiration_date: Optional[date] = None
    provider_id: Any = None
    id: Optional[int] = None
    measure_name: Optional[str] = None
    defaulted_fields: Tuple[str, ...] = ()

    @classmethod
    def from_record(cls, src: Any) -> "PrescriptiveMeasure":
        defaulted: List[str] = []
        amount = to_number(_get(src, "incentive_amount"))
        if amount is None:
            defaulted.append("incentive_amount")
            amount = 0.0
        return cls(
            id=_get(src, "id"),
            measure_name=_opt_str(_get(src, "measure_name")),
            measure_category=_opt_str(_get(src, "measure_category")),
            measure_subcategory=_opt_str(_get(src, "measure_subcategory")),
            baseline_wattage=to_number(_get(src, "baseline_wattage")),
            incentive_amount=amount,
            incentive_unit=_opt_str(_get(src, "incentive_unit")),
            max_incentive=to_number(_get(src, "max_incentive")),
            expiration_date=to_date(_get(src, "expiration_date")),
            provider_id=_get(src, "provider_id"),
            defaulted_fields=tuple(defaulted),
        )


@dataclass(frozen=True)
class RebateRate:
    fixture_category: Optional[str]
    calc_method: Optional[str]
    rate: float
    id: Optional[int] = None
    defaulted_fields: Tuple[str, ...] = ()

    @classmethod
    def from_record(cls, src: Any) -> "RebateRate":
        defaulted: List[str] = []
        rate = to_number(_get(src, "rate"))
        if rate is None:
            defaulted.append("rate")
            rate = 0.0
        return cls(
            id=_get(src, "id"),
            fixture_category=_opt_str(_get(src, "fixture_category")),
            calc_method=_opt_str(_get(src, "calc_method")),
            rate=rate,
            defaulted_fields=tuple(defaulted),
        )


@dataclass(frozen=True)
class ReferenceData:
    measures: Tuple[PrescriptiveMeasure, ...] = ()
    rebate_rates: Tuple[RebateRate, ...] = ()

    @classmethod
    def from_records(cls, measures: Any = (), rebate_rates: Any = ()) -> "ReferenceData":
        return cls(
            measures=tuple(
                m if isinstance(m, PrescriptiveMeasure) else PrescriptiveMeasure.from_record(m)
                for m in (measures or ())
            ),
            rebate_rates=tuple(
                r if isinstance(r, RebateRate) else RebateRate.from_record(r)
                for r in (rebate_rates or ())
            ),
        )


# ----------------- Results -----------------
TIER_PRESCRIPTIVE = "prescriptive"
TIER_REBATE_RATE = "rebate_rate"


@dataclass(frozen=True)
class IncentiveResult:
    """Dollar incentive for one area and how it was reached.

    tier is None when no rule matched; that is different from a matched rule
    that computed to 0 (tier set, amount 0).
    """

    amount: float = 0.0
    tier: Optional[str] = None
    rule_id: Optional[int] = None
    rule_name: Optional[str] = None
    basis: Optional[str] = None  # incentive_unit or calc_method
    raw_amount: float = 0.0
    capped: bool = False
    candidates: int = 0
    excluded_expired: int = 0
    excluded_provider: int = 0
    notes: Tuple[str, ...] = ()

    @property
    def matched(self) -> bool:
        return self.tier is not None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "amount": self.amount,
            "tier": self.tier,
            "rule_id": self.rule_id,
            "rule_name": self.rule_name,
            "basis": self.basis,
            "raw_amount": self.raw_amount,
            "capped": self.capped,
            "candidates": self.candidates,
            "excluded_expired": self.excluded_expired,
            "excluded_provider": self.excluded_provider,
            "notes": list(self.notes),
        }


@dataclass(frozen=True)
class AreaResult:
    area_id: Optional[int]
    area_name: Optional[str]
    fixture_category: Optional[str]
    total_existing_watts: float
    total_led_watts: float
    area_watts_reduced: float
    incentive: IncentiveResult
    defaulted_fields: Tuple[str, ...] = ()
    truncated_fields: Tuple[str, ...] = ()

    def as_dict(self) -> Dict[str, Any]:
        return {
            "area_id": self.area_id,
            "area_name": self.area_name,
            "fixture_category": self.fixture_category,
            "total_existing_watts": self.total_existing_watts,
            "total_led_watts": self.total_led_watts,
            "area_watts_reduced": self.area_watts_reduced,
            "incentive": self.incentive.as_dict(),
            "defaulted_fields": list(self.defaulted_fields),
            "truncated_fields": list(self.truncated_fields),
        }


AGGREGATE_FIELDS = (
    "total_fixtures",
    "total_existing_watts",
    "total_proposed_watts",
    "watts_reduced",
    "annual_savings_kwh",
    "annual_savings_dollars",
    "estimated_rebate",
    "est_project_cost",
    "net_cost",
    "payback_months",
)


@dataclass(frozen=True)
class AggregateResult:
    total_fixtures: int
    total_existing_watts: float
    total_proposed_watts: float
    watts_reduced: float
    annual_savings_kwh: float
    annual_savings_dollars: float
    estimated_rebate: float
    est_project_cost: float
    net_cost: float
    payback_months: float
    payback_computable: bool
    areas: Tuple[AreaResult, ...] = ()
    defaulted_settings: Tuple[str, ...] = ()
    as_of: Optional[date] = None
    warnings: Tuple[str, ...] = field(default=())

    @property
    def low_confidence(self) -> bool:
        if self.defaulted_settings or self.warnings:
            return True
        return any(a.defaulted_fields or a.truncated_fields for a in self.areas)

    def as_update(self) -> Dict[str, Any]:
        """The fields written back onto the audit record."""
        return {name: getattr(self, name) for name in AGGREGATE_FIELDS}

    def as_dict(self) -> Dict[str, Any]:
        out = self.as_update()
        out.update(
            {
                "payback_computable": self.payback_computable,
                "low_confidence": self.low_confidence,
                "defaulted_settings": list(self.defaulted_settings),
                "warnings": list(self.warnings),
                "as_of": self.as_of.isoformat() if self.as_of else None,
                "areas": [a.as_dict() for a in self.areas],
            }
        )
        return out
