# backend/retrofit/engine/financials.py
from __future__ import annotations

from dataclasses import dataclass

from .domain import DEFAULT_CONFIG, EngineConfig


@dataclass(frozen=True)
class ProjectFinancials:
    est_project_cost: float
    net_cost: float
    payback_months: float
    # False means payback_months=0 is "not computable", not "immediate"
    payback_computable: bool


def compute_financials(
    watts_reduced: float,
    estimated_rebate: float,
    annual_savings_dollars: float,
    config: EngineConfig = DEFAULT_CONFIG,
) -> ProjectFinancials:
    est_project_cost = watts_reduced * config.project_cost_per_watt
    net_cost = est_project_cost - estimated_rebate

    if annual_savings_dollars > 0:
        return ProjectFinancials(
            est_project_cost=est_project_cost,
            net_cost=net_cost,
            payback_months=net_cost / (annual_savings_dollars / 12.0),
            payback_computable=True,
        )
    return ProjectFinancials(
        est_project_cost=est_project_cost,
        net_cost=net_cost,
        payback_months=0.0,
        payback_computable=False,
    )
