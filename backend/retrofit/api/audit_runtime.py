# [BEGIN FILE] backend/retrofit/api/audit_runtime.py
from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..core.config import settings
from ..engine import (
    AggregateResult,
    AuditArea as AreaInput,
    AuditRecalculator,
    AuditSettings,
    EngineConfig,
    RecalcCoordinator,
    ReferenceData,
    UnsupportedIncentiveUnit,
)
from ..models import AuditArea, LightingAudit, PrescriptiveMeasure, RebateRate
from .deps import get_db, get_audit_or_404

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/lighting-audits", tags=["audit-runtime"])

ENGINE_CONFIG = EngineConfig.from_settings(settings)
recalculator = AuditRecalculator(ENGINE_CONFIG)
coordinator = RecalcCoordinator(debounce_seconds=settings.RECALC_DEBOUNCE_SECONDS)


# ----------------- Schemas -----------------
class PreviewAreaIn(BaseModel):
    area_name: Optional[str] = None
    fixture_category: Optional[str] = None
    lighting_type: Optional[str] = None
    # blanks allowed while the wizard is being filled in
    fixture_count: Optional[float] = Field(None, ge=0)
    existing_wattage: Optional[float] = Field(None, ge=0)
    led_wattage: Optional[float] = Field(None, ge=0)
    confirmed: bool = False


class PreviewIn(BaseModel):
    electric_rate: Optional[float] = Field(None, ge=0)
    operating_hours: Optional[float] = Field(None, ge=0, le=24)
    operating_days: Optional[float] = Field(None, ge=0, le=366)
    utility_provider_id: Optional[int] = None
    areas: List[PreviewAreaIn] = Field(default_factory=list)


# ----------------- Loaders -----------------
def load_reference(db: Session) -> ReferenceData:
    """Active rules only; expiry and provider filtering happen in the engine."""
    measures = (
        db.execute(
            select(PrescriptiveMeasure)
            .where(PrescriptiveMeasure.is_active.is_(True))
            .order_by(PrescriptiveMeasure.id.asc())
        )
        .scalars()
        .all()
    )
    rates = db.execute(select(RebateRate).order_by(RebateRate.id.asc())).scalars().all()
    return ReferenceData.from_records(measures, rates)


def load_areas(db: Session, audit_id: int) -> List[AreaInput]:
    rows = (
        db.execute(
            select(AuditArea)
            .where(AuditArea.lighting_audit_id == audit_id)
            .order_by(AuditArea.id.asc())
        )
        .scalars()
        .all()
    )
    return [AreaInput.from_record(r) for r in rows]


def apply_aggregate(audit: LightingAudit, result: AggregateResult) -> None:
    for name, value in result.as_update().items():
        setattr(audit, name, value)


# ----------------- Recalculation -----------------
def _run_engine(settings_src, areas, reference) -> AggregateResult:
    try:
        return recalculator.recalculate(settings_src, areas, reference)
    except UnsupportedIncentiveUnit as e:
        raise HTTPException(status_code=422, detail=str(e))


def recalculate_audit(db: Session, audit_id: int) -> AggregateResult:
    """
    Fetch -> compute -> write back, serialised per audit.
    Must be called after the triggering mutation has been committed.
    """

    def _run() -> AggregateResult:
        # drop cached state so the snapshot is what is committed now
        db.expire_all()
        audit = get_audit_or_404(db, audit_id)
        areas = load_areas(db, audit_id)
        result = _run_engine(AuditSettings.from_record(audit), areas, load_reference(db))
        apply_aggregate(audit, result)
        db.commit()
        logger.info(
            "Audit %s recalculated: %s areas, rebate=%.2f, payback=%.2f",
            audit_id, len(areas), result.estimated_rebate, result.payback_months,
        )
        return result

    return coordinator.recalculate(audit_id, _run)


# ----------------- Endpoints -----------------
@router.post("/preview")
def preview(payload: PreviewIn, db: Session = Depends(get_db)):
    """
    Live estimate for the creation wizard. Nothing is persisted; reference
    tables are read from the DB.
    """
    settings_src = AuditSettings(
        electric_rate=payload.electric_rate,
        operating_hours=payload.operating_hours,
        operating_days=payload.operating_days,
        utility_provider_id=payload.utility_provider_id,
    )
    areas = [AreaInput.from_record(a.model_dump()) for a in payload.areas]
    result = _run_engine(settings_src, areas, load_reference(db))
    return result.as_dict()


@router.post("/{audit_id}/recalculate")
def recalculate(audit_id: int, db: Session = Depends(get_db)):
    get_audit_or_404(db, audit_id)
    result = recalculate_audit(db, audit_id)
    return {"audit_id": audit_id, **result.as_dict()}
# [END FILE] backend/retrofit/api/audit_runtime.py
