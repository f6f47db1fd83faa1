# backend/retrofit/api/lighting_audits.py
import time
from datetime import datetime
from typing import Dict, List, Optional, Set

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field
from sqlalchemy import select, func
from sqlalchemy.orm import Session

from ..models import AUDIT_STATUSES, LightingAudit, UtilityProvider
from ..engine import AuditArea as AreaInput, AuditSettings
from .audit_areas import AreaIn, build_area
from .audit_runtime import _run_engine, apply_aggregate, coordinator, load_reference, recalculate_audit
from .deps import get_db, get_audit_or_404, guard_editable

router = APIRouter(prefix="/api/lighting-audits", tags=["lighting-audits"])

# ---------------------------
# Workflow
# ---------------------------
# Draft -> In Progress -> Completed -> Submitted -> {Approved, Rejected}
STATUS_TRANSITIONS: Dict[str, Set[str]] = {
    "Draft": {"In Progress"},
    "In Progress": {"Completed"},
    "Completed": {"Submitted"},
    "Submitted": {"Approved", "Rejected"},
    "Approved": set(),
    "Rejected": set(),
}


# ---------------------------
# Pydantic Schemas
# ---------------------------
class AuditCreate(BaseModel):
    customer_id: Optional[int] = None
    job_id: Optional[int] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = Field(None, max_length=2)
    zip: Optional[str] = Field(None, max_length=10)
    utility_provider_id: Optional[int] = None
    # left empty, the configured planning defaults apply and are reported
    electric_rate: Optional[float] = Field(None, ge=0)
    operating_hours: Optional[float] = Field(None, ge=0, le=24)
    operating_days: Optional[float] = Field(None, ge=0, le=366)
    areas: List[AreaIn] = Field(default_factory=list)


class AuditUpdate(BaseModel):
    customer_id: Optional[int] = None
    job_id: Optional[int] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = Field(None, max_length=2)
    zip: Optional[str] = Field(None, max_length=10)
    utility_provider_id: Optional[int] = None
    electric_rate: Optional[float] = Field(None, ge=0)
    operating_hours: Optional[float] = Field(None, ge=0, le=24)
    operating_days: Optional[float] = Field(None, ge=0, le=366)


class StatusIn(BaseModel):
    status: str


class AuditOut(BaseModel):
    id: int
    audit_code: str
    customer_id: Optional[int] = None
    job_id: Optional[int] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip: Optional[str] = None
    utility_provider_id: Optional[int] = None

    electric_rate: Optional[float] = None
    operating_hours: Optional[float] = None
    operating_days: Optional[float] = None
    status: str

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

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# ---------------------------
# Helpers
# ---------------------------
def _to_base36(n: int) -> str:
    chars = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"
    out = ""
    while n:
        n, r = divmod(n, 36)
        out = chars[r] + out
    return out or "0"


def generate_audit_code(db: Session) -> str:
    """AUD-<base36 millisecond timestamp>, bumped until unused."""
    stamp = int(time.time() * 1000)
    while True:
        code = f"AUD-{_to_base36(stamp)}"
        taken = db.execute(
            select(func.count(LightingAudit.id)).where(LightingAudit.audit_code == code)
        ).scalar_one()
        if not taken:
            return code
        stamp += 1


def _ensure_provider(db: Session, provider_id: Optional[int]) -> None:
    if provider_id is not None and not db.get(UtilityProvider, provider_id):
        raise HTTPException(status_code=404, detail="Utility provider not found")


# ---------------------------
# Endpoints
# ---------------------------
@router.get("", response_model=List[AuditOut], summary="List lighting audits")
def list_audits(
    status_f: Optional[str] = Query(None, alias="status"),
    limit: Optional[int] = Query(None, ge=1, le=1000),
    offset: Optional[int] = Query(None, ge=0),
    db: Session = Depends(get_db),
):
    stmt = select(LightingAudit)
    if status_f:
        stmt = stmt.where(LightingAudit.status == status_f)
    stmt = stmt.order_by(LightingAudit.id.desc())
    if offset is not None:
        stmt = stmt.offset(offset)
    if limit is not None:
        stmt = stmt.limit(limit)
    return db.execute(stmt).scalars().all()


@router.post(
    "",
    response_model=AuditOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create a lighting audit with its areas (wizard save)",
)
def create_audit(body: AuditCreate, db: Session = Depends(get_db)):
    _ensure_provider(db, body.utility_provider_id)

    data = body.model_dump(exclude={"areas"})
    audit = LightingAudit(audit_code=generate_audit_code(db), status="Draft", **data)
    for a in body.areas:
        audit.areas.append(build_area(a))

    # aggregate is computed before the first write so audit and areas land together
    result = _run_engine(
        AuditSettings.from_record(data),
        [AreaInput.from_record(a.model_dump()) for a in body.areas],
        load_reference(db),
    )
    apply_aggregate(audit, result)

    db.add(audit)
    db.commit()
    db.refresh(audit)
    return audit


@router.get("/{audit_id}", response_model=AuditOut, summary="Get a lighting audit")
def get_audit(audit_id: int, db: Session = Depends(get_db)):
    return get_audit_or_404(db, audit_id)


@router.patch("/{audit_id}", response_model=AuditOut, summary="Update audit settings")
def update_audit(audit_id: int, body: AuditUpdate, db: Session = Depends(get_db)):
    with coordinator.mutation(audit_id):
        audit = get_audit_or_404(db, audit_id)
        guard_editable(audit)
        data = body.model_dump(exclude_unset=True)
        if "utility_provider_id" in data:
            _ensure_provider(db, data["utility_provider_id"])
        for k, v in data.items():
            setattr(audit, k, v)
        db.commit()

    recalculate_audit(db, audit_id)
    return get_audit_or_404(db, audit_id)


@router.post("/{audit_id}/status", response_model=AuditOut, summary="Advance audit status")
def change_status(audit_id: int, body: StatusIn, db: Session = Depends(get_db)):
    if body.status not in AUDIT_STATUSES:
        raise HTTPException(status_code=400, detail=f"status must be one of {list(AUDIT_STATUSES)}")

    with coordinator.mutation(audit_id):
        audit = get_audit_or_404(db, audit_id)
        allowed = STATUS_TRANSITIONS.get(audit.status, set())
        if body.status not in allowed:
            raise HTTPException(
                status_code=400,
                detail=f"Cannot move from {audit.status} to {body.status}",
            )
        audit.status = body.status
        db.commit()

    recalculate_audit(db, audit_id)
    return get_audit_or_404(db, audit_id)


@router.delete("/{audit_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete audit and its areas")
def delete_audit(audit_id: int, db: Session = Depends(get_db)):
    with coordinator.mutation(audit_id):
        audit = get_audit_or_404(db, audit_id)
        db.delete(audit)
        db.commit()
    # 204
