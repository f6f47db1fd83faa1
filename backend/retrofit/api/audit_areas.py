# backend/retrofit/api/audit_areas.py
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field, validator
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..engine import FIXTURE_CATEGORIES, LAMP_TYPES, fallback_led_wattage, normalize_fixture_category
from ..models import AuditArea
from .audit_runtime import coordinator, recalculate_audit
from .deps import get_db, get_audit_or_404, guard_editable

router = APIRouter(prefix="/api/lighting-audits", tags=["audit-areas"])

REQUIRED_AREA_FIELDS = {"area_name", "fixture_category", "fixture_count", "existing_wattage", "led_wattage", "confirmed"}


# =========================
# Schemas
# =========================
class AreaIn(BaseModel):
    area_name: str = Field(..., min_length=1)
    ceiling_height: Optional[float] = Field(None, ge=0)
    fixture_category: str = "Linear"
    lighting_type: Optional[str] = None
    fixture_count: int = Field(1, ge=0)
    existing_wattage: float = Field(0, ge=0)
    led_replacement_id: Optional[int] = None
    led_wattage: float = Field(0, ge=0)
    confirmed: bool = False
    override_notes: Optional[str] = None

    @validator("fixture_category")
    def _category_ok(cls, v: str) -> str:
        if v not in FIXTURE_CATEGORIES:
            raise ValueError(f"fixture_category must be one of {FIXTURE_CATEGORIES}")
        return v

    @validator("lighting_type")
    def _lamp_ok(cls, v: Optional[str]) -> Optional[str]:
        if v and v not in LAMP_TYPES:
            raise ValueError(f"lighting_type must be one of {LAMP_TYPES}")
        return v


class AreaUpdate(BaseModel):
    area_name: Optional[str] = Field(None, min_length=1)
    ceiling_height: Optional[float] = Field(None, ge=0)
    fixture_category: Optional[str] = None
    lighting_type: Optional[str] = None
    fixture_count: Optional[int] = Field(None, ge=0)
    existing_wattage: Optional[float] = Field(None, ge=0)
    led_replacement_id: Optional[int] = None
    led_wattage: Optional[float] = Field(None, ge=0)
    confirmed: Optional[bool] = None
    override_notes: Optional[str] = None

    @validator("fixture_category")
    def _category_ok(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and v not in FIXTURE_CATEGORIES:
            raise ValueError(f"fixture_category must be one of {FIXTURE_CATEGORIES}")
        return v

    @validator("lighting_type")
    def _lamp_ok(cls, v: Optional[str]) -> Optional[str]:
        if v and v not in LAMP_TYPES:
            raise ValueError(f"lighting_type must be one of {LAMP_TYPES}")
        return v


class DetectedAreaIn(BaseModel):
    """Output of the photo analysis, confirmed by the auditor."""

    fixture_type: Optional[str] = None
    fixture_category: Optional[str] = None  # photo vocabulary, e.g. "Indoor High Bay"
    lighting_type: Optional[str] = None
    fixture_count: int = Field(1, ge=0)
    existing_wattage: float = Field(0, ge=0)
    recommended_led_id: Optional[int] = None
    led_wattage: Optional[float] = Field(None, ge=0)  # wattage of the recommended product, if known
    ceiling_height: Optional[float] = Field(None, ge=0)
    notes: Optional[str] = None


class AreaOut(BaseModel):
    id: int
    lighting_audit_id: int
    area_name: str
    ceiling_height: Optional[float] = None
    fixture_category: str
    lighting_type: Optional[str] = None
    fixture_count: int
    existing_wattage: float
    led_replacement_id: Optional[int] = None
    led_wattage: float
    total_existing_watts: Optional[float] = None
    total_led_watts: Optional[float] = None
    area_watts_reduced: Optional[float] = None
    confirmed: bool
    override_notes: Optional[str] = None

    class Config:
        from_attributes = True


# =========================
# Helpers
# =========================
def _apply_totals(area: AuditArea) -> None:
    """Keep the stored per-area totals in step with count * wattage."""
    count = int(area.fixture_count or 0)
    existing = float(area.existing_wattage or 0)
    led = float(area.led_wattage or 0)
    area.total_existing_watts = count * existing
    area.total_led_watts = count * led
    area.area_watts_reduced = count * existing - count * led


def build_area(payload: AreaIn) -> AuditArea:
    area = AuditArea(**payload.model_dump())
    _apply_totals(area)
    return area


def _get_area(db: Session, audit_id: int, area_id: int) -> AuditArea:
    area = db.get(AuditArea, area_id)
    if not area or area.lighting_audit_id != audit_id:
        raise HTTPException(status_code=404, detail="Audit area not found")
    return area


def _mutation_response(area: Optional[AreaOut], db: Session, audit_id: int) -> dict:
    # runs only after the mutation is committed
    result = recalculate_audit(db, audit_id)
    return {"area": area, "aggregate": result.as_dict()}


# =========================
# Routes
# =========================
@router.get("/{audit_id}/areas", response_model=List[AreaOut], summary="List areas of an audit")
def list_areas(audit_id: int, db: Session = Depends(get_db)):
    get_audit_or_404(db, audit_id)
    stmt = select(AuditArea).where(AuditArea.lighting_audit_id == audit_id).order_by(AuditArea.id.asc())
    return db.execute(stmt).scalars().all()


@router.post("/{audit_id}/areas", status_code=status.HTTP_201_CREATED, summary="Add an area and recalculate")
def create_area(audit_id: int, payload: AreaIn, db: Session = Depends(get_db)):
    with coordinator.mutation(audit_id):
        audit = get_audit_or_404(db, audit_id)
        guard_editable(audit)
        area = build_area(payload)
        area.lighting_audit_id = audit_id
        db.add(area)
        db.commit()
        db.refresh(area)
        out = AreaOut.model_validate(area)
    return _mutation_response(out, db, audit_id)


@router.post(
    "/{audit_id}/areas/detected",
    status_code=status.HTTP_201_CREATED,
    summary="Add an area from a confirmed photo detection",
)
def create_detected_area(audit_id: int, payload: DetectedAreaIn, db: Session = Depends(get_db)):
    led = payload.led_wattage
    if led is None:
        led = fallback_led_wattage(payload.existing_wattage)
    lamp = payload.lighting_type if payload.lighting_type in LAMP_TYPES else None

    with coordinator.mutation(audit_id):
        audit = get_audit_or_404(db, audit_id)
        guard_editable(audit)
        area = AuditArea(
            lighting_audit_id=audit_id,
            area_name=payload.fixture_type or "AI Detected Area",
            ceiling_height=payload.ceiling_height,
            fixture_category=normalize_fixture_category(payload.fixture_category),
            lighting_type=lamp,
            fixture_count=payload.fixture_count,
            existing_wattage=payload.existing_wattage,
            led_replacement_id=payload.recommended_led_id,
            led_wattage=led,
            confirmed=True,
            override_notes=f"AI Detected: {payload.fixture_type}. Notes: {payload.notes or 'None'}",
        )
        _apply_totals(area)
        db.add(area)
        db.commit()
        db.refresh(area)
        out = AreaOut.model_validate(area)
    return _mutation_response(out, db, audit_id)


@router.patch("/{audit_id}/areas/{area_id}", summary="Update an area and recalculate")
def update_area(audit_id: int, area_id: int, payload: AreaUpdate, db: Session = Depends(get_db)):
    with coordinator.mutation(audit_id):
        audit = get_audit_or_404(db, audit_id)
        guard_editable(audit)
        area = _get_area(db, audit_id, area_id)
        for k, v in payload.model_dump(exclude_unset=True).items():
            if v is None and k in REQUIRED_AREA_FIELDS:
                continue  # NOT NULL columns keep their value
            setattr(area, k, v)
        _apply_totals(area)
        db.commit()
        db.refresh(area)
        out = AreaOut.model_validate(area)
    return _mutation_response(out, db, audit_id)


@router.delete("/{audit_id}/areas/{area_id}", summary="Delete an area and recalculate")
def delete_area(audit_id: int, area_id: int, db: Session = Depends(get_db)):
    with coordinator.mutation(audit_id):
        audit = get_audit_or_404(db, audit_id)
        guard_editable(audit)
        area = _get_area(db, audit_id, area_id)
        db.delete(area)
        db.commit()
    return _mutation_response(None, db, audit_id)
