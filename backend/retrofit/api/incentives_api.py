from __future__ import annotations

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field, validator
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..engine import FIXTURE_CATEGORIES, INCENTIVE_UNITS, REBATE_CALC_METHODS
from ..models import PrescriptiveMeasure, RebateRate, UtilityProvider
from .deps import get_db

router = APIRouter(tags=["incentives"])


# ---------------- Schemas ----------------
class ProviderIn(BaseModel):
    provider_name: str = Field(..., min_length=1)
    state: Optional[str] = Field(None, max_length=2)
    contact_phone: Optional[str] = None


class ProviderOut(ProviderIn):
    id: int

    class Config:
        from_attributes = True


class MeasureIn(BaseModel):
    provider_id: Optional[int] = None
    measure_name: Optional[str] = None
    measure_code: Optional[str] = None
    measure_category: str = "Lighting"
    measure_subcategory: Optional[str] = None
    baseline_wattage: Optional[float] = Field(None, ge=0)
    replacement_wattage: Optional[float] = Field(None, ge=0)
    incentive_amount: float = Field(0, ge=0)
    incentive_unit: str = "per_fixture"
    max_incentive: Optional[float] = Field(None, ge=0)
    expiration_date: Optional[date] = None
    is_active: bool = True

    @validator("incentive_unit")
    def _unit_ok(cls, v: str) -> str:
        if v not in INCENTIVE_UNITS:
            raise ValueError(f"incentive_unit must be one of {INCENTIVE_UNITS}")
        return v


class MeasureOut(MeasureIn):
    id: int

    class Config:
        from_attributes = True


class RebateRateIn(BaseModel):
    fixture_category: str
    calc_method: str = "per_watt"
    rate: float = Field(..., ge=0)
    notes: Optional[str] = None

    @validator("fixture_category")
    def _category_ok(cls, v: str) -> str:
        if v not in FIXTURE_CATEGORIES:
            raise ValueError(f"fixture_category must be one of {FIXTURE_CATEGORIES}")
        return v

    @validator("calc_method")
    def _method_ok(cls, v: str) -> str:
        if v not in REBATE_CALC_METHODS:
            raise ValueError(f"calc_method must be one of {REBATE_CALC_METHODS}")
        return v


class RebateRateOut(RebateRateIn):
    id: int

    class Config:
        from_attributes = True


# ---------------- Utility providers ----------------
@router.get("/api/utility-providers", response_model=List[ProviderOut])
def list_providers(db: Session = Depends(get_db)):
    return db.execute(select(UtilityProvider).order_by(UtilityProvider.provider_name.asc())).scalars().all()


@router.post("/api/utility-providers", response_model=ProviderOut, status_code=status.HTTP_201_CREATED)
def create_provider(payload: ProviderIn, db: Session = Depends(get_db)):
    row = UtilityProvider(**payload.model_dump())
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


# ---------------- Prescriptive measures ----------------
@router.get("/api/incentives/measures", response_model=List[MeasureOut])
def list_measures(
    provider_id: Optional[int] = Query(None),
    subcategory: Optional[str] = Query(None),
    only_active: bool = Query(True),
    db: Session = Depends(get_db),
):
    stmt = select(PrescriptiveMeasure)
    if provider_id is not None:
        stmt = stmt.where(PrescriptiveMeasure.provider_id == provider_id)
    if subcategory:
        stmt = stmt.where(PrescriptiveMeasure.measure_subcategory == subcategory)
    if only_active:
        stmt = stmt.where(PrescriptiveMeasure.is_active.is_(True))
    return db.execute(stmt.order_by(PrescriptiveMeasure.id.asc())).scalars().all()


@router.post("/api/incentives/measures", response_model=MeasureOut, status_code=status.HTTP_201_CREATED)
def create_measure(payload: MeasureIn, db: Session = Depends(get_db)):
    if payload.provider_id is not None and not db.get(UtilityProvider, payload.provider_id):
        raise HTTPException(status_code=404, detail="Utility provider not found")
    row = PrescriptiveMeasure(**payload.model_dump())
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


@router.delete("/api/incentives/measures/{measure_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_measure(measure_id: int, db: Session = Depends(get_db)):
    row = db.get(PrescriptiveMeasure, measure_id)
    if not row:
        raise HTTPException(status_code=404, detail="Measure not found")
    db.delete(row)
    db.commit()


# ---------------- Rebate rates (fallback table) ----------------
@router.get("/api/incentives/rebate-rates", response_model=List[RebateRateOut])
def list_rebate_rates(db: Session = Depends(get_db)):
    return db.execute(select(RebateRate).order_by(RebateRate.id.asc())).scalars().all()


@router.post("/api/incentives/rebate-rates", response_model=RebateRateOut, status_code=status.HTTP_201_CREATED)
def create_rebate_rate(payload: RebateRateIn, db: Session = Depends(get_db)):
    row = RebateRate(**payload.model_dump())
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


@router.delete("/api/incentives/rebate-rates/{rate_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_rebate_rate(rate_id: int, db: Session = Depends(get_db)):
    row = db.get(RebateRate, rate_id)
    if not row:
        raise HTTPException(status_code=404, detail="Rebate rate not found")
    db.delete(row)
    db.commit()
