# backend/retrofit/api/deps.py
from fastapi import HTTPException, status
from sqlalchemy.orm import Session

# SessionLocal comes from core.config
from ..core.config import SessionLocal
from ..models import LightingAudit


# ---------------------------
# DB Session Dependency
# ---------------------------
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


# ---------------------------
# Shared lookups
# ---------------------------
def get_audit_or_404(db: Session, audit_id: int) -> LightingAudit:
    audit = db.get(LightingAudit, audit_id)
    if not audit:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Lighting audit not found")
    return audit


# areas and settings are frozen once the audit is in review
LOCKED_STATUSES = {"Submitted", "Approved", "Rejected"}


def guard_editable(audit: LightingAudit) -> None:
    if audit.status in LOCKED_STATUSES:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Audit is {audit.status}; areas and settings are locked",
        )
