# [BEGIN FILE] backend/retrofit/models/__init__.py
from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    DateTime,
    Date,
    ForeignKey,
    Index,
    CheckConstraint,
    func,
    Numeric,
    Boolean,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()

AUDIT_STATUSES = ("Draft", "In Progress", "Completed", "Submitted", "Approved", "Rejected")


# =========================
# Utility providers
# =========================
class UtilityProvider(Base):
    __tablename__ = "utility_providers"

    id = Column(Integer, primary_key=True, index=True)
    provider_name = Column(String(255), nullable=False)
    state = Column(String(2), nullable=True)
    contact_phone = Column(String(50), nullable=True)

    audits = relationship("LightingAudit", back_populates="utility_provider", lazy="selectin")


# =========================
# Lighting audits (aggregate + financial summary)
# =========================
class LightingAudit(Base):
    __tablename__ = "lighting_audits"

    id = Column(Integer, primary_key=True, index=True)
    audit_code = Column(String(32), nullable=False, unique=True)  # AUD-<base36 ts>

    customer_id = Column(Integer, nullable=True)
    job_id = Column(Integer, nullable=True)
    address = Column(String(255), nullable=True)
    city = Column(String(120), nullable=True)
    state = Column(String(2), nullable=True)
    zip = Column(String(10), nullable=True)

    utility_provider_id = Column(Integer, ForeignKey("utility_providers.id", ondelete="SET NULL"), nullable=True)

    # inputs
    electric_rate = Column(Numeric(12, 6), nullable=True)
    operating_hours = Column(Numeric(6, 2), nullable=True)
    operating_days = Column(Numeric(6, 2), nullable=True)

    status = Column(String(20), nullable=False, default="Draft", server_default="Draft")

    # computed / stored outputs (written only by the recalculation)
    total_fixtures = Column(Integer, nullable=False, default=0, server_default="0")
    total_existing_watts = Column(Numeric(18, 2), nullable=False, default=0, server_default="0")
    total_proposed_watts = Column(Numeric(18, 2), nullable=False, default=0, server_default="0")
    watts_reduced = Column(Numeric(18, 2), nullable=False, default=0, server_default="0")
    annual_savings_kwh = Column(Numeric(18, 2), nullable=False, default=0, server_default="0")
    annual_savings_dollars = Column(Numeric(18, 2), nullable=False, default=0, server_default="0")
    estimated_rebate = Column(Numeric(18, 2), nullable=False, default=0, server_default="0")
    est_project_cost = Column(Numeric(18, 2), nullable=False, default=0, server_default="0")
    net_cost = Column(Numeric(18, 2), nullable=False, default=0, server_default="0")
    payback_months = Column(Numeric(12, 2), nullable=False, default=0, server_default="0")

    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())

    utility_provider = relationship("UtilityProvider", back_populates="audits", lazy="selectin")
    areas = relationship(
        "AuditArea",
        back_populates="audit",
        cascade="all, delete-orphan",
        order_by="AuditArea.id",
        lazy="selectin",
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('Draft','In Progress','Completed','Submitted','Approved','Rejected')",
            name="ck_lighting_audit_status",
        ),
        Index("ix_lighting_audits_status", "status"),
    )


class AuditArea(Base):
    __tablename__ = "audit_areas"

    id = Column(Integer, primary_key=True, index=True)
    lighting_audit_id = Column(Integer, ForeignKey("lighting_audits.id", ondelete="CASCADE"), nullable=False)

    area_name = Column(String(255), nullable=False)
    ceiling_height = Column(Numeric(8, 2), nullable=True)
    fixture_category = Column(String(50), nullable=False, default="Linear")
    lighting_type = Column(String(50), nullable=True)

    fixture_count = Column(Integer, nullable=False, default=1)
    existing_wattage = Column(Numeric(10, 2), nullable=False, default=0)
    led_replacement_id = Column(Integer, nullable=True)
    led_wattage = Column(Numeric(10, 2), nullable=False, default=0)

    # denormalised copies; readers recompute from count * wattage
    total_existing_watts = Column(Numeric(18, 2), nullable=True)
    total_led_watts = Column(Numeric(18, 2), nullable=True)
    area_watts_reduced = Column(Numeric(18, 2), nullable=True)

    confirmed = Column(Boolean, nullable=False, default=False, server_default="0")
    override_notes = Column(Text, nullable=True)

    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())

    audit = relationship("LightingAudit", back_populates="areas", lazy="selectin")

    __table_args__ = (
        CheckConstraint("fixture_count >= 0", name="ck_audit_area_count"),
        Index("ix_audit_areas_audit", "lighting_audit_id"),
    )


# =========================
# Incentive reference tables (read-only to the engine)
# =========================
class PrescriptiveMeasure(Base):
    __tablename__ = "prescriptive_measures"

    id = Column(Integer, primary_key=True, index=True)
    provider_id = Column(Integer, ForeignKey("utility_providers.id", ondelete="CASCADE"), nullable=True)

    measure_name = Column(String(255), nullable=True)
    measure_code = Column(String(50), nullable=True)
    measure_category = Column(String(50), nullable=False, default="Lighting")
    measure_subcategory = Column(String(50), nullable=True)

    baseline_wattage = Column(Numeric(10, 2), nullable=True)
    replacement_wattage = Column(Numeric(10, 2), nullable=True)

    incentive_amount = Column(Numeric(18, 4), nullable=False, default=0)
    incentive_unit = Column(String(30), nullable=False, default="per_fixture")
    max_incentive = Column(Numeric(18, 2), nullable=True)
    expiration_date = Column(Date, nullable=True)

    is_active = Column(Boolean, nullable=False, default=True, server_default="1")

    __table_args__ = (
        Index("ix_prescriptive_measures_subcategory", "measure_subcategory"),
        Index("ix_prescriptive_measures_provider", "provider_id"),
    )


class RebateRate(Base):
    __tablename__ = "rebate_rates"

    id = Column(Integer, primary_key=True, index=True)
    fixture_category = Column(String(50), nullable=False)
    calc_method = Column(String(20), nullable=False, default="per_watt")
    rate = Column(Numeric(18, 4), nullable=False, default=0)
    notes = Column(Text, nullable=True)

    __table_args__ = (
        CheckConstraint("calc_method IN ('per_watt','per_fixture')", name="ck_rebate_rate_method"),
        Index("ix_rebate_rates_category", "fixture_category"),
    )
