"""lighting audits, areas and incentive reference tables

Revision ID: 3b1e9c0a7d21
Revises:
Create Date: 2026-10-17 09:12:44.118305
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "3b1e9c0a7d21"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _money(name: str) -> sa.Column:
    return sa.Column(name, sa.Numeric(18, 2), nullable=False, server_default="0")


def upgrade() -> None:
    bind = op.get_bind()
    insp = sa.inspect(bind)

    if not insp.has_table("utility_providers"):
        op.create_table(
            "utility_providers",
            sa.Column("id", sa.Integer, primary_key=True),
            sa.Column("provider_name", sa.String(255), nullable=False),
            sa.Column("state", sa.String(2), nullable=True),
            sa.Column("contact_phone", sa.String(50), nullable=True),
        )

    if not insp.has_table("lighting_audits"):
        op.create_table(
            "lighting_audits",
            sa.Column("id", sa.Integer, primary_key=True),
            sa.Column("audit_code", sa.String(32), nullable=False, unique=True),
            sa.Column("customer_id", sa.Integer, nullable=True),
            sa.Column("job_id", sa.Integer, nullable=True),
            sa.Column("address", sa.String(255), nullable=True),
            sa.Column("city", sa.String(120), nullable=True),
            sa.Column("state", sa.String(2), nullable=True),
            sa.Column("zip", sa.String(10), nullable=True),
            sa.Column("utility_provider_id", sa.Integer, nullable=True),
            sa.Column("electric_rate", sa.Numeric(12, 6), nullable=True),
            sa.Column("operating_hours", sa.Numeric(6, 2), nullable=True),
            sa.Column("operating_days", sa.Numeric(6, 2), nullable=True),
            sa.Column("status", sa.String(20), nullable=False, server_default="Draft"),
            sa.Column("total_fixtures", sa.Integer, nullable=False, server_default="0"),
            _money("total_existing_watts"),
            _money("total_proposed_watts"),
            _money("watts_reduced"),
            _money("annual_savings_kwh"),
            _money("annual_savings_dollars"),
            _money("estimated_rebate"),
            _money("est_project_cost"),
            _money("net_cost"),
            sa.Column("payback_months", sa.Numeric(12, 2), nullable=False, server_default="0"),
            sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
            sa.Column("updated_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
            sa.ForeignKeyConstraint(["utility_provider_id"], ["utility_providers.id"], ondelete="SET NULL"),
            sa.CheckConstraint(
                "status IN ('Draft','In Progress','Completed','Submitted','Approved','Rejected')",
                name="ck_lighting_audit_status",
            ),
        )
        op.create_index("ix_lighting_audits_status", "lighting_audits", ["status"], unique=False)

    if not insp.has_table("audit_areas"):
        op.create_table(
            "audit_areas",
            sa.Column("id", sa.Integer, primary_key=True),
            sa.Column("lighting_audit_id", sa.Integer, nullable=False),
            sa.Column("area_name", sa.String(255), nullable=False),
            sa.Column("ceiling_height", sa.Numeric(8, 2), nullable=True),
            sa.Column("fixture_category", sa.String(50), nullable=False),
            sa.Column("lighting_type", sa.String(50), nullable=True),
            sa.Column("fixture_count", sa.Integer, nullable=False),
            sa.Column("existing_wattage", sa.Numeric(10, 2), nullable=False),
            sa.Column("led_replacement_id", sa.Integer, nullable=True),
            sa.Column("led_wattage", sa.Numeric(10, 2), nullable=False),
            sa.Column("total_existing_watts", sa.Numeric(18, 2), nullable=True),
            sa.Column("total_led_watts", sa.Numeric(18, 2), nullable=True),
            sa.Column("area_watts_reduced", sa.Numeric(18, 2), nullable=True),
            sa.Column("confirmed", sa.Boolean, nullable=False, server_default="0"),
            sa.Column("override_notes", sa.Text, nullable=True),
            sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
            sa.Column("updated_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
            sa.ForeignKeyConstraint(["lighting_audit_id"], ["lighting_audits.id"], ondelete="CASCADE"),
            sa.CheckConstraint("fixture_count >= 0", name="ck_audit_area_count"),
        )
        op.create_index("ix_audit_areas_audit", "audit_areas", ["lighting_audit_id"], unique=False)

    if not insp.has_table("prescriptive_measures"):
        op.create_table(
            "prescriptive_measures",
            sa.Column("id", sa.Integer, primary_key=True),
            sa.Column("provider_id", sa.Integer, nullable=True),
            sa.Column("measure_name", sa.String(255), nullable=True),
            sa.Column("measure_code", sa.String(50), nullable=True),
            sa.Column("measure_category", sa.String(50), nullable=False, server_default="Lighting"),
            sa.Column("measure_subcategory", sa.String(50), nullable=True),
            sa.Column("baseline_wattage", sa.Numeric(10, 2), nullable=True),
            sa.Column("replacement_wattage", sa.Numeric(10, 2), nullable=True),
            sa.Column("incentive_amount", sa.Numeric(18, 4), nullable=False, server_default="0"),
            sa.Column("incentive_unit", sa.String(30), nullable=False, server_default="per_fixture"),
            sa.Column("max_incentive", sa.Numeric(18, 2), nullable=True),
            sa.Column("expiration_date", sa.Date, nullable=True),
            sa.Column("is_active", sa.Boolean, nullable=False, server_default="1"),
            sa.ForeignKeyConstraint(["provider_id"], ["utility_providers.id"], ondelete="CASCADE"),
        )
        op.create_index(
            "ix_prescriptive_measures_subcategory", "prescriptive_measures", ["measure_subcategory"], unique=False
        )
        op.create_index("ix_prescriptive_measures_provider", "prescriptive_measures", ["provider_id"], unique=False)

    if not insp.has_table("rebate_rates"):
        op.create_table(
            "rebate_rates",
            sa.Column("id", sa.Integer, primary_key=True),
            sa.Column("fixture_category", sa.String(50), nullable=False),
            sa.Column("calc_method", sa.String(20), nullable=False, server_default="per_watt"),
            sa.Column("rate", sa.Numeric(18, 4), nullable=False, server_default="0"),
            sa.Column("notes", sa.Text, nullable=True),
            sa.CheckConstraint("calc_method IN ('per_watt','per_fixture')", name="ck_rebate_rate_method"),
        )
        op.create_index("ix_rebate_rates_category", "rebate_rates", ["fixture_category"], unique=False)


def downgrade() -> None:
    op.drop_table("rebate_rates")
    op.drop_table("prescriptive_measures")
    op.drop_table("audit_areas")
    op.drop_table("lighting_audits")
    op.drop_table("utility_providers")
