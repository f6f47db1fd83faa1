# backend/retrofit/core/config.py
from typing import List

from pydantic import validator
from pydantic_settings import BaseSettings
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from ..engine.domain import UNIT_POLICIES


class Settings(BaseSettings):
    # --- Database ---
    DATABASE_URL: str = "sqlite:///./app.db"

    # --- CORS ---
    CORS_ALLOW_ORIGINS: List[str] = ["*"]

    # --- Logging ---
    LOG_LEVEL: str = "INFO"

    # --- Planning constants (estimates, not quotes) ---
    DEFAULT_OPERATING_HOURS: float = 10.0    # hours per day
    DEFAULT_OPERATING_DAYS: float = 260.0    # days per year
    DEFAULT_ELECTRIC_RATE: float = 0.12      # $/kWh
    PROJECT_COST_PER_WATT: float = 5.0       # $ per watt reduced
    LIGHTING_MEASURE_CATEGORY: str = "Lighting"
    UNKNOWN_INCENTIVE_UNIT_POLICY: str = "flat"  # flat | skip | error

    # --- Recalculation coordination ---
    RECALC_DEBOUNCE_SECONDS: float = 0.0

    @validator("UNKNOWN_INCENTIVE_UNIT_POLICY")
    def _unit_policy_ok(cls, v: str) -> str:
        v = str(v).strip().lower()
        if v not in UNIT_POLICIES:
            raise ValueError(f"UNKNOWN_INCENTIVE_UNIT_POLICY must be one of {UNIT_POLICIES}")
        return v

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()

# SQLite needs check_same_thread off for the threadpool
connect_args = {"check_same_thread": False} if settings.DATABASE_URL.startswith("sqlite") else {}

# SQLAlchemy Engine & Session
engine = create_engine(settings.DATABASE_URL, connect_args=connect_args, future=True)
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, future=True)

