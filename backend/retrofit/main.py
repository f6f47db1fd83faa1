# backend/retrofit/main.py
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .core.config import settings

# ---- Routers ----
from .api.lighting_audits import router as lighting_audits_router
from .api.audit_areas import router as audit_areas_router
from .api.audit_runtime import router as audit_runtime_router
from .api.incentives_api import router as incentives_router

logging.basicConfig(
    level=getattr(logging, str(settings.LOG_LEVEL).upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(title="Lighting Retrofit API")

# ---------------------------
# CORS (frontend dev servers)
# ---------------------------
DEFAULT_CORS_ORIGINS = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]


def _resolve_allowed_origins() -> list[str]:
    # CORS_ALLOW_ORIGINS may be a comma separated string or a list
    raw = getattr(settings, "CORS_ALLOW_ORIGINS", None)
    if not raw:
        return DEFAULT_CORS_ORIGINS
    if isinstance(raw, (list, tuple)):
        vals = [str(x).strip().rstrip("/") for x in raw if str(x).strip()]
    else:
        vals = [s.strip().rstrip("/") for s in str(raw).split(",") if s.strip()]
    # a bare "*" cannot be combined with credentials
    if len(vals) == 1 and vals[0] == "*":
        return DEFAULT_CORS_ORIGINS
    return vals or DEFAULT_CORS_ORIGINS


ALLOW_ORIGINS = _resolve_allowed_origins()

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------
# Health
# ---------------------------
@app.get("/health", tags=["system"])
def health():
    return {"status": "ok"}


# ---------------------------
# Routers
# ---------------------------
app.include_router(audit_runtime_router)      # PREVIEW + RECALCULATE (before /{audit_id} routes)
app.include_router(lighting_audits_router)    # AUDITS (CRUD + status)
app.include_router(audit_areas_router)        # AREAS (mutations trigger recalculation)
app.include_router(incentives_router)         # PROVIDERS, MEASURES, REBATE RATES
