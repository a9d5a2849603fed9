# Application entrypoint: configures logging, middleware, startup routines, and API routers.
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging
import os

from .db import Base, engine
from .routes.auth import router as auth_router
from .routes.availability import router as availability_router
from .routes.bookings import router as bookings_router
from .routes.rooms import router as rooms_router
from .routes.tenants import router as tenants_router

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)


# Parse CORS origins from a comma-separated env var.
# Note: '*' cannot be used with allow_credentials=True; we fall back to explicit localhost origins for dev.
def _parse_cors_origins(env_value: str | None) -> list[str]:
    default_dev_origins = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    if not env_value:
        return default_dev_origins

    origins = [o.strip() for o in env_value.split(",") if o.strip()]
    if "*" in origins:
        return default_dev_origins

    return origins


app = FastAPI(title="StaySite API", version="0.1.0")
allow_list = _parse_cors_origins(os.getenv("CORS_ORIGINS"))

app.add_middleware(
    CORSMiddleware,
    allow_origins=allow_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
def on_startup() -> None:
    # For local SQLite, auto-create tables; production DBs rely on Alembic migrations.
    if os.getenv("DATABASE_URL", "sqlite:///./data.db").startswith("sqlite"):
        Base.metadata.create_all(bind=engine)


# Simple liveness endpoint for container orchestrators and uptime checks
@app.get("/healthz")
def healthz() -> dict:
    return {"status": "ok"}


# Auth lives at the root; public storefront and admin APIs are versioned
app.include_router(auth_router, prefix="", tags=["auth"])
app.include_router(tenants_router, prefix="/api/v1", tags=["tenants"])
app.include_router(rooms_router, prefix="/api/v1", tags=["rooms"])
app.include_router(availability_router, prefix="/api/v1", tags=["availability"])
app.include_router(bookings_router, prefix="/api/v1", tags=["bookings"])
