# backend/config.py
# Environment-aware configuration for the project tracking console

import os
from typing import Literal

# Environment detection
ENV: Literal["dev", "staging", "prod"] = os.environ.get("ENV", "dev")  # type: ignore
IS_DEV = (ENV == "dev")
IS_STAGING = (ENV == "staging")
IS_PROD = (ENV == "prod")

# Bearer token verification (tokens are issued by the external auth provider)
SECRET_KEY = os.environ.get("SECRET_KEY", "your-secret-key-here")  # TODO: Use secure key in prod
ALGORITHM = "HS256"

# Document store configuration
# DATABASE_URL takes precedence (managed Postgres in staging/prod)
# Falls back to a local SQLite file for development
DATABASE_URL = os.environ.get("DATABASE_URL", "").strip()
DATABASE_PATH = os.environ.get("DATABASE_PATH", "tracker.db")

# Role attribute value on users/{uid} that grants the admin capability
ADMIN_ROLE = os.environ.get("ADMIN_ROLE", "admin")

# Thread pool size for the concurrent detail-view loads
SESSION_LOAD_WORKERS = int(os.environ.get("SESSION_LOAD_WORKERS", "3"))

# CORS origins (expand for staging/prod)
CORS_ORIGINS = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]

if IS_STAGING or IS_PROD:
    extra_origins = os.environ.get("CORS_ORIGINS", "")
    if extra_origins:
        CORS_ORIGINS.extend(o.strip() for o in extra_origins.split(",") if o.strip())

# Database type detection
IS_POSTGRES = DATABASE_URL.startswith(("postgres://", "postgresql://"))
IS_SQLITE = not IS_POSTGRES

print(f"[CONFIG] Environment: {ENV}")
print(f"[CONFIG] Document store: {'PostgreSQL' if IS_POSTGRES else 'SQLite (local dev)'}")
print(f"[CONFIG] Admin role: {ADMIN_ROLE}")
