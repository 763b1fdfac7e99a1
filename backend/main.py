# ---------------------------------------------------------
# backend/main.py
# Project Tracker - Admin Console Backend
#
# Run: uvicorn backend.main:app --reload (from repo root)
#
# - FastAPI + SQLAlchemy document store (SQLite locally, Postgres via DATABASE_URL)
# - /api/projects                 : list / create projects
# - /api/projects/{owner}/{id}    : fetch / save draft / delete
# - /api/projects/.../comments    : list / add / delete / acknowledge
# - /auth/capabilities            : viewer's role + admin capability
# - /admin/set_role               : DEV-only role assignment
# ---------------------------------------------------------

from __future__ import annotations

from typing import Any, Dict

from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

# Import local modules (robust fallback for different run contexts)
try:
    from backend.auth_context import RequestContext, require_capability_context
    from backend.config import CORS_ORIGINS, IS_DEV, IS_PROD
    from backend.models import UserRole
    from backend.routes_projects import router as projects_router
    from backend.store import DocumentStore, StoreError, get_store, user_path
except ModuleNotFoundError:
    from auth_context import RequestContext, require_capability_context
    from config import CORS_ORIGINS, IS_DEV, IS_PROD
    from models import UserRole
    from routes_projects import router as projects_router
    from store import DocumentStore, StoreError, get_store, user_path


# ---------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------
app = FastAPI(title="Project Tracker Backend", version="0.1")

# CORS configuration from config module
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS if IS_PROD else ["*"],  # Restrict origins in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(projects_router)


# ---------------------------------------------------------
# Routes
# ---------------------------------------------------------
@app.get("/health")
def health() -> Dict[str, str]:
    return {"status": "ok"}


@app.get("/auth/capabilities")
def get_capabilities(ctx: RequestContext = Depends(require_capability_context)) -> Dict[str, Any]:
    """
    Expose the viewer's admin capability to the frontend for UI guardrails
    (edit/delete/acknowledge affordances). Read-only introspection.
    """
    return {
        "uid": ctx.viewer.uid,
        "email": ctx.viewer.email,
        "role": ctx.capability.role,
        "is_admin": ctx.capability.is_admin,
    }


@app.post("/admin/set_role")
def admin_set_role(uid: str, role: str, store: DocumentStore = Depends(get_store)):
    """
    DEV-only endpoint to change a user's role for permission testing.
    Production roles are provisioned directly in the users collection.
    """
    if not IS_DEV:
        raise HTTPException(status_code=403, detail="Admin endpoints only available in dev")

    try:
        role_enum = UserRole(role)
    except ValueError:
        valid_roles = [r.value for r in UserRole]
        raise HTTPException(
            status_code=400,
            detail=f"Invalid role name. Valid options: {valid_roles}"
        )

    try:
        existing = store.get_record(user_path(uid)) or {}
        store.set_record(user_path(uid), {**existing, "role": role_enum.value})
    except StoreError as e:
        print(f"[ADMIN] Store error on set_role: {e}")
        raise HTTPException(status_code=500, detail="Database error")

    print(f"[ADMIN] Set user {uid} role to {role_enum.value}")
    return {"status": "ok", "uid": uid, "role": role_enum.value}
