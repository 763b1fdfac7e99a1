"""
backend/auth_context.py

Shared authentication primitives for FastAPI dependency injection.

Tokens are issued by the external identity provider; this module only
verifies them and turns the claims into a Viewer:
- sub   -> Viewer.uid (stable identifier used for every ownership check)
- email -> Viewer.email (display only)

Contains:
- verify_token: JWT signature/expiry verification
- require_viewer: FastAPI dependency for auth enforcement
- require_capability_context: viewer + admin capability (one role lookup per request)
- create_access_token: helper for dev tooling and tests

This module MUST NOT import backend.main to avoid circular dependencies.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import Depends, HTTPException
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

try:
    from backend.access import SessionCapability, Viewer, load_session_capability
    from backend.config import SECRET_KEY, ALGORITHM, IS_DEV
    from backend.store import DocumentStore, get_store
except ModuleNotFoundError:
    from access import SessionCapability, Viewer, load_session_capability
    from config import SECRET_KEY, ALGORITHM, IS_DEV
    from store import DocumentStore, get_store

# Security scheme for HTTPBearer
security = HTTPBearer()


# ---------------------------------------------------------
# JWT Token Verification
# ---------------------------------------------------------
def verify_token(token: str) -> dict:
    """
    Verify JWT access token and return decoded payload.

    Raises:
        HTTPException(401): If token is expired or invalid
    """
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        return payload
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")


def create_access_token(uid: str, email: str = "", minutes: Optional[int] = 60) -> str:
    payload = {"sub": str(uid), "email": email}
    if minutes is not None:
        payload["exp"] = datetime.now(timezone.utc) + timedelta(minutes=minutes)
    return jwt.encode(payload, SECRET_KEY, algorithm=ALGORITHM)


def require_viewer(
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> Viewer:
    """
    Auth dependency for protected routes.

    Usage:
        @router.get("/protected")
        def protected_route(viewer: Viewer = Depends(require_viewer)):
            ...

    Raises:
        HTTPException(401): If token is invalid, expired, or has no subject
    """
    payload = verify_token(credentials.credentials)
    uid = payload.get("sub")

    if not uid:
        print("[AUTH] Missing uid in token payload")
        raise HTTPException(status_code=401, detail="Invalid token payload")

    return Viewer(uid=str(uid), email=payload.get("email") or "")


@dataclass(frozen=True)
class RequestContext:
    """Viewer plus the admin capability resolved for this request."""
    viewer: Viewer
    capability: SessionCapability


def require_capability_context(
    viewer: Viewer = Depends(require_viewer),
    store: DocumentStore = Depends(get_store),
) -> RequestContext:
    capability = load_session_capability(store, viewer)

    if IS_DEV:
        print(f"[AUTH] Authenticated: uid={viewer.uid}, is_admin={capability.is_admin}")

    return RequestContext(viewer=viewer, capability=capability)
