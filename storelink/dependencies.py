"""
dependencies.py — Shared FastAPI dependencies

Business Rules:
- Admin routes are scoped to the store named in the X-Store-Id header,
  which the upstream auth layer sets after authenticating the admin
- require_store_id raises 401 when the header is missing or blank
- Background sync endpoints are called by the scheduler with a shared
  bearer token instead of a store context

Called by: routers/sync.py
Depends on: fastapi, config.py (SYNC_AUTH_TOKEN)
"""

from fastapi import Header, HTTPException

from .config import settings


def require_store_id(x_store_id: str | None = Header(default=None)) -> str:
    """Dependency: the authenticated admin's store id."""
    if not x_store_id or not x_store_id.strip():
        raise HTTPException(401, "Store context required")
    return x_store_id.strip()


def require_sync_token(authorization: str | None = Header(default=None)) -> None:
    """Dependency: scheduler calls must send `Bearer <SYNC_AUTH_TOKEN>`.

    With no token configured every call is rejected.
    """
    token = settings.sync_auth_token
    if not token or authorization != f"Bearer {token}":
        raise HTTPException(401, "Unauthorized. This endpoint is for background jobs only.")
