"""Routers package — each module exposes `router` (APIRouter)."""
