"""
schemas/sync.py — Response envelope for sync endpoints

Called by: routers/sync.py
Depends on: pydantic
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class SyncCounts(BaseModel):
    model_config = ConfigDict(extra="forbid")

    totalCount: int = 0
    addedCount: int = 0
    updatedCount: int = 0


class SyncResponse(BaseModel):
    success: bool = True
    message: str
    data: SyncCounts | dict[str, SyncCounts]
