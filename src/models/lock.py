"""Lock metadata written into each held lock file."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict


class LockRecord(BaseModel):
    """Who holds ``(operation, resource)`` and since when."""

    model_config = ConfigDict(frozen=True)

    operation: str
    resource: str
    pid: int
    hostname: str
    acquired_at: datetime
    token: str
