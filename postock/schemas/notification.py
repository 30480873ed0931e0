# postock/schemas/notification.py
from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict


class NotificationOut(BaseModel):
    id: int
    po_id: int
    message: str
    read: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class MarkReadOut(BaseModel):
    updated: int
