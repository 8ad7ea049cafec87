"""
Schemas for reminder records and pending notifications
"""
from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, field_validator

from .constants import MIN_INTERVAL, MAX_INTERVAL


class ReminderCreate(BaseModel):
    """Schema for creating a reminder"""
    user_id: str
    type: str = Field(..., min_length=1)
    interval_minutes: Optional[int] = Field(default=None, ge=MIN_INTERVAL, le=MAX_INTERVAL)
    is_active: bool = True

    @field_validator("user_id", mode="before")
    @classmethod
    def coerce_user_id(cls, v: Any) -> Any:
        # The dashboard sends numeric ids; the store keys everything by string
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v


class ReminderUpdate(BaseModel):
    """Partial update: interval change and/or pause/resume"""
    interval_minutes: Optional[int] = Field(default=None, ge=MIN_INTERVAL, le=MAX_INTERVAL)
    is_active: Optional[bool] = None


class Reminder(BaseModel):
    """A persisted reminder record.

    ``interval_minutes`` is not range-checked here; the scheduler rejects
    out-of-range values when the record is started.
    """
    id: int
    user_id: str
    type: str
    interval_minutes: int
    is_active: bool = True
    created_at: datetime
    updated_at: datetime

    def to_payload(self) -> Dict[str, Any]:
        """Fields forwarded to the notification sink when the reminder fires."""
        return {
            "reminder_id": self.id,
            "user_id": self.user_id,
            "reminder_type": self.type,
            "interval_minutes": self.interval_minutes,
        }


class ReminderRead(Reminder):
    scheduled: bool = False


class ResyncResult(BaseModel):
    started: int
    active_sessions: List[str]


class PendingNotification(BaseModel):
    id: int
    user_id: str
    reminder_id: Optional[int] = None
    type: str
    message: str
    created_at: datetime
    sent: bool = False


class PendingNotificationList(BaseModel):
    success: bool = True
    pending_notifications: List[PendingNotification]
    count: int
    message: Optional[str] = None
