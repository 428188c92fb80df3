"""Smart notification schemas."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class NotificationType(str, Enum):
    LOW_STOCK = "LOW_STOCK"
    OUT_OF_STOCK = "OUT_OF_STOCK"
    EXPIRATION_WARNING = "EXPIRATION_WARNING"
    EXPIRATION_CRITICAL = "EXPIRATION_CRITICAL"
    INACTIVE_PRODUCT = "INACTIVE_PRODUCT"
    OVERSTOCK = "OVERSTOCK"
    AUDIT_DIFFERENCE = "AUDIT_DIFFERENCE"


class NotificationPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class SmartNotification(BaseModel):
    """Derived notification; ``id`` is stable for the same product and condition."""

    id: str
    type: NotificationType
    priority: NotificationPriority
    product_id: int
    product_name: str
    title: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)
    action_required: bool
    acknowledged: bool = False
    expires_at: Optional[datetime] = None
    created_at: datetime


class NotificationStats(BaseModel):
    total: int
    by_type: Dict[str, int]
    by_priority: Dict[str, int]
    unacknowledged: int
    action_required: int
