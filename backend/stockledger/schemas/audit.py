"""Inventory audit schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from stockledger.models.audit import AuditStatus


class AuditRecord(BaseModel):
    """Stored audit."""

    id: int
    user_id: str
    user_name: str = ""
    product_id: int
    expected_count: int
    actual_count: int
    difference: int
    audit_date: datetime
    notes: Optional[str] = None
    status: AuditStatus
    movement_id: Optional[int] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class AuditCreate(BaseModel):
    """Physical count submission."""

    product_id: int
    expected_count: int
    actual_count: int
    notes: Optional[str] = Field(None, max_length=2000)
