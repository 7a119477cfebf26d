"""
Pydantic schemas for API request bodies
"""
from typing import Any, Optional

from pydantic import BaseModel, Field


# ===== STAGE RECORD SCHEMAS =====

class StageRecordCreate(BaseModel):
    """New stage record; the backend stamps timestamp and date"""
    pickerID: int
    pickerName: str
    branchNumber: int
    branchName: str
    pallets: int = 0
    boxes: int = 0
    rolls: int = 0
    # Advanced fields
    fiberglass: Optional[int] = None
    waterHeaters: Optional[int] = None
    waterRights: Optional[int] = None
    boxTub: Optional[int] = None


class StageRecordFieldUpdate(BaseModel):
    """Single field change on an existing record"""
    field: str = Field(min_length=1)
    value: Any


# ===== ADMIN SCHEMAS =====

class PinVerifyRequest(BaseModel):
    """Admin PIN check"""
    pin: str = Field(min_length=1)
