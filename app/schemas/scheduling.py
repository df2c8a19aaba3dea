from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional
from datetime import datetime

from ..models.appointment import AppointmentStatus
from .auth import UserSummary

class TimeSlotCreate(BaseModel):
    title: str = Field(..., max_length=255)
    date: str = Field(..., max_length=50)
    start_time: str = Field(..., max_length=50)
    end_time: str = Field(..., max_length=50)
    # Missing or null falls back to DEFAULT_MAX_BOOKINGS
    max_bookings: Optional[int] = Field(None, ge=1)
    # Admin only: create the slot on behalf of a staff member
    staff_id: Optional[int] = None

    @field_validator("title", "date", "start_time", "end_time")
    @classmethod
    def not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Field must not be blank")
        return value

class TimeSlotResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    date: str
    start_time: str
    end_time: str
    max_bookings: int
    current_bookings: int
    owner: UserSummary
    created_at: Optional[datetime] = None

class AppointmentBook(BaseModel):
    time_slot_id: int

class AppointmentAssign(BaseModel):
    time_slot_id: int
    student_id: int

class AppointmentReassign(BaseModel):
    student_id: int

class AppointmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    status: AppointmentStatus
    student: UserSummary
    slot: TimeSlotResponse
    created_at: Optional[datetime] = None

class MessageResponse(BaseModel):
    message: str
