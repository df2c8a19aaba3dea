from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import List

from ...core.database import get_db
from ...core.security import Caller
from ...api.deps import get_staff_caller
from ...services.booking_ledger import BookingLedger
from ...schemas.scheduling import TimeSlotCreate, TimeSlotResponse, MessageResponse

router = APIRouter(prefix="/timeslots", tags=["Time Slots"])

# Ledger routes are plain functions so FastAPI runs them in its threadpool;
# the ledger blocks on per-slot locks.

@router.get("", response_model=List[TimeSlotResponse])
def list_time_slots(db: Session = Depends(get_db)):
    """List all time slots with their current booking counts."""
    slots = BookingLedger(db).list_slots()
    return [TimeSlotResponse.model_validate(slot) for slot in slots]

@router.post("", response_model=TimeSlotResponse, status_code=status.HTTP_201_CREATED)
def create_time_slot(
    slot_data: TimeSlotCreate,
    caller: Caller = Depends(get_staff_caller),
    db: Session = Depends(get_db)
):
    """Publish a time slot (staff/admin). Admins may set the owner via staff_id."""
    slot = BookingLedger(db).create_slot(
        caller,
        title=slot_data.title,
        date=slot_data.date,
        start_time=slot_data.start_time,
        end_time=slot_data.end_time,
        max_bookings=slot_data.max_bookings,
        staff_id=slot_data.staff_id,
    )
    return TimeSlotResponse.model_validate(slot)

@router.delete("/{slot_id}", response_model=MessageResponse)
def delete_time_slot(
    slot_id: int,
    caller: Caller = Depends(get_staff_caller),
    db: Session = Depends(get_db)
):
    """Delete a time slot and all of its appointments (owner or admin)."""
    BookingLedger(db).delete_slot(caller, slot_id)
    return {"message": "Time slot deleted"}
