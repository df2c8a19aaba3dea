from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import List, Optional

from ...core.database import get_db
from ...core.security import Caller
from ...api.deps import get_caller, get_admin_caller, get_staff_caller, get_student_caller
from ...services.booking_ledger import BookingLedger
from ...schemas.scheduling import (
    AppointmentAssign, AppointmentBook, AppointmentReassign,
    AppointmentResponse, MessageResponse
)

router = APIRouter(prefix="/appointments", tags=["Appointments"])

@router.get("", response_model=List[AppointmentResponse])
def list_appointments(
    student_id: Optional[int] = None,
    caller: Caller = Depends(get_caller),
    db: Session = Depends(get_db)
):
    """List appointments visible to the caller.

    Students see their own, staff see those on their slots, admins see all
    and may filter by student_id.
    """
    appointments = BookingLedger(db).list_appointments(caller, student_id=student_id)
    return [AppointmentResponse.model_validate(a) for a in appointments]

@router.post("", response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def book_appointment(
    booking: AppointmentBook,
    caller: Caller = Depends(get_student_caller),
    db: Session = Depends(get_db)
):
    """Book a time slot for the calling student."""
    appointment = BookingLedger(db).book(caller, booking.time_slot_id)
    return AppointmentResponse.model_validate(appointment)

@router.post("/assign", response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def assign_appointment(
    assignment: AppointmentAssign,
    caller: Caller = Depends(get_admin_caller),
    db: Session = Depends(get_db)
):
    """Book a time slot on behalf of a student (admin only)."""
    appointment = BookingLedger(db).admin_assign(
        caller, assignment.time_slot_id, assignment.student_id
    )
    return AppointmentResponse.model_validate(appointment)

@router.patch("/{appointment_id}/cancel", response_model=AppointmentResponse)
def cancel_appointment(
    appointment_id: int,
    caller: Caller = Depends(get_caller),
    db: Session = Depends(get_db)
):
    """Cancel an appointment. Students may only cancel their own."""
    appointment = BookingLedger(db).cancel(caller, appointment_id)
    return AppointmentResponse.model_validate(appointment)

@router.patch("/{appointment_id}/reassign", response_model=AppointmentResponse)
def reassign_appointment(
    appointment_id: int,
    reassignment: AppointmentReassign,
    caller: Caller = Depends(get_admin_caller),
    db: Session = Depends(get_db)
):
    """Move an appointment to another student (admin only)."""
    appointment = BookingLedger(db).reassign(caller, appointment_id, reassignment.student_id)
    return AppointmentResponse.model_validate(appointment)

@router.delete("/{appointment_id}", response_model=MessageResponse)
def delete_appointment(
    appointment_id: int,
    caller: Caller = Depends(get_staff_caller),
    db: Session = Depends(get_db)
):
    """Permanently delete an appointment (slot owner or admin)."""
    BookingLedger(db).delete_appointment(caller, appointment_id)
    return {"message": "Appointment deleted"}
