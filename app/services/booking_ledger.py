"""
Booking ledger: the only writer of time slots and appointments.

Two invariants hold for every slot at all times:

* the number of booked appointments never exceeds ``max_bookings``;
* a student holds at most one booked appointment for the slot.

Operations that can add a booking to a slot, or remove the slot itself, run
while holding that slot's in-process lock and, inside the same transaction,
a ``SELECT ... FOR UPDATE`` on the slot row. The partial unique index on
appointments rejects duplicate active bookings at the storage level.
"""
from contextlib import contextmanager
import logging
from typing import Iterable, Iterator, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload, selectinload

from ..core.config import settings
from ..core.exceptions import (
    ConflictError, ConflictReason, ForbiddenError, NotFoundError, ValidationError
)
from ..core.security import Caller, UserRole
from ..models import Appointment, AppointmentStatus, TimeSlot, User
from .slot_locks import SlotLockRegistry, SlotLockTimeout, slot_locks

logger = logging.getLogger(__name__)


class BookingLedger:
    def __init__(self, db: Session, locks: SlotLockRegistry = slot_locks):
        self.db = db
        self.locks = locks

    # Time slots

    def list_slots(self) -> List[TimeSlot]:
        """All slots with owners and appointments loaded for display."""
        return (
            self.db.query(TimeSlot)
            .options(selectinload(TimeSlot.owner), selectinload(TimeSlot.appointments))
            .order_by(TimeSlot.date, TimeSlot.start_time, TimeSlot.id)
            .all()
        )

    def create_slot(
        self,
        caller: Caller,
        title: str,
        date: str,
        start_time: str,
        end_time: str,
        max_bookings: Optional[int] = None,
        staff_id: Optional[int] = None,
    ) -> TimeSlot:
        """Publish a new slot owned by the caller, or by ``staff_id`` when an admin asks."""
        if caller.is_student:
            raise ForbiddenError("Only staff or admin users can create time slots")

        for field, value in (
            ("title", title), ("date", date), ("start_time", start_time), ("end_time", end_time)
        ):
            if value is None or not str(value).strip():
                raise ValidationError(f"{field} is required")

        if max_bookings is None:
            max_bookings = settings.DEFAULT_MAX_BOOKINGS
        if max_bookings < 1:
            raise ValidationError("max_bookings must be at least 1")

        owner_id = caller.user_id
        if staff_id is not None and staff_id != caller.user_id:
            if not caller.is_admin:
                raise ForbiddenError("Only admins can create time slots for other users")
            owner = self.db.get(User, staff_id)
            if owner is None:
                raise NotFoundError("Staff member not found")
            if owner.role == UserRole.STUDENT:
                raise ValidationError("Time slot owner must be a staff or admin user")
            owner_id = owner.id

        slot = TimeSlot(
            owner_id=owner_id,
            title=title.strip(),
            date=date.strip(),
            start_time=start_time.strip(),
            end_time=end_time.strip(),
            max_bookings=max_bookings,
        )
        self.db.add(slot)
        self.db.commit()
        self.db.refresh(slot)

        logger.info(f"Time slot {slot.id} created by user {caller.user_id} for owner {owner_id}")
        return slot

    def delete_slot(self, caller: Caller, slot_id: int) -> None:
        """Delete a slot and every appointment made against it, as one unit."""
        slot = self.db.get(TimeSlot, slot_id)
        if slot is None:
            raise NotFoundError("Time slot not found")
        self._check_slot_owner(caller, slot)

        with self._slot_scope([slot_id]):
            slot = self._lock_slot(slot_id)
            if slot is None:
                raise NotFoundError("Time slot not found")
            self._check_slot_owner(caller, slot)

            removed = (
                self.db.query(Appointment)
                .filter(Appointment.slot_id == slot_id)
                .delete()
            )
            self.db.flush()
            self.db.query(TimeSlot).filter(TimeSlot.id == slot_id).delete()
            self.db.commit()

        logger.info(
            f"Time slot {slot_id} deleted by user {caller.user_id} "
            f"with {removed} appointment(s)"
        )

    # Appointments

    def list_appointments(
        self, caller: Caller, student_id: Optional[int] = None
    ) -> List[Appointment]:
        """Appointments visible to the caller, newest first."""
        query = self.db.query(Appointment).options(
            joinedload(Appointment.student),
            joinedload(Appointment.slot).joinedload(TimeSlot.owner),
            joinedload(Appointment.slot).selectinload(TimeSlot.appointments),
        )

        if caller.is_admin:
            if student_id is not None:
                query = query.filter(Appointment.student_id == student_id)
        else:
            if student_id is not None and student_id != caller.user_id:
                raise ForbiddenError("Admin access required to view another user's appointments")
            if caller.is_student:
                query = query.filter(Appointment.student_id == caller.user_id)
            else:
                query = query.join(Appointment.slot).filter(TimeSlot.owner_id == caller.user_id)

        return query.order_by(Appointment.created_at.desc(), Appointment.id.desc()).all()

    def book(self, caller: Caller, slot_id: int) -> Appointment:
        if not caller.is_student:
            raise ForbiddenError("Only students can book appointments")
        return self._book(caller.user_id, slot_id)

    def admin_assign(self, caller: Caller, slot_id: int, student_id: int) -> Appointment:
        """Book a slot on behalf of a student."""
        if not caller.is_admin:
            raise ForbiddenError("Admin access required")
        student = self._get_student(student_id)
        appointment = self._book(student.id, slot_id)
        logger.info(f"Appointment {appointment.id} assigned by admin {caller.user_id}")
        return appointment

    def cancel(self, caller: Caller, appointment_id: int) -> Appointment:
        appointment = self._get_appointment(appointment_id)

        if caller.is_student and appointment.student_id != caller.user_id:
            raise ForbiddenError("You can only cancel your own appointments")

        if appointment.status == AppointmentStatus.CANCELLED:
            raise ConflictError(
                ConflictReason.ALREADY_CANCELLED, "Appointment is already cancelled"
            )

        # Conditional update so two concurrent cancels cannot both succeed
        updated = (
            self.db.query(Appointment)
            .filter(
                Appointment.id == appointment_id,
                Appointment.status == AppointmentStatus.BOOKED,
            )
            .update({Appointment.status: AppointmentStatus.CANCELLED}, synchronize_session=False)
        )
        if not updated:
            self.db.rollback()
            raise ConflictError(
                ConflictReason.ALREADY_CANCELLED, "Appointment is already cancelled"
            )
        self.db.commit()
        self.db.refresh(appointment)

        logger.info(f"Appointment {appointment_id} cancelled by user {caller.user_id}")
        return appointment

    def reassign(self, caller: Caller, appointment_id: int, new_student_id: int) -> Appointment:
        """Move an appointment to another student. Slot occupancy is unchanged."""
        if not caller.is_admin:
            raise ForbiddenError("Admin access required")

        appointment = self._get_appointment(appointment_id)
        student = self._get_student(new_student_id)

        with self._slot_scope([appointment.slot_id]):
            self._lock_slot(appointment.slot_id)
            appointment = self._get_appointment(appointment_id, refresh=True)

            clash = (
                self.db.query(Appointment.id)
                .filter(
                    Appointment.student_id == student.id,
                    Appointment.slot_id == appointment.slot_id,
                    Appointment.status == AppointmentStatus.BOOKED,
                    Appointment.id != appointment.id,
                )
                .first()
            )
            if clash is not None:
                logger.warning(
                    f"Reassign of appointment {appointment_id} rejected: "
                    f"student {student.id} already booked on time slot {appointment.slot_id}"
                )
                raise ConflictError(
                    ConflictReason.STUDENT_ALREADY_BOOKED,
                    "Student already has an appointment for this time slot",
                )

            previous_student_id = appointment.student_id
            appointment.student_id = student.id
            try:
                self.db.commit()
            except IntegrityError as exc:
                self.db.rollback()
                raise ConflictError(
                    ConflictReason.STUDENT_ALREADY_BOOKED,
                    "Student already has an appointment for this time slot",
                ) from exc
            self.db.refresh(appointment)

        logger.info(
            f"Appointment {appointment_id} reassigned from student {previous_student_id} "
            f"to student {student.id} by admin {caller.user_id}"
        )
        return appointment

    def delete_appointment(self, caller: Caller, appointment_id: int) -> None:
        appointment = self._get_appointment(appointment_id)

        if not caller.is_admin:
            if not caller.is_staff or appointment.slot.owner_id != caller.user_id:
                raise ForbiddenError("You can only delete appointments for your own time slots")

        self.db.delete(appointment)
        self.db.commit()

        logger.info(f"Appointment {appointment_id} deleted by user {caller.user_id}")

    # Accounts

    def delete_owner(self, user_id: int) -> None:
        """Remove an account with its bookings and the slots it owns.

        Bookings are removed before the slots they point at, and slots before
        the user record, all in one transaction.
        """
        user = self.db.get(User, user_id)
        if user is None:
            raise NotFoundError("User not found")

        slot_ids = [
            slot_id for (slot_id,) in
            self.db.query(TimeSlot.id).filter(TimeSlot.owner_id == user_id)
        ]

        with self._slot_scope(slot_ids):
            if slot_ids:
                (
                    self.db.query(TimeSlot)
                    .filter(TimeSlot.id.in_(slot_ids))
                    .order_by(TimeSlot.id)
                    .with_for_update()
                    .all()
                )

            removed = (
                self.db.query(Appointment)
                .filter(Appointment.student_id == user_id)
                .delete()
            )
            if slot_ids:
                removed += (
                    self.db.query(Appointment)
                    .filter(Appointment.slot_id.in_(slot_ids))
                    .delete()
                )
                self.db.flush()
                self.db.query(TimeSlot).filter(TimeSlot.id.in_(slot_ids)).delete()
            self.db.flush()
            self.db.query(User).filter(User.id == user_id).delete()
            self.db.commit()

        logger.info(
            f"User {user_id} removed with {len(slot_ids)} time slot(s) "
            f"and {removed} appointment(s)"
        )

    # Internals

    def _book(self, student_id: int, slot_id: int) -> Appointment:
        with self._slot_scope([slot_id]):
            slot = self._lock_slot(slot_id)
            if slot is None:
                raise NotFoundError("Time slot not found")

            existing = (
                self.db.query(Appointment.id)
                .filter(
                    Appointment.student_id == student_id,
                    Appointment.slot_id == slot_id,
                    Appointment.status == AppointmentStatus.BOOKED,
                )
                .first()
            )
            if existing is not None:
                logger.warning(
                    f"Booking rejected: student {student_id} already booked on time slot {slot_id}"
                )
                raise ConflictError(
                    ConflictReason.ALREADY_BOOKED,
                    "You already have an appointment for this time slot",
                )

            capacity = slot.max_bookings
            booked = self._booked_count(slot_id)
            if booked >= capacity:
                logger.warning(
                    f"Booking rejected: time slot {slot_id} is full ({booked}/{capacity})"
                )
                raise ConflictError(ConflictReason.SLOT_FULL, "This time slot is fully booked")

            appointment = Appointment(
                student_id=student_id,
                slot_id=slot_id,
                status=AppointmentStatus.BOOKED,
            )
            self.db.add(appointment)
            try:
                self.db.commit()
            except IntegrityError as exc:
                self.db.rollback()
                if self.db.get(TimeSlot, slot_id) is None:
                    raise NotFoundError("Time slot not found") from exc
                if self.db.get(User, student_id) is None:
                    raise NotFoundError("Student not found") from exc
                raise ConflictError(
                    ConflictReason.ALREADY_BOOKED,
                    "You already have an appointment for this time slot",
                ) from exc
            self.db.refresh(appointment)

        logger.info(
            f"Appointment {appointment.id} booked for student {student_id} "
            f"on time slot {slot_id} ({booked + 1}/{capacity})"
        )
        return appointment

    @contextmanager
    def _slot_scope(self, slot_ids: Iterable[int]) -> Iterator[None]:
        """Serialize against other writers on the same slots.

        Anything left uncommitted when the block fails is rolled back before
        the locks are released.
        """
        try:
            with self.locks.hold(slot_ids, timeout=settings.SLOT_LOCK_TIMEOUT_SECONDS):
                try:
                    yield
                except Exception:
                    self.db.rollback()
                    raise
        except SlotLockTimeout as exc:
            raise ConflictError(
                ConflictReason.SLOT_BUSY, "Time slot is busy, please try again"
            ) from exc

    def _lock_slot(self, slot_id: int) -> Optional[TimeSlot]:
        return (
            self.db.query(TimeSlot)
            .filter(TimeSlot.id == slot_id)
            .with_for_update()
            .populate_existing()
            .first()
        )

    def _booked_count(self, slot_id: int) -> int:
        return (
            self.db.query(func.count(Appointment.id))
            .filter(
                Appointment.slot_id == slot_id,
                Appointment.status == AppointmentStatus.BOOKED,
            )
            .scalar()
        )

    def _get_appointment(self, appointment_id: int, refresh: bool = False) -> Appointment:
        query = self.db.query(Appointment).filter(Appointment.id == appointment_id)
        if refresh:
            query = query.populate_existing()
        appointment = query.first()
        if appointment is None:
            raise NotFoundError("Appointment not found")
        return appointment

    def _get_student(self, student_id: int) -> User:
        student = self.db.get(User, student_id)
        if student is None or student.role != UserRole.STUDENT:
            raise NotFoundError("Student not found")
        return student

    @staticmethod
    def _check_slot_owner(caller: Caller, slot: TimeSlot) -> None:
        if caller.is_admin:
            return
        if not caller.is_staff or slot.owner_id != caller.user_id:
            raise ForbiddenError("You can only delete your own time slots")
