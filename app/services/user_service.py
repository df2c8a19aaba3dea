from sqlalchemy.orm import Session
from fastapi import HTTPException, status
from typing import List, Optional
import logging

from ..core.exceptions import NotFoundError, ValidationError
from ..core.security import UserRole, get_password_hash
from ..models import Appointment, AppointmentStatus, TimeSlot, User
from ..schemas.auth import UserUpdate
from .booking_ledger import BookingLedger

logger = logging.getLogger(__name__)

class UserService:
    """Account management for admins."""

    def __init__(self, db: Session):
        self.db = db

    def list_users(self, role: Optional[UserRole] = None) -> List[User]:
        query = self.db.query(User)
        if role is not None:
            query = query.filter(User.role == role)
        return query.order_by(User.name, User.id).all()

    def list_staff(self) -> List[User]:
        return self.list_users(UserRole.STAFF)

    def update_user(self, user_id: int, update: UserUpdate) -> User:
        user = self.db.get(User, user_id)
        if user is None:
            raise NotFoundError("User not found")

        changes = update.model_dump(exclude_unset=True, exclude_none=True)
        role_changed = "role" in changes and changes["role"] != user.role
        if role_changed:
            self._check_role_change(user, changes["role"])

        if "email" in changes:
            email = changes["email"].lower()
            taken = self.db.query(User).filter(
                User.email == email, User.id != user_id
            ).first()
            if taken:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="Email already registered"
                )
            user.email = email

        if "name" in changes:
            user.name = changes["name"].strip()
        if role_changed:
            user.role = changes["role"]
        if "password" in changes:
            user.password_hash = get_password_hash(changes["password"])

        self.db.commit()
        self.db.refresh(user)

        logger.info(f"User {user_id} updated: {sorted(changes)}")
        return user

    def delete_user(self, user_id: int) -> None:
        """Remove an account together with its bookings and owned slots."""
        BookingLedger(self.db).delete_owner(user_id)

    def _check_role_change(self, user: User, role: UserRole) -> None:
        """Slot owners stay staff or admin; only students hold bookings."""
        if role == UserRole.STUDENT:
            owns_slots = self.db.query(TimeSlot.id).filter(
                TimeSlot.owner_id == user.id
            ).first()
            if owns_slots is not None:
                raise ValidationError(
                    "Users who own time slots must keep a staff or admin role"
                )
        elif user.role == UserRole.STUDENT:
            has_bookings = self.db.query(Appointment.id).filter(
                Appointment.student_id == user.id,
                Appointment.status == AppointmentStatus.BOOKED,
            ).first()
            if has_bookings is not None:
                raise ValidationError(
                    "Students with booked appointments cannot change role"
                )
