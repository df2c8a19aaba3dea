from sqlalchemy import Column, Integer, ForeignKey, DateTime, Index, Enum as SQLEnum, text
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
import enum

from ..core.database import Base

class AppointmentStatus(str, enum.Enum):
    BOOKED = "booked"
    CANCELLED = "cancelled"

class Appointment(Base):
    __tablename__ = "appointments"
    __table_args__ = (
        # At most one active booking per student and slot
        Index(
            "uq_appointments_active_booking",
            "student_id",
            "slot_id",
            unique=True,
            sqlite_where=text("status = 'booked'"),
            postgresql_where=text("status = 'booked'"),
        ),
    )

    id = Column(Integer, primary_key=True, index=True)

    # Relationships
    student_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    slot_id = Column(Integer, ForeignKey("time_slots.id"), nullable=False, index=True)

    status = Column(
        SQLEnum(
            AppointmentStatus,
            values_callable=lambda statuses: [s.value for s in statuses],
        ),
        nullable=False,
        default=AppointmentStatus.BOOKED,
    )

    # Tracking
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    # Relationships
    student = relationship("User", back_populates="appointments")
    slot = relationship("TimeSlot", back_populates="appointments")

    def __repr__(self):
        return f"<Appointment(id={self.id}, student_id={self.student_id}, slot_id={self.slot_id}, status='{self.status}')>"
