from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, CheckConstraint
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from ..core.database import Base
from .appointment import AppointmentStatus

class TimeSlot(Base):
    __tablename__ = "time_slots"
    __table_args__ = (
        CheckConstraint("max_bookings >= 1", name="ck_time_slots_max_bookings_positive"),
    )

    id = Column(Integer, primary_key=True, index=True)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    # Slot details (date and times are stored exactly as submitted)
    title = Column(String(255), nullable=False)
    date = Column(String(50), nullable=False)
    start_time = Column(String(50), nullable=False)
    end_time = Column(String(50), nullable=False)
    max_bookings = Column(Integer, nullable=False, default=1)

    # Timestamps
    created_at = Column(DateTime, server_default=func.now())

    # Relationships
    owner = relationship("User", back_populates="time_slots")
    appointments = relationship("Appointment", back_populates="slot", passive_deletes=True)

    @property
    def current_bookings(self) -> int:
        return sum(
            1 for appointment in self.appointments
            if appointment.status == AppointmentStatus.BOOKED
        )

    def __repr__(self):
        return f"<TimeSlot(id={self.id}, title='{self.title}', date='{self.date}', max_bookings={self.max_bookings})>"
