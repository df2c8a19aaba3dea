from .user import User
from .appointment import Appointment, AppointmentStatus
from .time_slot import TimeSlot

__all__ = ["User", "Appointment", "AppointmentStatus", "TimeSlot"]
