"""
Slot Booking System

A FastAPI-based service where staff publish bounded-capacity time slots,
students book and cancel appointments against them, and admins manage
accounts and bookings.
"""

__version__ = "1.0.0"
