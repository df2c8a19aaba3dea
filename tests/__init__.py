"""
Test suite for the Slot Booking System.

Contains unit tests for the booking ledger and API tests for every router.
"""
import os

# Set environment for testing
os.environ["TESTING"] = "1"
