"""
Errors raised by the scheduling and booking engine.

Each error carries the HTTP status the API layer responds with, so handlers
never need to translate them case by case.
"""
from typing import List, Optional


class StudioError(Exception):
    status_code = 400

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class NotFoundError(StudioError):
    status_code = 404

    def __init__(self, what: str):
        super().__init__(f"{what} not found")


class InvalidIntervalError(StudioError):
    def __init__(self, message: str = "End time must be after start time"):
        super().__init__(message)


class InvalidCapacityError(StudioError):
    def __init__(self, message: str = "Capacity must be at least 1"):
        super().__init__(message)


class InvalidRoleError(StudioError):
    def __init__(self, message: str = "The selected user does not have an instructor role"):
        super().__init__(message)


class ScheduleConflictError(StudioError):
    status_code = 409

    def __init__(self, conflicts: List[dict]):
        super().__init__("Instructor has a conflicting class at this time")
        # [{"session_id", "starts_at", "ends_at"}, ...] so callers can pick another slot
        self.conflicts = conflicts


class HasActiveReservationsError(StudioError):
    status_code = 409

    def __init__(self, message: str = "Cannot delete a class that has bookings"):
        super().__init__(message)


class TooSoonToBookError(StudioError):
    def __init__(self, message: str = "Cannot book a class that starts in less than 1 hour"):
        super().__init__(message)


class AlreadyBookedError(StudioError):
    status_code = 409

    def __init__(self, message: str = "You have already booked this fitness class"):
        super().__init__(message)


class SessionFullError(StudioError):
    status_code = 409

    def __init__(self, message: str = "Booking failed – class is full"):
        super().__init__(message)


class StoreUnavailableError(StudioError):
    status_code = 503

    def __init__(self, message: str = "Booking store is unavailable, please retry"):
        super().__init__(message)


class WriteConflict(Exception):
    """The store could not take its write lock; the whole admission may be retried."""


class DuplicateReservation(Exception):
    """The store's (member, session) uniqueness constraint rejected an insert."""
