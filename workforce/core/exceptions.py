from typing import Any, List, Optional


class DomainError(Exception):
    """Base exception for business rule violations."""


class ValidationError(DomainError):
    """Raised when input data is malformed. Nothing is persisted."""


class GuardViolation(DomainError):
    """Raised when a state transition guard rejects the request."""


class OutOfRangeError(GuardViolation):
    def __init__(self, distance: float, radius: float):
        self.distance = distance
        self.radius = radius
        super().__init__(
            f"You must be within {round(radius)}m of the office to check in. "
            f"You are currently {round(distance)}m away."
        )


class NonWorkingDayError(GuardViolation):
    def __init__(self, weekday: str):
        self.weekday = weekday
        super().__init__(f"{weekday.capitalize()} is not a working day.")


class DuplicateCheckInError(GuardViolation):
    def __init__(self, message: str = "You have already checked in today"):
        super().__init__(message)


class RecordNotFoundError(GuardViolation):
    def __init__(self, message: str = "Attendance record not found"):
        super().__init__(message)


class NotCheckedInError(RecordNotFoundError):
    def __init__(self, message: str = "No active check-in found for today. Please check in first."):
        super().__init__(message)


class AlreadyCheckedOutError(GuardViolation):
    def __init__(self, message: str = "You have already checked out today"):
        super().__init__(message)


class CollaboratorFailure(Exception):
    """Record store or delivery channel failure."""


class StoreError(CollaboratorFailure):
    def __init__(self, message: str, *, table: Optional[str] = None):
        self.table = table
        super().__init__(message)


class ConflictError(StoreError):
    """Uniqueness constraint violated on insert."""


class DeliveryError(CollaboratorFailure):
    pass


class BatchInsertError(CollaboratorFailure):
    def __init__(self, chunk_index: int, inserted: List[Any], cause: Exception):
        self.chunk_index = chunk_index
        self.inserted = inserted
        self.cause = cause
        super().__init__(f"Batch insert failed at chunk {chunk_index}: {cause}")
