class AppError(Exception):
    """Base class for all application exceptions."""
    def __init__(self, message: str, status_code: int = 500, details: dict = None):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)

class NotFoundError(AppError):
    """Raised when a referenced entity id does not resolve."""
    def __init__(self, resource_type: str, resource_id: str):
        super().__init__(
            f"{resource_type} with id {resource_id} not found",
            status_code=404,
            details={"resource_type": resource_type, "resource_id": resource_id},
        )
        self.resource_type = resource_type
        self.resource_id = resource_id

class InvalidTimeFormat(AppError):
    def __init__(self, value: str):
        super().__init__(f"Invalid time format '{value}'. Use HH:MM", status_code=400, details={"value": value})

class InvalidRange(AppError):
    def __init__(self, start: str, end: str):
        super().__init__(
            f"End time {end} must be after start time {start}",
            status_code=400,
            details={"start": start, "end": end},
        )

class InvalidSubstitute(AppError):
    """Raised when a substitute equals the original faculty or is not a faculty account."""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=400, details=details)

class InvalidReference(AppError):
    """Raised when a required reference (subject, class, faculty) is missing or of the wrong kind."""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=400, details=details)

class SchedulingConflict(AppError):
    def __init__(self, faculty_id: str, conflicting_id: str):
        super().__init__(
            "Faculty member has a conflicting commitment at this time",
            status_code=409,
            details={"faculty_id": faculty_id, "conflicting_id": conflicting_id},
        )
        self.faculty_id = faculty_id
        self.conflicting_id = conflicting_id

class IllegalTransition(AppError):
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=409, details=details)

class RegistrationRefused(AppError):
    """Raised when a student cannot join or leave a special class."""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=409, details=details)

class Unauthorized(AppError):
    def __init__(self, action: str, resource: str | None = None):
        super().__init__(
            f"Not allowed to perform {action}",
            status_code=403,
            details={"action": action, "resource": resource},
        )

class StorageFailure(AppError):
    """Raised when the persistence layer fails; callers decide whether to retry."""
    def __init__(self, message: str = "Storage operation failed"):
        super().__init__(message, status_code=503)
