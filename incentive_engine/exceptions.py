"""
Custom exceptions for the incentive engine.
Provides specific exception types for better error handling and recovery.
"""


class IncentiveEngineException(Exception):
    """Base exception for the incentive engine"""
    pass


class ValidationException(IncentiveEngineException):
    """Raised when data validation fails"""
    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(f"Validation error for {field}: {message}")


class InvalidDueDateException(ValidationException):
    """Raised when a skill sprint due date is unparsable or not after assignment"""
    def __init__(self, value):
        self.value = value
        super().__init__("due_at", f"invalid due date {value!r}")


class ConfirmationRequiredException(ValidationException):
    """Raised when a destructive batch operation is called without confirm"""
    def __init__(self, operation: str):
        self.operation = operation
        super().__init__("confirm", f"confirmation required for {operation}")


class NotFoundException(IncentiveEngineException):
    """Raised when a referenced entity does not exist"""
    entity = "Entity"

    def __init__(self, entity_id):
        self.entity_id = entity_id
        super().__init__(f"{self.entity} with ID {entity_id} not found")


class StudentNotFoundException(NotFoundException):
    entity = "Student"


class BadgeNotFoundException(NotFoundException):
    entity = "Badge"


class AssignmentNotFoundException(NotFoundException):
    entity = "Skill sprint assignment"


class LedgerEntryNotFoundException(NotFoundException):
    entity = "Ledger entry"


class AssignmentDisabledException(IncentiveEngineException):
    """Raised when completing a disabled skill sprint"""
    def __init__(self, assignment_id: int):
        self.assignment_id = assignment_id
        super().__init__(f"Skill sprint assignment {assignment_id} is disabled")


class PermissionDeniedException(IncentiveEngineException):
    """Raised when the supplied actor lacks a required role"""
    def __init__(self, required_role: str):
        self.required_role = required_role
        super().__init__(f"Role '{required_role}' required")


class StorageException(IncentiveEngineException):
    """Raised when database operations fail"""
    def __init__(self, operation: str, details: str):
        self.operation = operation
        self.details = details
        super().__init__(f"Database {operation} failed: {details}")
