"""Custom exception hierarchy for the shared infrastructure layer."""


class NarrativeWorkshopException(Exception):
    """Base exception for all infrastructure errors."""
    pass


class DatabaseException(NarrativeWorkshopException):
    """Raised when database operations fail."""

    def __init__(self, operation: str, original_error: Exception):
        self.operation = operation
        self.original_error = original_error
        super().__init__(f"Database {operation} failed: {str(original_error)}")
