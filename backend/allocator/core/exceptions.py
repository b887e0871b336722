class AppError(Exception):
    """Base class for all allocation errors rendered as a structured response."""
    def __init__(self, message: str, status_code: int = 500, details: dict = None):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(AppError):
    """Raised for malformed or missing input that the body schema could not catch."""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=400, details=details)


class AuthorizationError(AppError):
    """Raised when the caller's role or ownership does not allow the operation."""
    def __init__(self, message: str = "Not authorized for this operation", details: dict = None):
        super().__init__(message, status_code=403, details=details)


class NotFoundError(AppError):
    """Raised when a requested resource is not found."""
    def __init__(self, resource_type: str, resource_id):
        super().__init__(
            f"{resource_type} with id {resource_id} not found",
            status_code=404,
            details={"resource_type": resource_type, "resource_id": resource_id},
        )


class StateError(AppError):
    """Raised when an operation is invalid for the current lifecycle state."""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=409, details=details)


class ConflictError(AppError):
    """Raised on availability, capacity or room type violations."""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=409, details=details)


class StoreError(AppError):
    """Raised when the store fails to complete a transaction."""
    def __init__(self, message: str = "Store transaction failed", details: dict = None):
        super().__init__(message, status_code=500, details=details)
