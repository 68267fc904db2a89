class AppError(Exception):
    """Base class for all engine exceptions."""
    def __init__(self, message: str, status_code: int = 500, details: dict = None):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)

class CatalogValidationError(AppError):
    """Raised when input data references entities the catalog does not contain."""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=422, details=details)

class SchedulerError(AppError):
    """Raised when the optimizer breaks one of its own invariants. Never retried."""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=500, details=details)

class JobNotFoundError(AppError):
    """Raised when a background optimization job id is unknown."""
    def __init__(self, job_id: str):
        super().__init__(f"Optimization job with id {job_id} not found", status_code=404)

class ConfigurationError(AppError):
    """Raised when engine configuration is invalid."""
    def __init__(self, message: str):
        super().__init__(message, status_code=500)
