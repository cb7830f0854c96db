"""Platform API exceptions."""

from typing import Optional


class APIError(Exception):
    """Base exception for platform API errors."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_data: Optional[dict] = None,
    ):
        """Initialize API error.

        Args:
            message: Error message
            status_code: HTTP status code
            response_data: Response data from API
        """
        super().__init__(message)
        self.status_code = status_code
        self.response_data = response_data


class APIAuthenticationError(APIError):
    """Authentication error with a platform API."""

    pass


class APIRetryExhaustedError(APIError):
    """A transient failure persisted through every retry attempt."""

    def __init__(self, message: str, attempts: int = 0, **kwargs):
        super().__init__(message, **kwargs)
        self.attempts = attempts


class APINotFoundError(APIError):
    """Resource not found error."""

    pass


class APIPermissionError(APIError):
    """Permission denied error."""

    pass


class APIValidationError(APIError):
    """Validation error for API requests."""

    pass


class PaginationError(APIError):
    """A page of a paginated collection could not be read."""

    pass
