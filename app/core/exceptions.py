from typing import Any, List, Optional

from starlette import status


class AppError(Exception):
    """
    Base error of the API.
    Rendered by the handlers in app.main as {success: false, message, errors?, data?}
    """
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: str = "Internal server error"

    def __init__(
            self,
            message: Optional[str] = None,
            errors: Optional[List[str]] = None,
            data: Any = None
    ):
        self.message = message or self.default_message
        self.errors = errors
        self.data = data
        super().__init__(self.message)


class ValidationError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Validation error"


class Unauthorized(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Access token required"


class Forbidden(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Access denied"


class NotFound(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class Conflict(AppError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "Resource already exists"
