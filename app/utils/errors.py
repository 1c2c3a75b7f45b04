from typing import Any, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError


class ValidationError(Exception):
    """Custom exception for malformed or missing input."""

    def __init__(
        self,
        message: str = "Validation failed",
        error_code: str = "VALIDATION_ERROR",
        errors: Optional[List[Dict[str, Any]]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.errors = errors or []


class NotFoundError(Exception):
    """Custom exception for resource not found errors."""

    def __init__(
        self, message: str = "Resource not found", error_code: str = "NOT_FOUND"
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code


class AuthorizationError(Exception):
    """Custom exception for authorization errors."""

    def __init__(self, message: str = "Access denied", error_code: str = "AUTHZ_ERROR"):
        super().__init__(message)
        self.message = message
        self.error_code = error_code


class PersistenceError(Exception):
    """Custom exception for failures of the underlying storage."""

    def __init__(self, message: str, error_code: str = "DB_ERROR"):
        super().__init__(message)
        self.message = message
        self.error_code = error_code


def format_pydantic_errors(exc: PydanticValidationError) -> List[Dict[str, Any]]:
    """Flatten pydantic errors into field/message/type entries."""
    formatted_errors = []
    for error in exc.errors():
        field_path = " -> ".join(str(loc) for loc in error["loc"])
        formatted_errors.append(
            {
                "field": field_path,
                "message": error["msg"],
                "type": error["type"],
            }
        )
    return formatted_errors


def validation_error_from_pydantic(
    exc: PydanticValidationError, message: str, error_code: str = "VALIDATION_ERROR"
) -> ValidationError:
    return ValidationError(
        message=message, error_code=error_code, errors=format_pydantic_errors(exc)
    )
