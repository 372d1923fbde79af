"""Custom exception classes and error handling."""

from typing import Any

from fastapi import HTTPException, status


class AppException(HTTPException):
    """Base application exception."""

    def __init__(
        self,
        status_code: int,
        code: str,
        message: str,
        details: dict[str, Any] | None = None,
    ):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(
            status_code=status_code,
            detail={
                "success": False,
                "error": {
                    "code": code,
                    "message": message,
                    "details": details or {},
                },
            },
        )

    def __str__(self) -> str:
        return self.message


class ValidationError(AppException):
    """Data validation failed."""

    def __init__(
        self,
        message: str = "Validation error",
        details: dict[str, Any] | None = None,
        code: str = "VALIDATION_ERROR",
    ):
        super().__init__(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            code=code,
            message=message,
            details=details,
        )


class MarksOutOfRangeError(ValidationError):
    """Marks are not a number in [0, 100]."""

    def __init__(self, value: Any, minimum: int = 0, maximum: int = 100):
        super().__init__(
            message=f"Invalid marks: {value!r}. Marks must be between {minimum} and {maximum}.",
            details={"value": str(value), "min": minimum, "max": maximum},
            code="OUT_OF_RANGE",
        )


class NotEligibleError(AppException):
    """Student is not registered for the subject."""

    def __init__(
        self,
        student_id: int,
        subject_id: int,
        reason: str,
    ):
        super().__init__(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            code="NOT_ELIGIBLE",
            message=reason,
            details={"student_id": student_id, "subject_id": subject_id},
        )
        self.student_id = student_id
        self.subject_id = subject_id
        self.reason = reason


class NotFoundError(AppException):
    """Resource not found."""

    def __init__(
        self,
        resource: str = "Resource",
        identifier: str | None = None,
    ):
        details = {}
        if identifier:
            details["identifier"] = identifier
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            code="NOT_FOUND",
            message=f"{resource} not found",
            details=details,
        )


class ConcurrencyConflictError(AppException):
    """Another writer changed the same result first. Safe to retry."""

    def __init__(
        self,
        message: str = "Result was modified concurrently",
        details: dict[str, Any] | None = None,
    ):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            code="CONCURRENCY_CONFLICT",
            message=message,
            details={**(details or {}), "retriable": True},
        )


class PersistenceError(AppException):
    """The backing store failed; nothing was committed for the operation."""

    def __init__(
        self,
        message: str = "Results store unavailable",
        details: dict[str, Any] | None = None,
    ):
        super().__init__(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            code="STORE_UNAVAILABLE",
            message=message,
            details=details,
        )


class UploadError(AppException):
    """File upload failed."""

    def __init__(
        self,
        message: str = "Upload failed",
        details: dict[str, Any] | None = None,
    ):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            code="UPLOAD_FAILED",
            message=message,
            details=details,
        )


class InternalError(AppException):
    """Internal server error."""

    def __init__(
        self,
        message: str = "Internal server error",
        details: dict[str, Any] | None = None,
    ):
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            code="INTERNAL_ERROR",
            message=message,
            details=details,
        )


class ComputationCancelled(Exception):
    """A read-only report computation was aborted by its caller."""
