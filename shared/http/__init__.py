"""HTTP helpers and exception definitions used across services."""

from .errors import (
    ProblemDetails,
    ProblemDetailsException,
    RecordNotFoundProblem,
    RecordStoreUnavailableError,
    UploadRejectedError,
    register_exception_handlers,
    render_problem,
)

__all__ = [
    "ProblemDetails",
    "ProblemDetailsException",
    "RecordNotFoundProblem",
    "RecordStoreUnavailableError",
    "UploadRejectedError",
    "register_exception_handlers",
    "render_problem",
]
