from typing import Optional

from fastapi import HTTPException, status


class AppError(HTTPException):
    """
    HTTPException that can carry a machine-readable code.

    Rendered by the handlers in main.py as {"error": detail, "code": code}.
    """

    def __init__(
        self,
        status_code: int,
        detail: str,
        code: Optional[str] = None,
        headers: Optional[dict] = None,
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.code = code


class ConfigurationError(AppError):
    """A required setting (signing secret, database URL, API key) is missing"""

    def __init__(self, detail: str):
        super().__init__(status.HTTP_503_SERVICE_UNAVAILABLE, detail)


class OperationTimeoutError(Exception):
    """
    Raised when an operation loses the race against its timer.

    Kept separate from HTTPException so callers decide the response (504
    for auth) and never confuse it with a driver timeout.
    """

    def __init__(self, operation_name: str, timeout_seconds: float):
        self.operation_name = operation_name
        self.timeout_seconds = timeout_seconds
        timeout_ms = int(timeout_seconds * 1000)
        super().__init__(
            f"{operation_name} timed out after {timeout_ms}ms. The server took too "
            "long to process your request. This usually means the database is "
            "paused or waking up. Please wait a few seconds and try again."
        )
