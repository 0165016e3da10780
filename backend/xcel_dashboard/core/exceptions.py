"""
Error taxonomy shared by services and the HTTP layer.

Services raise these; ``xcel_dashboard.main`` renders them into the
``{success: false, message, error}`` envelope the dashboard frontend expects.
"""

from typing import List, Optional


class XcelError(Exception):
    """Base class for every domain error"""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {
            "success": False,
            "message": self.message,
            "error": self.message,
        }


class ValidationError(XcelError):
    """Bad or missing input. Never retried automatically."""

    status_code = 422

    def __init__(self, errors: List[str]):
        if isinstance(errors, str):
            errors = [errors]
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))

    def to_dict(self) -> dict:
        body = super().to_dict()
        body["errors"] = self.errors
        return body


class LimitExceeded(XcelError):
    """A selection would push a widget bucket past its display cap"""

    status_code = 409

    def __init__(self, bucket: str, current: int, maximum: int):
        self.bucket = bucket
        self.current = current
        self.max = maximum
        label = "KPI" if bucket == "kpi" else "chart"
        super().__init__(
            f"You can display at most {maximum} {label} widgets ({current} selected)"
        )

    def to_dict(self) -> dict:
        body = super().to_dict()
        body.update({"bucket": self.bucket, "current": self.current, "max": self.max})
        return body


class InvalidInput(XcelError):
    """Operation not applicable to the given files (e.g. not completed)"""

    status_code = 400


class NotFound(XcelError):
    status_code = 404


class AIUnavailable(XcelError):
    """The AI collaborator timed out, errored or returned unusable output"""

    status_code = 503

    def __init__(self, message: str, retryable: bool = True, preview_id: Optional[str] = None):
        super().__init__(message)
        self.retryable = retryable
        self.preview_id = preview_id  # Set when a combination preview can be regenerated

    def to_dict(self) -> dict:
        body = super().to_dict()
        body["retryable"] = self.retryable
        if self.preview_id:
            body["previewId"] = self.preview_id
        return body


class StorageFailure(XcelError):
    """Persisting a file or widget failed; nothing was left behind"""

    status_code = 500

    def __init__(self, message: str, cause: Optional[Exception] = None):
        super().__init__(message)
        self.cause = cause
