import logging
from typing import Any, Dict, Optional

store_error_logger = logging.getLogger("excelview.store_errors")


class ExcelViewError(Exception):
    """Base class for all application errors"""


class ConfigurationError(ExcelViewError):
    """Required settings are missing at startup"""


class ParseError(ExcelViewError):
    """The imported file could not be turned into a table"""


class EmptySheetError(ParseError):
    def __init__(self, file_name: str = ""):
        self.file_name = file_name
        super().__init__(f"The first sheet of '{file_name}' is empty")


class UnreadableFileError(ParseError):
    def __init__(self, file_name: str = "", reason: str = ""):
        self.file_name = file_name
        self.reason = reason
        message = f"Could not read '{file_name}' as a spreadsheet"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class AuthRequiredError(ExcelViewError):
    def __init__(self, message: str = "An authenticated user is required"):
        super().__init__(message)


class WriteError(ExcelViewError):
    """A store write or delete was rejected"""

    def __init__(
        self,
        path: str,
        operation: str,
        payload_shape: Optional[Dict[str, Any]] = None,
        message: str = "",
    ):
        self.path = path
        self.operation = operation
        self.payload_shape = payload_shape or {}
        super().__init__(message or f"Store {operation} failed at {path}")

    def context(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "operation": self.operation,
            "payload_shape": self.payload_shape,
        }


class PermissionDeniedError(WriteError):
    def __init__(self, path: str, operation: str, payload_shape=None, message: str = ""):
        super().__init__(
            path,
            operation,
            payload_shape,
            message or f"Permission denied for {operation} at {path}",
        )


class SyncError(ExcelViewError):
    """A bulk upload or delete stopped part way"""

    def __init__(self, file_id: str, message: str):
        self.file_id = file_id
        super().__init__(message)

    @property
    def permission_denied(self) -> bool:
        return isinstance(self.__cause__, PermissionDeniedError)


class UploadFailedError(SyncError):
    def __init__(self, file_id: str, rows_written: int, message: str = ""):
        self.rows_written = rows_written
        super().__init__(
            file_id,
            message or f"Upload of file {file_id} failed after {rows_written} rows",
        )


class DeleteFailedError(SyncError):
    def __init__(self, file_id: str, rows_deleted: int, message: str = ""):
        self.rows_deleted = rows_deleted
        super().__init__(
            file_id,
            message or f"Delete of file {file_id} failed after {rows_deleted} rows",
        )


def report_store_error(exc: WriteError) -> None:
    """Emit a structured event for a rejected store operation.

    Permission failures and other write failures get distinct event names so
    monitoring can tell authorization problems apart from transient ones.
    """
    event = "permission_denied" if isinstance(exc, PermissionDeniedError) else "write_failed"
    store_error_logger.error(
        "%s: %s %s", event, exc.operation, exc.path,
        extra={"event": event, **exc.context()},
    )
