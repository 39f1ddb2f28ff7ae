"""Exception hierarchy shared by every record store adapter."""
from __future__ import annotations

from typing import Optional


class StoreError(RuntimeError):
    """Base class for record store failures."""


class InvalidFilterError(StoreError, ValueError):
    """Raised when a filter payload does not follow the filter protocol."""


class InvalidRecordError(StoreError, ValueError):
    """Raised when a record or update payload cannot be stored."""


class UnknownTableError(StoreError, ValueError):
    """Raised for table names outside the known set."""

    def __init__(self, name: object) -> None:
        super().__init__(f"Unknown table: {name!r}")
        self.name = name


class RecordConflictError(StoreError):
    """Raised when a write would violate a uniqueness constraint."""

    def __init__(self, table: str, fields: tuple = (), values: tuple = (), message: Optional[str] = None) -> None:
        if message is None:
            pairs = ", ".join(f"{field}={value!r}" for field, value in zip(fields, values))
            message = f"Duplicate {table} record ({pairs})"
        super().__init__(message)
        self.table = table
        self.fields = fields
        self.values = values


class RemoteStoreError(StoreError):
    """Raised when the record service is unreachable or answers with an error."""

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code

    @property
    def is_transport_error(self) -> bool:
        return self.status_code is None


class StoreUnavailableError(StoreError):
    """Raised when neither the remote nor the local store could serve a call."""

    def __init__(self, operation: str, remote_error: Optional[BaseException], local_error: BaseException) -> None:
        message = f"{operation} failed locally: {local_error}"
        if remote_error is not None:
            message = f"{operation} failed remotely ({remote_error}) and locally ({local_error})"
        super().__init__(message)
        self.operation = operation
        self.remote_error = remote_error
        self.local_error = local_error
