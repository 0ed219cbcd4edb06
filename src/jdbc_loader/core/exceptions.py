from __future__ import annotations

from src.jdbc_loader.core.enums import LoadFailureCause


class PipelineError(Exception):
    """Base error of a load job. Every subclass is terminal for the run."""


class CredentialDecryptionError(PipelineError):
    """A credential field could not be decoded or decrypted."""

    def __init__(self, field: str, reason: str) -> None:
        super().__init__(f"Cannot decrypt {field!r}: {reason}")
        self.field = field
        self.reason = reason


class InvalidDriverError(PipelineError, ValueError):
    """Driver name is not allowed by policy or cannot be loaded."""

    def __init__(self, driver: str, reason: str) -> None:
        super().__init__(f"Driver {driver!r} rejected: {reason}")
        self.driver = driver
        self.reason = reason


class InvalidConnectionUrlError(PipelineError, ValueError):
    pass


class MalformedPropertiesError(PipelineError, ValueError):
    def __init__(self, segment: str) -> None:
        super().__init__(
            f"Malformed connection property {segment!r}: expected key=value"
        )
        self.segment = segment


class SourceConnectionError(PipelineError, ConnectionError):
    """Source connection could not be acquired."""

    def __init__(self, driver: str, host: str | None, cause: BaseException) -> None:
        super().__init__(
            f"Cannot connect to source driver={driver} host={host or '-'}: {cause!r}"
        )
        self.driver = driver
        self.host = host


class UnsupportedTypeError(PipelineError):
    def __init__(self, column: str, sql_type: str) -> None:
        super().__init__(
            f"Column {column!r} has unsupported source type {sql_type!r}"
        )
        self.column = column
        self.sql_type = sql_type


class SchemaMismatchError(PipelineError):
    def __init__(self, field: str, source_type: str, destination_type: str) -> None:
        super().__init__(
            f"Field {field!r}: cannot coerce {source_type} to {destination_type}"
        )
        self.field = field
        self.source_type = source_type
        self.destination_type = destination_type


class ExtractionError(PipelineError):
    """Source query failed before or during streaming."""

    def __init__(self, message: str, *, rows_emitted: int = 0) -> None:
        super().__init__(f"{message} (rows_emitted={rows_emitted})")
        self.rows_emitted = rows_emitted


class LoadError(PipelineError):
    def __init__(
        self,
        table: str,
        cause: LoadFailureCause,
        message: str,
    ) -> None:
        super().__init__(f"Load into {table!r} failed [{cause.value}]: {message}")
        self.table = table
        self.cause = cause


class JobCancelledError(PipelineError):
    """Cancellation observed; no commit may follow."""
