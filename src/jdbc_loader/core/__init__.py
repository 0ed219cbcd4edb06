from __future__ import annotations

from .enums import CanonicalType, LoadFailureCause, LoadMode
from .exceptions import (
    CredentialDecryptionError,
    ExtractionError,
    InvalidConnectionUrlError,
    InvalidDriverError,
    JobCancelledError,
    LoadError,
    MalformedPropertiesError,
    PipelineError,
    SchemaMismatchError,
    SourceConnectionError,
    UnsupportedTypeError,
)

__all__ = [
    "CanonicalType",
    "LoadFailureCause",
    "LoadMode",
    "CredentialDecryptionError",
    "ExtractionError",
    "InvalidConnectionUrlError",
    "InvalidDriverError",
    "JobCancelledError",
    "LoadError",
    "MalformedPropertiesError",
    "PipelineError",
    "SchemaMismatchError",
    "SourceConnectionError",
    "UnsupportedTypeError",
]
