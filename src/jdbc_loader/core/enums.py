from __future__ import annotations

from enum import Enum


class CanonicalType(str, Enum):
    INTEGER = "INTEGER"
    FLOAT = "FLOAT"
    TEXT = "TEXT"
    BOOLEAN = "BOOLEAN"
    TIMESTAMP = "TIMESTAMP"
    BINARY = "BINARY"
    NULL = "NULL"


class LoadMode(str, Enum):
    APPEND = "APPEND"
    TRUNCATE = "TRUNCATE"


class LoadFailureCause(str, Enum):
    QUOTA = "QUOTA"
    SCHEMA_VALIDATION = "SCHEMA_VALIDATION"
    STAGING_IO = "STAGING_IO"
    CONNECTION = "CONNECTION"
    CANCELLED = "CANCELLED"
    UNKNOWN = "UNKNOWN"
