from .connection import ConnectionConfig, ResolvedConnection, parse_properties
from .extractor import QueryExtractor, SourceRow, SourceValue
from .load import LoadCoordinator, LoadResult, StagedBatch
from .schema_mapper import DestinationRecord, SchemaMapper
from .secrets import SecretResolver

__all__ = [
    "ConnectionConfig",
    "ResolvedConnection",
    "parse_properties",
    "QueryExtractor",
    "SourceRow",
    "SourceValue",
    "LoadCoordinator",
    "LoadResult",
    "StagedBatch",
    "DestinationRecord",
    "SchemaMapper",
    "SecretResolver",
]
