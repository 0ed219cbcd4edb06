from .kms import AwsKmsClient
from .staging import LocalStagingStorage, MinioStagingStorage, resolve_staging
from .warehouse import resolve_warehouse
from .warehouse_es import ElasticsearchWarehouse
from .warehouse_sql import SqlWarehouse

__all__ = [
    "AwsKmsClient",
    "LocalStagingStorage",
    "MinioStagingStorage",
    "resolve_staging",
    "resolve_warehouse",
    "ElasticsearchWarehouse",
    "SqlWarehouse",
]
