from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from src.jdbc_loader.core.constants import (
    CONNECTION_PROPERTIES_RE,
    CONNECTION_URL_RE,
    DEFAULT_BATCH_SIZE,
    ES_ALIAS_RE,
    ES_TARGET_PREFIX,
    JDBC_PREFIX,
    MAX_BATCH_SIZE,
    OUTPUT_TABLE_RE,
    is_base64_shaped,
)
from src.jdbc_loader.core.enums import LoadMode

logger = logging.getLogger("jdbc_loader")

EncryptableField = Literal["connection_url", "username", "password"]


@dataclass(frozen=True, slots=True)
class EncryptableValue:
    """Значение, которое может прийти как plaintext или как KMS-шифротекст."""

    raw: str | None
    encrypted: bool

    def __repr__(self) -> str:
        # никогда не печатаем само значение
        state = "encrypted" if self.encrypted else "plain"
        return f"EncryptableValue(<{state}>)"


class PipelineConfig(BaseModel):
    """Параметры одного запуска загрузки JDBC -> warehouse.

    Принимает как snake_case имена, так и имена параметров исходного шаблона
    (driverJars, connectionURL, KMSEncryptionKey, ...).
    """

    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)

    driver_jars: tuple[str, ...] = Field(default=(), alias="driverJars")
    driver_class_name: str = Field(alias="driverClassName", min_length=1)
    connection_url: str = Field(alias="connectionURL", min_length=1)
    connection_properties: str | None = Field(
        default=None, alias="connectionProperties"
    )
    username: str | None = None
    password: str | None = None
    query: str = Field(min_length=1)
    output_table: str = Field(alias="outputTable")
    staging_dir: str = Field(
        alias="bigQueryLoadingTemporaryDirectory", min_length=1
    )
    kms_encryption_key: str | None = Field(default=None, alias="KMSEncryptionKey")
    use_column_alias: bool = Field(default=False, alias="useColumnAlias")
    truncate_before_write: bool = Field(default=False, alias="isTruncate")
    batch_size: int = Field(
        default=DEFAULT_BATCH_SIZE, alias="batchSize", ge=1, le=MAX_BATCH_SIZE
    )

    @field_validator("driver_jars", mode="before")
    @classmethod
    def _split_driver_jars(cls, v):
        if isinstance(v, str):
            return tuple(p.strip() for p in v.split(",") if p.strip())
        return v

    @field_validator("driver_class_name", "query", "staging_dir")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v

    @field_validator("connection_url")
    @classmethod
    def _connection_url_shape(cls, v: str) -> str:
        v = v.strip()
        if not CONNECTION_URL_RE.fullmatch(v):
            raise ValueError(
                "connection_url must be a jdbc: URL or base64 encoded ciphertext"
            )
        return v

    @field_validator("connection_properties")
    @classmethod
    def _connection_properties_shape(cls, v: str | None) -> str | None:
        if v is None or not v.strip():
            return None
        v = v.strip()
        if not CONNECTION_PROPERTIES_RE.fullmatch(v):
            raise ValueError(
                "connection_properties must look like [propertyName=property;]*"
            )
        return v

    @field_validator("kms_encryption_key", "username", "password")
    @classmethod
    def _empty_to_none(cls, v: str | None) -> str | None:
        if v is None or not v.strip():
            return None
        return v

    @field_validator("output_table")
    @classmethod
    def _output_table_shape(cls, v: str) -> str:
        v = (v or "").strip()
        if v.startswith(ES_TARGET_PREFIX):
            alias = v.removeprefix(ES_TARGET_PREFIX).strip()
            if not ES_ALIAS_RE.fullmatch(alias):
                raise ValueError(
                    f"output_table {v!r}: expected es:<index_alias> in lower case"
                )
            return f"{ES_TARGET_PREFIX}{alias}"
        if not OUTPUT_TABLE_RE.fullmatch(v):
            raise ValueError(
                f"output_table {v!r}: expected [project:]dataset.table"
            )
        return v

    @model_validator(mode="after")
    def _plaintext_looks_plain(self) -> "PipelineConfig":
        # best-effort: ciphertext without a key will fail on connect anyway
        if self.kms_encryption_key is not None:
            return self
        if not self.connection_url.startswith(JDBC_PREFIX):
            logger.warning(
                "connection_url is not a jdbc: URL and no KMS key is configured; "
                "treating it as plaintext"
            )
        for name in ("username", "password"):
            if is_base64_shaped(getattr(self, name) or ""):
                logger.warning(
                    "%s looks like base64 ciphertext and no KMS key is configured; "
                    "treating it as plaintext",
                    name,
                )
        return self

    @property
    def load_mode(self) -> LoadMode:
        return LoadMode.TRUNCATE if self.truncate_before_write else LoadMode.APPEND

    def encryptable(self, field: EncryptableField) -> EncryptableValue:
        return EncryptableValue(
            raw=getattr(self, field),
            encrypted=self.kms_encryption_key is not None,
        )

    def __repr_args__(self):
        for name, value in super().__repr_args__():
            if name in ("password", "connection_url", "username") and value:
                yield name, "***"
            else:
                yield name, value
