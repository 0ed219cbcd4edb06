from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, Mapping

from sqlalchemy.dialects import registry
from sqlalchemy.engine import URL, make_url
from sqlalchemy.exc import ArgumentError, NoSuchModuleError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, create_async_engine
from sqlalchemy.pool import NullPool

from src.config import Settings, get_settings
from src.jdbc_loader.core.constants import JDBC_PREFIX, JDBC_URL_RE, is_base64_shaped
from src.jdbc_loader.core.exceptions import (
    InvalidConnectionUrlError,
    InvalidDriverError,
    MalformedPropertiesError,
    SourceConnectionError,
)

logger = logging.getLogger("jdbc_loader")


@dataclass(frozen=True, slots=True)
class ResolvedConnection:
    url: str
    username: str | None
    password: str | None
    properties: Mapping[str, str] = field(default_factory=dict)

    def __repr__(self) -> str:
        return (
            f"ResolvedConnection(url=<{len(self.url)} chars>, "
            f"username={'set' if self.username else None}, password=***, "
            f"properties={sorted(self.properties)})"
        )


def parse_properties(raw: str | None) -> dict[str, str]:
    """'k1=v1;k2=v2' -> {'k1': 'v1', 'k2': 'v2'}. Splits on the first '='."""
    props: dict[str, str] = {}
    for segment in (raw or "").split(";"):
        segment = segment.strip()
        if not segment:
            continue
        key, sep, value = segment.partition("=")
        if not sep or not key.strip():
            raise MalformedPropertiesError(segment)
        props[key.strip()] = value.strip()
    return props


def validate_url_shape(url: str) -> str:
    u = (url or "").strip()
    if JDBC_URL_RE.fullmatch(u) or is_base64_shaped(u):
        return u
    raise InvalidConnectionUrlError(
        "connection_url must be a raw jdbc: URL or base64 encoded ciphertext"
    )


class ConnectionConfig:
    """Validates driver/URL/properties and opens one source connection per extraction."""

    def __init__(
        self,
        *,
        driver: str,
        connection_url: str,
        connection_properties: str | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self.driver = (driver or "").strip()
        self.connection_url = validate_url_shape(connection_url)
        self.properties = parse_properties(connection_properties)

    @property
    def backend(self) -> str:
        return self.driver.split("+", 1)[0]

    def validate_driver(self) -> None:
        name = self.driver
        if name in self._settings.denied_source_drivers:
            raise InvalidDriverError(name, "denied by policy")
        if name not in self._settings.allowed_source_drivers:
            raise InvalidDriverError(
                name, f"not in allowed drivers {sorted(self._settings.allowed_source_drivers)}"
            )

        try:
            dialect_cls = registry.load(name.replace("+", "."))
        except NoSuchModuleError as exc:
            raise InvalidDriverError(name, "no such SQLAlchemy dialect") from exc

        if not getattr(dialect_cls, "is_async", False):
            raise InvalidDriverError(name, "dialect is not async")

        try:
            dialect_cls.import_dbapi()
        except ImportError as exc:
            raise InvalidDriverError(name, f"DBAPI module missing: {exc}") from exc

    def to_sqlalchemy_url(self, resolved: ResolvedConnection) -> URL:
        raw = resolved.url.strip()
        if not raw.startswith(JDBC_PREFIX):
            raise InvalidConnectionUrlError(
                "resolved connection_url is not a jdbc: URL (missing KMS key?)"
            )
        rest = raw.removeprefix(JDBC_PREFIX)
        if "://" not in rest:
            # jdbc:sqlite:/path/to.db
            scheme, _, path = rest.partition(":")
            rest = f"{scheme}:///{path}"

        try:
            url = make_url(rest)
        except ArgumentError as exc:
            raise InvalidConnectionUrlError(
                f"cannot parse connection_url for driver {self.driver}"
            ) from exc

        url = url.set(drivername=self.driver)
        if resolved.username is not None:
            url = url.set(username=resolved.username)
        if resolved.password is not None:
            url = url.set(password=resolved.password)
        if resolved.properties:
            url = url.update_query_dict(dict(resolved.properties))
        return url

    @asynccontextmanager
    async def open(self, resolved: ResolvedConnection) -> AsyncIterator[AsyncConnection]:
        url = self.to_sqlalchemy_url(resolved)
        engine = create_async_engine(url, poolclass=NullPool)
        try:
            try:
                conn = await engine.connect()
            except (SQLAlchemyError, OSError) as exc:
                raise SourceConnectionError(self.driver, url.host, exc) from exc

            logger.info(
                "Opened source connection driver=%s host=%s database=%s",
                self.driver,
                url.host or "-",
                url.database or "-",
            )
            try:
                yield conn
            finally:
                await conn.close()
                logger.info("Closed source connection driver=%s", self.driver)
        finally:
            await engine.dispose()
