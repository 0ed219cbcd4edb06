from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Sequence

from elasticsearch import ApiError, AsyncElasticsearch, TransportError

from src.config import Settings, get_settings
from src.jdbc_loader.core.constants import ES_TARGET_PREFIX
from src.jdbc_loader.core.enums import CanonicalType, LoadFailureCause, LoadMode
from src.jdbc_loader.core.exceptions import LoadError
from src.jdbc_loader.ports.staging import StagingStorage
from src.jdbc_loader.ports.warehouse import DestinationSchema
from src.jdbc_loader.services.staging_codec import decode_batch
from src.jdbc_loader.services.types import destination_type

logger = logging.getLogger("jdbc_loader")


@dataclass(frozen=True, slots=True)
class ESConfig:
    url: str
    user: str | None
    password: str | None
    timeout: int = 10


def load_es_config(settings: Settings | None = None) -> ESConfig:
    s = settings or get_settings()
    return ESConfig(
        url=s.elasticsearch_url,
        user=s.elasticsearch_user,
        password=s.elasticsearch_password,
        timeout=s.elasticsearch_timeout,
    )


def classify_es_failure(exc: BaseException) -> LoadFailureCause:
    if isinstance(exc, ApiError):
        status = getattr(exc, "status_code", None) or getattr(exc.meta, "status", None)
        if status in (403, 429):
            # 403 here is usually a cluster block (disk watermark)
            return LoadFailureCause.QUOTA
        if status in (400, 404, 409):
            return LoadFailureCause.SCHEMA_VALIDATION
        return LoadFailureCause.UNKNOWN
    if isinstance(exc, TransportError):
        return LoadFailureCause.CONNECTION
    return LoadFailureCause.UNKNOWN


class ElasticsearchWarehouse:
    """
    Destination "table" is an index alias (target 'es:<alias>').

    Every load writes into a fresh index and then flips the alias in one
    update_aliases call: append adds the new index next to the old ones,
    truncate replaces all of them. Readers never see a half-loaded index.
    """

    def __init__(self, cfg: ESConfig, client: AsyncElasticsearch | None = None) -> None:
        self._cfg = cfg
        if client is None:
            auth = None
            if cfg.user:
                auth = (cfg.user, cfg.password or "")
            client = AsyncElasticsearch(
                hosts=[cfg.url],
                basic_auth=auth,
                request_timeout=cfg.timeout,
            )
        self._client = client

    @staticmethod
    def _alias(table: str) -> str:
        if not table.startswith(ES_TARGET_PREFIX):
            raise ValueError(
                f"ES warehouse expects table starting with {ES_TARGET_PREFIX!r}, got {table!r}"
            )
        return table.removeprefix(ES_TARGET_PREFIX).strip()

    async def _current_indices(self, alias: str) -> list[str]:
        if not await self._client.indices.exists_alias(name=alias):
            return []
        resp = await self._client.indices.get_alias(name=alias)
        return sorted(resp.body.keys())

    async def _mappings(self, index: str) -> dict[str, Any]:
        resp = await self._client.indices.get_mapping(index=index)
        return resp.body[index].get("mappings", {})

    async def get_schema(self, table: str) -> DestinationSchema:
        alias = self._alias(table)
        try:
            indices = await self._current_indices(alias)
            if not indices:
                raise LoadError(
                    table,
                    LoadFailureCause.SCHEMA_VALIDATION,
                    f"index alias {alias!r} does not exist",
                )
            mappings = await self._mappings(indices[0])
        except LoadError:
            raise
        except (ApiError, TransportError) as exc:
            raise LoadError(table, classify_es_failure(exc), repr(exc)) from exc

        schema: dict[str, CanonicalType] = {}
        for name, field_def in (mappings.get("properties") or {}).items():
            ct = destination_type(field_def.get("type", "object"))
            if ct is None:
                logger.warning("Skip ES field %s.%s: type %r", alias, name, field_def.get("type"))
                continue
            schema[name] = ct
        return schema

    async def _bulk_index(self, table: str, index: str, rows: list[dict]) -> None:
        ops: list[dict] = []
        for r in rows:
            ops.append({"index": {"_index": index}})
            ops.append(r)
        if not ops:
            return

        resp = await self._client.bulk(operations=ops, refresh=False)
        if resp.body.get("errors"):
            first_err = None
            for it in resp.body.get("items") or []:
                v = it.get("index") or it.get("create")
                if v and v.get("error"):
                    first_err = v
                    break
            raise LoadError(
                table,
                LoadFailureCause.SCHEMA_VALIDATION,
                f"bulk errors=True first_error={first_err!r}",
            )

    async def _drop_index(self, index: str) -> None:
        await self._client.indices.delete(index=index, ignore_unavailable=True)

    async def load(
        self,
        table: str,
        schema: DestinationSchema,
        *,
        staging: StagingStorage,
        keys: Sequence[str],
        mode: LoadMode,
        load_id: str,
    ) -> int:
        alias = self._alias(table)
        new_index = f"{alias}-{load_id}".lower()
        total = 0

        try:
            previous = await self._current_indices(alias)
            if not previous:
                raise LoadError(
                    table, LoadFailureCause.SCHEMA_VALIDATION, f"index alias {alias!r} does not exist"
                )
            mappings = await self._mappings(previous[0])
        except LoadError:
            raise
        except (ApiError, TransportError) as exc:
            raise LoadError(table, classify_es_failure(exc), repr(exc)) from exc

        try:
            await self._client.indices.create(index=new_index, mappings=mappings)
            for key in keys:
                try:
                    payload = await staging.read(key)
                except Exception as exc:
                    raise LoadError(
                        table, LoadFailureCause.STAGING_IO, f"cannot read {key!r}: {exc!r}"
                    ) from exc
                # staged JSON is already in the shape ES expects
                rows = decode_batch(payload, {})
                await self._bulk_index(table, new_index, rows)
                total += len(rows)

            await self._client.indices.refresh(index=new_index)

            actions: list[dict] = []
            if mode is LoadMode.TRUNCATE:
                actions.extend({"remove": {"index": idx, "alias": alias}} for idx in previous)
            actions.append({"add": {"index": new_index, "alias": alias}})
            await self._client.indices.update_aliases(actions=actions)
        except BaseException as exc:
            await self._drop_index(new_index)
            if isinstance(exc, (ApiError, TransportError)):
                raise LoadError(table, classify_es_failure(exc), repr(exc)) from exc
            raise

        logger.info(
            "load=%s alias=%s -> %s rows=%d mode=%s", load_id, alias, new_index, total, mode.value
        )

        if mode is LoadMode.TRUNCATE and previous:
            try:
                await self._client.indices.delete(index=",".join(previous), ignore_unavailable=True)
            except (ApiError, TransportError):
                # alias already points to the new index only; old ones are unreachable
                logger.warning("Cannot drop previous indices %s", previous, exc_info=True)
        return total

    async def close(self) -> None:
        await self._client.close()
