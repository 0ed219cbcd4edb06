from __future__ import annotations

import base64
import json
from datetime import datetime
from typing import Any, Iterable

from src.jdbc_loader.core.enums import CanonicalType
from src.jdbc_loader.ports.warehouse import DestinationSchema


def _jsonify(v: Any) -> Any:
    if v is None:
        return None
    if isinstance(v, datetime):
        return v.isoformat()
    if isinstance(v, (bytes, bytearray, memoryview)):
        return base64.b64encode(bytes(v)).decode("ascii")
    return v


def encode_batch(records: Iterable[dict[str, Any]]) -> bytes:
    """Records -> newline-delimited JSON."""
    lines = [
        json.dumps({k: _jsonify(v) for k, v in r.items()}, ensure_ascii=False)
        for r in records
    ]
    return ("\n".join(lines) + "\n").encode("utf-8") if lines else b""


def _restore(value: Any, t: CanonicalType | None) -> Any:
    if value is None or t is None:
        return value
    if t is CanonicalType.TIMESTAMP:
        return datetime.fromisoformat(value)
    if t is CanonicalType.BINARY:
        return base64.b64decode(value)
    return value


def decode_batch(payload: bytes, schema: DestinationSchema) -> list[dict[str, Any]]:
    rows = []
    for line in payload.decode("utf-8").splitlines():
        if not line.strip():
            continue
        raw = json.loads(line)
        rows.append({k: _restore(v, schema.get(k)) for k, v in raw.items()})
    return rows
