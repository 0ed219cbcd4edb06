from __future__ import annotations

import re

JDBC_PREFIX = "jdbc:"
ES_TARGET_PREFIX = "es:"
S3_STAGING_PREFIX = "s3://"

# same shapes the template parameters were validated with
CONNECTION_URL_RE = re.compile(
    r"(^jdbc:[a-zA-Z0-9/:@.?_+!*=&-;]+$)"
    r"|(^([A-Za-z0-9+/]{4}){1,}([A-Za-z0-9+/]{0,3})={0,3})"
)
JDBC_URL_RE = re.compile(r"^jdbc:[a-zA-Z0-9/:@.?_+!*=&-;]+$")
BASE64_RE = re.compile(r"^([A-Za-z0-9+/]{4})+([A-Za-z0-9+/]{2}==|[A-Za-z0-9+/]{3}=)?$")
CONNECTION_PROPERTIES_RE = re.compile(r"^[a-zA-Z0-9_;!*&=@#-:\\/]+$")

OUTPUT_TABLE_RE = re.compile(
    r"^(?:(?P<project>[A-Za-z0-9_\-]+):)?"
    r"(?P<dataset>[A-Za-z_][A-Za-z0-9_]*)\.(?P<table>[A-Za-z_][A-Za-z0-9_]*)$"
)
ES_ALIAS_RE = re.compile(r"^[a-z0-9][a-z0-9_\-]*$")

DEFAULT_BATCH_SIZE = 1000
MAX_BATCH_SIZE = 100_000


def is_base64_shaped(value: str) -> bool:
    return bool(BASE64_RE.fullmatch((value or "").strip()))
