from __future__ import annotations

import sqlglot
from sqlglot import exp
from sqlglot.errors import SqlglotError

# SQLAlchemy backend name -> sqlglot dialect
_DIALECTS = {
    "postgresql": "postgres",
    "mysql": "mysql",
    "mariadb": "mysql",
    "sqlite": "sqlite",
    "mssql": "tsql",
    "oracle": "oracle",
}


def projection_column_names(query: str, *, backend: str | None = None) -> list[str] | None:
    """
    Underlying column names of the top-level projection, ignoring AS aliases.

    Expressions that are not plain columns keep their alias (that is what drivers
    report as the name for them). Returns None for SELECT * or unparseable SQL.
    """
    try:
        tree = sqlglot.parse_one(query, read=_DIALECTS.get(backend or ""))
    except SqlglotError:
        return None

    if not isinstance(tree, exp.Query):
        return None

    names: list[str] = []
    for projection in tree.selects:
        if isinstance(projection, exp.Star) or projection.is_star:
            return None
        inner = projection.unalias()
        if isinstance(inner, exp.Column):
            names.append(inner.name)
        else:
            names.append(projection.alias_or_name)
    return names
