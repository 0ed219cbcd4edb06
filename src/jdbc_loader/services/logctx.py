def ctx_prefix(*, table: str, run: str, query_chars: int | None = None) -> str:
    base = f"table={table} run={run}"
    return f"{base} query_chars={query_chars}" if query_chars is not None else base
