"""DuckDB-backed authoritative store."""

from predvenue.storage.db import get_connection, init_schema
from predvenue.storage.seed import create_initial_markets, seed_if_empty
from predvenue.storage.store import DuckDBStore

__all__ = ["DuckDBStore", "create_initial_markets", "get_connection", "init_schema", "seed_if_empty"]
