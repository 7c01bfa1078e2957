"""Database engine construction."""

from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.pool import StaticPool


def create_local_engine(database_url: str) -> Engine:
    """Create an engine for the local store.

    SQLite connections are shared with the background sync thread, and an
    in-memory database must live on a single connection to survive. That
    connection is shared by every thread, so callers must not run transactions
    on it concurrently (LocalStore serializes its sessions). In-memory URLs are
    meant for tests.
    """
    url = make_url(database_url)
    if url.get_backend_name() != "sqlite":
        return create_engine(database_url, pool_pre_ping=True)

    if url.database and url.database != ":memory:":
        Path(url.database).parent.mkdir(parents=True, exist_ok=True)
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False},
        )

    return create_engine(
        database_url,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
