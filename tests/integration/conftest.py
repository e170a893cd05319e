from __future__ import annotations

from collections.abc import AsyncIterator

import pytest_asyncio

from erp_rbac.db import Database, DatabaseConfig


@pytest_asyncio.fixture()
async def database() -> AsyncIterator[Database]:
    """Provide an isolated in-memory SQLite database with the RBAC tables created."""

    database = Database()
    database.init(DatabaseConfig(url="sqlite:///:memory:"))
    await database.create_all()
    yield database
    await database.dispose()
