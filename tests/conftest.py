"""Shared fixtures."""

import asyncio

import pytest

from touchbase.db.migrations import run_migrations
from touchbase.db.repository import Repository


@pytest.fixture
def with_repo(tmp_path):
    """Run an async scenario against a fresh database.

    Usage: ``with_repo(scenario)`` where ``scenario(repo)`` is a coroutine
    function. The whole scenario runs inside one event loop.
    """

    def run(scenario):
        async def runner():
            db_path = tmp_path / "touchbase.db"
            await run_migrations(db_path)
            repo = Repository(db_path)
            await repo.connect()
            try:
                return await scenario(repo)
            finally:
                await repo.close()

        return asyncio.run(runner())

    return run
