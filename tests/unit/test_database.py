"""
Unit tests for get_db in docapproval/database.py

The session factory is replaced so no database connection is opened.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from docapproval import database


def _session_factory(session):
    ctx = MagicMock()
    ctx.__aenter__ = AsyncMock(return_value=session)
    ctx.__aexit__ = AsyncMock(return_value=False)
    return MagicMock(return_value=ctx)


def _session():
    session = MagicMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    return session


@pytest.mark.asyncio
async def test_request_commits_after_handler(monkeypatch):
    session = _session()
    monkeypatch.setattr(database, "AsyncSessionLocal", _session_factory(session))

    gen = database.get_db()
    assert await gen.__anext__() is session
    with pytest.raises(StopAsyncIteration):
        await gen.__anext__()

    session.commit.assert_awaited_once()
    session.rollback.assert_not_awaited()


@pytest.mark.asyncio
async def test_request_error_rolls_back_flushed_writes(monkeypatch):
    session = _session()
    monkeypatch.setattr(database, "AsyncSessionLocal", _session_factory(session))

    gen = database.get_db()
    await gen.__anext__()
    with pytest.raises(RuntimeError):
        await gen.athrow(RuntimeError("decision failed"))

    session.rollback.assert_awaited_once()
    session.commit.assert_not_awaited()
