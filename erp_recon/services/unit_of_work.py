"""Explicit transaction boundary for reconciliation writes."""

from collections.abc import Awaitable, Callable
from typing import TypeVar

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

T = TypeVar("T")


async def run_in_transaction(
    session_maker: async_sessionmaker[AsyncSession],
    work: Callable[[AsyncSession], Awaitable[T]],
) -> T:
    """Run ``work`` in a fresh session inside one database transaction.

    Commits when ``work`` returns and rolls back when it raises; the
    exception propagates to the caller unchanged.
    """
    async with session_maker() as session:
        async with session.begin():
            return await work(session)
