"""Common FastAPI dependencies for consistent type annotations.

Usage:
    from erp_recon.deps import Actor, DbSession, SessionMaker

    async def my_endpoint(db: DbSession, actor: Actor):
        # db is AsyncSession with get_db dependency injected
        # actor is the operator id taken from the X-User-Id header
        ...
"""

from typing import Annotated

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from erp_recon.database import get_db, get_session_maker

SYSTEM_ACTOR = "system"


def get_actor(x_user_id: Annotated[str | None, Header(max_length=100)] = None) -> str:
    """Identity recorded on payments and audit rows. Not an authentication check."""
    actor = (x_user_id or "").strip()
    return actor or SYSTEM_ACTOR


DbSession = Annotated[AsyncSession, Depends(get_db)]
SessionMaker = Annotated[async_sessionmaker[AsyncSession], Depends(get_session_maker)]
Actor = Annotated[str, Depends(get_actor)]

__all__ = ["Actor", "DbSession", "SessionMaker"]
