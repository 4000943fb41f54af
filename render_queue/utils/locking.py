from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

# Fixed key for the sweeper leader lock (Postgres advisory locks take a 64-bit key).
SWEEPER_LOCK_KEY = 73120415

async def try_advisory_lock(session: AsyncSession, key: int = SWEEPER_LOCK_KEY) -> bool:
    """
    Attempts to acquire a Postgres transaction-level advisory lock.
    Returns True if acquired. Other dialects have no advisory locks and a
    single instance is assumed, so they always win.

    Note: the lock is released by the next commit or rollback of `session`,
    so the caller must do its leader work inside the same transaction.
    """
    if session.bind.dialect.name != "postgresql":
        return True

    result = await session.execute(
        text("SELECT pg_try_advisory_xact_lock(:key)"),
        {"key": key}
    )
    return result.scalar() is True
