from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from render_queue.db.session import get_db_session
from render_queue.settings import Settings, settings

# Dependency for DB session
DbSession = Annotated[AsyncSession, Depends(get_db_session)]

def get_settings() -> Settings:
    return settings

# Overridable in tests through app.dependency_overrides[get_settings]
AppSettings = Annotated[Settings, Depends(get_settings)]
