"""
FastAPI dependencies that assemble the sync services for a request.
"""

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from marketsync.config import Settings, get_settings
from marketsync.db.database import get_db
from marketsync.services.factory import SyncServices, build_services


async def get_services(
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> SyncServices:
    """Services bound to the request's database session."""
    return build_services(db, settings)
