"""
File: app/domains/sessions/dependencies.py
Description: 会话领域依赖注入 (DI)

依赖链：
DBSession → SessionRepository ─┐
HttpClient → Geolocator ───────┴→ SessionRegistry → SessionRegistryDep

Author: jinmozhe
Created: 2026-10-19
"""

from typing import Annotated

from fastapi import Depends

from app.api.deps import DBSession, HttpClient
from app.core.config import settings
from app.db.models.user_session import UserSession
from app.domains.sessions.geolocation import Geolocator, IpstackGeolocator
from app.domains.sessions.repository import SessionRepository
from app.domains.sessions.service import SessionRegistry


async def get_session_repository(session: DBSession) -> SessionRepository:
    return SessionRepository(model=UserSession, session=session)


SessionRepoDep = Annotated[SessionRepository, Depends(get_session_repository)]


async def get_geolocator(client: HttpClient) -> Geolocator:
    """地理定位协作方 (测试中可 override)"""
    return IpstackGeolocator(
        client=client,
        api_key=settings.IPSTACK_API_KEY,
        base_url=settings.IPSTACK_API_URL,
        timeout=settings.GEOLOCATION_TIMEOUT_SECONDS,
    )


GeolocatorDep = Annotated[Geolocator, Depends(get_geolocator)]


async def get_session_registry(
    repo: SessionRepoDep, geolocator: GeolocatorDep
) -> SessionRegistry:
    return SessionRegistry(repo=repo, geolocator=geolocator)


SessionRegistryDep = Annotated[SessionRegistry, Depends(get_session_registry)]
