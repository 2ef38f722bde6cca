from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from usercache.cache import cache
from usercache.config import settings
from usercache.database import get_db
from usercache.schemas import MetricsResponse
from usercache.services import user_service

router = APIRouter(prefix="/api/v1/metrics", tags=["metrics"])

@router.get("", response_model=MetricsResponse)
async def get_metrics(db: AsyncSession = Depends(get_db)):
    total_users = await user_service.select_users_count(db)
    cache_info = dict(cache.stats)
    cache_info["namespace"] = settings.CACHE_NAMESPACE
    cache_info["generation"] = await cache.namespace_version(settings.CACHE_NAMESPACE)
    return MetricsResponse(total_users=total_users, cache_info=cache_info)
