from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from usercache import cache_keys
from usercache.cache import cache
from usercache.config import settings
from usercache.database import get_db
from usercache.schemas import UserCountResponse, UserCreate, UserEdit, UserResponse, UserUpdate
from usercache.services import user_service

router = APIRouter(prefix="/api/v1/users", tags=["users"])

@router.get("", response_model=list[UserResponse])
async def list_users(db: AsyncSession = Depends(get_db)):
    return await user_service.get_all_user(db)

@router.get("/ids", response_model=list[int])
async def list_user_ids(db: AsyncSession = Depends(get_db)):
    return await user_service.select_now_ids(db)

@router.get("/count", response_model=UserCountResponse)
async def count_users(db: AsyncSession = Depends(get_db)):
    # The service never caches the count; it is allowed to lag by one TTL window.
    cached = await cache.get(cache_keys.USER_COUNT_KEY)
    if cached is not None:
        return UserCountResponse(count=cached)
    count = await user_service.select_users_count(db)
    await cache.set(cache_keys.USER_COUNT_KEY, count, ttl=settings.CACHE_TTL_USER_COUNT)
    return UserCountResponse(count=count)

@router.get("/search", response_model=list[UserResponse])
async def search_users(keyword: str = Query(..., min_length=1), db: AsyncSession = Depends(get_db)):
    return await user_service.find_users(db, keyword)

@router.get("/{user_id}", response_model=UserResponse)
async def get_user(user_id: int, db: AsyncSession = Depends(get_db)):
    user = await user_service.get_user_by_id(db, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user

@router.post("", status_code=201, response_model=UserResponse)
async def create_user(data: UserCreate, db: AsyncSession = Depends(get_db)):
    try:
        return await user_service.insert_user(db, data)
    except IntegrityError:
        raise HTTPException(
            status_code=409,
            detail="A user with this username or email already exists",
        )

@router.put("/{user_id}", response_model=UserResponse)
async def edit_user(user_id: int, data: UserEdit, db: AsyncSession = Depends(get_db)):
    try:
        affected = await user_service.edit_user(db, UserUpdate(id=user_id, **data.model_dump()))
    except IntegrityError:
        raise HTTPException(
            status_code=409,
            detail="A user with this username or email already exists",
        )
    user = await user_service.get_user_by_id(db, user_id) if affected else None
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user

@router.delete("/{user_id}", status_code=204)
async def delete_user(user_id: int, db: AsyncSession = Depends(get_db)):
    affected = await user_service.delete_user(db, user_id)
    if not affected:
        raise HTTPException(status_code=404, detail="User not found")
