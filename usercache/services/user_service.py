"""
User service: cached CRUD operations for the User aggregate.

Design notes
------------
- Reads by id, the full user list and the id list are read-through:
  a hit is returned without touching the database; a miss is loaded from
  ``user_mapper`` and written back to the ``aboutUser`` namespace.
- Every successful insert / delete / edit clears the whole namespace.
  The clear runs only after the store transaction has committed, so a
  failed write leaves the cache untouched.
- Readers capture the namespace generation before going to the store and
  write back under it; a clear that lands in between retires that
  generation, so the late write-back is never served.
- Keyword search and the user count are never cached here.  The count is
  cached with a TTL by the HTTP layer instead.
- A "not found" lookup is cached like a found user (``None`` under the same
  key) unless ``CACHE_NEGATIVE_LOOKUPS`` is off.
- Store errors propagate unchanged; nothing here retries or wraps them.
"""
from sqlalchemy.ext.asyncio import AsyncSession

from usercache import cache_keys
from usercache.cache import MISS, cache
from usercache.config import settings
from usercache.database import transaction
from usercache.mappers import user_mapper
from usercache.models import User
from usercache.schemas import UserCreate, UserUpdate

NAMESPACE = settings.CACHE_NAMESPACE


# ---------------------------------------------------------------------------
# Serialisation helpers
# ---------------------------------------------------------------------------

def _user_to_dict(user: User) -> dict:
    """Serialise a User ORM instance to a plain, JSON-safe dict."""
    return {
        "id": user.id,
        "username": user.username,
        "email": user.email,
        "display_name": user.display_name,
        "bio": user.bio,
        "created_at": user.created_at.isoformat() if user.created_at else None,
    }


# ---------------------------------------------------------------------------
# Cached reads
# ---------------------------------------------------------------------------

async def get_user_by_id(db: AsyncSession, user_id: int) -> dict | None:
    """
    Return the user dict for *user_id*, or None when it does not exist.

    Cached under ``user_<id>``.
    """
    key = cache_keys.user_key(user_id)
    version = await cache.namespace_version(NAMESPACE)
    cached = await cache.get_entry(NAMESPACE, key, version)
    if cached is not MISS:
        return cached

    async with transaction(db):
        user = await user_mapper.select_by_primary_key(db, user_id)
        data = _user_to_dict(user) if user is not None else None

    if data is not None or settings.CACHE_NEGATIVE_LOOKUPS:
        await cache.put_entry(NAMESPACE, key, data, version)
    return data


async def get_all_user(db: AsyncSession) -> list[dict]:
    """Return every user ordered by id."""
    key = cache_keys.default_key("get_all_user")
    version = await cache.namespace_version(NAMESPACE)
    cached = await cache.get_entry(NAMESPACE, key, version)
    if cached is not MISS:
        return cached

    async with transaction(db):
        data = [_user_to_dict(u) for u in await user_mapper.select_all_user(db)]

    await cache.put_entry(NAMESPACE, key, data, version)
    return data


async def select_now_ids(db: AsyncSession) -> list[int]:
    """Return the ids of all current users."""
    key = cache_keys.default_key("select_now_ids")
    version = await cache.namespace_version(NAMESPACE)
    cached = await cache.get_entry(NAMESPACE, key, version)
    if cached is not MISS:
        return cached

    async with transaction(db):
        ids = await user_mapper.select_ids(db)

    await cache.put_entry(NAMESPACE, key, ids, version)
    return ids


# ---------------------------------------------------------------------------
# Mutations (write-invalidate)
# ---------------------------------------------------------------------------

async def insert_user(db: AsyncSession, data: UserCreate) -> dict:
    """
    Create a user and return it with the id assigned by the store.

    Raises ``IntegrityError`` on a duplicate username or email; the
    cache is left as it was in that case.
    """
    async with transaction(db):
        user = await user_mapper.insert_user(db, data)
        result = _user_to_dict(user)

    await cache.clear_namespace(NAMESPACE)
    return result


async def delete_user(db: AsyncSession, user_id: int) -> int:
    """Delete *user_id* and return the number of rows affected."""
    async with transaction(db):
        affected = await user_mapper.delete_user(db, user_id)

    await cache.clear_namespace(NAMESPACE)
    return affected


async def edit_user(db: AsyncSession, data: UserUpdate) -> int:
    """Overwrite the user ``data.id`` and return the number of rows affected."""
    async with transaction(db):
        affected = await user_mapper.edit_user(db, data)

    await cache.clear_namespace(NAMESPACE)
    return affected


# ---------------------------------------------------------------------------
# Uncached pass-through
# ---------------------------------------------------------------------------

async def find_users(db: AsyncSession, keyword: str) -> list[dict]:
    # Keyword searches rarely repeat; caching them would only hold stale rows.
    async with transaction(db):
        return [_user_to_dict(u) for u in await user_mapper.find_users(db, keyword)]


async def select_users_count(db: AsyncSession) -> int:
    async with transaction(db):
        return await user_mapper.select_users_count(db)
