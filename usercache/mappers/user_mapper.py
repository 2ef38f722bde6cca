"""
User mapper: the record store behind the cached user service.

Every function issues plain SQLAlchemy statements against the ``users``
table and returns ORM instances or primitives.  Reads use
``populate_existing`` so that a session which already holds a User in its
identity map still sees the row as it is in the database.
"""
from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from usercache.models import User
from usercache.schemas import UserCreate, UserUpdate


async def select_by_primary_key(db: AsyncSession, user_id: int) -> User | None:
    return await db.get(User, user_id, populate_existing=True)


async def select_all_user(db: AsyncSession) -> list[User]:
    q = select(User).order_by(User.id).execution_options(populate_existing=True)
    result = await db.execute(q)
    return list(result.scalars().all())


async def insert_user(db: AsyncSession, data: UserCreate) -> User:
    """
    Insert a new user and return it with its primary key filled in.

    Unique constraint violations surface here as ``IntegrityError`` on
    flush.
    """
    user = User(
        username=data.username,
        email=data.email,
        display_name=data.display_name,
        bio=data.bio,
    )
    db.add(user)
    await db.flush()
    await db.refresh(user)
    return user


async def delete_user(db: AsyncSession, user_id: int) -> int:
    """Delete by id and return the number of rows removed (0 or 1)."""
    result = await db.execute(delete(User).where(User.id == user_id))
    return result.rowcount


async def edit_user(db: AsyncSession, data: UserUpdate) -> int:
    """
    Overwrite the profile fields of the user identified by ``data.id``.

    Returns the number of rows updated (0 when the id does not exist).
    """
    values = data.model_dump(exclude={"id"})
    result = await db.execute(update(User).where(User.id == data.id).values(**values))
    return result.rowcount


async def find_users(db: AsyncSession, keyword: str) -> list[User]:
    """Case-insensitive substring match on username, display name and email."""
    q = (
        select(User)
        .where(
            or_(
                User.username.icontains(keyword, autoescape=True),
                User.display_name.icontains(keyword, autoescape=True),
                User.email.icontains(keyword, autoescape=True),
            )
        )
        .order_by(User.id)
        .execution_options(populate_existing=True)
    )
    result = await db.execute(q)
    return list(result.scalars().all())


async def select_ids(db: AsyncSession) -> list[int]:
    result = await db.execute(select(User.id).order_by(User.id))
    return list(result.scalars().all())


async def select_users_count(db: AsyncSession) -> int:
    return (await db.execute(select(func.count()).select_from(User))).scalar_one()
