from __future__ import annotations
import re
from uuid import UUID
import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from pngfun.db import atomic, insert_for
from pngfun.errors import NotFoundError, ValidationError, UsernameTaken, storage_guard
from pngfun.models.user import User

log = structlog.get_logger()

USERNAME_RE = re.compile(r"^[A-Za-z0-9_]{3,32}$")


@storage_guard
async def get_or_create_user(session: AsyncSession, wallet_address: str) -> User:
    """Lookup-or-create by wallet address; concurrent first logins converge on one row."""
    addr = (wallet_address or "").strip().lower()
    if not addr:
        raise ValidationError("wallet_address is required")
    async with atomic(session):
        await session.execute(
            insert_for(session, User)
            .values(wallet_address=addr)
            .on_conflict_do_nothing(index_elements=["wallet_address"])
        )
        user = await session.scalar(
            select(User).where(User.wallet_address == addr).execution_options(populate_existing=True)
        )
    return user


@storage_guard
async def get_user(session: AsyncSession, user_id: UUID) -> User:
    user = await session.get(User, user_id, populate_existing=True)
    if not user:
        raise NotFoundError("User not found")
    return user


@storage_guard
async def get_user_by_username(session: AsyncSession, username: str) -> User:
    user = await session.scalar(select(User).where(User.username == username, User.archived_at.is_(None)))
    if not user:
        raise NotFoundError("User not found")
    return user


@storage_guard
async def update_profile(session: AsyncSession, user_id: UUID, **changes) -> User:
    """
    Partial update of username / profile_picture_url / onboarding_completed /
    notifications_enabled. Username uniqueness is left to the unique index.
    """
    allowed = {"username", "profile_picture_url", "onboarding_completed", "notifications_enabled"}
    values = {k: v for k, v in changes.items() if k in allowed and v is not None}
    if "username" in values and not USERNAME_RE.match(values["username"]):
        raise ValidationError("Username must be 3-32 letters, digits or underscores")

    try:
        async with atomic(session):
            if values:
                await session.execute(
                    update(User).where(User.id == user_id).values(**values)
                    .execution_options(synchronize_session=False)
                )
            user = await session.scalar(
                select(User).where(User.id == user_id).execution_options(populate_existing=True)
            )
            if not user:
                raise NotFoundError("User not found")
    except IntegrityError as e:
        log.info("username_taken", user_id=str(user_id))
        raise UsernameTaken() from e
    return user
