from __future__ import annotations
from uuid import UUID
from sqlalchemy.ext.asyncio import AsyncSession
from pngfun.security import decode_identity_token
from pngfun.services.users import get_or_create_user


async def verified_user_id(session: AsyncSession, identity_assertion: str) -> UUID:
    """
    Identity gate: a verified identity token in, a ledger user id out.
    Raises `InvalidIdentity` when the token does not verify.
    """
    wallet_address = decode_identity_token(identity_assertion)
    user = await get_or_create_user(session, wallet_address)
    return user.id
