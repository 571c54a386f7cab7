from __future__ import annotations
import uuid
from uuid import UUID
import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from pngfun.db import atomic
from pngfun.errors import NotFoundError, StateError, storage_guard
from pngfun.models.user import User
from pngfun.models.winnings import WinningsEntry
from pngfun.services.settlement_backend import SettlementBackend

log = structlog.get_logger()


@storage_guard
async def claim_winnings(session: AsyncSession, user_id: UUID, backend: SettlementBackend) -> dict:
    """Move the whole pending balance out: pending -> 0 plus one CLAIM entry."""
    async with atomic(session):
        user = await session.scalar(
            select(User).where(User.id == user_id).with_for_update().execution_options(populate_existing=True)
        )
        if not user:
            raise NotFoundError("User not found")
        amount = int(user.pending_winnings or 0)
        if amount <= 0:
            return {"outcome": "nothing_to_claim", "amount": 0, "entry_id": None}

        res = await session.execute(
            update(User)
            .where(User.id == user_id, User.pending_winnings == amount)
            .values(pending_winnings=0)
            .execution_options(synchronize_session=False)
        )
        if res.rowcount != 1:
            raise StateError("Pending winnings changed, please retry")

        entry = WinningsEntry(id=uuid.uuid4(), user_id=user_id, type="CLAIM", amount=-amount, note="claim")
        session.add(entry)
        await session.flush()
        await backend.pay_out(user_id, user.wallet_address, amount, entry.id)

    log.info("winnings_claimed", user_id=str(user_id), amount=amount)
    return {"outcome": "claimed", "amount": amount, "entry_id": entry.id}


@storage_guard
async def winnings_history(session: AsyncSession, user_id: UUID, limit: int = 50) -> list[WinningsEntry]:
    return list((await session.execute(
        select(WinningsEntry)
        .where(WinningsEntry.user_id == user_id)
        .order_by(WinningsEntry.created_at.desc())
        .limit(limit)
    )).scalars().all())
