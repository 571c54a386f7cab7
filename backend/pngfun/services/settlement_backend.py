from __future__ import annotations
from typing import Protocol
from uuid import UUID
import structlog
from pydantic import BaseModel

log = structlog.get_logger()


class Award(BaseModel):
    user_id: UUID
    submission_id: UUID | None
    amount: int


class SettlementBackend(Protocol):
    """
    Where money actually moves. Both calls may be repeated for the same
    challenge or claim reference and must not pay twice.
    """

    async def settle(self, challenge_id: UUID, awards: list[Award]) -> None: ...

    async def pay_out(self, user_id: UUID, wallet_address: str, amount: int, reference: UUID) -> None: ...


class OffChainSettlement:
    """The winnings ledger is the settlement of record; nothing leaves the database."""

    async def settle(self, challenge_id: UUID, awards: list[Award]) -> None:
        log.info(
            "settlement_recorded",
            challenge_id=str(challenge_id),
            winners=len(awards),
            total=sum(a.amount for a in awards),
        )

    async def pay_out(self, user_id: UUID, wallet_address: str, amount: int, reference: UUID) -> None:
        log.info("payout_recorded", user_id=str(user_id), wallet_address=wallet_address, amount=amount, reference=str(reference))


def get_settlement_backend() -> SettlementBackend:
    return OffChainSettlement()
