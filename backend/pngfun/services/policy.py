from __future__ import annotations
from typing import Literal
from pydantic import BaseModel
from pngfun.config import Settings, settings

TiePolicy = Literal["split", "earliest"]


class LedgerPolicy(BaseModel):
    """
    Ledger rules that are product decisions rather than invariants.

    - allow_self_vote: whether a user may back their own submission.
    - tie_policy: "split" shares the pool equally between every submission
      tied at the top; "earliest" gives it all to the earliest of them.
    """
    allow_self_vote: bool = False
    tie_policy: TiePolicy = "split"
    auto_finalize: bool = True

    @classmethod
    def from_settings(cls, s: Settings = settings) -> "LedgerPolicy":
        return cls(
            allow_self_vote=s.allow_self_vote,
            tie_policy=s.settlement_tie_policy,
            auto_finalize=s.auto_finalize,
        )


def get_policy() -> LedgerPolicy:
    return LedgerPolicy.from_settings()
