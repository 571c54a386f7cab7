import uuid
import pytest
from datetime import timedelta
from sqlalchemy import update

from pngfun.errors import ValidationError, OverlappingChallenge, IntegrityFault, NotFoundError, StateError
from pngfun.models.challenge import Challenge
from pngfun.models.submission import Submission
from pngfun.services import challenges as registry
from pngfun.services.lifecycle import run_lifecycle
from pngfun.services.settlement_backend import OffChainSettlement
from pngfun.services.submissions import create_submission
from pngfun.services.users import get_user
from pngfun.services.votes import cast_vote
from conftest import NOW


@pytest.mark.asyncio
async def test_get_active_challenge_uses_half_open_window(session, open_challenge):
    ch = await open_challenge()
    assert (await registry.get_active_challenge(session, NOW)).id == ch.id
    assert (await registry.get_active_challenge(session, ch.starts_at)).id == ch.id
    # ends_at is exclusive
    assert await registry.get_active_challenge(session, ch.ends_at) is None
    assert await registry.get_active_challenge(session, ch.starts_at - timedelta(seconds=1)) is None


@pytest.mark.asyncio
async def test_create_rejects_bad_window(session):
    with pytest.raises(ValidationError):
        await registry.create_challenge(session, title="x", starts_at=NOW, ends_at=NOW)


@pytest.mark.asyncio
async def test_overlapping_active_challenge_rejected(session, open_challenge):
    await open_challenge()
    with pytest.raises(OverlappingChallenge):
        await registry.create_challenge(
            session, title="second", starts_at=NOW, ends_at=NOW + timedelta(hours=2), activate=True
        )
    # back-to-back windows do not overlap
    nxt = await open_challenge(day=1)
    assert nxt.status == "active"


@pytest.mark.asyncio
async def test_activate_respects_overlap_guard(session, open_challenge):
    sched = await registry.create_challenge(
        session, title="later", starts_at=NOW, ends_at=NOW + timedelta(hours=3)
    )
    assert sched.status == "scheduled"
    await open_challenge()
    with pytest.raises(OverlappingChallenge):
        await registry.activate_challenge(session, sched.id)

    free = await registry.create_challenge(
        session, title="free", starts_at=NOW + timedelta(days=3), ends_at=NOW + timedelta(days=4)
    )
    res = await registry.activate_challenge(session, free.id)
    assert res["outcome"] == "activated"
    again = await registry.activate_challenge(session, free.id)
    assert again["outcome"] == "already_active"


@pytest.mark.asyncio
async def test_two_active_matches_is_an_integrity_fault(session):
    # Bypass the registry to simulate a corrupted store
    for title in ("a", "b"):
        session.add(Challenge(
            title=title, status="active",
            starts_at=NOW - timedelta(hours=1), ends_at=NOW + timedelta(hours=1),
        ))
    await session.commit()
    with pytest.raises(IntegrityFault):
        await registry.get_active_challenge(session, NOW)


@pytest.mark.asyncio
async def test_close_is_compare_and_set(session, open_challenge):
    ch = await open_challenge()
    first = await registry.close_challenge(session, ch.id, NOW)
    assert first["outcome"] == "closed"
    assert first["challenge"].status == "ended"
    second = await registry.close_challenge(session, ch.id, NOW)
    assert second["outcome"] == "already_ended"
    assert await registry.get_active_challenge(session, NOW) is None


@pytest.mark.asyncio
async def test_close_scheduled_or_missing(session):
    sched = await registry.create_challenge(
        session, title="soon", starts_at=NOW + timedelta(days=1), ends_at=NOW + timedelta(days=2)
    )
    with pytest.raises(StateError):
        await registry.close_challenge(session, sched.id, NOW)
    with pytest.raises(NotFoundError):
        await registry.close_challenge(session, uuid.uuid4(), NOW)


@pytest.mark.asyncio
async def test_prize_pool_of_empty_challenge_is_zero(session, open_challenge):
    ch = await open_challenge()
    assert await registry.prize_pool(session, ch.id) == 0
    assert await registry.submission_count(session, ch.id) == 0


@pytest.mark.asyncio
async def test_lifecycle_sweep(session, policy):
    due = await registry.create_challenge(
        session, title="due", starts_at=NOW - timedelta(hours=1), ends_at=NOW + timedelta(hours=5)
    )
    expired = await registry.create_challenge(
        session, title="expired", starts_at=NOW - timedelta(days=1), ends_at=NOW - timedelta(hours=2), activate=True
    )
    future = await registry.create_challenge(
        session, title="future", starts_at=NOW + timedelta(days=1), ends_at=NOW + timedelta(days=2)
    )

    auto = policy.model_copy(update={"auto_finalize": True})
    summary = await run_lifecycle(session, NOW, policy=auto, backend=OffChainSettlement())
    assert summary["activated"] == [due.id]
    assert summary["closed"] == [expired.id]
    assert summary["finalized"] == [expired.id]

    statuses = {c.id: c.status for c in await registry.list_challenges(session)}
    assert statuses == {due.id: "active", expired.id: "finalized", future.id: "scheduled"}

    # A second sweep has nothing left to do
    again = await run_lifecycle(session, NOW, policy=auto, backend=OffChainSettlement())
    assert again == {"activated": [], "closed": [], "finalized": [], "skipped": []}


@pytest.mark.asyncio
async def test_lifecycle_holds_later_days_behind_a_faulty_one(session, make_user, open_challenge, policy):
    owner, voter = await make_user("owner"), await make_user("voter")
    days = []
    for day in range(2):
        ch = await open_challenge(day=day, title=f"day {day}")
        sub = await create_submission(
            session, challenge_id=ch.id, user_id=owner.id, photo_url=f"https://p/{day}.jpg",
            now=NOW + timedelta(days=day),
        )
        await cast_vote(
            session, submission_id=sub.id, voter_id=voter.id, amount=4,
            now=NOW + timedelta(days=day), policy=policy,
        )
        days.append((ch, sub))
    # day 0's cached total no longer matches its votes
    await session.execute(update(Submission).where(Submission.id == days[0][1].id).values(total_wld_voted=40))
    await session.commit()

    auto = policy.model_copy(update={"auto_finalize": True})
    summary = await run_lifecycle(session, NOW + timedelta(days=3), policy=auto, backend=OffChainSettlement())
    assert sorted(summary["closed"]) == sorted(ch.id for ch, _s in days)
    assert summary["finalized"] == []
    assert summary["skipped"] == [ch.id for ch, _s in days]

    statuses = {c.id: c.status for c in await registry.list_challenges(session)}
    assert statuses == {ch.id: "ended" for ch, _s in days}
    assert (await get_user(session, owner.id)).total_wins == 0
