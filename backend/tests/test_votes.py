import asyncio
import uuid
import pytest
from datetime import timedelta

from pngfun.db import SessionLocal
from pngfun.errors import DuplicateVote, SelfVote, InvalidAmount, ChallengeClosed, NotFoundError, ConflictError, ValidationError
from pngfun.services.audit import audit_challenge
from pngfun.services.challenges import close_challenge, prize_pool
from pngfun.services.submissions import create_submission, get_submission
from pngfun.services.votes import cast_vote, reverse_vote, list_votes, has_voted
from conftest import NOW


async def _setup(session, make_user, open_challenge):
    ch = await open_challenge()
    owner, voter = await make_user("owner"), await make_user("voter")
    sub = await create_submission(session, challenge_id=ch.id, user_id=owner.id, photo_url="https://p/o.jpg", now=NOW)
    return ch, owner, voter, sub


@pytest.mark.asyncio
async def test_vote_increments_aggregate(session, make_user, open_challenge, policy):
    ch, owner, voter, sub = await _setup(session, make_user, open_challenge)
    res = await cast_vote(session, submission_id=sub.id, voter_id=voter.id, amount=5, now=NOW, policy=policy)
    assert res["total_wld_voted"] == 5
    assert res["vote"].status == "active"
    fresh = await get_submission(session, sub.id)
    assert fresh.total_wld_voted == 5
    assert fresh.vote_count == 1
    assert await prize_pool(session, ch.id) == 5
    assert await has_voted(session, sub.id, voter.id)
    assert not await has_voted(session, sub.id, owner.id)


@pytest.mark.asyncio
async def test_duplicate_vote_leaves_aggregate_unchanged(session, make_user, open_challenge, policy):
    ch, owner, voter, sub = await _setup(session, make_user, open_challenge)
    await cast_vote(session, submission_id=sub.id, voter_id=voter.id, amount=5, now=NOW, policy=policy)
    with pytest.raises(DuplicateVote) as exc:
        await cast_vote(session, submission_id=sub.id, voter_id=voter.id, amount=7, now=NOW, policy=policy)
    assert isinstance(exc.value, ConflictError)
    assert exc.value.message == "You have already voted on this submission"
    assert (await get_submission(session, sub.id)).total_wld_voted == 5
    assert len(await list_votes(session, submission_id=sub.id)) == 1


@pytest.mark.asyncio
async def test_self_vote_follows_policy(session, make_user, open_challenge, policy):
    ch, owner, voter, sub = await _setup(session, make_user, open_challenge)
    with pytest.raises(SelfVote) as exc:
        await cast_vote(session, submission_id=sub.id, voter_id=owner.id, amount=1, now=NOW, policy=policy)
    assert isinstance(exc.value, ValidationError)

    permissive = policy.model_copy(update={"allow_self_vote": True})
    res = await cast_vote(session, submission_id=sub.id, voter_id=owner.id, amount=1, now=NOW, policy=permissive)
    assert res["total_wld_voted"] == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", [0, -3, True, 1.5])
async def test_amount_must_be_positive_integer(session, make_user, open_challenge, policy, amount):
    ch, owner, voter, sub = await _setup(session, make_user, open_challenge)
    with pytest.raises(InvalidAmount):
        await cast_vote(session, submission_id=sub.id, voter_id=voter.id, amount=amount, now=NOW, policy=policy)
    assert (await get_submission(session, sub.id)).total_wld_voted == 0


@pytest.mark.asyncio
async def test_no_votes_after_close(session, make_user, open_challenge, policy):
    ch, owner, voter, sub = await _setup(session, make_user, open_challenge)
    await close_challenge(session, ch.id, NOW)
    with pytest.raises(ChallengeClosed):
        await cast_vote(session, submission_id=sub.id, voter_id=voter.id, amount=3, now=NOW, policy=policy)
    # past ends_at counts as closed even before the sweep runs
    ch2 = await open_challenge(day=1)
    sub2 = await create_submission(
        session, challenge_id=ch2.id, user_id=owner.id, photo_url="https://p/2.jpg", now=NOW + timedelta(days=1)
    )
    with pytest.raises(ChallengeClosed):
        await cast_vote(
            session, submission_id=sub2.id, voter_id=voter.id, amount=3, now=ch2.ends_at, policy=policy
        )


@pytest.mark.asyncio
async def test_vote_on_missing_submission(session, make_user, policy):
    voter = await make_user("voter")
    with pytest.raises(NotFoundError):
        await cast_vote(session, submission_id=uuid.uuid4(), voter_id=voter.id, amount=1, now=NOW, policy=policy)


@pytest.mark.asyncio
async def test_reverse_vote_refunds_exact_amount_and_allows_revote(session, make_user, open_challenge, policy):
    ch, owner, voter, sub = await _setup(session, make_user, open_challenge)
    other = await make_user("other")
    v = (await cast_vote(session, submission_id=sub.id, voter_id=voter.id, amount=8, now=NOW, policy=policy))["vote"]
    await cast_vote(session, submission_id=sub.id, voter_id=other.id, amount=2, now=NOW, policy=policy)

    res = await reverse_vote(session, v.id, NOW)
    assert res["outcome"] == "reversed"
    assert res["total_wld_voted"] == 2
    assert res["vote"].status == "reversed"
    again = await reverse_vote(session, v.id, NOW)
    assert again["outcome"] == "already_reversed"
    assert again["total_wld_voted"] == 2

    assert not await has_voted(session, sub.id, voter.id)
    await cast_vote(session, submission_id=sub.id, voter_id=voter.id, amount=4, now=NOW, policy=policy)
    fresh = await get_submission(session, sub.id)
    assert fresh.total_wld_voted == 6
    assert fresh.vote_count == 2
    assert len(await list_votes(session, voter_id=voter.id, include_reversed=True)) == 2


@pytest.mark.asyncio
async def test_reverse_after_close_rejected(session, make_user, open_challenge, policy):
    ch, owner, voter, sub = await _setup(session, make_user, open_challenge)
    v = (await cast_vote(session, submission_id=sub.id, voter_id=voter.id, amount=8, now=NOW, policy=policy))["vote"]
    await close_challenge(session, ch.id, NOW)
    with pytest.raises(ChallengeClosed):
        await reverse_vote(session, v.id, NOW)
    with pytest.raises(NotFoundError):
        await reverse_vote(session, uuid.uuid4(), NOW)


@pytest.mark.asyncio
async def test_pool_matches_active_votes(session, make_user, open_challenge, policy):
    ch = await open_challenge()
    users = [await make_user(f"u{i}") for i in range(4)]
    subs = [
        await create_submission(session, challenge_id=ch.id, user_id=u.id, photo_url=f"https://p/{i}.jpg", now=NOW)
        for i, u in enumerate(users[:2])
    ]
    expected = 0
    for i, voter in enumerate(users):
        for j, sub in enumerate(subs):
            if sub.user_id == voter.id:
                continue
            amount = (i + 1) * (j + 2)
            await cast_vote(session, submission_id=sub.id, voter_id=voter.id, amount=amount, now=NOW, policy=policy)
            expected += amount

    report = await audit_challenge(session, ch.id)
    assert report["ok"]
    assert report["prize_pool"] == report["recomputed_pool"] == expected
    assert await prize_pool(session, ch.id) == expected


@pytest.mark.asyncio
async def test_concurrent_votes_from_different_voters_all_count(session, make_user, open_challenge, policy):
    ch, owner, _voter, sub = await _setup(session, make_user, open_challenge)
    voters = [await make_user(f"v{i}") for i in range(8)]

    async def vote(voter, amount):
        async with SessionLocal() as s:
            return await cast_vote(s, submission_id=sub.id, voter_id=voter.id, amount=amount, now=NOW, policy=policy)

    results = await asyncio.gather(*(vote(v, i + 1) for i, v in enumerate(voters)))
    assert all(r["vote"].status == "active" for r in results)

    fresh = await get_submission(session, sub.id)
    assert fresh.total_wld_voted == sum(range(1, 9)) == 36
    assert fresh.vote_count == 8
    assert (await audit_challenge(session, ch.id))["ok"]


@pytest.mark.asyncio
async def test_concurrent_votes_from_one_voter_count_once(session, make_user, open_challenge, policy):
    ch, owner, voter, sub = await _setup(session, make_user, open_challenge)

    async def vote():
        async with SessionLocal() as s:
            return await cast_vote(s, submission_id=sub.id, voter_id=voter.id, amount=6, now=NOW, policy=policy)

    results = await asyncio.gather(*(vote() for _ in range(5)), return_exceptions=True)
    wins = [r for r in results if isinstance(r, dict)]
    dups = [r for r in results if isinstance(r, DuplicateVote)]
    assert len(wins) == 1
    assert len(dups) == 4

    fresh = await get_submission(session, sub.id)
    assert (fresh.total_wld_voted, fresh.vote_count) == (6, 1)
    assert len(await list_votes(session, submission_id=sub.id)) == 1
