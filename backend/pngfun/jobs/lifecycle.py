from __future__ import annotations
import asyncio
import uuid
import structlog
from redis import Redis
from rq import Queue
from pngfun.config import settings
from pngfun.db import SessionLocal, engine
from pngfun.services.clock import utcnow
from pngfun.services.lifecycle import run_lifecycle
from pngfun.services.policy import LedgerPolicy
from pngfun.services.settlement import finalize_challenge
from pngfun.services.settlement_backend import get_settlement_backend

log = structlog.get_logger()


async def _tick() -> dict:
    try:
        async with SessionLocal() as session:
            return await run_lifecycle(
                session, utcnow(), policy=LedgerPolicy.from_settings(), backend=get_settlement_backend()
            )
    finally:
        # asyncio.run closes the loop; pooled connections must not outlive it
        await engine.dispose()


async def _finalize(challenge_id: str) -> None:
    try:
        async with SessionLocal() as session:
            await finalize_challenge(
                session,
                uuid.UUID(challenge_id),
                now=utcnow(),
                policy=LedgerPolicy.from_settings(),
                backend=get_settlement_backend(),
            )
    finally:
        await engine.dispose()


def run_lifecycle_tick():
    # RQ entry point (sync); run the async coroutine
    return asyncio.run(_tick())


def finalize_challenge_job(challenge_id: str):
    # RQ entry point (sync)
    asyncio.run(_finalize(challenge_id))


def enqueue_finalize(challenge_id) -> bool:
    """Best effort: a missed job is picked up by the next lifecycle tick."""
    if not settings.jobs_enabled:
        return False
    try:
        q = Queue("default", connection=Redis.from_url(settings.redis_url))
        q.enqueue(finalize_challenge_job, str(challenge_id))
        return True
    except Exception as e:
        log.warning("enqueue_failed", job="finalize_challenge", challenge_id=str(challenge_id), error=str(e))
        return False
