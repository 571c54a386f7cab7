from __future__ import annotations
from fastapi import APIRouter, Depends, Request
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession
from pngfun.config import settings
from pngfun.db import get_session
from pngfun.errors import storage_guard
from pngfun.services.clock import utcnow
from pngfun.services.policy import LedgerPolicy, get_policy

router = APIRouter(tags=["system"])

@storage_guard
async def _ping(session: AsyncSession) -> None:
    await session.execute(text("SELECT 1"))

@router.get("/health")
async def health(request: Request, session: AsyncSession = Depends(get_session)):
    # Unreachable storage surfaces as 503 through the ledger error handler
    await _ping(session)
    return {
        "status": "ok",
        "env": settings.environment,
        "time": utcnow().isoformat(),
        "request_id": request.headers.get("x-request-id") or request.state.request_id,
    }

@router.get("/version")
async def version(policy: LedgerPolicy = Depends(get_policy)):
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "git_sha": settings.git_sha,
        "policy": policy.model_dump(),
    }
