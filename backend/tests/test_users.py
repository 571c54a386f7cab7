import uuid
import httpx
import pytest
from httpx import AsyncClient
from fastapi import status

from pngfun.main import app
from pngfun.security import decode_identity_token, make_identity_token, InvalidIdentity
from pngfun.services.identity import verified_user_id
from conftest import bearer


def _wallet() -> str:
    return f"0x{uuid.uuid4().hex}"


def test_identity_token_round_trip_normalizes_address():
    token = make_identity_token("0xABCdef")
    assert decode_identity_token(token) == "0xabcdef"
    with pytest.raises(InvalidIdentity):
        decode_identity_token(token + "x")


@pytest.mark.asyncio
async def test_verified_user_id_is_stable(session):
    wallet = _wallet()
    first = await verified_user_id(session, make_identity_token(wallet))
    second = await verified_user_id(session, make_identity_token(wallet.upper().replace("0X", "0x")))
    assert first == second


@pytest.mark.asyncio
async def test_me_creates_user_on_first_call(db):
    wallet = _wallet()
    async with AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as ac:
        r = await ac.get("/users/me", headers=bearer(wallet))
        assert r.status_code == 200, r.text
        me = r.json()
        assert me["wallet_address"] == wallet
        assert (me["total_wins"], me["current_streak"], me["total_wld_earned"], me["pending_winnings"]) == (0, 0, 0, 0)
        assert me["onboarding_completed"] is False

        r2 = await ac.get("/users/me", headers=bearer(wallet))
        assert r2.json()["id"] == me["id"]


@pytest.mark.asyncio
async def test_username_unique(db):
    username = f"snap_{uuid.uuid4().hex[:8]}"
    async with AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as ac:
        r1 = await ac.patch("/users/me", headers=bearer(_wallet()), json={"username": username})
        assert r1.status_code == 200, r1.text
        assert r1.json()["username"] == username

        r2 = await ac.patch("/users/me", headers=bearer(_wallet()), json={"username": username})
        assert r2.status_code == status.HTTP_409_CONFLICT
        assert r2.json()["code"] == "username_taken"

        r3 = await ac.patch("/users/me", headers=bearer(_wallet()), json={"username": "bad name!"})
        assert r3.status_code == 400

        r4 = await ac.get(f"/users/by-username/{username}")
        assert r4.status_code == 200
        assert r4.json()["username"] == username
        assert "pending_winnings" not in r4.json()

        r5 = await ac.get("/users/by-username/nobody_here")
        assert r5.status_code == 404


@pytest.mark.asyncio
async def test_status_flags(db):
    wallet = _wallet()
    async with AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as ac:
        r = await ac.get("/users/me/status", headers=bearer(wallet))
        assert r.json() == {"onboarding_completed": False, "notifications_enabled": False}

        r = await ac.put("/users/me/status", headers=bearer(wallet), json={"onboarding_completed": True})
        assert r.json() == {"onboarding_completed": True, "notifications_enabled": False}

        r = await ac.put("/users/me/status", headers=bearer(wallet), json={"notifications_enabled": True})
        assert r.json() == {"onboarding_completed": True, "notifications_enabled": True}
