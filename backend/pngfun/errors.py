from __future__ import annotations
import asyncio
import functools
from sqlalchemy import exc as sa_exc
import structlog

log = structlog.get_logger()


class LedgerError(Exception):
    """Base for every typed outcome the ledger rejects with."""
    code = "ledger_error"
    status_code = 400

    def __init__(self, message: str | None = None):
        self.message = message or (type(self).__doc__ or self.code).strip()
        super().__init__(self.message)


# --- validation: fail fast, never retry ---

class ValidationError(LedgerError):
    """Invalid input"""
    code = "validation_error"
    status_code = 400

class InvalidAmount(ValidationError):
    """WLD amount must be greater than 0"""
    code = "invalid_amount"

class SelfVote(ValidationError):
    """You cannot vote on your own submission"""
    code = "self_vote"


# --- conflicts: uniqueness violations ---

class ConflictError(LedgerError):
    """Already exists"""
    code = "conflict"
    status_code = 409

class DuplicateSubmission(ConflictError):
    """You have already submitted a photo for this challenge"""
    code = "already_submitted"

class DuplicateVote(ConflictError):
    """You have already voted on this submission"""
    code = "already_voted"

class OverlappingChallenge(ConflictError):
    """Another active challenge overlaps this time window"""
    code = "overlapping_challenge"

class UsernameTaken(ConflictError):
    """Username is already taken"""
    code = "username_taken"


# --- lookups ---

class NotFoundError(LedgerError):
    """Not found"""
    code = "not_found"
    status_code = 404


# --- lifecycle ---

class StateError(LedgerError):
    """Operation not allowed in the current challenge state"""
    code = "invalid_state"
    status_code = 409

class ChallengeNotActive(StateError):
    """Challenge is not active"""
    code = "challenge_not_active"

class ChallengeClosed(StateError):
    """Voting is closed for this challenge"""
    code = "challenge_closed"


# --- infrastructure ---

class StorageUnavailable(LedgerError):
    """Service temporarily unavailable, please retry"""
    code = "storage_unavailable"
    status_code = 503

class IntegrityFault(LedgerError):
    """Ledger data-integrity fault detected"""
    code = "integrity_fault"
    status_code = 500


_TRANSIENT = (sa_exc.OperationalError, sa_exc.InterfaceError, sa_exc.TimeoutError, asyncio.TimeoutError, TimeoutError, ConnectionError)

def storage_guard(fn):
    """Translate driver/pool failures raised by `fn` into StorageUnavailable."""
    @functools.wraps(fn)
    async def wrapper(*args, **kwargs):
        try:
            return await fn(*args, **kwargs)
        except LedgerError:
            raise
        except _TRANSIENT as e:
            log.warning("storage_unavailable", op=fn.__name__, error=str(e))
            raise StorageUnavailable() from e
    return wrapper
