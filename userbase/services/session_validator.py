"""
Session Validator.

Resolves an opaque session token to the owning user id. Only the SHA-256
hash of a token is ever looked up or logged (truncated).
"""

import hashlib
from datetime import UTC, datetime
from uuid import UUID

from structlog import get_logger

from userbase.db.repositories import SessionRepository
from userbase.exceptions import AuthenticationError, SessionExpiredError
from userbase.observability.metrics import metrics

logger = get_logger(__name__)


def hash_token(token: str) -> str:
    """Hex SHA-256 of a raw session token."""
    return hashlib.sha256(token.encode()).hexdigest()


class SessionValidator:
    """
    Read-only session check run before every protected operation.

    Usage:
        validator = SessionValidator(store.sessions)
        user_id = await validator.validate(raw_token)
    """

    def __init__(self, sessions: SessionRepository) -> None:
        self.sessions = sessions

    async def validate(self, raw_token: str | None, now: datetime | None = None) -> UUID:
        """
        Return the user id for a usable session.

        Raises:
            AuthenticationError: no token, or no session for its hash
            SessionExpiredError: session revoked or past expires_at
        """
        if not raw_token:
            metrics.record_session_validation("missing")
            raise AuthenticationError("Unauthorized")

        token_hash = hash_token(raw_token)
        session = await self.sessions.get_by_token_hash(token_hash)
        if session is None:
            metrics.record_session_validation("unknown")
            logger.info("session_not_found", token_hash=token_hash[:16])
            raise AuthenticationError("Unauthorized")

        if not session.is_usable(now or datetime.now(UTC)):
            outcome = "revoked" if session.revoked_at is not None else "expired"
            metrics.record_session_validation(outcome)
            logger.info(
                "session_rejected",
                session_id=str(session.session_id),
                outcome=outcome,
            )
            raise SessionExpiredError(session.session_id)

        metrics.record_session_validation("valid")
        return session.user_id
