"""
OAuth State Service for the calendar connect flow.
Generates, stores and validates the CSRF state parameter.
"""

import secrets

from gigsync.infrastructure.observability.logging import get_logger
from gigsync.services.redis_client import fast_redis

logger = get_logger(__name__)

STATE_TTL_SECONDS = 900  # 15 minutes
STATE_KEY_PREFIX = "calendar_oauth_state"
STATE_LENGTH = 32  # bytes


class OAuthStateError(Exception):
    """Custom exception for OAuth state-related errors."""

    pass


class OAuthStateService:
    """
    Stores ``state -> user_id`` in Redis with a TTL; a state validates once.
    """

    def __init__(self, store=None):
        self._store = store or fast_redis

    def _redis_key(self, state: str) -> str:
        return f"{STATE_KEY_PREFIX}:{state}"

    async def generate_state(self, user_id: str) -> str:
        """
        Generate a state parameter bound to ``user_id``.

        Raises:
            OAuthStateError: If the state could not be stored
        """
        state = secrets.token_urlsafe(STATE_LENGTH)
        stored = await self._store.set_with_ttl(self._redis_key(state), user_id, STATE_TTL_SECONDS)
        if not stored:
            logger.error("Failed to store OAuth state", user_id=user_id)
            raise OAuthStateError("Failed to store state in Redis")

        logger.info("OAuth state generated", user_id=user_id, ttl_seconds=STATE_TTL_SECONDS)
        return state

    async def consume_state(self, state: str) -> str | None:
        """Return the user a state was issued to and invalidate it (redirect callbacks carry no JWT)."""
        if not state:
            return None

        redis_key = self._redis_key(state)
        user_id = await self._store.get(redis_key)
        if user_id is None:
            logger.warning("OAuth state not found", state_preview=state[:8] + "...")
            return None

        await self._store.delete(redis_key)
        return user_id


# Singleton instance for application use
oauth_state_service = OAuthStateService()
