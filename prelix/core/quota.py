"""Chat-interface quota: who may open a new session."""

from __future__ import annotations

from functools import lru_cache

import structlog

from prelix.config import get_settings
from prelix.core.errors import ChatLimitReachedError
from prelix.db.client import SupabaseClient, get_supabase_client
from prelix.db.models import ProfileRow

logger = structlog.get_logger()

LIMIT_MESSAGE = (
    "You have reached your chat interface limit. "
    "Please upgrade or refer friends to unlock unlimited interfaces."
)


class QuotaGate:
    def __init__(self, db: SupabaseClient, limit: int) -> None:
        self.db = db
        self.limit = limit

    def profile(self, user_id: str) -> ProfileRow:
        rows = self.db.select("profiles", filters={"id": user_id})
        if not rows:
            return ProfileRow(id=user_id)
        return ProfileRow(**rows[0])

    def check(self, user_id: str) -> ProfileRow:
        """Raise ChatLimitReachedError unless the user may open another session."""
        allowed = self.db.rpc("can_create_chat_interface", {"_user_id": user_id})
        profile = self.profile(user_id)
        if allowed is None:
            allowed = profile.chat_interface_count < self.limit
        if not allowed and not profile.has_unlimited_interfaces:
            logger.info("quota.limit_reached", count=profile.chat_interface_count)
            raise ChatLimitReachedError(LIMIT_MESSAGE)
        return profile

    def consume(self, profile: ProfileRow) -> None:
        """Count one new session against a limited user."""
        if profile.has_unlimited_interfaces:
            return
        self.db.rpc("increment_chat_interface_count", {"_user_id": profile.id})
        logger.info("quota.consumed", count=profile.chat_interface_count + 1, limit=self.limit)


@lru_cache
def get_quota_gate() -> QuotaGate:
    return QuotaGate(get_supabase_client(), get_settings().chat_interface_limit)
