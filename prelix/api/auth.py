"""Caller identity from the ``Authorization: Bearer`` header."""

from __future__ import annotations

from fastapi import Depends, Header

from prelix.core.errors import AuthorizationError
from prelix.db.client import SupabaseClient, get_supabase_client


async def get_current_user(
    authorization: str | None = Header(default=None),
    db: SupabaseClient = Depends(get_supabase_client),
) -> str:
    """Resolve the bearer token to a user id or raise AuthorizationError."""
    if not authorization or not authorization.lower().startswith("bearer "):
        raise AuthorizationError("Missing bearer token")
    token = authorization.split(" ", 1)[1].strip()
    user_id = db.get_user_id(token) if token else None
    if not user_id:
        raise AuthorizationError("Invalid or expired token")
    return user_id
