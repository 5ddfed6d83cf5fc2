from __future__ import annotations

from typing import Any

import asyncpg

from jose import JWTError, jwt

from api.middleware.exception_handlers import AuthenticationError
from core.constants import Settings, get_settings
from models.chat_models import Identity
from models.error_models import ErrorCode
from utils.db_utils import with_retry


class AuthService:
    """Validates bearer tokens and resolves the user behind them.

    Tokens are issued elsewhere; this service only verifies them. It holds
    no mutable state, so one instance can serve every request and connection.
    """

    def __init__(self, pool: asyncpg.Pool, settings: Settings | None = None):
        self.pool = pool
        self.settings = settings or get_settings()

    async def verify(self, token: str) -> Identity:
        """Return the identity for ``token`` or raise ``AuthenticationError``."""
        if not token:
            raise AuthenticationError(message="Authentication required", code=ErrorCode.AUTH_REQUIRED)

        payload = self.decode_access_token(token)
        user = await self._lookup_user(payload)
        if not user:
            raise AuthenticationError(message="User not found", code=ErrorCode.AUTH_USER_NOT_FOUND)
        return self.identity_from_row(user)

    def decode_access_token(self, token: str) -> dict[str, Any]:
        try:
            payload: dict[str, Any] = jwt.decode(
                token,
                self.settings.jwt_secret,
                algorithms=[self.settings.jwt_algorithm],
            )
        except JWTError as exc:
            raise AuthenticationError(message="Invalid token", code=ErrorCode.AUTH_INVALID_TOKEN) from exc

        if payload.get("type", "access") != "access":
            raise AuthenticationError(message="Invalid token type", code=ErrorCode.AUTH_INVALID_TOKEN)
        return payload

    async def _lookup_user(self, payload: dict[str, Any]) -> asyncpg.Record | None:
        # Tokens carry the user id in `sub`; older tokens only carry `email`
        subject = payload.get("sub")
        if subject is not None:
            try:
                user_id = int(subject)
            except (TypeError, ValueError) as exc:
                raise AuthenticationError(message="Invalid token subject", code=ErrorCode.AUTH_INVALID_TOKEN) from exc
            return await self.get_user_by_id(user_id)

        email = payload.get("email")
        if email:
            return await self.get_user_by_email(str(email))

        raise AuthenticationError(message="Token has no subject", code=ErrorCode.AUTH_INVALID_TOKEN)

    @with_retry(max_attempts=3)
    async def get_user_by_id(self, user_id: int) -> asyncpg.Record | None:
        async with self.pool.acquire() as conn:
            return await conn.fetchrow("SELECT id, email FROM users WHERE id = $1", user_id)

    @with_retry(max_attempts=3)
    async def get_user_by_email(self, email: str) -> asyncpg.Record | None:
        async with self.pool.acquire() as conn:
            return await conn.fetchrow("SELECT id, email FROM users WHERE email = $1", email)

    @staticmethod
    def identity_from_row(user: asyncpg.Record) -> Identity:
        return Identity(id=user["id"], email=user["email"])
