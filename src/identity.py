"""Local identity provider.

Owns the account table, one-time login tokens and JWT sessions. The
ceremony engine only sees it through the ``IdentityProvider`` protocol.
"""

import hashlib
import logging
import secrets
from collections.abc import Callable
from datetime import datetime, timedelta

from src.api.auth import create_jwt_token, decode_jwt_token
from src.dal.accounts import AccountRepository, LoginTokenRepository
from src.passkeys.models import Account, SessionToken, utcnow
from src.settings import Settings

logger = logging.getLogger(__name__)

LOGIN_TOKEN_BYTES = 32


def hash_login_token(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()


class LocalIdentityProvider:
    """Accounts in PostgreSQL, sessions as HS256 JWTs."""

    def __init__(
        self,
        settings: Settings,
        *,
        accounts: AccountRepository | None = None,
        login_tokens: LoginTokenRepository | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.settings = settings
        self.accounts = accounts or AccountRepository()
        self.login_tokens = login_tokens or LoginTokenRepository()
        self.clock = clock

    async def find_user_by_email(self, email: str) -> Account | None:
        return await self.accounts.find_by_email(email)

    async def create_user(self, email: str) -> Account:
        account = await self.accounts.create(email)
        logger.info("Created account %s", account.id)
        return account

    async def get_user(self, user_id: str) -> Account | None:
        return await self.accounts.get(user_id)

    async def issue_login_token(self, account: Account) -> str:
        """Issue a random login token; only its hash is persisted."""
        token = secrets.token_urlsafe(LOGIN_TOKEN_BYTES)
        expires_at = self.clock() + timedelta(minutes=self.settings.login_token_ttl_minutes)
        await self.login_tokens.create(account.id, hash_login_token(token), expires_at)
        return token

    async def redeem_login_token(self, token: str) -> SessionToken | None:
        """Exchange a login token for a session, at most once."""
        now = self.clock()
        user_id = await self.login_tokens.redeem(hash_login_token(token), now)
        if user_id is None:
            return None
        account = await self.accounts.get(user_id)
        if account is None:
            return None

        issued_at = int(now.timestamp())
        access_token = create_jwt_token(
            account.id, account.email, self.settings, issued_at=issued_at
        )
        return SessionToken(
            access_token=access_token,
            expires_at=now + timedelta(hours=self.settings.jwt_expiry_hours),
            account=account,
        )

    async def validate_session(self, bearer_token: str) -> Account | None:
        payload = decode_jwt_token(bearer_token, self.settings)
        if not payload:
            return None
        return await self.accounts.get(str(payload["sub"]))
