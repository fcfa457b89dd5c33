"""Database entity models.

All SQLAlchemy ORM models for Latchkey.
"""

from src.storage.entities.login_token import LoginToken
from src.storage.entities.passkey_audit_log import PasskeyAuditLog
from src.storage.entities.passkey_challenge import PasskeyChallenge
from src.storage.entities.passkey_credential import PasskeyCredential
from src.storage.entities.passkey_rate_limit import PasskeyRateLimit
from src.storage.entities.user_account import UserAccount

__all__ = [
    "LoginToken",
    "PasskeyAuditLog",
    "PasskeyChallenge",
    "PasskeyCredential",
    "PasskeyRateLimit",
    "UserAccount",
]
