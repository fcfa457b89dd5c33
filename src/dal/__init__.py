"""Data Access Layer for Latchkey.

One repository per table. Each method runs in its own committed
transaction, opened through the injected session factory.
"""

from src.dal.accounts import AccountRepository, LoginTokenRepository
from src.dal.audit import AuditLogRepository
from src.dal.challenges import ChallengeRepository
from src.dal.credentials import CredentialRepository
from src.dal.rate_limits import RateLimitRepository

__all__ = [
    "AccountRepository",
    "AuditLogRepository",
    "ChallengeRepository",
    "CredentialRepository",
    "LoginTokenRepository",
    "RateLimitRepository",
]
