"""Login token redemption.

A finished registration or authentication ceremony returns a one-time
login token. ``POST /auth/token`` exchanges it for a session JWT that
credential management calls present as a Bearer token.
"""

import logging

from fastapi import APIRouter, Request

from src.api.deps import IdentityDep
from src.api.schemas import TokenRequest, TokenResponse
from src.exceptions import UnauthorizedError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Authentication"])


@router.post("/token", response_model=TokenResponse)
async def redeem_login_token(
    body: TokenRequest,
    request: Request,
    identity: IdentityDep,
) -> TokenResponse:
    """Redeem a one-time login token for a session JWT.

    Each token works once and only until it expires.
    """
    session = await identity.redeem_login_token(body.token)
    if session is None:
        logger.info("Rejected login token redemption")
        raise UnauthorizedError("Invalid or expired login token.")
    return TokenResponse(
        access_token=session.access_token,
        expires_at=session.expires_at,
        email=session.account.email,
    )
