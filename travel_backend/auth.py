"""Identity resolution for requests carrying identity-provider session tokens."""
from __future__ import annotations

import hmac
import logging
from typing import Optional

from fastapi import Depends, Header, HTTPException, Request, status
from jose import JWTError, jwt

from .config import LedgerConfig
from .app.services.credits import get_ledger_config

logger = logging.getLogger("travel_backend.auth")


def resolve_account_id(token: str, config: LedgerConfig) -> Optional[str]:
    """Return the token subject when the session token is valid, else ``None``."""

    if not config.identity_jwt_key:
        logger.warning("IDENTITY_JWT_KEY is not configured; rejecting session token")
        return None

    options = {"verify_aud": config.identity_jwt_audience is not None}
    try:
        payload = jwt.decode(
            token,
            config.identity_jwt_key,
            algorithms=list(config.identity_jwt_algorithms),
            audience=config.identity_jwt_audience,
            issuer=config.identity_jwt_issuer,
            options=options,
        )
    except JWTError:
        return None

    subject = payload.get("sub")
    if not isinstance(subject, str) or not subject.strip():
        return None
    return subject.strip()


def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, value = authorization.partition(" ")
    if scheme.lower() != "bearer" or not value.strip():
        return None
    return value.strip()


def get_current_account_id(
    request: Request,
    authorization: Optional[str] = Header(None),
    config: LedgerConfig = Depends(get_ledger_config),
) -> str:
    token = _bearer_token(authorization) or request.cookies.get(config.session_cookie_name)
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")

    account_id = resolve_account_id(token, config)
    if account_id is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    return account_id


def require_admin_token(
    x_admin_token: Optional[str] = Header(None),
    config: LedgerConfig = Depends(get_ledger_config),
) -> None:
    if not config.admin_api_token:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Admin API is disabled")
    if not x_admin_token or not hmac.compare_digest(
        x_admin_token.encode("utf-8"), config.admin_api_token.encode("utf-8")
    ):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid admin token")


__all__ = ["get_current_account_id", "require_admin_token", "resolve_account_id"]
