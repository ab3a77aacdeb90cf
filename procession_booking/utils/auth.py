"""
Bearer token verification.

Identity is issued by an external provider; this module only checks the
signature and claims and hands back the subject, which callers trust as the
customer id.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt
from pydantic import BaseModel

from ..config import get_settings


class TokenData(BaseModel):
    """Claims extracted from a verified token."""
    subject: str
    role: str = "customer"
    email: Optional[str] = None


def create_access_token(
    data: dict,
    expires_delta: Optional[timedelta] = None
) -> str:
    """
    Create a signed access token.

    Used by local tooling and tests; production tokens come from the identity
    provider.

    Args:
        data: Claims to encode; ``sub`` is required for verification to pass
        expires_delta: Optional custom expiration time

    Returns:
        The encoded JWT
    """
    settings = get_settings()
    to_encode = data.copy()

    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(
            minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES
        )

    to_encode.update({"exp": expire})
    if settings.token_audience and "aud" not in to_encode:
        to_encode["aud"] = settings.token_audience
    if settings.token_issuer and "iss" not in to_encode:
        to_encode["iss"] = settings.token_issuer

    return jwt.encode(
        to_encode,
        settings.SECRET_KEY,
        algorithm=settings.ALGORITHM
    )


def verify_token(token: str) -> Optional[TokenData]:
    """
    Verify and decode a bearer token.

    Args:
        token: The JWT to verify

    Returns:
        TokenData if the token is valid, None otherwise
    """
    settings = get_settings()
    options = {"verify_aud": settings.token_audience is not None}

    try:
        payload = jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.ALGORITHM],
            audience=settings.token_audience,
            issuer=settings.token_issuer,
            options=options,
        )
    except JWTError:
        return None

    subject = payload.get("sub")
    if not subject:
        return None

    return TokenData(
        subject=str(subject),
        role=payload.get("role") or "customer",
        email=payload.get("email"),
    )
