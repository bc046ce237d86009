"""
Verification of bearer tokens issued by the external identity provider.

Sign-in, refresh and password handling live with the provider; this module
only checks signatures and extracts the claims we need.
"""

import os
import logging
from typing import Optional, Dict
from jose import JWTError, jwt
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

AUTH_JWT_SECRET = os.getenv("AUTH_JWT_SECRET", "dev-secret-change-in-production")
AUTH_JWT_ALGORITHM = os.getenv("AUTH_JWT_ALGORITHM", "HS256")
AUTH_JWT_AUDIENCE = os.getenv("AUTH_JWT_AUDIENCE")  # Optional


def verify_token(token: str) -> Optional[Dict]:
    """
    Verify a provider-issued JWT.

    Args:
        token: Raw bearer token

    Returns:
        Decoded claims, or None if the token is invalid, expired, or has no subject
    """
    options = {"verify_aud": AUTH_JWT_AUDIENCE is not None}
    try:
        payload = jwt.decode(
            token,
            AUTH_JWT_SECRET,
            algorithms=[AUTH_JWT_ALGORITHM],
            audience=AUTH_JWT_AUDIENCE,
            options=options,
        )
    except JWTError as e:
        logger.debug(f"Rejected token: {e}")
        return None

    if not payload.get("sub"):
        return None
    return payload
