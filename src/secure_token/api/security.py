# API Security - Service API key
#
# Every token and MFA endpoint requires the X-API-Key header.
# The key comes from configuration (SECURE_TOKEN_API_KEY); without one the
# protected endpoints answer 503 instead of running open.

import secrets
from typing import Optional

from fastapi import Header, HTTPException, status

_API_KEY: Optional[str] = None


def initialize_api_key(api_key: Optional[str]) -> None:
    """Set the key callers must present (None disables the protected API)."""
    global _API_KEY
    _API_KEY = api_key or None


def get_api_key() -> Optional[str]:
    return _API_KEY


async def verify_api_key(x_api_key: Optional[str] = Header(None)) -> str:
    """
    FastAPI dependency to verify the service API key.

    Usage in routes:
        @router.post("/...", dependencies=[Depends(verify_api_key)])

    Raises:
        HTTPException: 503 if no key is configured, 401 if missing or wrong
    """
    if _API_KEY is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="API key not configured"
        )

    if x_api_key is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-API-Key header"
        )

    # Constant-time comparison to prevent timing attacks
    if not secrets.compare_digest(x_api_key.encode("utf-8"), _API_KEY.encode("utf-8")):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key"
        )

    return x_api_key
