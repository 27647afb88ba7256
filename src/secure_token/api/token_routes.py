# Token API - RESTful endpoints for the tokenization vault
#
# - Tokenize / detokenize payloads
# - Token status, revocation and usage tracking
# - All endpoints require the X-API-Key header
#
# Decode/decrypt failures answer exactly like unknown tokens (404) so the
# API never tells a caller whether a ciphertext was malformed.

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from ..config import get_settings
from ..core import get_audit_logger
from ..exceptions import (
    CiphertextError,
    ExpiredError,
    NotFoundError,
    RevokedError,
    SecureTokenError,
    ValidationError,
)
from ..vault import TokenVault
from .security import verify_api_key

router = APIRouter(
    prefix="/api/tokens",
    tags=["tokens"],
    dependencies=[Depends(verify_api_key)],
)

_vault: Optional[TokenVault] = None


def get_vault() -> TokenVault:
    """Get or create the process-wide vault from settings."""
    global _vault
    if _vault is None:
        _vault = TokenVault.from_settings(get_settings(), audit_logger=get_audit_logger())
    return _vault


def set_vault(vault: Optional[TokenVault]) -> None:
    """Replace the vault singleton (for testing)."""
    global _vault
    _vault = vault


def raise_for_token_error(exc: SecureTokenError) -> None:
    """Translate a vault exception into an HTTP error."""
    if isinstance(exc, ValidationError):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    if isinstance(exc, (NotFoundError, CiphertextError)):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Token not found")
    if isinstance(exc, ExpiredError):
        raise HTTPException(status_code=status.HTTP_410_GONE, detail="Token has expired")
    if isinstance(exc, RevokedError):
        raise HTTPException(status_code=status.HTTP_410_GONE, detail="Token has been revoked")
    raise exc


# Request/Response Models
class TokenizeRequest(BaseModel):
    payload: str
    expires_at: Optional[datetime] = None
    never_expires: bool = False


class TokenizeResponse(BaseModel):
    token: str
    expires_at: Optional[datetime]


class DetokenizeRequest(BaseModel):
    token: str


class DetokenizeResponse(BaseModel):
    payload: str


class TokenMetadataResponse(BaseModel):
    token: str
    status: str
    expired: bool
    created_at: str
    expires_at: Optional[str]
    usage_count: int


# Endpoints

@router.post("", response_model=TokenizeResponse)
def tokenize(request: TokenizeRequest):
    """
    Exchange a sensitive payload for a token.

    Default expiry is the configured TTL (30 days) unless expires_at or
    never_expires is given.
    """
    vault = get_vault()
    try:
        token = vault.tokenize(
            request.payload,
            expiry=request.expires_at,
            never_expires=request.never_expires,
        )
        record = vault.get_record(token)
    except SecureTokenError as e:
        raise_for_token_error(e)

    return TokenizeResponse(token=token, expires_at=record.expires_at)


@router.post("/detokenize", response_model=DetokenizeResponse)
def detokenize(request: DetokenizeRequest):
    """Return the payload behind an active, unexpired token."""
    try:
        payload = get_vault().detokenize(request.token)
    except SecureTokenError as e:
        raise_for_token_error(e)

    return DetokenizeResponse(payload=payload)


@router.get("/{token}", response_model=TokenMetadataResponse)
def get_token_status(token: str):
    """Token metadata (status, expiry, usage). Never returns the payload."""
    vault = get_vault()
    try:
        record = vault.get_record(token)
    except SecureTokenError as e:
        raise_for_token_error(e)

    return TokenMetadataResponse(**record.to_metadata(vault.now()))


@router.post("/{token}/revoke")
def revoke_token(token: str):
    """
    Revoke a token permanently.

    revoked is false when the token was already revoked or does not exist.
    """
    try:
        revoked = get_vault().revoke(token)
    except SecureTokenError as e:
        raise_for_token_error(e)

    return {"revoked": revoked}


@router.post("/{token}/usage")
def track_token_usage(token: str):
    """Count a use of the token without reading its payload."""
    try:
        get_vault().track_usage(token)
    except SecureTokenError as e:
        raise_for_token_error(e)

    return {"success": True}
