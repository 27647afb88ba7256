# MFA API - TOTP enrollment and verification endpoints
#
# The service stores nothing: callers keep the secret against their own
# account identifier and pass it back on every verification.

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from ..config import get_settings
from ..core import get_audit_logger
from ..exceptions import ValidationError
from ..mfa import TOTPEngine
from .security import verify_api_key

router = APIRouter(
    prefix="/api/mfa",
    tags=["mfa"],
    dependencies=[Depends(verify_api_key)],
)

_engine: Optional[TOTPEngine] = None


def get_totp_engine() -> TOTPEngine:
    """Get or create the process-wide TOTP engine from settings."""
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = TOTPEngine(
            digits=settings.otp_digits,
            time_step=settings.otp_time_step,
            drift_steps=settings.otp_drift_steps,
            audit_logger=get_audit_logger(),
        )
    return _engine


def set_totp_engine(engine: Optional[TOTPEngine]) -> None:
    """Replace the engine singleton (for testing)."""
    global _engine
    _engine = engine


class EnrollmentUriRequest(BaseModel):
    secret: str
    issuer: str
    account_name: str


class VerifyRequest(BaseModel):
    secret: str
    otp: str
    allow_drift: bool = True


@router.post("/secret")
def generate_secret():
    """Generate a new 128-bit TOTP secret (hex)."""
    return {"secret": get_totp_engine().generate_secret_key()}


@router.post("/enrollment-uri")
def enrollment_uri(request: EnrollmentUriRequest):
    """Build the otpauth:// URI to render as a QR code."""
    try:
        uri = get_totp_engine().enrollment_uri(
            request.secret, request.issuer, request.account_name
        )
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return {"uri": uri}


@router.post("/verify")
def verify_otp(request: VerifyRequest):
    """
    Verify a one-time code.

    allow_drift accepts the neighbouring time steps (±30s by default).
    """
    engine = get_totp_engine()
    try:
        if request.allow_drift:
            valid = engine.verify_with_drift(request.secret, request.otp)
        else:
            valid = engine.verify(request.secret, request.otp)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return {"valid": valid}
