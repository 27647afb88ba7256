# MFA Module - Time-based One-Time Passwords

from .totp import TOTPEngine

__all__ = ["TOTPEngine"]
