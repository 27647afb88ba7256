# API Module - FastAPI service over the vault and TOTP engine
