"""Shared-secret bearer check for the monitoring API."""

import secrets
from typing import Optional
from fastapi import HTTPException, Request, Security
from fastapi.security import APIKeyHeader

# API Key header
api_key_header = APIKeyHeader(name="Authorization", auto_error=False)


def extract_bearer_token(auth_header: Optional[str]) -> Optional[str]:
    """Extract token from 'Bearer <token>' header."""
    if not auth_header:
        return None
    if auth_header.startswith("Bearer "):
        return auth_header[7:]
    return None


async def verify_access(
    request: Request,
    auth_header: Optional[str] = Security(api_key_header),
) -> bool:
    """
    Dependency that validates the access password.
    The check is disabled when no password is configured.
    """
    password = request.app.state.settings.access_password
    if not password:
        return True

    token = extract_bearer_token(auth_header)
    if not token or not secrets.compare_digest(token, password):
        raise HTTPException(
            status_code=401,
            detail="Unauthorized. Use 'Authorization: Bearer <access_password>' header."
        )

    return True
