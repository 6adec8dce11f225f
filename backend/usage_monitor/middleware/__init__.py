"""Middleware package."""

from .auth import verify_access, extract_bearer_token

__all__ = ["verify_access", "extract_bearer_token"]
