"""Request authentication and owner resolution."""

import re
from typing import Optional

from fastapi import Header, HTTPException

_OWNER_PATTERN = re.compile(r'^[a-zA-Z0-9_-]{1,128}$')


def require_owner(
    authorization: Optional[str] = Header(default=None),
    x_owner_id: Optional[str] = Header(default=None),
) -> str:
    """Authenticate the caller and return the owner every query is scoped to."""
    from . import runtime_env_settings

    expected = runtime_env_settings.store_api_token if runtime_env_settings else None
    if expected:
        presented = None
        if authorization and authorization.lower().startswith("bearer "):
            presented = authorization[7:]

        if not presented or presented != expected:
            raise HTTPException(status_code=401, detail="Invalid store token")

    if not x_owner_id:
        raise HTTPException(status_code=401, detail="X-Owner-Id header is required")

    if not _OWNER_PATTERN.match(x_owner_id):
        raise HTTPException(status_code=400, detail="Malformed owner id")

    return x_owner_id
