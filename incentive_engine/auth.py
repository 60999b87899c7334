from fastapi import Header, HTTPException, Security, status
from fastapi.security import APIKeyHeader
from typing import Optional

from incentive_engine.constants import API_KEY
from incentive_engine.schemas import Actor

api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


async def verify_api_key(api_key: str = Security(api_key_header)):
    """Verify API key for authentication"""
    if not api_key or api_key != API_KEY:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API Key"
        )
    return api_key


async def get_actor(
    x_actor_id: Optional[str] = Header(None),
    x_actor_roles: Optional[str] = Header(None)
) -> Actor:
    """Actor identity from the upstream role resolver; trusted as given"""
    roles = frozenset(
        role.strip().lower() for role in (x_actor_roles or "").split(",") if role.strip()
    )
    return Actor(user_id=(x_actor_id or "").strip() or None, roles=roles)
