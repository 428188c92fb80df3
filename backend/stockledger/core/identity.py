"""Actor identity supplied by the external identity provider."""

from typing import Annotated, Optional

from fastapi import Depends, Request
from pydantic import BaseModel

from stockledger.core.errors import Unauthenticated
from stockledger.core.security import decode_access_token


class Actor(BaseModel):
    """The caller on whose behalf an operation runs.

    Attributes:
        user_id: Tenant key; every record is owned by exactly one user.
        display_name: Human name stamped on movements, reservations and audits.
    """

    user_id: str
    display_name: str

    model_config = {"frozen": True}


def require_actor(actor: Optional[Actor]) -> Actor:
    """Return *actor* or raise ``Unauthenticated`` when it is missing."""
    if actor is None or not actor.user_id:
        raise Unauthenticated()
    return actor


async def get_current_actor(request: Request) -> Actor:
    """Resolve the actor from the request's bearer token.

    Checks in order:
    1. Authorization: Bearer <token> header
    2. access_token cookie
    """
    payload = None

    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        token = auth_header.split(" ", 1)[1]
        if token:
            payload = decode_access_token(token)

    if payload is None:
        cookie_token = request.cookies.get("access_token")
        if cookie_token:
            payload = decode_access_token(cookie_token)

    if payload is None:
        raise Unauthenticated()

    user_id = payload.get("sub")
    if not user_id:
        raise Unauthenticated("Invalid token payload")

    display_name = payload.get("name") or payload.get("email") or str(user_id)
    return Actor(user_id=str(user_id), display_name=display_name)


CurrentActor = Annotated[Actor, Depends(get_current_actor)]
