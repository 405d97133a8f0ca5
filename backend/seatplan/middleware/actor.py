from fastapi import Depends, Header, HTTPException, status
from typing import Optional

from seatplan.api.deps import get_rate_limiter
from seatplan.core.errors import PermissionDeniedError
from seatplan.core.rate_limit import RateLimiter
from seatplan.core.roles import Actor, Role


async def get_current_actor(
    x_actor_id: Optional[str] = Header(None),
    x_actor_role: Optional[str] = Header(None),
) -> Actor:
    """
    Dependency returning the caller's identity. Authentication happens
    upstream; the gateway forwards the actor id and role as headers.
    """
    if not x_actor_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-Actor-Id header",
        )
    try:
        role = Role.parse(x_actor_role) if x_actor_role else Role.HOST
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc))
    return Actor(id=x_actor_id, role=role)


def require_role(minimum: Role):
    """Dependency factory: rate-limit the actor, then require at least `minimum`."""

    async def role_checker(
        actor: Actor = Depends(get_current_actor),
        limiter: RateLimiter = Depends(get_rate_limiter),
    ) -> Actor:
        await limiter.check(actor)
        ensure_role(actor, minimum, "This operation")
        return actor

    return role_checker


def ensure_role(actor: Actor, minimum: Role, action: str) -> None:
    """In-handler check for operations whose required role depends on the body."""
    if not actor.role.at_least(minimum):
        raise PermissionDeniedError(
            f"{action} requires role {minimum.name.lower()} or higher",
            actor_id=actor.id, role=actor.role.name.lower(), required=minimum.name.lower(), action=action,
        )
