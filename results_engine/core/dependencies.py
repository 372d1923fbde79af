"""FastAPI dependency injection utilities."""

from typing import Annotated

from fastapi import Depends, Header, Request

from results_engine.core.exceptions import ValidationError
from results_engine.schemas.grading import GradingPolicy
from results_engine.services.grading import GradingPolicyProvider, grading_policy_provider


class ActorContext:
    """Who is making a change, and from where.

    Authentication happens upstream; the caller's id arrives in a header.
    """

    def __init__(
        self,
        user_id: int | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ):
        self.user_id = user_id
        self.ip_address = ip_address
        self.user_agent = user_agent

    def __repr__(self) -> str:
        return f"<ActorContext(user_id={self.user_id}, ip={self.ip_address})>"


def get_actor(
    request: Request,
    x_user_id: str | None = Header(None, description="ID of the authenticated user"),
) -> ActorContext:
    """Build the actor context from request headers."""
    user_id = None
    if x_user_id:
        try:
            user_id = int(x_user_id)
        except ValueError:
            raise ValidationError("X-User-Id must be an integer", details={"x_user_id": x_user_id})

    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        ip_address = forwarded.split(",")[0].strip()
    else:
        ip_address = request.client.host if request.client else None

    return ActorContext(
        user_id=user_id,
        ip_address=ip_address,
        user_agent=request.headers.get("user-agent"),
    )


def get_policy_provider() -> GradingPolicyProvider:
    """Process-wide grading policy cache."""
    return grading_policy_provider


def get_grading_policy(
    provider: Annotated[GradingPolicyProvider, Depends(get_policy_provider)],
) -> GradingPolicy:
    """Current grading policy, fixed for the rest of the request."""
    return provider.get()


# Type aliases for dependency injection
Actor = Annotated[ActorContext, Depends(get_actor)]
CurrentPolicy = Annotated[GradingPolicy, Depends(get_grading_policy)]
PolicyProvider = Annotated[GradingPolicyProvider, Depends(get_policy_provider)]
