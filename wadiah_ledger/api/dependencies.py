"""Dependency injection for FastAPI endpoints"""

from typing import Optional
from fastapi import Header, Request
from wadiah_ledger.config import settings
from wadiah_ledger.domain.models import ActorContext, RoundingSettings


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_actor(
    x_actor_id: Optional[str] = Header(None, description="User performing the operation"),
    x_actor_role: Optional[str] = Header(None, description="admin | cashier | staff | partner | parent"),
) -> ActorContext:
    """Build the actor context forwarded by the auth layer"""
    return ActorContext.for_role(x_actor_id, x_actor_role)


def get_rounding_settings() -> RoundingSettings:
    """Provide the process-wide rounding configuration"""
    return RoundingSettings.from_settings(settings)
