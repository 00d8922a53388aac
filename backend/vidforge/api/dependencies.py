"""
FastAPI dependencies shared by the HTTP routes.
"""

from fastapi import Header, Request

from vidforge.errors import AuthorizationError
from vidforge.services.container import ServiceContainer


def get_services(request: Request) -> ServiceContainer:
    """Service container built in the application lifespan."""
    return request.app.state.services


def get_caller_id(x_user_id: str | None = Header(default=None)) -> str:
    """
    Caller identity set by the upstream authentication layer.

    Raises:
        AuthorizationError: Header missing or empty (401)
    """
    if not x_user_id or not x_user_id.strip():
        raise AuthorizationError("Missing X-User-Id header", authenticated=False)
    return x_user_id.strip()
