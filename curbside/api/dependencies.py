"""Request dependencies for requester identity and operator access"""

import hmac

from fastapi import Request

from curbside.config import settings
from curbside.services.errors import AuthError


def optional_requester_id(request: Request) -> str | None:
    """User id supplied by the identity provider, if any"""
    user_id = request.headers.get(settings.identity_header)
    if user_id and user_id.strip():
        return user_id.strip()
    return None


def get_requester_id(request: Request) -> str:
    """User id supplied by the identity provider; required"""
    user_id = optional_requester_id(request)
    if user_id is None:
        raise AuthError("Missing requester identity")
    return user_id


def require_admin(request: Request) -> None:
    """Operator endpoints require the admin key when one is configured"""
    if not settings.admin_api_key:
        return
    supplied = request.headers.get(settings.admin_key_header, "")
    if not hmac.compare_digest(supplied, settings.admin_api_key):
        raise AuthError("Invalid or missing admin credentials")
