"""
Admin authorization for mutating endpoints.

Authentication itself lives outside this service; the web layer only
asks one question per request through a pluggable ``authorize`` callable.
The default compares a static bearer token from settings.
"""

from __future__ import annotations

import functools
import hmac
import logging
from typing import Callable

from flask import Request, current_app, jsonify, request

logger = logging.getLogger(__name__)

Authorizer = Callable[[Request], bool]


def bearer_authorizer(token: str) -> Authorizer:
    """Accept ``Authorization: Bearer <token>``. No token configured = deny all."""

    def authorize(req: Request) -> bool:
        if not token:
            return False
        scheme, _, value = req.headers.get("Authorization", "").partition(" ")
        if scheme.lower() != "bearer" or not value.strip():
            return False
        return hmac.compare_digest(value.strip().encode(), token.encode())

    return authorize


def require_admin(view):  # type: ignore[no-untyped-def]
    """Reject the request with 401 unless the app's authorizer allows it."""

    @functools.wraps(view)
    def wrapper(*args, **kwargs):  # type: ignore[no-untyped-def]
        authorize: Authorizer = current_app.config["MAILPLANE_AUTHORIZE"]
        if not authorize(request):
            logger.warning("Unauthorized %s %s", request.method, request.path)
            return jsonify({"error": "Unauthorized", "code": "unauthorized"}), 401
        return view(*args, **kwargs)

    return wrapper
