"""
Access checks for the HTTP transport.

The bearer token protects the endpoint when ``MCP_HTTP_AUTH_TOKEN`` is set;
the Origin allow-list guards browsers against DNS-rebinding style access.
"""

import hmac


def bearer_token(authorization: str | None) -> str | None:
    """Extract the token from an ``Authorization: Bearer <token>`` header (scheme case-insensitive)."""
    scheme, _, token = (authorization or "").strip().partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def is_authorized(authorization: str | None, expected_token: str) -> bool:
    """
    Check a request's credentials.

    Always true when no token is configured. The comparison is constant-time.
    """
    if not expected_token:
        return True
    token = bearer_token(authorization)
    if token is None:
        return False
    return hmac.compare_digest(token.encode(), expected_token.encode())


def is_origin_allowed(origin: str | None, allowed_origins: list[str]) -> bool:
    """
    Check the ``Origin`` header against the allow-list.

    Requests without an Origin (non-browser clients) are allowed. A browser
    origin is rejected when no allow-list is configured; otherwise ``*`` or a
    case-insensitive exact match admits it.
    """
    origin = (origin or "").strip()
    if not origin:
        return True
    for allowed in allowed_origins:
        if allowed == "*" or allowed.lower() == origin.lower():
            return True
    return False
