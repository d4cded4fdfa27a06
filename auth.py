"""
Bearer token checks for store owners and customers.

Tokens are issued elsewhere; here they are only verified. Owner tokens carry
a ``userId`` claim, customer tokens a ``customerId`` claim.
"""

from typing import Optional

import jwt
from fastapi import Header, Request

from errors import AuthenticationError

ALGORITHM = "HS256"


def decode_token(token: str, secret: str) -> Optional[dict]:
    try:
        return jwt.decode(token, secret, algorithms=[ALGORITHM])
    except jwt.PyJWTError:
        return None


def _bearer(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        return None
    return token.strip()


def _secret(request: Request) -> str:
    return request.app.state.services.settings.jwt_secret


def require_owner(request: Request, authorization: Optional[str] = Header(None)) -> str:
    token = _bearer(authorization)
    if not token:
        raise AuthenticationError("Authentication required. Please log in.")
    claims = decode_token(token, _secret(request))
    if not claims or not claims.get("userId"):
        raise AuthenticationError("Invalid or expired token. Please log in again.")
    return str(claims["userId"])


def require_customer(request: Request, authorization: Optional[str] = Header(None)) -> str:
    token = _bearer(authorization)
    if not token:
        raise AuthenticationError("Authentication required. Please log in.")
    claims = decode_token(token, _secret(request))
    if not claims or not claims.get("customerId"):
        raise AuthenticationError("Invalid or expired token. Please log in again.")
    return str(claims["customerId"])


def optional_customer(request: Request, authorization: Optional[str] = Header(None)) -> Optional[str]:
    """Customer id for logged in shoppers; guests (or bad tokens) get None."""
    token = _bearer(authorization)
    if not token:
        return None
    claims = decode_token(token, _secret(request))
    if not claims or not claims.get("customerId"):
        return None
    return str(claims["customerId"])
