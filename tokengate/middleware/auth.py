"""Connection token check for incoming requests."""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

from fastapi import HTTPException, Request, status
from starlette.requests import cookie_parser

from tokengate.models.schemas import ConnectionToken, NoneConnectionToken

logger = logging.getLogger("tokengate.auth")

CONNECTION_TOKEN_QUERY_NAME = "tkn"
CONNECTION_TOKEN_COOKIE_NAME = "tokengate-tkn"

# Will be set at startup once the token is determined
_connection_token: ConnectionToken = NoneConnectionToken()


def set_connection_token(token: ConnectionToken) -> None:
    global _connection_token
    _connection_token = token


def get_connection_token() -> ConnectionToken:
    return _connection_token


def _query_value(query_params: Mapping[str, Any], key: str) -> Any:
    # a repeated key yields the whole list, which never matches a token
    if hasattr(query_params, "getlist"):
        values = query_params.getlist(key)
        if len(values) > 1:
            return values
        return values[0] if values else None
    return query_params.get(key)


def _parse_cookies(cookie_header: str) -> dict[str, str]:
    """Parse a Cookie header, keeping the first value of a duplicated name."""
    cookies: dict[str, str] = {}
    for chunk in cookie_header.split(";"):
        for key, value in cookie_parser(chunk).items():
            cookies.setdefault(key, value)
    return cookies


def request_has_valid_connection_token(
    connection_token: ConnectionToken,
    query_params: Mapping[str, Any],
    cookie_header: Optional[str],
) -> bool:
    """Accept the token from the query string first, then from the cookie."""
    if connection_token.validate(_query_value(query_params, CONNECTION_TOKEN_QUERY_NAME)):
        return True

    cookies = _parse_cookies(cookie_header or "")
    return connection_token.validate(cookies.get(CONNECTION_TOKEN_COOKIE_NAME))


async def require_connection_token(request: Request) -> ConnectionToken:
    """Dependency — rejects requests without a valid connection token."""
    token = get_connection_token()
    if not request_has_valid_connection_token(
        token, request.query_params, request.headers.get("cookie")
    ):
        logger.debug(f"Rejected {request.method} {request.url.path}: no valid connection token")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Forbidden",
        )
    return token
