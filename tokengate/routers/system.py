"""Health and token-gated endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, RedirectResponse

from tokengate import __version__
from tokengate.middleware.auth import (
    CONNECTION_TOKEN_COOKIE_NAME,
    CONNECTION_TOKEN_QUERY_NAME,
    get_connection_token,
    require_connection_token,
)
from tokengate.models.schemas import ConnectionToken, MandatoryConnectionToken

router = APIRouter(tags=["system"])


@router.get("/health")
async def health():
    return {
        "status": "ok",
        "version": __version__,
        "connection_token": get_connection_token().type.value,
    }


@router.get("/")
async def root(request: Request, token: ConnectionToken = Depends(require_connection_token)):
    """Entry point for shared links.

    A token passed as ?tkn= is moved into a cookie and stripped from the URL,
    so later requests in the same browser session authorize via the cookie.
    """
    presented = request.query_params.getlist(CONNECTION_TOKEN_QUERY_NAME)
    if isinstance(token, MandatoryConnectionToken) and len(presented) == 1 and token.validate(presented[0]):
        url = request.url.remove_query_params(CONNECTION_TOKEN_QUERY_NAME)
        location = url.path + (f"?{url.query}" if url.query else "")
        response = RedirectResponse(location, status_code=302)
        response.set_cookie(
            CONNECTION_TOKEN_COOKIE_NAME,
            token.value,
            httponly=True,
            samesite="lax",
        )
        return response
    return JSONResponse({"status": "authorized"})


@router.get("/whoami", dependencies=[Depends(require_connection_token)])
async def whoami():
    return {"authorized": True}
