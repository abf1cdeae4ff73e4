"""
Session auth endpoints.

- GET  /login/{service} - start a provider login
- GET  /login/callback - provider redirect target (code, state)
- GET  /logout/{service} - start a provider logout
- GET  /logout/callback/{service} - provider redirect after logout
- GET  /isloggedin[/{service}] - session status (refreshes tokens first)
- POST /loggedout/{service} - provider-initiated logout notification

The router has no prefix of its own; `create_app` mounts it under BASE_PATH.
"""

import json
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import RedirectResponse
from loguru import logger

from sso_gateway.common.dependencies import (
    get_gateway,
    get_request_host,
    get_session,
    refresh_tokens,
    set_session_cookie,
)
from sso_gateway.common.response import success_response
from sso_gateway.core.session import Session
from sso_gateway.gateway import Gateway

LOG_PREFIX = "[AuthAPI]"
router = APIRouter(tags=["Auth"])


def _redirect(url: str, session: Session, gateway: Gateway) -> RedirectResponse:
    """302 to `url`, re-issuing the session cookie once the session exists in the store."""
    response = RedirectResponse(url=url, status_code=302)
    if not session.is_new:
        set_session_cookie(response, session, gateway)
    return response


# ==================== Login ====================


@router.get("/login/callback")
async def login_callback(
    request: Request,
    code: Optional[str] = Query(None, description="Authorization code"),
    state: Optional[str] = Query(None, description="Login state issued by /login/{service}"),
    session: Session = Depends(get_session),
    gateway: Gateway = Depends(get_gateway),
) -> RedirectResponse:
    """Validate the state, exchange the code and store the identity in the session."""
    url = await gateway.auth_service.handle_callback(
        session,
        code=code,
        state=state,
        host=get_request_host(request),
        request=request,
    )
    return _redirect(url, session, gateway)


@router.get("/login/{service}")
async def login(
    service: str,
    request: Request,
    session: Session = Depends(get_session),
    gateway: Gateway = Depends(get_gateway),
) -> RedirectResponse:
    """
    Redirect to the provider's authorization page.

    Query options: fromUrl, auth_type, auth_methods, lng.
    """
    url = await gateway.auth_service.initiate_login(
        session,
        service,
        host=get_request_host(request),
        options=request.query_params,
        request=request,
    )
    return _redirect(url, session, gateway)


# ==================== Logout ====================


@router.get("/logout/callback/{service}")
async def logout_callback(
    service: str,
    request: Request,
    state: Optional[str] = Query(None, description="Logout state"),
    session: Session = Depends(get_session),
    gateway: Gateway = Depends(get_gateway),
) -> RedirectResponse:
    """Drop the provider identity and regenerate the session id."""
    url = await gateway.auth_service.handle_logout_callback(session, service, state=state, request=request)
    return _redirect(url, session, gateway)


@router.get("/logout/{service}")
async def logout(
    service: str,
    request: Request,
    session: Session = Depends(get_session),
    gateway: Gateway = Depends(get_gateway),
) -> RedirectResponse:
    """Redirect to the provider's logout endpoint. Query option: fromUrl."""
    url = await gateway.auth_service.initiate_logout(
        session,
        service,
        host=get_request_host(request),
        options=request.query_params,
        request=request,
    )
    return _redirect(url, session, gateway)


# ==================== Status ====================


@router.get("/isloggedin")
async def is_logged_in(
    session: Session = Depends(refresh_tokens),
    gateway: Gateway = Depends(get_gateway),
) -> Dict[str, Any]:
    """Users of every provider logged in on this session."""
    return gateway.auth_service.is_logged_in(session)


@router.get("/isloggedin/{service}")
async def is_logged_in_service(
    service: str,
    session: Session = Depends(refresh_tokens),
    gateway: Gateway = Depends(get_gateway),
) -> Dict[str, Any]:
    """User of one provider, if logged in."""
    return gateway.auth_service.is_logged_in(session, service)


# ==================== Provider notifications ====================


@router.post("/loggedout/{service}")
async def logged_out(
    service: str,
    request: Request,
    gateway: Gateway = Depends(get_gateway),
) -> Dict[str, Any]:
    """Out-of-band logout from the provider, authenticated by a shared secret header."""
    token = request.headers.get(gateway.settings.logout_header_key, "")
    body = await _read_json_body(request)
    await gateway.logout_service.handle(service, token, body)
    return success_response(message="Logged out")


async def _read_json_body(request: Request) -> Any:
    raw = await request.body()
    if not raw:
        return {}
    try:
        return json.loads(raw)
    except ValueError:
        logger.warning(f"{LOG_PREFIX} Logout notification body is not JSON")
        return {}
