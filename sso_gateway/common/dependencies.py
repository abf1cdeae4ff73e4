"""
Shared dependencies
"""
from fastapi import Depends, Request
from starlette.responses import Response

from sso_gateway.core.session import Session
from sso_gateway.gateway import Gateway


def get_gateway(request: Request) -> Gateway:
    """Components built at startup."""
    return request.app.state.gateway


async def get_session(request: Request, gateway: Gateway = Depends(get_gateway)) -> Session:
    """Session for the request's cookie; a new, unsaved session if there is none."""
    session_id = request.cookies.get(gateway.settings.session_cookie_name)
    return await Session.load(gateway.store, session_id, gateway.settings.session_ttl_seconds)


async def refresh_tokens(
    session: Session = Depends(get_session),
    gateway: Gateway = Depends(get_gateway),
) -> Session:
    """
    Refresh near-expiry provider tokens before the handler runs.

    Add to any authenticated route: `Depends(refresh_tokens)`.
    """
    await gateway.refresh_scheduler.refresh_session_tokens(session)
    return session


def get_request_host(request: Request) -> str:
    """scheme://host of the request, with proxy support."""
    base_url = f"{request.url.scheme}://{request.url.netloc}"
    forwarded_proto = request.headers.get("x-forwarded-proto")
    forwarded_host = request.headers.get("x-forwarded-host")
    if forwarded_host:
        proto = forwarded_proto or "https"
        base_url = f"{proto}://{forwarded_host}"
    return base_url


def set_session_cookie(response: Response, session: Session, gateway: Gateway) -> None:
    """Point the browser at the (possibly regenerated) session id."""
    settings = gateway.settings
    cookie_kwargs = {
        "httponly": True,
        "samesite": settings.cookie_samesite,
        "secure": settings.cookie_secure_effective,
        "path": "/",
        "max_age": settings.session_ttl_seconds,
    }
    if settings.cookie_domain:
        cookie_kwargs["domain"] = settings.cookie_domain
    response.set_cookie(key=settings.session_cookie_name, value=session.id, **cookie_kwargs)
