"""FastAPI plumbing shared by the storefront routers.

Identity is taken from headers set by the gateway in front of the service:
``X-User-Id`` for an authenticated user, ``X-Session-Id`` for an anonymous
session, and ``X-Role: admin`` for administrative calls. Tokens are never
parsed here.
"""

import structlog
from fastapi import FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse

from shared.actor import ActorRef
from shared.exceptions import DomainError

logger = structlog.get_logger(__name__)


def get_storefront(request: Request):
    return request.app.state.storefront


def current_actor(
    x_user_id: str | None = Header(default=None),
    x_session_id: str | None = Header(default=None),
) -> ActorRef:
    """The user when one is signed in, otherwise the anonymous session."""
    if x_user_id:
        return ActorRef.user(x_user_id)
    if x_session_id:
        return ActorRef.session(x_session_id)
    raise HTTPException(status_code=401, detail="X-User-Id or X-Session-Id header is required")


def current_user(x_user_id: str | None = Header(default=None)) -> ActorRef:
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Authentication required")
    return ActorRef.user(x_user_id)


def require_admin(x_role: str | None = Header(default=None)) -> None:
    if (x_role or "").lower() != "admin":
        raise HTTPException(status_code=403, detail="Admin role required")


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    logger.info(
        "request_rejected",
        path=request.url.path,
        method=request.method,
        error=exc.code,
        status_code=exc.status_code,
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(DomainError, domain_error_handler)
