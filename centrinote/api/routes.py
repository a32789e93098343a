"""
FastAPI routes for the Zoom OAuth integration.
"""

from __future__ import annotations

import logging
from http import HTTPStatus
from typing import Annotated, Any, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import ValidationError

from centrinote.core.errors import (
    OAuthFlowError,
    ReauthorizationRequiredError,
    TokenRecordNotFoundError,
    UpstreamExchangeError,
    UpstreamParseError,
)
from centrinote.dependencies import (
    get_app_settings,
    get_callback_handler,
    get_handshake_service,
    get_session_user_id,
    get_zoom_oauth_client,
    get_zoom_token_service,
)
from centrinote.schemas import (
    AuthorizationStart,
    ConnectionStatus,
    DisconnectResult,
    OAuthCallbackPayload,
    RefreshResult,
    ZoomProfile,
)
from centrinote.services.oauth_callback import CallbackOutcome, CallbackStatus

router = APIRouter()
logger = logging.getLogger(__name__)

COOKIE_PATH = "/api/auth/zoom"

_ERROR_STATUS = {
    "provider_denied": HTTPStatus.BAD_REQUEST,
    "malformed_callback": HTTPStatus.BAD_REQUEST,
    "handshake_expired_or_missing": HTTPStatus.GONE,
    "csrf_validation_failed": HTTPStatus.FORBIDDEN,
    "identity_unresolved": HTTPStatus.UNAUTHORIZED,
    "upstream_http_error": HTTPStatus.BAD_GATEWAY,
    "upstream_exchange_failure": HTTPStatus.BAD_GATEWAY,
    "upstream_parse_failure": HTTPStatus.BAD_GATEWAY,
    "upstream_unreachable": HTTPStatus.GATEWAY_TIMEOUT,
    "reauthorization_required": HTTPStatus.UNAUTHORIZED,
    "not_connected": HTTPStatus.NOT_FOUND,
}


def _wants_html(request: Request) -> bool:
    return "text/html" in request.headers.get("accept", "").lower()


def _resolve_caller(
    user_id: Optional[str],
    session_user_id: Optional[str],
    settings: Any,
    *,
    required: bool = True,
) -> Optional[str]:
    """Return the user a request acts for.

    A bare ``?user_id=`` is only trusted when ``OAUTH_ALLOW_QUERY_USER_ID`` is on,
    which production settings refuse.
    """
    if session_user_id:
        if user_id and user_id != session_user_id:
            raise HTTPException(
                status_code=HTTPStatus.FORBIDDEN,
                detail="user_id does not match the signed-in user.",
            )
        return session_user_id
    if user_id and settings.oauth.allow_query_user_id:
        return user_id
    if user_id or required:
        raise HTTPException(
            status_code=HTTPStatus.UNAUTHORIZED,
            detail="A signed-in session is required.",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return None


def _frontend_url(base: str, redirect_to: str, marker: dict[str, str]) -> str:
    """Join the frontend base and a relative path, merging ``marker`` into its query."""
    parts = urlsplit(f"{base.rstrip('/')}{redirect_to}")
    query = [
        (key, value)
        for key, value in parse_qsl(parts.query, keep_blank_values=True)
        if key not in marker
    ]
    query.extend(marker.items())
    return urlunsplit(parts._replace(query=urlencode(query)))


def _flow_error(exc: OAuthFlowError) -> HTTPException:
    return HTTPException(
        status_code=_ERROR_STATUS.get(exc.kind, HTTPStatus.BAD_REQUEST),
        detail={"error": exc.kind, "message": exc.message},
    )


@router.get("/health", status_code=HTTPStatus.OK)
async def healthcheck() -> dict:
    """Simple health endpoint for monitoring."""
    return {"status": "ok"}


@router.get("/auth/zoom/authorize", status_code=HTTPStatus.OK)
async def start_zoom_oauth_flow(
    request: Request,
    oauth_client: Annotated[Any, Depends(get_zoom_oauth_client)],
    handshakes: Annotated[Any, Depends(get_handshake_service)],
    settings: Annotated[Any, Depends(get_app_settings)],
    session_user_id: Annotated[Optional[str], Depends(get_session_user_id)],
    user_id: str | None = Query(
        default=None,
        description="Must match the signed-in user; trusted alone only in development.",
    ),
    redirect_to: str | None = Query(
        default=None,
        description="Relative path to return to after a successful connection.",
    ),
    redirect: bool = Query(
        default=False,
        description="When true, respond with a redirect to the Zoom consent screen.",
    ),
) -> Response:
    """
    Kick off the OAuth flow: persist a handshake, bind it to this browser with a
    short-lived cookie and hand back the Zoom consent URL.
    """
    owner = _resolve_caller(user_id, session_user_id, settings, required=False)
    handshake = handshakes.begin(owner, redirect_to)
    authorization_url = oauth_client.build_authorization_url(handshake)
    ttl = settings.oauth.state_ttl_seconds

    if redirect or _wants_html(request):
        response: Response = RedirectResponse(
            url=authorization_url, status_code=HTTPStatus.TEMPORARY_REDIRECT
        )
    else:
        start = AuthorizationStart(
            authorization_url=authorization_url, state=handshake.state, expires_in=ttl
        )
        response = JSONResponse(start.model_dump())
    response.set_cookie(
        settings.oauth.cookie_name,
        handshake.state,
        max_age=ttl,
        path=COOKIE_PATH,
        secure=True,
        httponly=True,
        samesite="lax",
    )
    return response


def _render_outcome(
    request: Request, outcome: CallbackOutcome, settings: Any, redirect: bool
) -> Response:
    if (redirect or _wants_html(request)) and settings.frontend_base_url:
        if outcome.status is CallbackStatus.SUCCESS:
            marker = {"zoom": "connected"}
        else:
            marker = {"zoom": "error", "reason": outcome.error or "unknown"}
        response: Response = RedirectResponse(
            url=_frontend_url(str(settings.frontend_base_url), outcome.redirect_to, marker),
            status_code=HTTPStatus.TEMPORARY_REDIRECT,
        )
    elif outcome.status is CallbackStatus.SUCCESS:
        response = JSONResponse(
            {
                "status": "connected",
                "redirect_to": outcome.redirect_to,
                "expires_at": outcome.expires_at.isoformat() if outcome.expires_at else None,
                "scope": outcome.scope,
            }
        )
    else:
        body = {"status": "error", "error": outcome.error, "message": outcome.message}
        if outcome.upstream_status is not None:
            body["upstream_status"] = outcome.upstream_status
        response = JSONResponse(
            body, status_code=_ERROR_STATUS.get(outcome.error or "", HTTPStatus.BAD_REQUEST)
        )

    # The handshake is single-use whatever the outcome.
    response.delete_cookie(
        settings.oauth.cookie_name, path=COOKIE_PATH, secure=True, httponly=True, samesite="lax"
    )
    return response


@router.get("/auth/zoom/callback")
async def handle_zoom_oauth_callback_get(
    request: Request,
    handler: Annotated[Any, Depends(get_callback_handler)],
    settings: Annotated[Any, Depends(get_app_settings)],
    session_user_id: Annotated[Optional[str], Depends(get_session_user_id)],
    code: str | None = Query(default=None, description="Authorization code returned by Zoom."),
    state: str | None = Query(default=None, description="OAuth state token."),
    error: str | None = Query(default=None),
    error_description: str | None = Query(default=None),
    redirect: bool = Query(
        default=False,
        description="When true, redirect browser clients instead of returning JSON.",
    ),
) -> Response:
    """Provider redirect target: validate, exchange and report the outcome."""
    params = OAuthCallbackPayload(
        code=code, state=state, error=error, error_description=error_description
    )
    bound_state = request.cookies.get(settings.oauth.cookie_name)
    outcome = await handler.handle(
        params, bound_state=bound_state, session_user_id=session_user_id
    )
    return _render_outcome(request, outcome, settings, redirect)


@router.post("/auth/zoom/callback")
async def handle_zoom_oauth_callback_post(
    payload: OAuthCallbackPayload,
    request: Request,
    handler: Annotated[Any, Depends(get_callback_handler)],
    settings: Annotated[Any, Depends(get_app_settings)],
    session_user_id: Annotated[Optional[str], Depends(get_session_user_id)],
) -> Response:
    """Complete a callback the front-end received and forwarded as JSON."""
    bound_state = request.cookies.get(settings.oauth.cookie_name)
    outcome = await handler.handle(
        payload, bound_state=bound_state, session_user_id=session_user_id
    )
    return _render_outcome(request, outcome, settings, redirect=False)


@router.get("/auth/zoom/status", response_model=ConnectionStatus)
async def get_zoom_connection_status(
    token_service: Annotated[Any, Depends(get_zoom_token_service)],
    session_user_id: Annotated[Optional[str], Depends(get_session_user_id)],
    settings: Annotated[Any, Depends(get_app_settings)],
    user_id: str | None = Query(default=None),
) -> ConnectionStatus:
    owner = _resolve_caller(user_id, session_user_id, settings)
    return token_service.connection_status(owner)


@router.post("/auth/zoom/refresh", response_model=RefreshResult)
async def refresh_zoom_token(
    token_service: Annotated[Any, Depends(get_zoom_token_service)],
    session_user_id: Annotated[Optional[str], Depends(get_session_user_id)],
    settings: Annotated[Any, Depends(get_app_settings)],
    user_id: str | None = Query(default=None),
) -> RefreshResult:
    """Force a refresh; a rejected refresh token means the user must reconnect."""
    owner = _resolve_caller(user_id, session_user_id, settings)
    try:
        record = await token_service.refresh(owner)
    except (TokenRecordNotFoundError, ReauthorizationRequiredError, UpstreamExchangeError) as exc:
        raise _flow_error(exc) from exc
    return RefreshResult(expires_at=record.expires_at, scope=record.scope)


@router.delete("/auth/zoom/connection", response_model=DisconnectResult)
async def disconnect_zoom(
    token_service: Annotated[Any, Depends(get_zoom_token_service)],
    session_user_id: Annotated[Optional[str], Depends(get_session_user_id)],
    settings: Annotated[Any, Depends(get_app_settings)],
    user_id: str | None = Query(default=None),
) -> DisconnectResult:
    """Idempotent: disconnecting a user without tokens still succeeds."""
    owner = _resolve_caller(user_id, session_user_id, settings)
    removed = await token_service.disconnect(owner)
    return DisconnectResult(removed=removed)


@router.get("/auth/zoom/me", response_model=ZoomProfile)
async def get_zoom_profile(
    token_service: Annotated[Any, Depends(get_zoom_token_service)],
    oauth_client: Annotated[Any, Depends(get_zoom_oauth_client)],
    session_user_id: Annotated[Optional[str], Depends(get_session_user_id)],
    settings: Annotated[Any, Depends(get_app_settings)],
    user_id: str | None = Query(default=None),
) -> ZoomProfile:
    """Return the connected Zoom account, refreshing the access token when needed."""
    owner = _resolve_caller(user_id, session_user_id, settings)
    try:
        access_token = await token_service.get_valid_token(owner)
        profile = await oauth_client.get_current_user(access_token)
    except (TokenRecordNotFoundError, ReauthorizationRequiredError, UpstreamExchangeError) as exc:
        raise _flow_error(exc) from exc
    try:
        return ZoomProfile.model_validate(profile)
    except ValidationError as exc:
        raise _flow_error(UpstreamParseError()) from exc


__all__ = ["router"]
