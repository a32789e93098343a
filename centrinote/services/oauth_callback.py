"""
Callback handling for the Zoom authorization-code flow.

A callback moves from ``processing`` to exactly one terminal state,
``success`` or ``error``. The pending handshake is consumed before the token
exchange runs, so a replayed or concurrent callback for the same ``state``
can never trigger a second exchange.
"""

from __future__ import annotations

import hmac
import logging
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel

from centrinote.clients.relay import TokenExchanger
from centrinote.core.config import IdentityPolicy, OAuthSettings
from centrinote.core.errors import (
    CsrfValidationFailedError,
    HandshakeExpiredOrMissingError,
    IdentityResolutionError,
    MalformedCallbackError,
    OAuthFlowError,
    ProviderDeniedError,
    UpstreamExchangeError,
)
from centrinote.core.logging import mask_secret
from centrinote.models.oauth import OAuthHandshake, TokenRecord
from centrinote.schemas.auth import OAuthCallbackPayload
from centrinote.services.handshakes import HandshakeService
from centrinote.services.zoom_tokens import ZoomTokenService

logger = logging.getLogger(__name__)


class CallbackStatus(str, Enum):
    PROCESSING = "processing"
    SUCCESS = "success"
    ERROR = "error"


class CallbackOutcome(BaseModel):
    """Terminal result of a callback; safe to hand to the browser."""

    status: CallbackStatus
    redirect_to: str
    user_id: Optional[str] = None
    error: Optional[str] = None
    message: Optional[str] = None
    upstream_status: Optional[int] = None
    expires_at: Optional[datetime] = None
    scope: Optional[str] = None

    @classmethod
    def failed(cls, exc: OAuthFlowError, redirect_to: str) -> "CallbackOutcome":
        return cls(
            status=CallbackStatus.ERROR,
            redirect_to=redirect_to,
            error=exc.kind,
            message=exc.message,
            upstream_status=getattr(exc, "status_code", None),
        )


class OAuthCallbackHandler:
    """Validate the provider redirect and hand the code to the exchange relay."""

    def __init__(
        self,
        handshakes: HandshakeService,
        exchanger: TokenExchanger,
        token_service: ZoomTokenService,
        oauth_settings: OAuthSettings,
        redirect_uri: str,
    ) -> None:
        self._handshakes = handshakes
        self._exchanger = exchanger
        self._tokens = token_service
        self._settings = oauth_settings
        self._redirect_uri = redirect_uri

    async def handle(
        self,
        params: OAuthCallbackPayload,
        *,
        bound_state: Optional[str] = None,
        session_user_id: Optional[str] = None,
    ) -> CallbackOutcome:
        """Run the callback state machine and return its terminal outcome.

        ``bound_state`` is the state echoed by the browser's binding cookie and
        ``session_user_id`` the signed-in user, when there is one.
        """
        status = CallbackStatus.PROCESSING
        redirect_to = self._settings.default_redirect_path
        logger.info(
            "Zoom callback %s: code=%s state=%s error=%s",
            status.value,
            mask_secret(params.code),
            mask_secret(params.state),
            params.error,
        )
        try:
            handshake, record = await self._complete(params, bound_state, session_user_id)
        except OAuthFlowError as exc:
            logger.warning("Zoom callback failed: %s (%s)", exc.kind, exc.message)
            return CallbackOutcome.failed(exc, redirect_to)

        return CallbackOutcome(
            status=CallbackStatus.SUCCESS,
            redirect_to=handshake.redirect_path,
            user_id=record.user_id,
            expires_at=record.expires_at,
            scope=record.scope,
        )

    async def _complete(
        self,
        params: OAuthCallbackPayload,
        bound_state: Optional[str],
        session_user_id: Optional[str],
    ) -> tuple[OAuthHandshake, TokenRecord]:
        if params.error:
            raise ProviderDeniedError(params.error, params.error_description)
        if not params.code or not params.state:
            raise MalformedCallbackError()

        handshake = self._locate(params.state, bound_state, session_user_id)
        self._check_state(params.state, handshake)

        consumed = self._handshakes.consume(handshake.state)
        if consumed is None:
            # A concurrent delivery of the same callback consumed it first.
            raise HandshakeExpiredOrMissingError()

        user_id = self._resolve_identity(consumed, session_user_id)

        try:
            grant = await self._exchanger.exchange_code(
                code=params.code,
                redirect_uri=self._redirect_uri,
                code_verifier=consumed.code_verifier,
                state=params.state,
                user_id=user_id,
            )
        except UpstreamExchangeError:
            logger.error(
                "Token exchange failed for user %s; the handshake stays consumed", user_id
            )
            raise

        record = self._tokens.store_grant(user_id, grant)
        return consumed, record

    def _locate(
        self, state: str, bound_state: Optional[str], session_user_id: Optional[str]
    ) -> OAuthHandshake:
        if bound_state:
            handshake = self._handshakes.find_pending(bound_state)
            if handshake is None:
                raise HandshakeExpiredOrMissingError()
            return handshake

        # Without the binding cookie the signed-in session is the only proof
        # that this browser started the handshake.
        handshake = self._handshakes.find_pending(state)
        if handshake is None:
            raise HandshakeExpiredOrMissingError()
        if session_user_id is None or handshake.user_id != session_user_id:
            logger.warning(
                "security: callback for handshake %s is not bound to this browser or session",
                mask_secret(state),
            )
            raise CsrfValidationFailedError()
        return handshake

    def _check_state(self, received: str, handshake: OAuthHandshake) -> None:
        if hmac.compare_digest(received.encode("utf-8"), handshake.state.encode("utf-8")):
            return
        if self._settings.strict_state:
            logger.warning(
                "security: CSRF state mismatch (received %s, expected %s)",
                mask_secret(received),
                mask_secret(handshake.state),
            )
            raise CsrfValidationFailedError()
        logger.warning(
            "security: state mismatch ignored because OAUTH_STRICT_STATE is disabled"
        )

    def _resolve_identity(
        self, handshake: OAuthHandshake, session_user_id: Optional[str]
    ) -> str:
        policy = self._settings.identity_policy
        if policy is IdentityPolicy.REQUIRE_SESSION:
            if not session_user_id:
                raise IdentityResolutionError()
            if handshake.user_id and handshake.user_id != session_user_id:
                logger.warning(
                    "security: handshake started by %s completed by %s",
                    handshake.user_id,
                    session_user_id,
                )
                raise CsrfValidationFailedError(
                    "CSRF validation failed: the flow was started by a different user."
                )
            user_id: Optional[str] = session_user_id
        elif policy is IdentityPolicy.HANDSHAKE:
            user_id = handshake.user_id
        else:
            user_id = session_user_id or handshake.user_id
            if session_user_id and handshake.user_id and session_user_id != handshake.user_id:
                logger.warning(
                    "Handshake user %s differs from session user %s; using the session",
                    handshake.user_id,
                    session_user_id,
                )

        if not user_id:
            raise IdentityResolutionError()
        return user_id


__all__ = ["CallbackOutcome", "CallbackStatus", "OAuthCallbackHandler"]
