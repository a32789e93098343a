"""
Server-side token exchange strategies.

``DirectTokenExchanger`` talks to Zoom with the client secret held by this
service; ``WebhookRelayExchanger`` forwards the validated callback to a trusted
automation webhook (n8n) that performs the same exchange and reports back.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Protocol

import httpx

from centrinote.clients.zoom_auth import ZoomOAuthClient, parse_token_payload
from centrinote.core.config import OAuthSettings, ZoomSettings
from centrinote.core.errors import (
    UpstreamHTTPError,
    UpstreamParseError,
    UpstreamUnreachableError,
)
from centrinote.core.logging import mask_secret
from centrinote.models.oauth import TokenGrant

logger = logging.getLogger(__name__)

RELAY_ACTION_CALLBACK = "oauth_callback"
RELAY_ACTION_REFRESH = "refresh_token"
# The relay answers a rejected request with success=false and no status code.
RELAY_REJECTED_STATUS = 400


class TokenExchanger(Protocol):
    """Performs authorization-code and refresh grants on the server side."""

    async def exchange_code(
        self,
        *,
        code: str,
        redirect_uri: str,
        code_verifier: Optional[str],
        state: str,
        user_id: str,
    ) -> TokenGrant:
        ...

    async def refresh(self, *, refresh_token: str, user_id: str) -> TokenGrant:
        ...


class DirectTokenExchanger:
    """Exchange codes straight against Zoom's token endpoint."""

    def __init__(self, oauth_client: ZoomOAuthClient) -> None:
        self._client = oauth_client

    async def exchange_code(
        self,
        *,
        code: str,
        redirect_uri: str,
        code_verifier: Optional[str],
        state: str,
        user_id: str,
    ) -> TokenGrant:
        return await self._client.exchange_authorization_code(code, code_verifier)

    async def refresh(self, *, refresh_token: str, user_id: str) -> TokenGrant:
        return await self._client.refresh_token(refresh_token)


class WebhookRelayExchanger:
    """Relay exchanges through an internal automation webhook."""

    def __init__(
        self,
        webhook_url: str,
        *,
        timeout_seconds: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._webhook_url = webhook_url
        self._timeout = timeout_seconds
        self._transport = transport

    async def exchange_code(
        self,
        *,
        code: str,
        redirect_uri: str,
        code_verifier: Optional[str],
        state: str,
        user_id: str,
    ) -> TokenGrant:
        payload = {
            "action": RELAY_ACTION_CALLBACK,
            "code": code,
            "state": state,
            "user_id": user_id,
            "redirect_uri": redirect_uri,
        }
        if code_verifier:
            payload["code_verifier"] = code_verifier
        logger.info(
            "Relaying Zoom code %s for user %s (state %s)",
            mask_secret(code),
            user_id,
            mask_secret(state),
        )
        token_info = await self._post(payload)
        return parse_token_payload(token_info, require_refresh_token=True)

    async def refresh(self, *, refresh_token: str, user_id: str) -> TokenGrant:
        payload = {
            "action": RELAY_ACTION_REFRESH,
            "user_id": user_id,
            "refresh_token": refresh_token,
        }
        logger.info("Relaying Zoom token refresh for user %s", user_id)
        token_info = await self._post(payload)
        return parse_token_payload(token_info, require_refresh_token=False)

    async def _post(self, payload: Dict[str, Any]) -> Any:
        headers = {"X-Source": "centrinote-oauth-callback"}
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                response = await client.post(self._webhook_url, json=payload, headers=headers)
        except httpx.HTTPError as exc:
            logger.error("Relay webhook unreachable: %s", exc.__class__.__name__)
            raise UpstreamUnreachableError() from exc

        if response.is_error:
            logger.warning("Relay webhook answered HTTP %s", response.status_code)
            raise UpstreamHTTPError(response.status_code)

        try:
            body = response.json()
        except ValueError as exc:
            raise UpstreamParseError("Parse failure: relay returned malformed JSON.") from exc
        if not isinstance(body, dict) or "success" not in body:
            raise UpstreamParseError("Parse failure: relay response lacks a success flag.")

        if not body["success"]:
            reason = body.get("error") or body.get("message") or "Relay reported a failure."
            logger.warning("Relay webhook reported failure for action %s", payload["action"])
            raise UpstreamHTTPError(RELAY_REJECTED_STATUS, str(reason))

        token_info = body.get("token_info")
        if token_info is None:
            raise UpstreamParseError("Parse failure: relay response has no token_info.")
        return token_info


def build_token_exchanger(
    zoom_settings: ZoomSettings,
    oauth_settings: OAuthSettings,
    oauth_client: ZoomOAuthClient,
) -> TokenExchanger:
    """Pick the relayed strategy when a webhook is configured, direct otherwise."""
    if zoom_settings.relay_webhook_url:
        return WebhookRelayExchanger(
            str(zoom_settings.relay_webhook_url),
            timeout_seconds=oauth_settings.http_timeout_seconds,
        )
    return DirectTokenExchanger(oauth_client)


__all__ = [
    "DirectTokenExchanger",
    "TokenExchanger",
    "WebhookRelayExchanger",
    "build_token_exchanger",
]
