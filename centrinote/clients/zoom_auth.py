"""
Zoom OAuth utilities.

Builds the consent URL and talks to Zoom's token and revocation endpoints.
Client credentials travel only in the ``Authorization: Basic`` header of
server-to-server requests.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional
from urllib.parse import urlencode

import httpx
from pydantic import ValidationError

from centrinote.clients.pkce import CHALLENGE_METHOD
from centrinote.core.config import OAuthSettings, ZoomSettings
from centrinote.core.errors import (
    UpstreamHTTPError,
    UpstreamParseError,
    UpstreamUnreachableError,
)
from centrinote.core.logging import mask_secret
from centrinote.models.oauth import OAuthHandshake, TokenGrant

logger = logging.getLogger(__name__)


def parse_token_payload(payload: Any, *, require_refresh_token: bool) -> TokenGrant:
    """Validate a token response body, raising ``UpstreamParseError`` when incomplete."""
    if not isinstance(payload, dict):
        raise UpstreamParseError()
    try:
        grant = TokenGrant(**payload)
    except (TypeError, ValidationError) as exc:
        raise UpstreamParseError("Parse failure: incomplete token payload returned.") from exc
    if require_refresh_token and not grant.refresh_token:
        raise UpstreamParseError("Parse failure: token payload is missing a refresh token.")
    return grant


class ZoomOAuthClient:
    """Build Zoom authorization URLs and exchange or refresh tokens."""

    def __init__(
        self,
        zoom_settings: ZoomSettings,
        oauth_settings: OAuthSettings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._zoom = zoom_settings
        self._oauth = oauth_settings
        self._transport = transport

    @property
    def redirect_uri(self) -> str:
        return str(self._zoom.redirect_uri)

    def build_authorization_url(self, handshake: OAuthHandshake) -> str:
        """Construct the Zoom consent URL for a pending handshake."""
        params = {
            "response_type": "code",
            "client_id": self._zoom.client_id,
            "redirect_uri": self.redirect_uri,
            "state": handshake.state,
            "scope": " ".join(self._zoom.scopes),
        }
        if self._oauth.pkce_enabled and handshake.code_challenge:
            params["code_challenge"] = handshake.code_challenge
            params["code_challenge_method"] = CHALLENGE_METHOD
        return f"{self._zoom.authorize_url}?{urlencode(params)}"

    def _http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self._oauth.http_timeout_seconds,
            transport=self._transport,
        )

    async def _post_form(self, url: str, data: Dict[str, str]) -> httpx.Response:
        auth = httpx.BasicAuth(self._zoom.client_id, self._zoom.client_secret)
        try:
            async with self._http_client() as client:
                return await client.post(url, data=data, auth=auth)
        except httpx.HTTPError as exc:
            logger.error("Zoom endpoint %s unreachable: %s", url, exc.__class__.__name__)
            raise UpstreamUnreachableError() from exc

    async def _request_tokens(
        self, data: Dict[str, str], *, require_refresh_token: bool
    ) -> TokenGrant:
        response = await self._post_form(str(self._zoom.token_url), data)
        if response.status_code != httpx.codes.OK:
            logger.warning(
                "Zoom token endpoint rejected %s grant with HTTP %s",
                data.get("grant_type"),
                response.status_code,
            )
            raise UpstreamHTTPError(response.status_code, _error_reason(response))
        try:
            payload = response.json()
        except ValueError as exc:
            raise UpstreamParseError() from exc
        return parse_token_payload(payload, require_refresh_token=require_refresh_token)

    async def exchange_authorization_code(
        self, code: str, code_verifier: Optional[str] = None
    ) -> TokenGrant:
        """Exchange an authorization code for an access/refresh token pair."""
        data = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self.redirect_uri,
        }
        if code_verifier:
            data["code_verifier"] = code_verifier
        logger.info("Exchanging Zoom authorization code %s", mask_secret(code))
        return await self._request_tokens(data, require_refresh_token=True)

    async def refresh_token(self, refresh_token: str) -> TokenGrant:
        """Refresh the access token using a stored refresh token."""
        data = {"grant_type": "refresh_token", "refresh_token": refresh_token}
        logger.info("Refreshing Zoom access token with %s", mask_secret(refresh_token))
        return await self._request_tokens(data, require_refresh_token=False)

    async def get_current_user(self, access_token: str) -> Dict[str, Any]:
        """Fetch the profile behind ``access_token`` from the Zoom REST API."""
        url = f"{str(self._zoom.api_base_url).rstrip('/')}/users/me"
        headers = {"Authorization": f"Bearer {access_token}"}
        try:
            async with self._http_client() as client:
                response = await client.get(url, headers=headers)
        except httpx.HTTPError as exc:
            logger.error("Zoom API unreachable: %s", exc.__class__.__name__)
            raise UpstreamUnreachableError() from exc
        if response.status_code != httpx.codes.OK:
            logger.warning("Zoom users/me returned HTTP %s", response.status_code)
            raise UpstreamHTTPError(
                response.status_code,
                f"Zoom API rejected the request with HTTP {response.status_code}.",
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise UpstreamParseError() from exc
        if not isinstance(payload, dict):
            raise UpstreamParseError()
        return payload

    async def revoke_token(self, token: str) -> bool:
        """Ask Zoom to revoke ``token``; failures are logged and reported as ``False``."""
        if not self._zoom.revoke_url:
            return False
        try:
            response = await self._post_form(str(self._zoom.revoke_url), {"token": token})
        except UpstreamUnreachableError:
            logger.warning("Zoom revoke endpoint unreachable; dropping token locally only.")
            return False
        if response.status_code != httpx.codes.OK:
            logger.warning(
                "Zoom revoke returned HTTP %s (token possibly already expired).",
                response.status_code,
            )
            return False
        return True


def _error_reason(response: httpx.Response) -> str:
    """Summarize an OAuth error body without echoing anything secret."""
    reason = None
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        reason = body.get("reason") or body.get("error_description") or body.get("error")
    if reason:
        return f"Token exchange rejected with HTTP {response.status_code}: {reason}"
    return f"Token exchange rejected with HTTP {response.status_code}."


__all__ = ["ZoomOAuthClient", "parse_token_payload"]
