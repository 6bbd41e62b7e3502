"""APNs provider channel.

Token-based authentication: a short-lived ES256 provider JWT signed with the
team's .p8 key accompanies every request. Sandbox and production are two
independent long-lived HTTP/2 connections.
"""
import logging
import time
from typing import Any

import httpx
from jose import jwt
from jose.exceptions import JOSEError

from reattachd.exceptions import PermanentInvalidToken, ProviderSetupError, TransientProviderError
from reattachd.models.push_endpoint import Environment

logger = logging.getLogger(__name__)

SANDBOX_URL = "https://api.sandbox.push.apple.com"
PRODUCTION_URL = "https://api.push.apple.com"

# Apple rejects provider tokens older than one hour
PROVIDER_TOKEN_LIFETIME = 50 * 60

PERMANENT_REASONS = frozenset({"BadDeviceToken"})


class ApnsClient:
    def __init__(
        self,
        key: str,
        key_id: str,
        team_id: str,
        bundle_id: str,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._key = key
        self._key_id = key_id
        self._team_id = team_id
        self.bundle_id = bundle_id
        self._provider_token: str | None = None
        self._issued_at = 0.0

        # Fail at startup rather than on the first notification
        try:
            self._get_provider_token()
        except JOSEError as exc:
            raise ProviderSetupError(f"Invalid APNs signing key: {exc}") from exc

        self._channels = {
            Environment.SANDBOX: httpx.AsyncClient(base_url=SANDBOX_URL, http2=True, transport=transport),
            Environment.PRODUCTION: httpx.AsyncClient(base_url=PRODUCTION_URL, http2=True, transport=transport),
        }
        logger.info("APNs clients initialized (sandbox + production)")

    def _get_provider_token(self) -> str:
        now = time.time()
        if self._provider_token is None or now - self._issued_at >= PROVIDER_TOKEN_LIFETIME:
            self._provider_token = jwt.encode(
                {"iss": self._team_id, "iat": int(now)},
                self._key,
                algorithm="ES256",
                headers={"kid": self._key_id},
            )
            self._issued_at = now
        return self._provider_token

    async def send(self, environment: Environment, device_token: str, payload: dict[str, Any]) -> str | None:
        """Deliver one payload. Returns the apns-id of an accepted notification."""
        headers = {
            "authorization": f"bearer {self._get_provider_token()}",
            "apns-topic": self.bundle_id,
            "apns-push-type": "alert",
        }
        try:
            response = await self._channels[environment].post(f"/3/device/{device_token}", json=payload, headers=headers)
        except httpx.InvalidURL as exc:
            # token is not usable as a URL path segment
            raise PermanentInvalidToken(f"Malformed device token: {exc}") from exc
        except httpx.HTTPError as exc:
            raise TransientProviderError(str(exc) or exc.__class__.__name__) from exc

        if response.status_code == 200:
            return response.headers.get("apns-id")

        try:
            body = response.json()
        except ValueError:
            body = None
        reason = body.get("reason", "") if isinstance(body, dict) else response.text
        if reason in PERMANENT_REASONS:
            raise PermanentInvalidToken(reason)
        raise TransientProviderError(reason, response.status_code)

    async def close(self) -> None:
        for channel in self._channels.values():
            await channel.aclose()
