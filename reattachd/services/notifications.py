import asyncio
import base64
import logging
import unicodedata
from pathlib import Path
from typing import Any

from reattachd.config import Settings
from reattachd.exceptions import (
    NoEndpointsRegistered,
    PermanentInvalidToken,
    ProviderSetupError,
    TransientProviderError,
)
from reattachd.models.push_endpoint import Environment, PushEndpoint, PushRegistry
from reattachd.services.apns import ApnsClient
from reattachd.store import JsonStore

logger = logging.getLogger(__name__)

TOKENS_FILE = "device_tokens.json"
MAX_TITLE_LEN = 40
ELLIPSIS = "..."

_ZWJ = "\u200d"


def _is_regional_indicator(ch: str) -> bool:
    return "\U0001f1e6" <= ch <= "\U0001f1ff"


def _graphemes(text: str) -> list[str]:
    """Split text into user-perceived characters.

    Combining marks, variation selectors, emoji modifiers and zero-width-joiner
    sequences stay attached to the preceding character. Regional indicators
    pair up into flags.
    """
    clusters: list[str] = []
    for ch in text:
        attach = clusters and (
            unicodedata.category(ch) in ("Mn", "Me", "Mc")
            or (_is_regional_indicator(ch) and len(clusters[-1]) == 1 and _is_regional_indicator(clusters[-1]))
            or "\ufe00" <= ch <= "\ufe0f"
            or "\U0001f3fb" <= ch <= "\U0001f3ff"
            or ch == _ZWJ
            or clusters[-1].endswith(_ZWJ)
        )
        if attach:
            clusters[-1] += ch
        else:
            clusters.append(ch)
    return clusters


def format_title(label: str, title: str, budget: int = MAX_TITLE_LEN) -> str:
    """Prefix the title with the server label, keeping the result within budget.

    When "<label>: <title>" is too long the front of the title is dropped and
    replaced by an ellipsis; the label is never shortened.
    """
    if not label:
        return title
    full = f"{label}: {title}"
    if len(_graphemes(full)) <= budget:
        return full
    prefix = f"{label}: {ELLIPSIS}"
    remaining = max(budget - len(_graphemes(prefix)), 0)
    if remaining == 0:
        return prefix
    return prefix + "".join(_graphemes(title)[-remaining:])


def build_payload(endpoint: PushEndpoint, title: str, body: str, pane_target: str | None = None) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "aps": {
            "alert": {"title": format_title(endpoint.server_name, title), "body": body},
            "sound": "default",
        },
    }
    if pane_target:
        payload["paneTarget"] = pane_target
    if endpoint.device_id:
        payload["deviceId"] = endpoint.device_id
    return payload


def _short(token: str) -> str:
    return token[:20]


class NotificationService:
    """Fans notifications out to every registered push endpoint and drops
    endpoints APNs reports as invalid."""

    def __init__(self, store: JsonStore[PushRegistry], client: ApnsClient):
        self._store = store
        self._client = client
        self._registry = store.load()
        self._lock = asyncio.Lock()
        logger.info("Loaded %d device tokens from %s", len(self._registry.endpoints), store.path)

    async def _save(self) -> None:
        snapshot = self._registry.model_copy(deep=True)
        try:
            await asyncio.to_thread(self._store.persist, snapshot)
        except OSError as exc:
            logger.error("Failed to save device tokens: %s", exc)

    async def list_endpoints(self) -> list[PushEndpoint]:
        async with self._lock:
            return [endpoint.model_copy() for endpoint in self._registry.endpoints]

    async def register_endpoint(self, token: str, sandbox: bool, device_id: str = "", server_name: str = "") -> None:
        environment = Environment.SANDBOX if sandbox else Environment.PRODUCTION
        async with self._lock:
            existing = next((e for e in self._registry.endpoints if e.token == token), None)
            if existing is None:
                self._registry.endpoints.append(
                    PushEndpoint(token=token, environment=environment, device_id=device_id, server_name=server_name)
                )
                logger.info(
                    "Registered device token: %s... (sandbox: %s, device_id: %s, server_name: %s)",
                    _short(token), sandbox, device_id, server_name,
                )
                await self._save()
                return

            updated = False
            for field, value in (("environment", environment), ("device_id", device_id), ("server_name", server_name)):
                old = getattr(existing, field)
                if old != value:
                    logger.info("Updated device token: %s... (%s: %s -> %s)", _short(token), field, old, value)
                    setattr(existing, field, value)
                    updated = True
            if updated:
                await self._save()

    async def send_notification(self, title: str, body: str, pane_target: str | None = None) -> None:
        """Send to every endpoint; raises NoEndpointsRegistered if there is none.

        Per-endpoint failures are logged and never abort the fan-out.
        """
        async with self._lock:
            endpoints = [endpoint.model_copy() for endpoint in self._registry.endpoints]
        if not endpoints:
            raise NoEndpointsRegistered()

        if pane_target:
            logger.info("Notification paneTarget: %s", pane_target)

        invalid: set[str] = set()
        for endpoint in endpoints:
            payload = build_payload(endpoint, title, body, pane_target)
            try:
                apns_id = await self._client.send(endpoint.environment, endpoint.token, payload)
            except PermanentInvalidToken:
                logger.warning("Removing invalid token: %s... (sandbox: %s)", _short(endpoint.token), endpoint.sandbox)
                invalid.add(endpoint.token)
            except TransientProviderError as exc:
                logger.error("APNs error for token %s...: %s", _short(endpoint.token), exc)
            else:
                logger.info("APNs notification sent (%s): %s", endpoint.environment.value, apns_id)

        if invalid:
            await self._remove_endpoints(invalid)

    async def _remove_endpoints(self, tokens: set[str]) -> None:
        async with self._lock:
            self._registry.endpoints = [e for e in self._registry.endpoints if e.token not in tokens]
            await self._save()
        logger.info("Removed %d invalid tokens", len(tokens))

    async def close(self) -> None:
        await self._client.close()


def build_notification_service(config: Settings, data_dir: Path | None = None) -> NotificationService | None:
    """Build the delivery engine, or None when APNs is unconfigured or unusable."""
    if not config.apns_configured:
        logger.info("APNs not configured")
        return None

    try:
        key = base64.b64decode(config.APNS_KEY_BASE64, validate=True).decode("utf-8")
    except ValueError as exc:
        logger.error("Invalid APNS key: %s", exc)
        return None

    try:
        client = ApnsClient(key, config.APNS_KEY_ID, config.APNS_TEAM_ID, config.APNS_BUNDLE_ID)
    except ProviderSetupError as exc:
        logger.warning("Failed to initialize APNs service: %s", exc)
        return None

    store = JsonStore((data_dir or config.data_dir) / TOKENS_FILE, PushRegistry)
    logger.info("APNs service initialized")
    return NotificationService(store, client)
