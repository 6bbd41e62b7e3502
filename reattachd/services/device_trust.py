import asyncio
import logging
import secrets
import uuid
from datetime import datetime, timedelta, timezone
from enum import Enum
from pathlib import Path

from reattachd.exceptions import ExpiredCredential, InvalidCredential
from reattachd.models.device import AuthState, Device, SetupToken
from reattachd.store import JsonStore

logger = logging.getLogger(__name__)

AUTH_FILE = "auth.json"

# "never" is stored as a far but finite expiry so comparisons stay total
NEVER_EXPIRES = timedelta(days=365 * 100)
DEFAULT_SETUP_TTL = timedelta(minutes=10)

_DURATION_UNITS = {"m": "minutes", "h": "hours", "d": "days"}


class SetupTokenValidation(str, Enum):
    VALID = "valid"
    INVALID = "invalid"
    EXPIRED = "expired"


def generate_token() -> str:
    """256 random bits, URL-safe base64 without padding."""
    return secrets.token_urlsafe(32)


def parse_duration(value: str) -> timedelta | None:
    """Parse "10m", "1h", "1d" or "never". Returns None for never."""
    value = value.strip()
    if value == "never":
        return None
    unit = value[-1:]
    if unit not in _DURATION_UNITS:
        raise ValueError(f"Invalid duration: {value!r}")
    try:
        amount = int(value[:-1])
        if amount < 0:
            raise ValueError(value)
        return timedelta(**{_DURATION_UNITS[unit]: amount})
    except (ValueError, OverflowError):
        raise ValueError(f"Invalid duration: {value!r}") from None


def _same_token(expected: str, candidate: str) -> bool:
    return secrets.compare_digest(expected.encode(), candidate.encode())


class DeviceTrustService:
    """Issues setup tokens, exchanges them for device credentials and checks
    bearer tokens against the registered devices.

    All state lives in one AuthState guarded by a single lock. Every mutation
    persists the full snapshot before the lock is released. Failed writes are
    logged; the in-memory state stays authoritative for the process lifetime.
    """

    def __init__(self, store: JsonStore[AuthState]):
        self._store = store
        self._state = store.load()
        self._lock = asyncio.Lock()

    @classmethod
    def from_data_dir(cls, data_dir: Path) -> "DeviceTrustService":
        return cls(JsonStore(data_dir / AUTH_FILE, AuthState))

    async def _save(self) -> None:
        snapshot = self._state.model_copy(deep=True)
        try:
            await asyncio.to_thread(self._store.persist, snapshot)
        except OSError as exc:
            logger.error("Failed to save %s: %s", self._store.path, exc)

    async def _reload(self) -> None:
        # Picks up setup tokens written by `reattachd setup` from another process
        try:
            self._state = await asyncio.to_thread(self._store.read)
        except FileNotFoundError:
            pass
        except (OSError, ValueError) as exc:
            logger.warning("Keeping in-memory auth state, could not reload %s: %s", self._store.path, exc)

    def _check_setup_token(self, candidate: str) -> SetupTokenValidation:
        setup_token = self._state.setup_token
        if setup_token is None or not _same_token(setup_token.token, candidate):
            return SetupTokenValidation.INVALID
        if datetime.now(timezone.utc) >= setup_token.expires_at:
            return SetupTokenValidation.EXPIRED
        return SetupTokenValidation.VALID

    def _fresh_token(self) -> str:
        taken = {device.token for device in self._state.devices}
        if self._state.setup_token:
            taken.add(self._state.setup_token.token)
        while (token := generate_token()) in taken:
            pass
        return token

    async def issue_setup_token(
        self, reusable: bool = False, ttl: timedelta | None = DEFAULT_SETUP_TTL
    ) -> SetupToken:
        """Replace the active setup token and return the new record.

        A ttl of None, or one longer than NEVER_EXPIRES, never expires.
        """
        if ttl is None or ttl > NEVER_EXPIRES:
            ttl = NEVER_EXPIRES
        now = datetime.now(timezone.utc)
        async with self._lock:
            setup_token = SetupToken(
                token=self._fresh_token(),
                created_at=now,
                expires_at=now + ttl,
                reusable=reusable,
            )
            self._state.setup_token = setup_token
            await self._save()
        logger.info("Issued setup token (reusable: %s, expires: %s)", reusable, setup_token.expires_at)
        return setup_token.model_copy()

    async def generate_setup_token(self, reusable: bool = False, ttl: timedelta | None = DEFAULT_SETUP_TTL) -> str:
        return (await self.issue_setup_token(reusable=reusable, ttl=ttl)).token

    async def validate_setup_token(self, candidate: str) -> SetupTokenValidation:
        async with self._lock:
            await self._reload()
            return self._check_setup_token(candidate)

    async def register_device(self, setup_token: str, device_name: str) -> Device:
        """Exchange a setup token for a new device credential.

        Raises ExpiredCredential or InvalidCredential without touching the store.
        A non-reusable setup token is consumed.
        """
        async with self._lock:
            await self._reload()
            result = self._check_setup_token(setup_token)
            if result is SetupTokenValidation.EXPIRED:
                raise ExpiredCredential("Setup token has expired")
            if result is not SetupTokenValidation.VALID:
                raise InvalidCredential("Invalid setup token")

            device = Device(
                id=str(uuid.uuid4()),
                name=device_name,
                token=self._fresh_token(),
                registered_at=datetime.now(timezone.utc),
            )
            self._state.devices.append(device)
            if not self._state.setup_token.reusable:
                self._state.setup_token = None
            await self._save()

        logger.info("Registered device %s (%s)", device.id, device_name)
        return device.model_copy()

    async def validate_device_token(self, candidate: str) -> Device | None:
        async with self._lock:
            for device in self._state.devices:
                if _same_token(device.token, candidate):
                    return device.model_copy()
        return None

    async def update_last_seen(self, device_id: str) -> None:
        async with self._lock:
            device = next((d for d in self._state.devices if d.id == device_id), None)
            if device is None:
                return
            device.last_seen_at = datetime.now(timezone.utc)
            await self._save()

    async def list_devices(self) -> list[Device]:
        async with self._lock:
            return [device.model_copy() for device in self._state.devices]

    async def revoke_device(self, device_id: str) -> bool:
        async with self._lock:
            remaining = [d for d in self._state.devices if d.id != device_id]
            removed = len(remaining) < len(self._state.devices)
            if removed:
                self._state.devices = remaining
                await self._save()
        if removed:
            logger.info("Revoked device %s", device_id)
        return removed

    async def has_devices(self) -> bool:
        async with self._lock:
            return bool(self._state.devices)

    async def current_setup_token(self) -> SetupToken | None:
        async with self._lock:
            return self._state.setup_token.model_copy() if self._state.setup_token else None
