import logging

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from reattachd.deps import get_trust_service
from reattachd.exceptions import InvalidCredential, UnknownDevice
from reattachd.models.device import Device
from reattachd.services.device_trust import DeviceTrustService

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_device(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    trust: DeviceTrustService = Depends(get_trust_service),
) -> Device | None:
    """Admit the request or raise a TrustError.

    With no registered devices every request is admitted and None is returned,
    so the first client can reach the daemon before it has a credential.
    """
    if not await trust.has_devices():
        return None

    if credentials is None:
        raise InvalidCredential("Missing bearer token")

    device = await trust.validate_device_token(credentials.credentials)
    if device is None:
        logger.debug("Rejected request with unknown device token")
        raise UnknownDevice("Unknown device token")

    await trust.update_last_seen(device.id)
    return device
