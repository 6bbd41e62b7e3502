import logging

from fastapi import APIRouter, Depends, HTTPException

from reattachd.auth import get_current_device
from reattachd.deps import get_notification_service
from reattachd.exceptions import NoEndpointsRegistered
from reattachd.models.device import Device
from reattachd.schemas.notification import NotificationCreate, PushEndpointCreate
from reattachd.services.notifications import NotificationService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/devices", status_code=201)
async def register_apns_device(
    body: PushEndpointCreate,
    device: Device | None = Depends(get_current_device),
    notifications: NotificationService = Depends(get_notification_service),
):
    device_id = body.device_id if body.device_id is not None else (device.id if device else "")
    await notifications.register_endpoint(body.token, body.sandbox, device_id, body.server_name)


# Not gated: called by `reattachd notify` from agent hooks on this host
@router.post("/notify")
async def send_notification(body: NotificationCreate, notifications: NotificationService = Depends(get_notification_service)):
    try:
        await notifications.send_notification(body.title, body.body, body.pane_target)
    except NoEndpointsRegistered as exc:
        logger.error("Failed to send notification: %s", exc)
        raise HTTPException(status_code=404, detail=str(exc))
    return {"status": "sent"}
