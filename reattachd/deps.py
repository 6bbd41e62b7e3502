from fastapi import HTTPException, Request, status

from reattachd.services.device_trust import DeviceTrustService
from reattachd.services.notifications import NotificationService


def get_trust_service(request: Request) -> DeviceTrustService:
    return request.app.state.trust


def get_notification_service(request: Request) -> NotificationService:
    service = request.app.state.notifications
    if service is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Push notifications are not configured")
    return service
