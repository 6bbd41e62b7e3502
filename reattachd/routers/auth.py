from fastapi import APIRouter, Depends, HTTPException

from reattachd.auth import get_current_device
from reattachd.deps import get_trust_service
from reattachd.schemas.device import DeviceRead, SetupTokenCreate, SetupTokenRead
from reattachd.services.device_trust import DeviceTrustService, parse_duration

router = APIRouter(dependencies=[Depends(get_current_device)])


@router.post("/setup-token", response_model=SetupTokenRead, status_code=201)
async def create_setup_token(body: SetupTokenCreate, trust: DeviceTrustService = Depends(get_trust_service)):
    try:
        ttl = parse_duration(body.expires)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    setup_token = await trust.issue_setup_token(reusable=body.reusable, ttl=ttl)
    return SetupTokenRead(setup_token=setup_token.token, reusable=body.reusable, expires_at=setup_token.expires_at)


@router.get("/devices", response_model=list[DeviceRead])
async def list_devices(trust: DeviceTrustService = Depends(get_trust_service)):
    return await trust.list_devices()


@router.delete("/devices/{device_id}", status_code=204)
async def revoke_device(device_id: str, trust: DeviceTrustService = Depends(get_trust_service)):
    if not await trust.revoke_device(device_id):
        raise HTTPException(status_code=404, detail="Device not found")
