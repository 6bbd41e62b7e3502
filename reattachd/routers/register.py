from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from reattachd.deps import get_trust_service
from reattachd.exceptions import ExpiredCredential, InvalidCredential
from reattachd.schemas.device import RegisterError, RegisterRequest, RegisterResponse
from reattachd.services.device_trust import DeviceTrustService

router = APIRouter()


def _rejected(error: str, code: str) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_401_UNAUTHORIZED,
        content=RegisterError(error=error, code=code).model_dump(),
    )


@router.post(
    "/register",
    response_model=RegisterResponse,
    responses={401: {"model": RegisterError}},
)
async def register_with_setup_token(body: RegisterRequest, trust: DeviceTrustService = Depends(get_trust_service)):
    """Exchange a setup token for a device credential. Not gated: the setup token is the credential."""
    try:
        device = await trust.register_device(body.setup_token, body.device_name)
    except ExpiredCredential:
        return _rejected("Setup token has expired. Please generate a new QR code.", "TOKEN_EXPIRED")
    except InvalidCredential:
        return _rejected("Invalid setup token", "TOKEN_INVALID")
    return RegisterResponse(device_id=device.id, device_token=device.token)
