from datetime import datetime

from pydantic import BaseModel


class RegisterRequest(BaseModel):
    setup_token: str
    device_name: str


class RegisterResponse(BaseModel):
    device_id: str
    device_token: str


class RegisterError(BaseModel):
    error: str
    code: str


class SetupTokenCreate(BaseModel):
    reusable: bool = False
    expires: str = "10m"  # 10m | 1h | 1d | never


class SetupTokenRead(BaseModel):
    setup_token: str
    reusable: bool
    expires_at: datetime


class DeviceRead(BaseModel):
    id: str
    name: str
    registered_at: datetime
    last_seen_at: datetime | None

    model_config = {"from_attributes": True}
