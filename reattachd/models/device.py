from datetime import datetime

from pydantic import BaseModel, Field


class Device(BaseModel):
    id: str
    name: str
    token: str
    registered_at: datetime
    last_seen_at: datetime | None = None


class SetupToken(BaseModel):
    token: str
    created_at: datetime
    expires_at: datetime
    reusable: bool = False


class AuthState(BaseModel):
    """Contents of auth.json: the device allow-list and the pending setup token."""

    devices: list[Device] = Field(default_factory=list)
    setup_token: SetupToken | None = None
