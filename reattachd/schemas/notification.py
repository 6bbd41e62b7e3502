from pydantic import BaseModel, Field


class PushEndpointCreate(BaseModel):
    token: str = Field(pattern=r"^[0-9A-Fa-f]+$")
    sandbox: bool = False
    device_id: str | None = None
    server_name: str = ""


class NotificationCreate(BaseModel):
    title: str
    body: str
    pane_target: str | None = None
