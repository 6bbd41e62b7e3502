from enum import Enum

from pydantic import BaseModel, Field


class Environment(str, Enum):
    SANDBOX = "sandbox"
    PRODUCTION = "production"


class PushEndpoint(BaseModel):
    token: str
    environment: Environment = Environment.PRODUCTION
    device_id: str = ""  # owning device, empty for endpoints registered in open mode
    server_name: str = ""  # label prefixed to notification titles

    @property
    def sandbox(self) -> bool:
        return self.environment is Environment.SANDBOX


class PushRegistry(BaseModel):
    """Contents of device_tokens.json."""

    endpoints: list[PushEndpoint] = Field(default_factory=list)
