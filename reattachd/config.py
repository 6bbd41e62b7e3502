import os
import sys
from pathlib import Path

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_data_dir() -> Path:
    if sys.platform == "darwin":
        base = Path.home() / "Library" / "Application Support"
    elif sys.platform == "win32":
        base = Path(os.environ.get("LOCALAPPDATA", Path.home() / "AppData" / "Local"))
    else:
        base = Path(os.environ.get("XDG_DATA_HOME", Path.home() / ".local" / "share"))
    return base / "reattachd"


class Settings(BaseSettings):
    DATA_DIR: Path | None = None
    PORT: int = Field(default=8787, validation_alias=AliasChoices("REATTACHD_PORT", "PORT"))
    BIND_ADDR: str = "127.0.0.1"
    LOG_LEVEL: str = "INFO"

    # APNs token auth; the key is the base64 encoded .p8 file
    APNS_KEY_BASE64: str | None = Field(default=None, validation_alias="APNS_KEY_BASE64")
    APNS_KEY_ID: str | None = Field(default=None, validation_alias="APNS_KEY_ID")
    APNS_TEAM_ID: str | None = Field(default=None, validation_alias="APNS_TEAM_ID")
    APNS_BUNDLE_ID: str | None = Field(default=None, validation_alias="APNS_BUNDLE_ID")

    model_config = SettingsConfigDict(env_prefix="REATTACHD_", env_file=".env", extra="ignore")

    @property
    def data_dir(self) -> Path:
        return self.DATA_DIR or _default_data_dir()

    @property
    def apns_configured(self) -> bool:
        return all((self.APNS_KEY_BASE64, self.APNS_KEY_ID, self.APNS_TEAM_ID, self.APNS_BUNDLE_ID))


settings = Settings()
