import os
from enum import Enum
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PREFIX = "LANE_SENSE_"


class Mode(Enum):
    DEV = "dev"
    PRODUCTION = "production"


def get_mode() -> Mode:
    env = os.environ.get(f"{ENV_PREFIX}MODE", "").lower()
    if env == "production":
        return Mode.PRODUCTION
    return Mode.DEV


class Settings(BaseSettings):
    """Runtime settings, overridable through ``LANE_SENSE_*`` variables.

    e.g. ``LANE_SENSE_TICK_INTERVAL=0.5``.  Empty variables are ignored and
    bad values raise pydantic's ValidationError.
    """

    camera: str = "0"
    canvas_width: int = Field(1280, gt=0)
    canvas_height: int = Field(720, gt=0)
    tick_interval: float = Field(0.25, gt=0)
    start_delay: float = Field(0.2, ge=0)
    overlay_enabled: bool = False
    model_path: Optional[str] = None
    host: str = "127.0.0.1"
    port: int = 8000
    log_level: str = "info"

    model_config = SettingsConfigDict(env_prefix=ENV_PREFIX, env_ignore_empty=True, extra="ignore")

    @property
    def canvas(self) -> tuple[int, int]:
        return self.canvas_width, self.canvas_height


def get_settings() -> Settings:
    return Settings()
