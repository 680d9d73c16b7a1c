from __future__ import annotations

import logging
import os
from typing import Literal

from pydantic import BaseModel, ConfigDict, field_validator


ListenerFaultPolicy = Literal["raise", "log"]


class Settings(BaseModel):
    model_config = ConfigDict(validate_default=True)

    # raise | log
    listener_faults: ListenerFaultPolicy = os.getenv(
        "FLOWSTATE_LISTENER_FAULTS", "raise"
    ).lower()

    log_level: str = os.getenv("FLOWSTATE_LOG_LEVEL", "WARNING").upper()

    service_name: str = os.getenv("FLOWSTATE_SERVICE_NAME", "flowstate-api")

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        if not isinstance(logging.getLevelName(value), int):
            raise ValueError(f"Unknown log level: {value}")
        return value


settings = Settings()


def configure_logging(level: str | None = None) -> logging.Logger:
    """Apply the configured level to the package logger and return it."""
    logger = logging.getLogger("flowstate")
    logger.setLevel(level or settings.log_level)
    return logger
