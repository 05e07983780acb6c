"""
Settings for the Versionic runtime facade, read from the environment.

A ``.env`` file in (or above) the working directory is honoured; real
environment variables win over it.
"""

from __future__ import annotations

import logging
import os
from typing import Literal

import structlog
from dotenv import dotenv_values, find_dotenv
from pydantic import BaseModel, field_validator

ENV_PREFIX = "VERSIONIC_"


class VersionicSettings(BaseModel):
    database_url: str = "sqlite:///versionic.db"
    echo: bool = False
    log_level: str = "INFO"
    log_format: Literal["console", "json"] = "console"

    model_config = {"frozen": True}

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        level = value.upper()
        if level not in logging.getLevelNamesMapping():
            raise ValueError(f"unknown log level {value!r}")
        return level


def load_settings(**overrides) -> VersionicSettings:
    """Build settings from ``VERSIONIC_*`` variables, then apply overrides."""
    dotenv_path = find_dotenv(usecwd=True)
    environ = {**(dotenv_values(dotenv_path) if dotenv_path else {}), **os.environ}

    raw: dict[str, object] = {}
    for name in VersionicSettings.model_fields:
        value = environ.get(f"{ENV_PREFIX}{name.upper()}")
        if value is not None:
            raw[name] = value
    raw.update(overrides)
    return VersionicSettings.model_validate(raw)


def configure_logging(settings: VersionicSettings) -> None:
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.JSONRenderer()
            if settings.log_format == "json"
            else structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelNamesMapping()[settings.log_level]
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=False,
    )
