from __future__ import annotations

import os
from typing import Optional

import yaml
from pydantic import BaseModel


class EngineConfig(BaseModel):
    """Execution engine settings."""

    serialize_submissions: bool = False
    checkpoint_steps: bool = False


class WebhookConfig(BaseModel):
    """Settings for the built-in webhook step handler."""

    timeout: float = 10.0


class HandlersConfig(BaseModel):
    """Built-in step handler settings."""

    webhook: WebhookConfig = WebhookConfig()


class FormflowConfig(BaseModel):
    """Top-level configuration model."""

    database_url: Optional[str] = None
    log_level: str = "INFO"
    engine: EngineConfig = EngineConfig()
    handlers: HandlersConfig = HandlersConfig()


# top-level field -> environment variables that override it, first set wins
ENV_OVERRIDES = {
    "database_url": ("FORMFLOW_DATABASE_URL", "DATABASE_URL"),
    "log_level": ("FORMFLOW_LOG_LEVEL",),
}


def load_config(path: Optional[str] = None) -> FormflowConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to FORMFLOW_CONFIG env
            variable or 'config.yaml' in the current directory. A missing file
            means defaults.

    Values from the file are then overridden by the environment variables
    listed in ``ENV_OVERRIDES``.
    """

    config_path = path or os.getenv("FORMFLOW_CONFIG", "config.yaml")
    data = {}
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}

    for field, names in ENV_OVERRIDES.items():
        value = next((os.environ[n] for n in names if os.environ.get(n)), None)
        if value is not None:
            data[field] = value
    return FormflowConfig.model_validate(data)
