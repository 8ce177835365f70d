"""Step handlers and the registry they are dispatched from."""

from __future__ import annotations

from typing import Optional

from ..config import FormflowConfig, load_config
from .base import StepHandler
from .builtin import (
    NotificationHandler,
    TransformHandler,
    ValidationHandler,
    WebhookHandler,
)
from .registry import StepHandlerRegistry


def build_default_registry(config: Optional[FormflowConfig] = None) -> StepHandlerRegistry:
    """Registry populated with the built-in step handlers."""

    config = config or load_config()
    return StepHandlerRegistry(
        {
            "validation": ValidationHandler(),
            "notification": NotificationHandler(),
            "webhook": WebhookHandler(timeout=config.handlers.webhook.timeout),
            "transform": TransformHandler(),
        }
    )


__all__ = [
    "StepHandler",
    "StepHandlerRegistry",
    "ValidationHandler",
    "NotificationHandler",
    "WebhookHandler",
    "TransformHandler",
    "build_default_registry",
]
