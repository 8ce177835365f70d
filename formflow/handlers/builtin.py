"""Built-in step handlers."""

from __future__ import annotations

import logging
import re
from string import Template
from typing import Any, Callable, Dict, List, Mapping, Optional
from urllib.parse import urlparse

import httpx

from ..context import ExecutionContext
from ..exceptions import ConfigurationError
from .base import StepHandler

logger = logging.getLogger(__name__)

SUCCESS = "SUCCESS"
FAILED = "FAILED"


def _string_list(config: Mapping[str, Any], key: str) -> List[str]:
    value = config.get(key)
    if not isinstance(value, list) or not all(isinstance(v, str) and v for v in value):
        raise ConfigurationError(f"'{key}' must be a list of non-empty strings")
    return value


def _string_map(config: Mapping[str, Any], key: str) -> Dict[str, Any]:
    value = config.get(key, {})
    if not isinstance(value, dict) or not all(isinstance(k, str) for k in value):
        raise ConfigurationError(f"'{key}' must be a mapping keyed by field name")
    return value


class ValidationHandler(StepHandler):
    """Checks submission data against required fields and patterns.

    Config::

        requiredFields: [email, name]
        patterns: {email: "^[^@]+@[^@]+$"}

    Invalid data does not raise; the step reports ``FAILED`` with the list of
    errors so that later steps can branch on it.
    """

    def validate_step_configuration(self, config: Mapping[str, Any]) -> None:
        if "requiredFields" not in config and "patterns" not in config:
            raise ConfigurationError(
                "validation step requires 'requiredFields' or 'patterns'"
            )
        if "requiredFields" in config:
            _string_list(config, "requiredFields")
        for field, pattern in _string_map(config, "patterns").items():
            if not isinstance(pattern, str):
                raise ConfigurationError(f"pattern for '{field}' must be a string")
            try:
                re.compile(pattern)
            except re.error as e:
                raise ConfigurationError(f"invalid pattern for '{field}': {e}") from e

    def execute_step(
        self, config: Mapping[str, Any], context: ExecutionContext
    ) -> Dict[str, Any]:
        data = context.submission.data
        errors: List[str] = []
        for field in config.get("requiredFields", []):
            value = data.get(field)
            if value is None or (isinstance(value, str) and not value.strip()):
                errors.append(f"{field} is required")
        for field, pattern in config.get("patterns", {}).items():
            value = data.get(field)
            if value is not None and not re.fullmatch(pattern, str(value)):
                errors.append(f"{field} does not match {pattern}")

        if errors:
            return {"status": FAILED, "errors": errors}
        return {"status": SUCCESS}


def _log_sender(recipients: List[str], subject: str, message: str) -> None:
    logger.info(f"Notification '{subject}' to {', '.join(recipients)}: {message}")


class NotificationHandler(StepHandler):
    """Renders a message from submission data and hands it to a sender.

    Config::

        recipients: [ops@example.com]
        subject: New order
        template: "Order from $name ($submissionId)"

    The template uses :class:`string.Template` placeholders; unknown
    placeholders are left in place.
    """

    def __init__(
        self, sender: Optional[Callable[[List[str], str, str], None]] = None
    ) -> None:
        self._sender = sender or _log_sender

    def validate_step_configuration(self, config: Mapping[str, Any]) -> None:
        recipients = _string_list(config, "recipients")
        if not recipients:
            raise ConfigurationError("notification step requires at least one recipient")
        if not isinstance(config.get("template"), str):
            raise ConfigurationError("notification step requires a 'template' string")
        if "subject" in config and not isinstance(config["subject"], str):
            raise ConfigurationError("'subject' must be a string")

    def execute_step(
        self, config: Mapping[str, Any], context: ExecutionContext
    ) -> Dict[str, Any]:
        submission = context.submission
        values = {str(k): v for k, v in submission.data.items()}
        values.update(
            submissionId=submission.id,
            formId=submission.form_id,
            userId=submission.user_id or "",
        )
        message = Template(config["template"]).safe_substitute(values)
        subject = config.get("subject", f"Form {submission.form_id} submission")
        recipients = list(config["recipients"])

        self._sender(recipients, subject, message)
        return {"status": SUCCESS, "recipients": recipients, "message": message}


class WebhookHandler(StepHandler):
    """Posts the submission and prior step results to an HTTP endpoint.

    Config::

        serviceEndpoint: https://example.com/hooks/orders
        method: POST            # or PUT
        headers: {X-Token: abc}

    Non-2xx responses raise and fail the step.
    """

    METHODS = ("POST", "PUT")

    def __init__(
        self, client: Optional[httpx.Client] = None, timeout: float = 10.0
    ) -> None:
        self._client = client
        self._timeout = timeout

    def validate_step_configuration(self, config: Mapping[str, Any]) -> None:
        endpoint = config.get("serviceEndpoint")
        if not isinstance(endpoint, str) or not endpoint:
            raise ConfigurationError("webhook step requires a 'serviceEndpoint'")
        parsed = urlparse(endpoint)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ConfigurationError(f"invalid serviceEndpoint: {endpoint}")
        method = config.get("method", "POST")
        if not isinstance(method, str) or method.upper() not in self.METHODS:
            raise ConfigurationError(f"unsupported webhook method: {method}")
        for name, value in _string_map(config, "headers").items():
            if not isinstance(value, str):
                raise ConfigurationError(f"header '{name}' must be a string")

    def execute_step(
        self, config: Mapping[str, Any], context: ExecutionContext
    ) -> Dict[str, Any]:
        submission = context.submission
        payload = {
            "submissionId": submission.id,
            "formId": submission.form_id,
            "userId": submission.user_id,
            "data": submission.data,
            "previousResults": context.step_results(),
        }
        method = config.get("method", "POST").upper()
        endpoint = config["serviceEndpoint"]
        headers = config.get("headers", {})

        logger.debug(f"Calling webhook {method} {endpoint}")
        if self._client is not None:
            response = self._client.request(method, endpoint, json=payload, headers=headers)
        else:
            with httpx.Client(timeout=self._timeout) as client:
                response = client.request(method, endpoint, json=payload, headers=headers)
        response.raise_for_status()

        try:
            body: Any = response.json()
        except ValueError:
            body = response.text
        return {"status": SUCCESS, "statusCode": response.status_code, "response": body}


class TransformHandler(StepHandler):
    """Derives a new data map from submission fields.

    Config::

        mapping: {customerEmail: email}
        set: {source: web}

    The submission itself is left untouched.
    """

    def validate_step_configuration(self, config: Mapping[str, Any]) -> None:
        if "mapping" not in config and "set" not in config:
            raise ConfigurationError("transform step requires 'mapping' or 'set'")
        for target, source in _string_map(config, "mapping").items():
            if not isinstance(source, str) or not source:
                raise ConfigurationError(f"mapping for '{target}' must name a field")
        _string_map(config, "set")

    def execute_step(
        self, config: Mapping[str, Any], context: ExecutionContext
    ) -> Dict[str, Any]:
        data = context.submission.data
        output = {
            target: data.get(source)
            for target, source in config.get("mapping", {}).items()
        }
        output.update(config.get("set", {}))
        return {"status": SUCCESS, "data": output}
