"""YAML config loading and validation.

Loads jsonrpc-udp config files, validates them against the pydantic
schema, and returns structured settings. Errors are always actionable.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ValidationError

from jsonrpc_udp.config.schema import TransportConfig


class ConfigValidationError(Exception):
    """Raised when a config file or option set is malformed or fails validation.

    Attributes:
        path: The config file that failed validation, or None for flags.
        details: Structured error details from pydantic validation.
    """

    def __init__(self, path: Path | None, details: list[dict[str, Any]], message: str) -> None:
        self.path = path
        self.details = details
        super().__init__(message)


def load_config(path: Path | None) -> TransportConfig:
    """Load and validate a jsonrpc-udp config from a YAML file.

    Args:
        path: Path to the YAML config, or None for the built-in defaults.

    Returns:
        A validated TransportConfig model.

    Raises:
        FileNotFoundError: If the config file doesn't exist.
        ConfigValidationError: If the YAML is malformed or fails schema validation.
    """
    if path is None:
        return TransportConfig()

    if not path.exists():
        raise FileNotFoundError(f"Config file not found at {path}.")

    raw_text = path.read_text(encoding="utf-8")

    try:
        raw_data = yaml.safe_load(raw_text)
    except yaml.YAMLError as e:
        raise ConfigValidationError(
            path=path,
            details=[{"type": "yaml_parse_error", "msg": str(e)}],
            message=f"Failed to parse YAML in {path}: {e}",
        ) from e

    if raw_data is None:
        return TransportConfig()

    if not isinstance(raw_data, dict):
        raise ConfigValidationError(
            path=path,
            details=[{"type": "not_a_mapping", "got": type(raw_data).__name__}],
            message=(
                f"Config file {path} must contain a YAML mapping (key-value pairs) "
                f"at the top level, got {type(raw_data).__name__}."
            ),
        )

    try:
        return TransportConfig.model_validate(raw_data)
    except ValidationError as e:
        raise _validation_error(path, e) from e


def apply_overrides(settings: BaseModel, **overrides: Any) -> BaseModel:
    """Return a re-validated copy of ``settings`` with non-None overrides applied.

    Command-line flags left unset arrive as None and keep the file value.

    Raises:
        ConfigValidationError: If an override fails validation.
    """
    data = settings.model_dump()
    data.update({key: value for key, value in overrides.items() if value is not None})
    try:
        return type(settings).model_validate(data)
    except ValidationError as e:
        raise _validation_error(None, e) from e


def _validation_error(path: Path | None, error: ValidationError) -> ConfigValidationError:
    error_details = error.errors()
    # Build a human-readable summary of what went wrong
    error_lines = []
    for err in error_details:
        loc = " → ".join(str(part) for part in err["loc"])
        error_lines.append(f"  - {loc}: {err['msg']}")

    summary = "\n".join(error_lines)
    source = f"for {path}" if path is not None else "for command-line options"
    return ConfigValidationError(
        path=path,
        details=error_details,
        message=f"Configuration validation failed {source}:\n{summary}",
    )
