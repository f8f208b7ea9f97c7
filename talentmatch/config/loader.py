"""Configuration loader."""

from pathlib import Path
from typing import Optional

import yaml
from pydantic import ValidationError

from .environment import EnvironmentConfig, load_environment_config
from .exceptions import ConfigurationError
from .models import AppConfig
from .validators import check_for_warnings, emit_warnings

DEFAULT_CONFIG_LOCATIONS = [
    Path("config.yaml"),
    Path("config") / "config.yaml",
]


def load_config(
    config_path: Optional[Path] = None,
    required: bool = False,
) -> tuple[AppConfig, EnvironmentConfig]:
    """
    Load and validate configuration from a YAML file and environment variables.

    Config file lookup:
    1. Use config_path if given (it must exist)
    2. Try config.yaml in the current directory
    3. Try ./config/config.yaml
    4. Fall back to built-in defaults, or fail when ``required`` is set

    Environment overrides (LOG_LEVEL, MAX_CONCURRENT_JOBS) are applied on top
    of the file values.

    Args:
        config_path: Optional path to configuration file
        required: Raise instead of using defaults when no file is found

    Returns:
        Tuple of (AppConfig, EnvironmentConfig) with validated configuration

    Raises:
        ConfigurationError: If configuration is invalid or a required file is missing
    """
    config_file = _find_config_file(config_path, required=required)

    config_dict = {}
    if config_file is not None:
        config_dict = _read_yaml(config_file)

    warnings = check_for_warnings(config_dict)
    if warnings:
        emit_warnings(warnings)

    app_config = parse_config(config_dict, source=config_file)
    env_config = load_environment_config()

    if env_config.log_level:
        app_config.logging.level = env_config.log_level
    if env_config.max_concurrent_jobs:
        app_config.scheduler.max_concurrent_jobs = env_config.max_concurrent_jobs

    return app_config, env_config


def parse_config(config_dict: dict, source: Optional[Path] = None) -> AppConfig:
    """
    Validate a raw configuration mapping.

    Args:
        config_dict: Mapping as loaded from YAML
        source: File the mapping was read from, named in errors

    Returns:
        Validated AppConfig

    Raises:
        ConfigurationError: With one entry per pydantic validation error
    """
    if not isinstance(config_dict, dict):
        raise ConfigurationError(
            "Configuration root must be a mapping",
            suggestions=["Review config.example.yaml for the expected layout"],
            source=source,
        )

    try:
        return AppConfig.model_validate(config_dict)
    except ValidationError as e:
        errors = []
        for error in e.errors():
            field_path = " -> ".join(str(loc) for loc in error["loc"])
            error_type = error["type"]

            if error_type == "missing":
                errors.append(f"Missing required field: {field_path}")
            elif error_type in ["string_type", "int_type", "int_parsing", "bool_type", "float_type"]:
                expected_type = error_type.split("_")[0]
                errors.append(
                    f"Invalid type for '{field_path}': expected {expected_type}, got {error.get('input')!r}"
                )
            elif "enum" in error_type:
                errors.append(f"Invalid value for '{field_path}': {error['msg']}")
            else:
                errors.append(f"{field_path}: {error['msg']}")

        raise ConfigurationError(
            "Configuration validation failed",
            errors=errors,
            suggestions=[
                "Compare the failing keys with config.example.yaml",
                "Durations accept values like '500ms', '10s', '1h' or 'PT1H'",
            ],
            source=source,
        ) from e


def _read_yaml(config_file: Path) -> dict:
    try:
        with open(config_file, "r") as f:
            config_dict = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(
            f"Failed to parse YAML configuration: {e}",
            suggestions=[
                "Run the file through a YAML linter to locate the syntax error",
                "Indent nested sections with spaces; tabs are not valid YAML",
            ],
            source=config_file,
        ) from e
    except OSError as e:
        raise ConfigurationError(
            f"Failed to read configuration file: {e}",
            suggestions=[f"Ensure {config_file} is readable", "Check file permissions"],
        ) from e

    return config_dict or {}


def _find_config_file(config_path: Optional[Path], required: bool) -> Optional[Path]:
    if config_path:
        config_path = Path(config_path)
        if not config_path.exists():
            raise ConfigurationError(
                f"Specified configuration file not found: {config_path}",
                suggestions=[f"Ensure {config_path} exists", "Check the path and try again"],
            )
        return config_path

    for candidate in DEFAULT_CONFIG_LOCATIONS:
        if candidate.exists():
            return candidate

    if required:
        raise ConfigurationError(
            "Configuration file not found",
            errors=[f"Tried: {candidate}" for candidate in DEFAULT_CONFIG_LOCATIONS],
            suggestions=[
                "Start from config.example.yaml: cp config.example.yaml config.yaml",
                "Or point --config at a file elsewhere",
            ],
        )

    return None
