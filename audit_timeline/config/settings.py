"""Application settings with Pydantic Settings validation.

Environment variables (and an optional .env file) take precedence.
Non-sensitive defaults are loaded from config/*.yaml files, validated
against JSON schemas in config/schemas/.
"""

import json
from pathlib import Path
from typing import Any, Final, cast

import yaml
from jsonschema import ValidationError as JSONSchemaValidationError
from jsonschema import validate
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from audit_timeline.config.logging_config import get_logger
from audit_timeline.domain.deduplication_constants import (
    DEFAULT_PROVENANCE_MARKER,
    DEFAULT_READ_WINDOW_SECONDS,
    DEFAULT_WRITE_WINDOW_SECONDS,
)

DEFAULT_CONFIG_DIR: Final[Path] = Path("config")
DEFAULT_DB_PATH: Final[str] = "data/audit_events.db"

logger = cast(Any, get_logger(__name__))


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Deep merge two dictionaries.

    Args:
        base: Base dictionary
        override: Dictionary to merge into base (takes precedence)

    Returns:
        Merged dictionary
    """
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def load_schema(schema_name: str, config_dir: Path = DEFAULT_CONFIG_DIR) -> dict[str, Any]:
    """Load JSON Schema from <config_dir>/schemas/.

    Returns:
        JSON Schema dictionary or empty dict if not found
    """
    schema_path = config_dir / "schemas" / f"{schema_name}.schema.json"
    if not schema_path.exists():
        return {}

    try:
        with open(schema_path, encoding="utf-8") as f:
            return cast(dict[str, Any], json.load(f))
    except (json.JSONDecodeError, OSError) as e:
        logger.warning(
            "config_schema_load_failed",
            schema=schema_name,
            error=str(e),
        )
        return {}


def validate_config_section(
    config: dict[str, Any],
    schema_name: str,
    file_path: str = "",
    config_dir: Path = DEFAULT_CONFIG_DIR,
) -> None:
    """Validate config section against JSON Schema.

    Raises:
        ValueError: If validation fails
    """
    schema = load_schema(schema_name, config_dir)
    if not schema:
        return

    try:
        validate(instance=config, schema=schema)
        logger.debug("config_validation_succeeded", schema=schema_name)
    except JSONSchemaValidationError as e:
        error_msg = f"Config validation failed for {schema_name}"
        if file_path:
            error_msg += f" (file: {file_path})"
        error_msg += f": {e.message}"
        raise ValueError(error_msg) from e


def load_all_configs(config_dir: Path = DEFAULT_CONFIG_DIR) -> dict[str, Any]:
    """Load and merge all YAML configs from the config directory.

    main.yaml is loaded first, then every other *.yaml file in
    alphabetical order (later files override earlier ones). Each file is
    validated against the schema named after its stem, when one exists.

    Returns:
        Merged configuration dictionary
    """
    merged_config: dict[str, Any] = {}
    if not config_dir.exists() or not config_dir.is_dir():
        return merged_config

    main_path = config_dir / "main.yaml"
    yaml_files = sorted(f for f in config_dir.glob("*.yaml") if f.name != "main.yaml")
    if main_path.exists():
        yaml_files.insert(0, main_path)

    for yaml_file in yaml_files:
        schema_name = yaml_file.stem
        try:
            with open(yaml_file, encoding="utf-8") as f:
                file_config = yaml.safe_load(f) or {}
        except (yaml.YAMLError, OSError) as e:
            logger.warning(
                "config_file_load_failed",
                path=str(yaml_file),
                error=str(e),
            )
            continue

        try:
            validate_config_section(file_config, schema_name, str(yaml_file), config_dir)
        except ValueError as e:
            logger.error(
                "config_validation_failed",
                path=str(yaml_file),
                schema=schema_name,
                error=str(e),
            )
            raise

        merged_config = deep_merge(merged_config, file_config)
        logger.debug("config_file_loaded", path=str(yaml_file), schema=schema_name)

    logger.debug("config_load_complete", file_count=len(yaml_files))
    return merged_config


class Settings(BaseSettings):
    """Application settings.

    Values come from the environment / .env first, then config/*.yaml,
    then the defaults below.
    """

    model_config = SettingsConfigDict(
        env_file=".env" if Path(".env").exists() else None,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Storage
    db_path: str = Field(default=DEFAULT_DB_PATH, description="SQLite database path")

    # Deduplication
    write_window_seconds: int = Field(
        default=DEFAULT_WRITE_WINDOW_SECONDS,
        gt=0,
        description="Trailing window for write-time suppression",
    )
    read_window_seconds: int = Field(
        default=DEFAULT_READ_WINDOW_SECONDS,
        gt=0,
        description="Bucket width for timeline deduplication",
    )
    advisory_lock_enabled: bool = Field(
        default=True,
        description="Serialize check-then-write per (subject, fingerprint) in-process",
    )
    provenance_marker: str = Field(
        default=DEFAULT_PROVENANCE_MARKER,
        description="Value stored under created_by_service in logged metadata",
    )

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_json: bool = Field(default=False, description="Render logs as JSON")

    def __init__(self, config_dir: Path | None = None, **data: Any):
        """Initialize settings with auto-loaded configs from all YAML files."""
        config = load_all_configs(config_dir or DEFAULT_CONFIG_DIR)

        super().__init__(**data)
        self._apply_yaml_defaults(config)

    def _apply_yaml_defaults(self, config: dict[str, Any]) -> None:
        """Apply YAML-sourced defaults without overriding env-provided values."""

        fields_from_env = set(self.model_fields_set)

        def _assign(field_name: str, value: Any) -> None:
            if value is None:
                return
            if field_name in fields_from_env:
                return

            object.__setattr__(self, field_name, value)
            self.model_fields_set.add(field_name)

        database_config = config.get("database") or {}
        _assign("db_path", database_config.get("path"))

        dedupe_config = config.get("deduplication") or {}
        _assign("write_window_seconds", dedupe_config.get("write_window_seconds"))
        _assign("read_window_seconds", dedupe_config.get("read_window_seconds"))
        _assign("advisory_lock_enabled", dedupe_config.get("advisory_lock"))
        _assign("provenance_marker", dedupe_config.get("provenance_marker"))

        logging_config = config.get("logging") or {}
        _assign("log_level", logging_config.get("level"))
        _assign("log_json", logging_config.get("json"))


_settings: Settings | None = None


def get_settings() -> Settings:
    """Get or create global settings instance.

    Returns:
        Settings instance
    """
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
