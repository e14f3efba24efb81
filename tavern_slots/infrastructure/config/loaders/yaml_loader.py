# tavern_slots/infrastructure/config/loaders/yaml_loader.py
import copy
import json
import logging
import os
from typing import Any, Dict, List, Optional

import yaml


class ConfigError(Exception):
    """Base class for errors raised while loading or validating configuration."""
    pass


class FileNotFoundConfigError(ConfigError):
    """A configuration or schema file does not exist."""
    def __init__(self, path, message=None):
        self.path = path
        self.message = message or f"Configuration file not found: {path}"
        super().__init__(self.message)


class YamlParseError(ConfigError):
    """A configuration file is not valid YAML."""
    def __init__(self, file_path, yaml_error):
        self.file_path = file_path
        self.yaml_error = yaml_error
        self.message = f"Error parsing YAML file {file_path}: {str(yaml_error)}"
        super().__init__(self.message)


class SchemaValidationError(ConfigError):
    """A configuration file does not match its JSON schema."""
    def __init__(self, file_path, errors):
        self.file_path = file_path
        self.errors = errors
        error_msg = "\n  - ".join([""] + errors)
        self.message = f"Configuration validation failed for {file_path}:{error_msg}"
        super().__init__(self.message)


def merge_config(base: Dict[str, Any], overrides: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Deep-merge `overrides` into a copy of `base`. Nested dicts are merged,
    every other value (lists included) is replaced.
    """
    merged = copy.deepcopy(base)
    for key, value in (overrides or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_config(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


class YamlConfigLoader:
    """
    Loads session configuration from YAML files, optionally checking it
    against a JSON schema.

    In strict mode (the default) a missing, unparsable or invalid file
    raises a ConfigError. Otherwise the loader logs the problem and falls
    back to the supplied default configuration.
    """
    def __init__(self, schema_validator=None):
        self.logger = logging.getLogger("infrastructure.config.loader")
        self.schema_validator = schema_validator
        self.strict_mode = True

    def set_strict_mode(self, strict: bool = True):
        self.strict_mode = strict
        return self

    def load_file(self, file_path: str, schema_path: Optional[str] = None,
                  default_config: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Load one YAML file.

        Args:
            file_path: Path to the YAML file
            schema_path: Optional JSON schema to validate against
            default_config: Returned instead when loading fails in non-strict mode

        Returns:
            The parsed configuration dictionary

        Raises:
            FileNotFoundConfigError: The file does not exist
            YamlParseError: The file is not valid YAML
            SchemaValidationError: The file does not match the schema (strict mode only)
        """
        if not os.path.isfile(file_path):
            self.logger.error(f"Configuration file not found: {file_path}")
            if default_config is not None and not self.strict_mode:
                self.logger.warning(f"Using default configuration instead of missing file: {file_path}")
                return default_config
            raise FileNotFoundConfigError(file_path)

        try:
            with open(file_path, 'r', encoding='utf-8') as file:
                config = yaml.safe_load(file)
        except yaml.YAMLError as e:
            error = YamlParseError(file_path, e)
            self.logger.error(error.message)
            if default_config is not None and not self.strict_mode:
                self.logger.warning(f"Using default configuration due to parse error in {file_path}")
                return default_config
            raise error from e

        self.logger.debug(f"Loaded configuration from {file_path}")

        if config is None:
            self.logger.warning(f"Empty configuration file: {file_path}")
            config = default_config if default_config is not None else {}

        if not isinstance(config, dict):
            raise ConfigError(f"Top level of {file_path} must be a mapping, got {type(config).__name__}")

        if schema_path and self.schema_validator:
            schema = self._load_schema(schema_path)
            is_valid, errors = self.schema_validator.validate(config, schema)
            if not is_valid:
                error = SchemaValidationError(file_path, errors)
                if self.strict_mode:
                    raise error
                self.logger.warning(f"{error.message}\nUsing unvalidated configuration.")
            else:
                self.logger.debug(f"Validated {file_path} against {schema_path}")

        return config

    def load_with_fallbacks(self, file_paths: List[str], schema_path: Optional[str] = None) -> Dict[str, Any]:
        """
        Load the first of `file_paths` that loads cleanly.

        Raises:
            ConfigError: Every candidate failed and the loader is strict
        """
        errors = []
        original_strict_mode = self.strict_mode

        try:
            self.strict_mode = True
            for path in file_paths:
                try:
                    config = self.load_file(path, schema_path)
                    self.logger.info(f"Loaded configuration from {path}")
                    return config
                except ConfigError as e:
                    errors.append(f"{path}: {str(e)}")
        finally:
            self.strict_mode = original_strict_mode

        error_msg = "All configuration files failed to load:\n" + "\n".join(f"  - {err}" for err in errors)
        self.logger.error(error_msg)
        if self.strict_mode:
            raise ConfigError(error_msg)

        self.logger.warning("Using empty configuration as fallback")
        return {}

    def _load_schema(self, schema_path: str) -> Dict[str, Any]:
        if not os.path.isfile(schema_path):
            error_msg = f"Schema file not found: {schema_path}"
            self.logger.error(error_msg)
            raise FileNotFoundConfigError(schema_path, error_msg)

        try:
            with open(schema_path, 'r', encoding='utf-8') as file:
                return json.load(file)
        except json.JSONDecodeError as e:
            error_msg = f"Error parsing schema file {schema_path}: {str(e)}"
            self.logger.error(error_msg)
            raise ConfigError(error_msg) from e
