"""
Configuration management for the file processor.

Builds the immutable ProcessorConfig from, lowest precedence first:
built-in defaults, a JSON settings file, FILE_PROCESSOR_* environment
variables (a .env file is loaded first) and explicit overrides from the CLI.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from dotenv import load_dotenv
from pydantic import ValidationError

from file_processor.atomic import AtomicFileWriter
from file_processor.errors import ConfigError
from file_processor.models import ProcessorConfig


logger = logging.getLogger(__name__)

# Default configuration paths
DEFAULT_CONFIG_FILE = Path("file-processor.json")
DEFAULT_ENV_FILE = Path(".env")

# JSON section holding the options
SECTION_NAME = "FileProcessor"

ENV_PREFIX = "FILE_PROCESSOR_"


def _alias_map() -> Dict[str, str]:
    """Map PascalCase option names to field names."""
    return {
        field.alias: name
        for name, field in ProcessorConfig.model_fields.items()
        if field.alias
    }


class ConfigManager:
    """
    Loads pipeline configuration.

    Handles reading the settings file, applying environment and command-line
    overrides, and writing a starter settings file.
    """

    def __init__(
        self,
        config_file: Optional[Path] = None,
        env_file: Optional[Path] = None,
        environ: Optional[Mapping[str, str]] = None
    ):
        """
        Initialize configuration manager.

        Args:
            config_file: Path to the JSON settings file. Defaults to ./file-processor.json,
                         which may be absent; an explicit path must exist.
            env_file: .env file to load before reading the environment
            environ: Environment mapping (defaults to os.environ)
        """
        self._explicit_file = config_file is not None
        self.config_file = Path(config_file) if config_file else DEFAULT_CONFIG_FILE
        self.env_file = Path(env_file) if env_file else DEFAULT_ENV_FILE
        self._environ = environ

    def load(self, overrides: Optional[Dict[str, Any]] = None) -> ProcessorConfig:
        """
        Build the effective configuration.

        Args:
            overrides: Field values from the command line; None values are ignored

        Returns:
            Frozen ProcessorConfig

        Raises:
            ConfigError: If the settings file is unreadable or a value is invalid
        """
        values: Dict[str, Any] = {}
        values.update(self._read_file())
        values.update(self._read_environment())
        values.update({k: v for k, v in (overrides or {}).items() if v is not None})

        try:
            return ProcessorConfig(**values)
        except ValidationError as e:
            raise ConfigError(f"Invalid configuration: {e}") from e

    def _read_file(self) -> Dict[str, Any]:
        """Read the settings file, flattening the FileProcessor section."""
        if not self.config_file.exists():
            if self._explicit_file:
                raise ConfigError(f"Config file not found: {self.config_file}")
            return {}

        try:
            data = AtomicFileWriter.read_json(self.config_file, default={})
        except (json.JSONDecodeError, OSError) as e:
            raise ConfigError(f"Could not read config file {self.config_file}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigError(f"Config file must contain a JSON object: {self.config_file}")

        section = data.get(SECTION_NAME, data)
        if not isinstance(section, dict):
            raise ConfigError(f"'{SECTION_NAME}' section must be a JSON object")

        aliases = _alias_map()
        return {aliases.get(key, key): value for key, value in section.items()}

    def _read_environment(self) -> Dict[str, str]:
        """Collect FILE_PROCESSOR_* variables."""
        if self._environ is None:
            if self.env_file.exists():
                load_dotenv(self.env_file, override=False)
            environ: Mapping[str, str] = os.environ
        else:
            environ = self._environ

        values = {}
        for name in ProcessorConfig.model_fields:
            env_name = ENV_PREFIX + name.upper()
            if environ.get(env_name):
                values[name] = environ[env_name]
        return values

    def write_default(self, force: bool = False) -> Path:
        """
        Write a starter settings file with the default options.

        Args:
            force: Overwrite an existing file

        Returns:
            Path of the written file

        Raises:
            ConfigError: If the file exists and force is False
        """
        if self.config_file.exists() and not force:
            raise ConfigError(f"Config file already exists: {self.config_file}")

        defaults = ProcessorConfig()
        section = defaults.model_dump(
            mode="json",
            by_alias=True,
            exclude={"log_file"},
        )
        section["SupportedExtensions"] = sorted(defaults.supported_extensions)

        AtomicFileWriter.write_json(self.config_file, {SECTION_NAME: section}, indent=2)
        logger.info(f"Wrote default configuration: {self.config_file}")
        return self.config_file


def ensure_directories(config: ProcessorConfig) -> None:
    """Create the input and output directories if missing."""
    for label, directory in (
        ("input", config.input_directory),
        ("output", config.output_directory),
    ):
        if not directory.exists():
            directory.mkdir(parents=True, exist_ok=True)
            logger.info(f"Created {label} directory: {directory}")


def load_config(
    config_file: Optional[Path] = None,
    overrides: Optional[Dict[str, Any]] = None
) -> ProcessorConfig:
    """Load configuration with the default sources."""
    return ConfigManager(config_file).load(overrides)
