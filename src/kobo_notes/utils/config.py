"""
Configuration management for kobo-notes.

Handles loading and managing configuration from YAML files and environment variables.
"""

import copy
import os
import yaml
import logging
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

VALID_LOG_LEVELS = ['DEBUG', 'INFO', 'WARNING', 'ERROR']


class Config:
    """Configuration manager for kobo-notes."""

    DEFAULT_CONFIG = {
        'kobo': {
            'database_path': None,
            'max_file_size_mb': 100,
        },
        'export': {
            'format': 'markdown',
            'structure': 'single',
            'output_directory': None,
            'include_empty_chapters': True,
            'include_export_date': False,
            'workers': 1,
        },
        'logging': {
            'level': 'INFO',
            'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            'file': None,  # None means console only
        },
    }

    ENV_MAPPINGS = {
        'KOBO_NOTES_DB_PATH': ['kobo', 'database_path'],
        'KOBO_NOTES_MAX_FILE_SIZE_MB': ['kobo', 'max_file_size_mb'],
        'KOBO_NOTES_FORMAT': ['export', 'format'],
        'KOBO_NOTES_STRUCTURE': ['export', 'structure'],
        'KOBO_NOTES_OUTPUT_DIR': ['export', 'output_directory'],
        'KOBO_NOTES_WORKERS': ['export', 'workers'],
        'KOBO_NOTES_LOG_LEVEL': ['logging', 'level'],
        'KOBO_NOTES_LOG_FILE': ['logging', 'file'],
    }

    def __init__(self, config_path: Optional[str] = None):
        """
        Initialize configuration.

        Args:
            config_path: Path to configuration file. If None, looks for config in standard locations.
        """
        self.config_data = copy.deepcopy(self.DEFAULT_CONFIG)
        self.config_path = self._find_config_file(config_path)

        if self.config_path:
            self._load_config_file()
        else:
            logger.debug("No configuration file found, using defaults")

        # Override with environment variables
        self._load_env_variables()

        logger.debug(f"Configuration loaded from {self.config_path or 'defaults'}")

    def _find_config_file(self, config_path: Optional[str]) -> Optional[Path]:
        """Find the configuration file to use."""
        if config_path:
            path = Path(config_path)
            if path.exists():
                return path
            else:
                logger.warning(f"Specified config file not found: {config_path}")
                return None

        search_paths = [
            Path.cwd() / 'config.yaml',
            Path.cwd() / 'config' / 'config.yaml',
            Path.home() / '.kobo-notes' / 'config.yaml',
            Path.home() / '.config' / 'kobo-notes' / 'config.yaml',
        ]

        for path in search_paths:
            if path.exists():
                logger.info(f"Found configuration file: {path}")
                return path

        return None

    def _load_config_file(self):
        """Load configuration from YAML file."""
        try:
            with open(self.config_path, 'r') as f:
                file_config = yaml.safe_load(f) or {}

            self.config_data = self._deep_merge(self.config_data, file_config)
            logger.info(f"Configuration loaded from {self.config_path}")

        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Error loading config file {self.config_path}: {e}")
            logger.info("Using default configuration")

    def _load_env_variables(self):
        """Load configuration from environment variables."""
        for env_var, config_path in self.ENV_MAPPINGS.items():
            value = os.getenv(env_var)
            if value:
                self._set_nested_value(self.config_data, config_path, value)
                logger.debug(f"Set config from env var {env_var}")

    def _deep_merge(self, base: Dict, override: Dict) -> Dict:
        """Deep merge two dictionaries."""
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result

    def _set_nested_value(self, data: Dict, path: list, value: Any):
        """Set a nested value in a dictionary using a path list."""
        current = data
        for key in path[:-1]:
            if key not in current:
                current[key] = {}
            current = current[key]

        # Convert string values to appropriate types
        if isinstance(value, str):
            if value.lower() in ('true', 'false'):
                value = value.lower() == 'true'
            elif value.isdigit():
                value = int(value)
            elif value.replace('.', '', 1).isdigit():
                value = float(value)

        current[path[-1]] = value

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value using dot notation.

        Args:
            key: Configuration key in dot notation (e.g., 'export.format')
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        current = self.config_data

        for k in key.split('.'):
            if isinstance(current, dict) and k in current:
                current = current[k]
            else:
                return default

        return current

    def set(self, key: str, value: Any):
        """Set configuration value using dot notation."""
        self._set_nested_value(self.config_data, key.split('.'), value)

    def get_section(self, section: str) -> Dict[str, Any]:
        """Get entire configuration section."""
        return self.get(section, {})

    def save(self, config_path: Optional[str] = None):
        """
        Save current configuration to file.

        Args:
            config_path: Path to save config. If None, uses current config path.
        """
        save_path = Path(config_path) if config_path else self.config_path

        if not save_path:
            save_path = Path.cwd() / 'config.yaml'

        save_path.parent.mkdir(parents=True, exist_ok=True)

        try:
            with open(save_path, 'w') as f:
                yaml.dump(self.config_data, f, default_flow_style=False, indent=2)

            logger.info(f"Configuration saved to {save_path}")
            self.config_path = save_path

        except OSError as e:
            logger.error(f"Error saving config to {save_path}: {e}")
            raise

    def create_example_config(self, output_path: str):
        """Create an example configuration file with comments."""
        example_config = """
# kobo-notes configuration

# Kobo device settings
kobo:
  # Path to KoboReader.sqlite (found in the .kobo folder of the device)
  database_path: null  # e.g., "/Volumes/KOBOeReader/.kobo/KoboReader.sqlite"
  # Largest database file accepted, in megabytes
  max_file_size_mb: 100

# Export settings
export:
  # markdown or text
  format: "markdown"
  # single (one combined file) or zip (one file per book)
  structure: "single"
  # Directory for exported files (null for the current directory)
  output_directory: null
  # Write headings for chapters without highlights
  include_empty_chapters: true
  # Append an "Exported on" line to every document
  include_export_date: false
  # Books exported in parallel
  workers: 1

# Logging settings
logging:
  level: "INFO"  # DEBUG, INFO, WARNING, ERROR
  format: "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
  file: null  # null for console only, or path to log file
"""

        try:
            with open(output_path, 'w') as f:
                f.write(example_config.strip() + "\n")

            logger.info(f"Example configuration created at {output_path}")

        except OSError as e:
            logger.error(f"Error creating example config: {e}")
            raise

    def validate(self) -> list:
        """
        Validate configuration and return list of issues.

        Returns:
            List of validation error messages
        """
        issues = []

        db_path = self.get('kobo.database_path')
        if db_path and not os.path.exists(db_path):
            issues.append(f"kobo.database_path does not exist: {db_path}")

        max_size = self.get('kobo.max_file_size_mb')
        if not isinstance(max_size, (int, float)) or max_size <= 0:
            issues.append(f"Invalid kobo.max_file_size_mb: {max_size}")

        if self.get('export.format') not in ('markdown', 'text'):
            issues.append(f"Invalid export.format: {self.get('export.format')}")

        if self.get('export.structure') not in ('single', 'zip'):
            issues.append(f"Invalid export.structure: {self.get('export.structure')}")

        workers = self.get('export.workers')
        if not isinstance(workers, int) or isinstance(workers, bool) or workers < 1:
            issues.append(f"Invalid export.workers: {workers}")

        log_level = self.get('logging.level')
        if log_level not in VALID_LOG_LEVELS:
            issues.append(f"Invalid logging level: {log_level}")

        return issues

    def __str__(self) -> str:
        return f"Config(path={self.config_path}, database={self.get('kobo.database_path')})"

    def __repr__(self) -> str:
        return f"Config(config_path={self.config_path}, data_keys={list(self.config_data.keys())})"
