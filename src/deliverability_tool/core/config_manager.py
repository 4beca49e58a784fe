"""Configuration management for modular analyzers.

This module handles loading and merging configuration from multiple TOML files
with proper precedence. Each analyzer gets its own isolated config section.
"""

import logging
from pathlib import Path
from typing import Any

try:
    import tomllib
except ImportError:
    import tomli as tomllib  # type: ignore

import tomli_w
from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from ..constants import DEFAULT_DNS_TIMEOUT, DEFAULT_HTTP_TIMEOUT
from .registry import registry

logger = logging.getLogger(__name__)

CONFIG_DIR_NAME = "email-deliverability-tool"
LOCAL_CONFIG_NAME = ".email-deliverability-tool.toml"

# Global timeouts fill these analyzer fields unless the section sets them itself
_GLOBAL_TIMEOUT_FIELDS = {
    "dns_timeout": (("dns", "timeout"), ("rbl", "timeout")),
    "http_timeout": (("content", "http_timeout"),),
}


class GlobalConfig(BaseSettings):
    """
    Global configuration (not analyzer-specific).

    EDT_* environment variables override values from config files,
    e.g. EDT_VERBOSITY=debug or EDT_PARALLEL=false.
    """

    model_config = SettingsConfigDict(env_prefix="EDT_", extra="ignore")

    verbosity: str = Field(
        default="normal",
        description="Output verbosity: quiet, normal, verbose, debug",
    )
    color: bool = Field(default=True, description="Enable colored output")
    parallel: bool = Field(default=True, description="Run independent analyzers in parallel")
    dns_timeout: float = Field(
        default=DEFAULT_DNS_TIMEOUT, description="Default DNS query timeout in seconds"
    )
    http_timeout: float = Field(
        default=DEFAULT_HTTP_TIMEOUT, description="Default link check timeout in seconds"
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # Environment beats values passed in from TOML files
        return env_settings, init_settings


class ConfigManager:
    """
    Manages configuration loading for all analyzers.

    Loads from multiple sources with precedence (highest to lowest):
    1. CLI overrides (passed programmatically)
    2. Explicit --config file
    3. Local config (./.email-deliverability-tool.toml)
    4. Home config (~/.email-deliverability-tool.toml)
    5. User config (~/.config/email-deliverability-tool/config.toml)
    6. System config (/etc/email-deliverability-tool/config.toml)
    7. Package defaults

    Example TOML structure:
        [global]
        verbosity = "normal"
        parallel = true
        dns_timeout = 5.0

        [rbl]
        rbl_servers = ["zen.spamhaus.org", "bl.spamcop.net"]
        check_all_ips = true

        [content]
        check_links = false
    """

    def __init__(self, strict: bool = False):
        """
        Initialize ConfigManager.

        Args:
            strict: If True, raise exceptions on config validation errors.
                   If False (default), log warnings and use defaults.
        """
        self.strict = strict
        self.global_config = GlobalConfig()
        self.analyzer_configs: dict[str, Any] = {}

    def load_from_files(
        self, extra_paths: list[Path] | None = None, include_defaults: bool = True
    ) -> None:
        """
        Load configuration from TOML files.

        Args:
            extra_paths: Additional config file paths to load (highest precedence)
            include_defaults: Also read the system, user and local config files
        """
        paths = self._get_config_paths() if include_defaults else []
        if extra_paths:
            paths.extend(extra_paths)

        merged_data: dict[str, Any] = {}

        for path in paths:
            if not path.exists():
                logger.debug(f"Config file not found: {path}")
                continue

            try:
                with open(path, "rb") as f:
                    file_data = tomllib.load(f)
                merged_data = self._merge_dicts(merged_data, file_data)
                logger.info(f"Loaded config from {path}")
            except (OSError, tomllib.TOMLDecodeError) as e:
                if self.strict:
                    raise RuntimeError(f"Failed to load config from {path}: {e}") from e
                logger.warning(f"Failed to load config from {path}: {e}")

        self.load_from_dict(merged_data)

    def load_from_dict(self, data: dict[str, Any]) -> None:
        """Validate already merged config data into global and per-analyzer models."""
        try:
            self.global_config = GlobalConfig(**data.get("global", {}))
        except ValidationError as e:
            if self.strict:
                raise
            logger.error(f"Invalid global config: {e}")
            self.global_config = GlobalConfig()

        data = self._apply_global_timeouts(data)

        for analyzer_id, metadata in registry.get_all().items():
            section = data.get(analyzer_id)
            if section is None:
                self.analyzer_configs[analyzer_id] = metadata.config_class()
                logger.debug(f"Using default config for {analyzer_id}")
                continue

            try:
                self.analyzer_configs[analyzer_id] = metadata.config_class(**section)
                logger.debug(f"Loaded config for {analyzer_id}")
            except ValidationError as e:
                if self.strict:
                    raise
                logger.warning(f"Invalid config for {analyzer_id}: {e}")
                self.analyzer_configs[analyzer_id] = metadata.config_class()

    def _apply_global_timeouts(self, data: dict[str, Any]) -> dict[str, Any]:
        result = {key: dict(value) if isinstance(value, dict) else value for key, value in data.items()}
        for global_field, targets in _GLOBAL_TIMEOUT_FIELDS.items():
            if global_field not in self.global_config.model_fields_set:
                continue
            value = getattr(self.global_config, global_field)
            for analyzer_id, field_name in targets:
                section = result.setdefault(analyzer_id, {})
                if isinstance(section, dict):
                    section.setdefault(field_name, value)
        return result

    def get_analyzer_config(self, analyzer_id: str) -> Any:
        """
        Get configuration for a specific analyzer.

        Args:
            analyzer_id: Analyzer ID

        Returns:
            Analyzer configuration (Pydantic model instance)

        Raises:
            ValueError: If the analyzer is not registered
        """
        if analyzer_id not in self.analyzer_configs:
            metadata = registry.get(analyzer_id)
            if metadata:
                self.analyzer_configs[analyzer_id] = metadata.config_class()
            else:
                raise ValueError(f"Unknown analyzer: {analyzer_id}")

        return self.analyzer_configs[analyzer_id]

    def merge_cli_overrides(self, analyzer_id: str, overrides: dict[str, Any]) -> None:
        """
        Merge CLI overrides into analyzer config.

        Args:
            analyzer_id: Analyzer ID
            overrides: Dictionary of config field overrides
        """
        current = self.get_analyzer_config(analyzer_id)

        current_dict = current.model_dump()
        current_dict.update(overrides)

        metadata = registry.get(analyzer_id)
        try:
            self.analyzer_configs[analyzer_id] = metadata.config_class(**current_dict)
        except ValidationError as e:
            if self.strict:
                raise
            logger.error(f"Invalid CLI overrides for {analyzer_id}: {e}")

    def export_to_toml(self, path: Path) -> None:
        """
        Export current config to TOML file.

        Args:
            path: Output file path
        """
        data = {"global": self.global_config.model_dump(mode="json", exclude_none=True)}

        for analyzer_id, config in self.analyzer_configs.items():
            data[analyzer_id] = config.model_dump(mode="json", exclude_none=True)

        with open(path, "wb") as f:
            tomli_w.dump(data, f)
        logger.info(f"Exported config to {path}")

    def create_default_config_file(self, path: Path) -> None:
        """
        Create a default config file with all analyzers.

        Args:
            path: Output file path
        """
        for analyzer_id, metadata in registry.get_all().items():
            if analyzer_id not in self.analyzer_configs:
                self.analyzer_configs[analyzer_id] = metadata.config_class()

        self.export_to_toml(path)
        logger.info(f"Created default config file: {path}")

    @staticmethod
    def _get_config_paths() -> list[Path]:
        """
        Get configuration file paths in precedence order (lowest to highest).

        Returns:
            List of config file paths
        """
        paths = []

        # 1. Package default (if exists)
        package_dir = Path(__file__).parent.parent
        default_config = package_dir / "default_config.toml"
        if default_config.exists():
            paths.append(default_config)

        # 2. System-wide
        paths.append(Path("/etc") / CONFIG_DIR_NAME / "config.toml")

        # 3. User config
        paths.append(Path.home() / ".config" / CONFIG_DIR_NAME / "config.toml")

        # 4. Home config
        paths.append(Path.home() / LOCAL_CONFIG_NAME)

        # 5. Local config
        paths.append(Path.cwd() / LOCAL_CONFIG_NAME)

        return paths

    @staticmethod
    def _merge_dicts(base: dict, override: dict) -> dict:
        """
        Recursively merge dictionaries.

        Args:
            base: Base dictionary
            override: Dictionary to merge in (takes precedence)

        Returns:
            Merged dictionary
        """
        result = base.copy()
        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = ConfigManager._merge_dicts(result[key], value)
            else:
                result[key] = value
        return result
