"""Configuration loader producing a validated ``MeterConfig``."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path

from pydantic import ValidationError

from ..exceptions import ConfigLoadError, ConfigValidationError
from ..manager.config_merger import ConfigMerger
from ..models.meter import MeterConfig
from .env_loader import DEFAULT_PREFIX, EnvLoader
from .yaml_loader import YamlLoader

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_NAMES = ("object_meter.yaml", "object_meter.yml")


class ConfigLoader:
    """Load meter configuration from a YAML file and environment overrides.

    Precedence, lowest first: model defaults, the YAML file, then
    ``OBJECT_METER_*`` environment variables.
    """

    def __init__(
        self,
        config_dir: Path | None = None,
        env_prefix: str = DEFAULT_PREFIX,
        environ: Mapping[str, str] | None = None,
        use_env: bool = True,
    ) -> None:
        """Initialize configuration loader.

        Args:
            config_dir: Directory searched for a default config file (current directory)
            env_prefix: Prefix of environment overrides
            environ: Variables to read instead of ``os.environ``
            use_env: Whether environment overrides are applied
        """
        self.config_dir: Path = config_dir or Path.cwd()
        self.yaml_loader: YamlLoader = YamlLoader()
        self.env_loader: EnvLoader = EnvLoader(prefix=env_prefix, environ=environ)
        self.merger: ConfigMerger = ConfigMerger(track_sources=True)
        self.use_env: bool = use_env

    def find_config_file(self) -> Path | None:
        for name in DEFAULT_CONFIG_NAMES:
            candidate = self.config_dir / name
            if candidate.is_file():
                return candidate
        return None

    def load(self, path: Path | str | None = None) -> MeterConfig:
        """Load and validate the meter configuration.

        Args:
            path: Configuration file; a default file in ``config_dir`` is used
                when omitted, and plain defaults when there is none

        Returns:
            Validated configuration

        Raises:
            ConfigLoadError: If an explicitly named file does not exist or cannot be parsed
            EnvLoadError: If an environment override is malformed
            ConfigMergeError: If an override conflicts with the file's structure
            ConfigValidationError: If the merged configuration is invalid
        """
        config_path = Path(path) if path is not None else self.find_config_file()
        file_config: dict[str, object] = {}
        if config_path is not None:
            if not config_path.exists():
                raise ConfigLoadError(f"Configuration file not found: {config_path}", file_path=str(config_path))
            file_config = self.yaml_loader.load(config_path)
            logger.debug("Loaded configuration file %s", config_path)

        env_config = self.env_loader.load() if self.use_env else {}
        if env_config:
            logger.debug("Applying environment overrides: %s", ", ".join(sorted(env_config)))

        merged = self.merger.merge(_drop_null_sections(file_config), env_config)
        return self.validate(merged, source=str(config_path) if config_path else "defaults")

    def load_dict(self, data: Mapping[str, object]) -> MeterConfig:
        """Validate configuration given as a mapping, applying environment overrides."""
        env_config = self.env_loader.load() if self.use_env else {}
        merged = self.merger.merge(_drop_null_sections(dict(data)), env_config)
        return self.validate(merged, source="mapping")

    def validate(self, data: dict[str, object], source: str = "configuration") -> MeterConfig:
        try:
            return MeterConfig.model_validate(data)
        except ValidationError as e:
            raise ConfigValidationError(
                f"Invalid meter configuration from {source}",
                pydantic_error=e,
                context={"source": source},
            ) from e


def _drop_null_sections(config: dict[str, object]) -> dict[str, object]:
    return {key: value for key, value in config.items() if value is not None}
