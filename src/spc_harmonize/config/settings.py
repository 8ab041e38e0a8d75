"""
Environment configuration for the cable harmonization pipeline.

Pipeline content (sources, mappings, CRS targets) lives in YAML; this module
only resolves runtime settings from the environment.

Usage:
    from spc_harmonize.config.settings import Config
    config = Config()
    timeout = config.http.timeout_s

Environment Variables:
    SPC_CONFIG: Path to the pipeline YAML (default: packaged data/pipeline.yml)
    SPC_OUTPUT_DIR: Directory for exported layers
    SPC_EXPORT_FORMAT: gpkg | geojson | shp
    SPC_HTTP_TIMEOUT: Per-request timeout in seconds for WFS and gazetteer calls
    SPC_HTTP_RETRIES: Retry attempts for remote calls
    SPC_BOUNDARY_CACHE_DIR: Disk cache for gazetteer polygons
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

EXPORT_FORMATS = ("gpkg", "geojson", "shp")


@dataclass
class HttpConfig:
    """Bounded retry/timeout policy for remote calls."""
    timeout_s: int = 120
    max_retries: int = 3

    def __post_init__(self):
        """Validate HTTP policy."""
        if self.timeout_s < 1:
            raise ValueError("Timeout must be at least 1 second")
        if self.max_retries < 0:
            raise ValueError("Retry count must be non-negative")


@dataclass
class OutputConfig:
    """Where and how exported layers are written."""
    output_dir: Optional[str] = None
    export_format: Optional[str] = None

    def __post_init__(self):
        """Validate export format."""
        if self.export_format and self.export_format.lower() not in EXPORT_FORMATS:
            raise ValueError(f"Export format must be one of: {', '.join(EXPORT_FORMATS)}")


class ConfigurationError(Exception):
    """Raised when configuration is invalid or incomplete."""
    pass


class Config:
    """
    Runtime configuration loaded from the environment.

    Environment variables loaded (in order of preference):
    1. Explicit environment file passed to constructor
    2. .env.{ENVIRONMENT} (where ENVIRONMENT=development|production|staging)
    3. .env file in project root
    4. System environment variables
    """

    def __init__(self,
                 environment: Optional[str] = None,
                 env_file: Optional[Path] = None):
        """
        Initialize configuration.

        Args:
            environment: Target environment (development|staging|production)
            env_file: Explicit path to environment file
        """
        self.environment = environment or os.getenv("ENVIRONMENT", "development")
        self.project_root = self._find_project_root()

        self._load_environment_variables(env_file)

        self._load_http_config()
        self._load_output_config()

        config_path = os.getenv("SPC_CONFIG")
        self.pipeline_config_path = Path(config_path) if config_path else None
        cache_dir = os.getenv("SPC_BOUNDARY_CACHE_DIR")
        self.boundary_cache_dir = Path(cache_dir) if cache_dir else None

    def _find_project_root(self) -> Path:
        """Find project root directory containing pyproject.toml, .git or a .env file."""
        current = Path(__file__).resolve()

        for parent in current.parents:
            if any((parent / marker).exists() for marker in ['pyproject.toml', '.git']):
                return parent

        if (Path.cwd() / '.env').exists():
            return Path.cwd()

        return Path.cwd()

    def _load_environment_variables(self, env_file: Optional[Path]) -> None:
        """Load environment variables from appropriate source."""
        loaded_files = []

        if env_file:
            if env_file.exists():
                load_dotenv(env_file)
                loaded_files.append(str(env_file))
                logger.info(f"Loaded configuration from {env_file}")
            else:
                raise ConfigurationError(f"Specified env file not found: {env_file}")
        else:
            env_specific_file = self.project_root / f".env.{self.environment}"
            if env_specific_file.exists():
                load_dotenv(env_specific_file)
                loaded_files.append(str(env_specific_file))
                logger.info(f"Loaded environment-specific config: {env_specific_file}")

            generic_env_file = self.project_root / ".env"
            if generic_env_file.exists():
                load_dotenv(generic_env_file)
                loaded_files.append(str(generic_env_file))
                logger.info(f"Loaded generic config: {generic_env_file}")

        if not loaded_files:
            logger.debug("No .env files found, using system environment variables only")

        self._loaded_env_files = loaded_files

    def _load_http_config(self) -> None:
        """Load remote call policy."""
        try:
            self.http = HttpConfig(
                timeout_s=int(os.getenv("SPC_HTTP_TIMEOUT", "120")),
                max_retries=int(os.getenv("SPC_HTTP_RETRIES", "3")),
            )
        except ValueError as e:
            raise ConfigurationError(f"Invalid HTTP configuration: {e}")

    def _load_output_config(self) -> None:
        """Load output overrides."""
        try:
            self.output = OutputConfig(
                output_dir=os.getenv("SPC_OUTPUT_DIR"),
                export_format=os.getenv("SPC_EXPORT_FORMAT"),
            )
        except ValueError as e:
            raise ConfigurationError(f"Invalid output configuration: {e}")

    def get_overrides(self) -> dict[str, Any]:
        """
        Settings that take precedence over the pipeline YAML.

        Returns:
            Dictionary of PipelineSettings fields set from the environment
        """
        overrides: dict[str, Any] = {
            'http_timeout_s': self.http.timeout_s,
            'http_max_retries': self.http.max_retries,
        }
        if self.output.output_dir:
            overrides['output_dir'] = Path(self.output.output_dir)
        if self.output.export_format:
            overrides['export_format'] = self.output.export_format.lower()
        if self.boundary_cache_dir:
            overrides['boundary_cache_dir'] = self.boundary_cache_dir
        return overrides

    def __repr__(self) -> str:
        return (
            f"Config(environment={self.environment}, "
            f"pipeline_config={self.pipeline_config_path}, "
            f"timeout={self.http.timeout_s}s)"
        )
