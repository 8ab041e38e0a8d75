"""
Unified configuration loading interface for the cable harmonization pipeline.

Merges configuration from:
- the pipeline YAML (sources, mappings, recode rules, CRS targets)
- the environment (timeouts, output overrides), see config.settings
- the built-in region registry (EEZ and country MRGIDs)

Returns a PipelineSettings object built fresh for each run.
"""

import logging
from pathlib import Path
from typing import Any, Optional, Union

from pydantic import ValidationError
from pyproj import CRS
from pyproj.exceptions import CRSError

from .config.regions import RegionRegistry
from .config.settings import Config, ConfigurationError
from .domain.enums import CableStatus, SourceKind
from .domain.models import PipelineSettings, RegionSpec
from .pipeline.transform import CANONICAL_COLUMNS
from .utils import load_yaml_file

logger = logging.getLogger(__name__)


def default_config_path() -> Path:
    """Path of the pipeline YAML shipped with the package."""
    return Path(__file__).parent / "data" / "pipeline.yml"


def load_pipeline_settings(
    config_path: Optional[Union[str, Path]] = None,
    env: Optional[Config] = None,
) -> PipelineSettings:
    """
    Load and validate the pipeline configuration.

    Args:
        config_path: Pipeline YAML (defaults to $SPC_CONFIG, then the packaged file)
        env: Environment configuration; created when not supplied

    Returns:
        Validated PipelineSettings

    Raises:
        ConfigurationError: If the YAML is missing, malformed or inconsistent
    """
    env = env or Config()
    if config_path is None:
        config_path = env.pipeline_config_path or default_config_path()
    config_path = Path(config_path)

    try:
        raw = load_yaml_file(config_path)
    except (FileNotFoundError, ValueError) as e:
        raise ConfigurationError(str(e)) from e

    data_dir = Path(raw.pop('data_dir', '.'))
    regions = raw.pop('regions', {}) or {}

    sources = [_parse_source(entry, data_dir) for entry in raw.pop('sources', []) or []]
    _check_unique_names(sources)

    settings_data: dict[str, Any] = dict(raw)
    settings_data['sources'] = sources
    settings_data['eez'] = _parse_regions(regions.get('eez'), RegionRegistry.get_eez)
    settings_data['countries'] = _parse_regions(regions.get('countries'), RegionRegistry.get_country)
    settings_data.update(env.get_overrides())

    try:
        settings = PipelineSettings(**settings_data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid pipeline configuration in {config_path}:\n{e}") from e

    if not settings.target_crs:
        raise ConfigurationError("At least one target CRS is required")
    _check_crs(settings.working_crs, "working_crs")
    for target in settings.target_crs:
        _check_crs(target, "target_crs")

    logger.info(
        f"Loaded pipeline config {config_path}: {len(settings.sources)} sources, "
        f"targets {', '.join(settings.target_crs)}"
    )
    return settings


def get_available_sources(config_path: Optional[Union[str, Path]] = None) -> list[str]:
    """Names of all configured sources."""
    return [s.name for s in load_pipeline_settings(config_path).sources]


def _parse_source(entry: dict[str, Any], data_dir: Path) -> dict[str, Any]:
    """Validate one YAML source entry and expand its recode table into rules."""
    entry = dict(entry)
    name = entry.get('name') or '<unnamed>'

    try:
        kind = SourceKind(entry.get('kind', 'file'))
    except ValueError:
        raise ConfigurationError(f"Source '{name}': unknown kind '{entry.get('kind')}'")

    if kind == SourceKind.FILE and not entry.get('paths'):
        raise ConfigurationError(f"Source '{name}': file sources need at least one path")
    if kind == SourceKind.WFS and not (entry.get('url') and entry.get('layer')):
        raise ConfigurationError(f"Source '{name}': WFS sources need 'url' and 'layer'")

    if entry.get('assumed_crs'):
        _check_crs(entry['assumed_crs'], f"Source '{name}': assumed_crs")
    if entry.get('srs_name'):
        _check_crs(entry['srs_name'], f"Source '{name}': srs_name")

    paths = entry.get('paths') or []
    if isinstance(paths, str):
        paths = [paths]
    entry['paths'] = [p if Path(p).is_absolute() else str(data_dir / p) for p in paths]

    columns = entry.get('columns') or {}
    constants = entry.get('constants') or {}
    for field_name in list(columns) + list(constants):
        if field_name not in CANONICAL_COLUMNS:
            raise ConfigurationError(
                f"Source '{name}': '{field_name}' is not a canonical field "
                f"({', '.join(CANONICAL_COLUMNS)})"
            )

    rules = []
    for column, table in (entry.get('recode') or {}).items():
        if column not in CANONICAL_COLUMNS:
            raise ConfigurationError(f"Source '{name}': recode on unknown field '{column}'")
        for source_value, canonical_value in (table or {}).items():
            if column == 'status':
                status = CableStatus.from_label(canonical_value)
                if status is None:
                    raise ConfigurationError(
                        f"Source '{name}': '{canonical_value}' is not a valid status "
                        f"({', '.join(s.value for s in CableStatus)})"
                    )
                canonical_value = status.value
            rules.append({
                'column': column,
                'source_value': str(source_value),
                'canonical_value': str(canonical_value),
            })
    entry['recode'] = rules
    return entry


def _parse_regions(entries: Optional[list[Any]], lookup) -> list[RegionSpec]:
    """
    Resolve region entries.

    An entry is either a registry key ('BE') or a mapping with RegionSpec fields.
    """
    regions = []
    for entry in entries or []:
        if isinstance(entry, str):
            info = lookup(entry)
            if info is None:
                raise ConfigurationError(f"Unknown region '{entry}'")
            regions.append(RegionSpec(
                mrgid=info.mrgid,
                country=info.country,
                name=info.name,
                north_sea_border=info.north_sea_border,
            ))
        else:
            try:
                regions.append(RegionSpec(**entry))
            except (TypeError, ValidationError) as e:
                raise ConfigurationError(f"Invalid region entry {entry}: {e}") from e
    return regions


def _check_unique_names(sources: list[dict[str, Any]]) -> None:
    seen = set()
    for source in sources:
        key = str(source.get('name', '')).lower()
        if key in seen:
            raise ConfigurationError(f"Duplicate source name '{source.get('name')}'")
        seen.add(key)


def _check_crs(value: Any, where: str) -> None:
    """Reject CRS strings pyproj cannot resolve."""
    try:
        CRS.from_user_input(value)
    except CRSError as e:
        raise ConfigurationError(f"{where}: invalid CRS '{value}' ({e})") from e
