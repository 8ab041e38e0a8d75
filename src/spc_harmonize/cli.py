import logging
from pathlib import Path
from typing import Annotated, Optional

import typer
from dotenv import load_dotenv

# Load environment variables BEFORE importing local modules that use them
load_dotenv()

from .config.settings import Config, ConfigurationError
from .config_loader import load_pipeline_settings
from .domain.enums import ExportFormat, RegionKind, SourceKind
from .domain.models import PipelineSettings
from .pipeline.runner import PipelineRunner
from .pipeline.source import build_source
from .types import PipelineError, RunSummary
from .utils import setup_logging

app = typer.Typer(help="North Sea submarine power cables: Source -> Normalize -> Condition -> Merge -> Export")

ConfigOption = Annotated[
    Optional[Path],
    typer.Option("--config", "-c", help="Pipeline YAML (default: $SPC_CONFIG or the packaged pipeline.yml)"),
]
VerboseOption = Annotated[bool, typer.Option("--verbose", "-v", help="Enable debug logging")]
LogFileOption = Annotated[bool, typer.Option("--log-to-file", help="Also write a timestamped log under logs/")]


def _load_settings(
    config: Optional[Path],
    output_dir: Optional[Path] = None,
    export_format: Optional[ExportFormat] = None,
) -> PipelineSettings:
    """Load settings, applying command-line overrides last."""
    settings = load_pipeline_settings(config, env=Config())
    overrides = {}
    if output_dir:
        overrides["output_dir"] = output_dir
    if export_format:
        overrides["export_format"] = export_format
    if overrides:
        settings = settings.model_copy(update=overrides)
    return settings


def _exit_for(summary: RunSummary) -> None:
    if not summary.ok:
        raise typer.Exit(1)


@app.command("run")
def run(
    source: Annotated[
        Optional[list[str]],
        typer.Option("--source", "-s", help="Process only this source (repeatable)"),
    ] = None,
    config: ConfigOption = None,
    output_dir: Annotated[Optional[Path], typer.Option("--output-dir", "-o", help="Directory for exported layers")] = None,
    export_format: Annotated[Optional[ExportFormat], typer.Option("--format", "-f", help="Output format")] = None,
    dry_run: Annotated[bool, typer.Option("--dry-run", help="Run all stages but write no files")] = False,
    verbose: VerboseOption = False,
    log_to_file: LogFileOption = False,
):
    """
    Harmonize all configured cable sources into one layer per target CRS.

    Examples:
        spc-harmonize run
        spc-harmonize run --source BE --source NL --format geojson
    """
    setup_logging(verbose, "cables", "run", log_to_file)

    try:
        settings = _load_settings(config, output_dir, export_format)
        summary = PipelineRunner(settings).run_cables(source, write=not dry_run)
    except ConfigurationError as e:
        logging.error(f"Configuration error: {e}")
        raise typer.Exit(1)
    except ValueError as e:
        logging.error(str(e))
        raise typer.Exit(1)

    _exit_for(summary)


@app.command("regions")
def regions(
    kind: Annotated[RegionKind, typer.Argument(help="Region layer to build")],
    config: ConfigOption = None,
    output_dir: Annotated[Optional[Path], typer.Option("--output-dir", "-o", help="Directory for exported layers")] = None,
    export_format: Annotated[Optional[ExportFormat], typer.Option("--format", "-f", help="Output format")] = None,
    verbose: VerboseOption = False,
    log_to_file: LogFileOption = False,
):
    """
    Build the EEZ or country boundary layer from the Marine Regions gazetteer.

    Examples:
        spc-harmonize regions eez
        spc-harmonize regions countries --format shp
    """
    setup_logging(verbose, kind.value, "regions", log_to_file)

    try:
        settings = _load_settings(config, output_dir, export_format)
    except ConfigurationError as e:
        logging.error(f"Configuration error: {e}")
        raise typer.Exit(1)

    summary = PipelineRunner(settings).run_regions(kind)
    _exit_for(summary)


@app.command("list-sources")
def list_sources(config: ConfigOption = None):
    """List configured cable sources with their location and harmonization rules."""
    try:
        settings = load_pipeline_settings(config)
    except ConfigurationError as e:
        typer.echo(f"ERROR: {e}", err=True)
        raise typer.Exit(1)

    typer.echo("Configured Cable Sources")
    typer.echo("=" * 50)

    for spec in settings.sources:
        state = "" if spec.enabled else " (disabled)"
        typer.echo(f"\n* {spec.name}{state}")
        typer.echo(f"   Country: {spec.country}")
        typer.echo(f"   Kind: {spec.kind.value}")
        if spec.kind == SourceKind.WFS:
            typer.echo(f"   URL: {spec.url}")
            typer.echo(f"   Layer: {spec.layer}")
            if spec.srs_name:
                typer.echo(f"   Requested CRS: {spec.srs_name}")
        else:
            for path in spec.paths:
                typer.echo(f"   Path: {path}")
        if spec.assumed_crs:
            typer.echo(f"   Assumed CRS: {spec.assumed_crs}")
        if spec.clip_mrgid is not None:
            typer.echo(f"   Clip against MRGID: {spec.clip_mrgid}")
        typer.echo(f"   Mapped fields: {', '.join(sorted(spec.columns)) or 'none'}")
        if spec.description:
            typer.echo(f"   Description: {spec.description}")

    typer.echo(f"\nFound {len(settings.sources)} sources")
    typer.echo(f"Target CRSs: {', '.join(settings.target_crs)}")
    typer.echo(f"Excluded statuses: {', '.join(s.value for s in settings.excluded_statuses)}")


@app.command("list-layers")
def list_layers(
    source: Annotated[str, typer.Argument(help="Configured source name")],
    config: ConfigOption = None,
    verbose: VerboseOption = False,
):
    """
    List the layers a source offers (WFS feature types or file layers).

    Useful to find the layer name to configure for a feature service.
    """
    setup_logging(verbose)

    try:
        settings = load_pipeline_settings(config)
    except ConfigurationError as e:
        typer.echo(f"ERROR: {e}", err=True)
        raise typer.Exit(1)

    spec = settings.get_source(source)
    if spec is None:
        typer.echo(f"ERROR: Unknown source '{source}'", err=True)
        raise typer.Exit(1)

    adapter = build_source(spec, timeout_s=settings.http_timeout_s, max_retries=settings.http_max_retries)
    try:
        layers = adapter.list_layers()
    except PipelineError as e:
        typer.echo(f"ERROR: {e}", err=True)
        raise typer.Exit(1)

    for layer in layers:
        marker = "*" if layer == spec.layer else " "
        typer.echo(f"{marker} {layer}")
    typer.echo(f"\nFound {len(layers)} layers for {spec.name}")


@app.command("version")
def version():
    """Display version information."""
    from . import __version__
    typer.echo(f"spc-harmonize version: {__version__}")


if __name__ == "__main__":
    app()
