"""Command line interface for previewing photo stacks offline."""

from __future__ import annotations

import difflib
import json
import logging
from pathlib import Path
from typing import Any, List, Optional

import click
import yaml
from rich.console import Console
from rich.logging import RichHandler
from rich.syntax import Syntax
from rich.table import Table

from photostack.config import ConfigError, ConfigManager
from photostack.errors import CriteriaError
from photostack.stacking import Asset, StackEngine, parse_assets

console = Console()
LOGGER = logging.getLogger(__name__)

_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


def _handle_cli_error(
    message: str,
    *,
    code: str,
    json_output: bool,
    original: Exception | None = None,
) -> None:
    """Emit a standardized error and terminate the command.

    Args:
        message: Human-readable error message.
        code: Machine-readable error identifier.
        json_output: Indicates whether JSON mode is active.
        original: Original exception for chaining when not using JSON.

    Raises:
        SystemExit: When emitting JSON output to terminate the command.
        click.ClickException: For non-JSON flows to surface the error.
    """

    if json_output:
        console.print_json(data={"error": {"code": code, "message": message}})
        raise SystemExit(1)

    raise click.ClickException(message) from original


def _configure_logging(level: str) -> None:
    """Route log records through Rich on stderr at the requested level."""
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _load_assets(path: Path) -> List[Asset]:
    """Read assets from a JSON list or an `{"assets": {"items": [...]}}` page."""
    payload = json.loads(path.read_text(encoding="utf-8"))
    return parse_assets(payload)


def _asset_record(asset: Asset) -> dict[str, Any]:
    return {
        "id": asset.id,
        "originalFileName": asset.original_file_name,
        "localDateTime": (
            asset.local_date_time.isoformat() if asset.local_date_time is not None else None
        ),
    }


def _render_groups(groups: List[List[Asset]]) -> Table:
    table = Table(title="Stacks", show_lines=False)
    table.add_column("#", justify="right")
    table.add_column("Parent", style="bold green")
    table.add_column("Children")
    table.add_column("Size", justify="right")
    for number, group in enumerate(groups, start=1):
        parent, children = group[0], group[1:]
        table.add_row(
            str(number),
            parent.original_file_name or parent.id,
            ", ".join(child.original_file_name or child.id for child in children) or "-",
            str(len(group)),
        )
    return table


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(package_name="photostack")
def cli() -> None:
    """Photostack groups photo library assets into stacks and picks each stack's parent."""


@cli.command()
@click.argument("assets_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--criteria", type=str, help="Criteria JSON overriding the configured criteria.")
@click.option(
    "--promote-filename",
    type=str,
    help="Comma-separated filename substrings promoted to stack parent, in priority order.",
)
@click.option(
    "--promote-ext",
    type=str,
    help="Comma-separated extensions promoted to stack parent, in priority order.",
)
@click.option(
    "--unmatched",
    type=click.Choice(["singleton", "drop"]),
    help="Keep assets that fail extraction as single-asset groups or drop them.",
)
@click.option("--log-level", type=click.Choice(_LOG_LEVELS, case_sensitive=False))
@click.option("--json", "json_output", is_flag=True, help="Emit JSON describing the stacks.")
def stack(
    assets_file: Path,
    criteria: Optional[str],
    promote_filename: Optional[str],
    promote_ext: Optional[str],
    unmatched: Optional[str],
    log_level: Optional[str],
    json_output: bool,
) -> None:
    """Group the assets in ASSETS_FILE and show the resulting stacks.

    Args:
        assets_file: JSON file holding the assets to stack.
        criteria: Optional criteria JSON.
        promote_filename: Optional filename promote list.
        promote_ext: Optional extension promote list.
        unmatched: Optional unmatched-asset policy.
        log_level: Optional log level override.
        json_output: Whether to emit JSON instead of a table.

    Raises:
        click.ClickException: If configuration, criteria or assets are invalid.
    """
    overrides: dict[str, Any] = {}
    if criteria is not None:
        overrides["criteria"] = criteria
    if promote_filename is not None:
        overrides["promotion.parent_filename_promote"] = promote_filename
    if promote_ext is not None:
        overrides["promotion.parent_ext_promote"] = promote_ext
    if unmatched is not None:
        overrides["grouping.unmatched"] = unmatched
    if log_level is not None:
        overrides["logging.level"] = log_level.upper()

    try:
        config = ConfigManager().load(cli_overrides=overrides)
    except ConfigError as exc:
        _handle_cli_error(str(exc), code="config_error", json_output=json_output, original=exc)
        return

    _configure_logging(config.logging.level)

    try:
        assets = _load_assets(assets_file)
    except json.JSONDecodeError as exc:
        _handle_cli_error(
            f"Assets file is not valid JSON: {exc}",
            code="invalid_assets",
            json_output=json_output,
            original=exc,
        )
        return
    except ValueError as exc:
        _handle_cli_error(
            f"Assets file could not be read: {exc}",
            code="invalid_assets",
            json_output=json_output,
            original=exc,
        )
        return

    try:
        engine = StackEngine.from_config(config)
    except CriteriaError as exc:
        _handle_cli_error(str(exc), code="criteria_error", json_output=json_output, original=exc)
        return

    groups = engine.run(assets)
    stacks = [group for group in groups if len(group) > 1]
    LOGGER.debug("Previewed %d group(s) from %s.", len(groups), assets_file)

    if json_output:
        console.print_json(
            data={
                "groups": [
                    {
                        "parent": group[0].id,
                        "assets": [_asset_record(asset) for asset in group],
                    }
                    for group in groups
                ],
                "summary": {
                    "assets": len(assets),
                    "groups": len(groups),
                    "stacks": len(stacks),
                },
            }
        )
        return

    console.print(_render_groups(groups))
    console.print(
        f"[green]{len(assets)} asset(s), {len(groups)} group(s), "
        f"{len(stacks)} stack(s) with more than one asset.[/green]"
    )


@cli.group()
def config() -> None:
    """Manage Photostack configuration files and overrides."""


@config.command("view")
@click.option("--no-env", is_flag=True, help="Ignore environment overrides when displaying output.")
def config_view(no_env: bool) -> None:
    """Display the effective configuration after applying precedence rules.

    Raises:
        click.ClickException: If configuration cannot be loaded.
    """
    manager = ConfigManager()
    try:
        manager.ensure_exists()
        loaded = manager.load(include_env=not no_env)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc

    yaml_text = yaml.safe_dump(loaded.model_dump(mode="python"), sort_keys=False)
    console.print(Syntax(yaml_text, "yaml", word_wrap=True))


@config.command("set")
@click.argument("key")
@click.option("--value", required=True, help="Value to assign to KEY.")
def config_set(key: str, value: str) -> None:
    """Persist a configuration value expressed as a dotted KEY.

    Args:
        key: Dotted path describing the configuration field to update.
        value: YAML-literal value to write into the configuration file.

    Raises:
        click.ClickException: If parsing, assignment, or validation fails.
    """
    try:
        parsed_value = yaml.safe_load(value)
    except yaml.YAMLError as exc:
        raise click.ClickException(f"Unable to parse value: {exc}") from exc

    try:
        before, after = ConfigManager().set_value(key, parsed_value)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc

    diff = list(
        difflib.unified_diff(
            before,
            after,
            fromfile="config.yaml (before)",
            tofile="config.yaml (after)",
            lineterm="",
        )
    )

    if diff:
        console.print(Syntax("\n".join(diff), "diff", word_wrap=False))
    else:
        console.print("[yellow]No changes applied; value already up to date.[/yellow]")
        return

    console.print(f"[green]Updated {key.strip()}.[/green]")


def main() -> None:
    """Invoke the Click CLI as the console script entry point."""
    cli()


if __name__ == "__main__":
    main()
