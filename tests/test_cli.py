"""Tests for the command line interface."""

import json
import os
from pathlib import Path
from typing import Any

from click.testing import CliRunner

from photostack.cli import cli
from photostack.config import LEGACY_ENV_ALIASES, ConfigManager

ASSETS = [
    {"id": "1", "originalFileName": "A.jpg", "localDateTime": "2024-05-01T12:00:00.000Z"},
    {"id": "2", "originalFileName": "A_edit.jpg", "localDateTime": "2024-05-01T12:00:00.000Z"},
    {"id": "3", "originalFileName": "A.dng", "localDateTime": "2024-05-01T12:00:00.000Z"},
    {"id": "4", "originalFileName": "B.jpg", "localDateTime": "2024-05-01T12:00:05.000Z"},
]

CRITERIA = json.dumps(
    [
        {"key": "originalFileName", "split": {"delimiters": ["_", "."], "index": 0}},
        {"key": "localDateTime", "delta": {"milliseconds": 1000}},
    ]
)


def _env_with_home(tmp_path: Path) -> dict[str, Any]:
    # CliRunner unsets variables mapped to None.
    env: dict[str, Any] = {
        key: None
        for key in os.environ
        if key.startswith("PHOTOSTACK__") or key in LEGACY_ENV_ALIASES
    }
    env["HOME"] = str(tmp_path)
    return env


def _write_assets(tmp_path: Path, payload: Any = None) -> Path:
    path = tmp_path / "assets.json"
    path.write_text(json.dumps(ASSETS if payload is None else payload), encoding="utf-8")
    return path


def test_cli_help_displays_commands() -> None:
    runner = CliRunner()
    result = runner.invoke(cli, ["--help"])

    assert result.exit_code == 0
    assert "Photostack groups photo library assets" in result.output
    assert "stack" in result.output
    assert "config" in result.output


def test_stack_json_output(tmp_path: Path) -> None:
    runner = CliRunner()
    assets_file = _write_assets(tmp_path)

    result = runner.invoke(
        cli,
        [
            "stack",
            str(assets_file),
            "--criteria",
            CRITERIA,
            "--promote-filename",
            "edit",
            "--promote-ext",
            ".jpg,.dng",
            "--json",
        ],
        env=_env_with_home(tmp_path),
    )

    assert result.exit_code == 0, result.output
    payload = json.loads(result.output)
    assert [group["parent"] for group in payload["groups"]] == ["2", "4"]
    assert [asset["id"] for asset in payload["groups"][0]["assets"]] == ["2", "1", "3"]
    assert payload["summary"] == {"assets": 4, "groups": 2, "stacks": 1}


def test_stack_reads_search_page_and_renders_table(tmp_path: Path) -> None:
    runner = CliRunner()
    assets_file = _write_assets(tmp_path, {"assets": {"items": ASSETS}})

    result = runner.invoke(
        cli,
        ["stack", str(assets_file), "--criteria", CRITERIA],
        env=_env_with_home(tmp_path),
    )

    assert result.exit_code == 0, result.output
    assert "A_edit.jpg" in result.output
    assert "2 group(s)" in result.output


def test_stack_uses_criteria_from_environment(tmp_path: Path) -> None:
    runner = CliRunner()
    assets_file = _write_assets(tmp_path)
    env = _env_with_home(tmp_path)
    env["PHOTOSTACK__CRITERIA"] = CRITERIA
    env["PHOTOSTACK__GROUPING__UNMATCHED"] = "drop"

    result = runner.invoke(cli, ["stack", str(assets_file), "--json"], env=env)

    assert result.exit_code == 0, result.output
    payload = json.loads(result.output)
    assert payload["summary"]["stacks"] == 1


def test_stack_reports_invalid_criteria_as_json(tmp_path: Path) -> None:
    runner = CliRunner()
    assets_file = _write_assets(tmp_path)

    result = runner.invoke(
        cli,
        ["stack", str(assets_file), "--criteria", '[{"key": "bogus"}]', "--json"],
        env=_env_with_home(tmp_path),
    )

    assert result.exit_code == 1
    payload = json.loads(result.output)
    assert payload["error"]["code"] == "criteria_error"


def test_stack_rejects_malformed_assets_file(tmp_path: Path) -> None:
    runner = CliRunner()
    assets_file = _write_assets(tmp_path, {"unexpected": True})

    result = runner.invoke(cli, ["stack", str(assets_file)], env=_env_with_home(tmp_path))

    assert result.exit_code != 0
    assert "Assets file could not be read" in result.output


def test_config_view_creates_and_displays_config(tmp_path: Path) -> None:
    runner = CliRunner()

    result = runner.invoke(cli, ["config", "view"], env=_env_with_home(tmp_path))

    assert result.exit_code == 0
    assert "promotion:" in result.output
    assert (tmp_path / ".photostack" / "config.yaml").exists()


def test_config_set_updates_value_and_writes_diff(tmp_path: Path) -> None:
    runner = CliRunner()
    env = _env_with_home(tmp_path)

    result = runner.invoke(cli, ["config", "set", "grouping.unmatched", "--value", "drop"], env=env)

    assert result.exit_code == 0
    assert "Updated grouping.unmatched" in result.output

    manager = ConfigManager(config_path=tmp_path / ".photostack" / "config.yaml")
    config = manager.load(include_env=False)
    assert config.grouping.unmatched == "drop"


def test_config_set_rejects_invalid_value(tmp_path: Path) -> None:
    runner = CliRunner()
    env = _env_with_home(tmp_path)

    result = runner.invoke(
        cli, ["config", "set", "grouping.regex_cache_size", "--value", "0"], env=env
    )

    assert result.exit_code != 0
    assert "Invalid configuration values" in result.output


def test_stack_reports_list_valued_assets_envelope_as_json(tmp_path: Path) -> None:
    runner = CliRunner()
    assets_file = _write_assets(tmp_path, {"assets": []})

    result = runner.invoke(
        cli, ["stack", str(assets_file), "--json"], env=_env_with_home(tmp_path)
    )

    assert result.exit_code == 1
    payload = json.loads(result.output)
    assert payload["error"]["code"] == "invalid_assets"
