"""End-to-end tests for the stacking pipeline."""

import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, List

import pytest

from photostack.config import PhotostackConfig
from photostack.errors import CriteriaError
from photostack.stacking import (
    Asset,
    LegacyCriteria,
    PromotionConfig,
    RegexCache,
    StackEngine,
    parse_assets,
    parse_criteria,
    stack_assets,
)

BASE = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
STAMP = "2024-05-01T12:00:00.000Z"


def _asset(asset_id: str, name: str, offset_ms: int = 0, **fields: Any) -> Asset:
    payload = {
        "id": asset_id,
        "originalFileName": name,
        "localDateTime": BASE + timedelta(milliseconds=offset_ms),
    }
    payload.update(fields)
    return Asset.model_validate(payload)


def _names(groups: List[List[Asset]]) -> List[List[str]]:
    return [[asset.original_file_name for asset in group] for group in groups]


SCENARIO = [
    _asset("1", "A.jpg", 0),
    _asset("2", "A_edit.jpg", 0),
    _asset("3", "A.dng", 0),
    _asset("4", "B.jpg", 5000),
]


def test_end_to_end_scenario() -> None:
    engine = StackEngine(
        [
            {"key": "originalFileName", "split": {"delimiters": ["_", "."], "index": 0}},
            {"key": "localDateTime", "delta": {"milliseconds": 1000}},
        ],
        PromotionConfig.from_strings("edit", ".jpg,.dng"),
    )

    groups = engine.run(SCENARIO)

    assert _names(groups) == [["A_edit.jpg", "A.jpg", "A.dng"], ["B.jpg"]]


def test_split_on_dot_alone_keeps_suffixed_name_apart() -> None:
    engine = StackEngine(
        [
            {"key": "originalFileName", "split": {"delimiters": ["."], "index": 0}},
            {"key": "localDateTime", "delta": {"milliseconds": 1000}},
        ],
        PromotionConfig.from_strings("edit", ".jpg,.dng"),
    )

    groups = engine.run(SCENARIO)

    assert _names(groups) == [["A.jpg", "A.dng"], ["A_edit.jpg"], ["B.jpg"]]


def _burst() -> List[Asset]:
    names = [
        "PXL_20240501_120000~2.jpg",
        "IMG_0010.jpg",
        "PXL_20240501_120000.jpg",
        "IMG_0010.dng",
        "PXL_20240501_120000~5.jpg",
        "IMG_0010_edit.jpg",
        "holiday.heic",
        "PXL_20240501_120000.dng",
    ]
    return [_asset(f"id{index:02d}", name, index * 150) for index, name in enumerate(names)]


BURST_CRITERIA = [
    {"key": "originalFileName", "split": {"delimiters": ["~", ".", "_edit"], "index": 0}},
    {"key": "localDateTime", "delta": {"milliseconds": 2000}},
]


def test_runs_are_deterministic_and_idempotent() -> None:
    engine = StackEngine(BURST_CRITERIA, PromotionConfig.from_strings("edit,biggestNumber", ""))

    first = engine.run(_burst())
    second = engine.run(_burst())
    rerun = engine.run([asset for group in first for asset in group])

    assert _names(first) == _names(second)
    assert _names(rerun) == _names(first)
    assert _names(first)[0] == [
        "PXL_20240501_120000~5.jpg",
        "PXL_20240501_120000~2.jpg",
        "PXL_20240501_120000.jpg",
        "PXL_20240501_120000.dng",
    ]


def test_every_asset_is_returned_once_by_default() -> None:
    assets = _burst()

    groups = StackEngine(BURST_CRITERIA).run(assets)

    returned = sorted(asset.id for group in groups for asset in group)
    assert returned == sorted(asset.id for asset in assets)


def test_drop_policy_omits_unmatched_assets() -> None:
    assets = [_asset("a", "IMG_1.jpg"), _asset("b", "IMG_1.dng"), _asset("c", "notes")]
    criteria = [{"key": "originalFileName", "regex": {"key": r"^IMG_(\d+)", "index": 1}}]

    kept = stack_assets(assets, criteria, unmatched="singleton")
    dropped = stack_assets(assets, criteria, unmatched="drop")

    assert _names(kept) == [["IMG_1.jpg", "IMG_1.dng"], ["notes"]]
    assert _names(dropped) == [["IMG_1.jpg", "IMG_1.dng"]]


def test_default_engine_uses_default_criteria_and_promotion() -> None:
    engine = StackEngine()

    assert isinstance(engine.criteria, LegacyCriteria)
    assert engine.promotion == PromotionConfig()

    groups = engine.run(
        [_asset("a", "IMG_9.dng"), _asset("b", "IMG_9.jpg"), _asset("c", "IMG_9.crop.jpg")]
    )

    assert _names(groups) == [["IMG_9.crop.jpg", "IMG_9.jpg", "IMG_9.dng"]]


def test_accepts_prepared_criteria_model_and_shared_cache() -> None:
    cache = RegexCache(capacity=8)
    model = parse_criteria([{"key": "originalFileName", "regex": {"key": r"^(\w+)"}}], cache=cache)

    engine = StackEngine(model, regex_cache=cache)

    assert engine.criteria is model
    assert engine.regex_cache is cache
    assert r"^(\w+)" in cache


def test_invalid_criteria_fail_before_grouping() -> None:
    with pytest.raises(CriteriaError):
        StackEngine({"mode": "advanced", "expression": {"operator": "NOT", "children": []}})


def test_from_config_applies_settings() -> None:
    config = PhotostackConfig.model_validate(
        {
            "criteria": json.dumps(
                [{"key": "originalFileName", "regex": {"key": r"^IMG_(\d+)", "index": 1}}]
            ),
            "promotion": {"parent_filename_promote": "", "parent_ext_promote": ".dng"},
            "grouping": {"unmatched": "drop", "regex_cache_size": 5},
        }
    )

    engine = StackEngine.from_config(config)
    groups = engine.run([_asset("a", "IMG_1.jpg"), _asset("b", "IMG_1.dng"), _asset("c", "x.jpg")])

    assert engine.regex_cache.capacity == 5
    assert _names(groups) == [["IMG_1.dng", "IMG_1.jpg"]]


def test_run_logs_summary(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.INFO, logger="photostack.stacking.engine")

    StackEngine().run([_asset("a", "IMG_1.jpg"), _asset("b", "IMG_1.dng")])

    assert "Formed 1 group(s) from 2 asset(s)" in caplog.text


def test_parse_assets_accepts_search_page_envelope() -> None:
    page = {
        "assets": {
            "items": [
                {"id": "a", "originalFileName": "IMG_1.jpg", "localDateTime": STAMP},
                {"id": "b", "originalFileName": "IMG_1.dng", "localDateTime": STAMP},
            ]
        }
    }

    assets = parse_assets(page)

    assert [asset.id for asset in assets] == ["a", "b"]
    with pytest.raises(ValueError):
        parse_assets({"items": []})


@pytest.mark.parametrize("payload", [{"assets": []}, {"assets": "none"}, {"assets": {"items": 3}}])
def test_parse_assets_rejects_malformed_envelope(payload: Any) -> None:
    with pytest.raises(ValueError, match="assets.items"):
        parse_assets(payload)


def test_package_exports_one_shot_helper() -> None:
    import photostack

    groups = photostack.stack_assets([_asset("a", "IMG_1.jpg"), _asset("b", "IMG_1.dng")])

    assert _names(groups) == [["IMG_1.jpg", "IMG_1.dng"]]
    assert isinstance(photostack.__version__, str)
