"""Tests for criteria parsing and validation."""

import json
import re

import pytest
from pydantic import ValidationError

from photostack.errors import CriteriaError
from photostack.stacking import (
    DEFAULT_CRITERIA,
    AndNode,
    ExpressionCriteria,
    GroupedCriteria,
    LeafNode,
    LegacyCriteria,
    NotNode,
    OrNode,
    RegexCache,
    parse_criteria,
)


@pytest.mark.parametrize("source", [None, "", "   "])
def test_missing_criteria_selects_defaults(source: object) -> None:
    model = parse_criteria(source)

    assert isinstance(model, LegacyCriteria)
    assert model.criteria == DEFAULT_CRITERIA
    assert model.criteria[0].split is not None
    assert model.criteria[0].split.delimiters == (".",)
    assert model.criteria[1].key == "localDateTime"


def test_legacy_list_from_json_text() -> None:
    source = json.dumps(
        [
            {"key": "originalFileName", "split": {"delimiters": ["~", "."], "index": 0}},
            {"key": "localDateTime", "delta": {"milliseconds": 1000}},
        ]
    )

    model = parse_criteria(source)

    assert isinstance(model, LegacyCriteria)
    assert [criterion.key for criterion in model.criteria] == ["originalFileName", "localDateTime"]
    assert model.criteria[1].is_tolerant


def test_single_delimiter_key_is_accepted() -> None:
    model = parse_criteria([{"key": "originalFileName", "split": {"key": "_", "index": 1}}])

    assert isinstance(model, LegacyCriteria)
    assert model.criteria[0].split is not None
    assert model.criteria[0].split.delimiters == ("_",)
    assert model.criteria[0].split.index == 1


def test_grouped_criteria_normalizes_operators() -> None:
    model = parse_criteria(
        {
            "mode": "advanced",
            "groups": [
                {"operator": "or", "criteria": [{"key": "originalFileName"}, {"key": "checksum"}]},
                {"criteria": [{"key": "localDateTime"}]},
            ],
        }
    )

    assert isinstance(model, GroupedCriteria)
    assert [group.operator for group in model.groups] == ["OR", "AND"]
    assert len(model.all_criteria()) == 3


def test_expression_tree_is_built_with_preorder_leaf_indices() -> None:
    model = parse_criteria(
        {
            "mode": "advanced",
            "expression": {
                "operator": "AND",
                "children": [
                    {"criteria": {"key": "originalFileName", "split": {"delimiters": ["."]}}},
                    {
                        "operator": "OR",
                        "children": [
                            {"criteria": {"key": "localDateTime", "delta": {"milliseconds": 500}}},
                            {"criteria": {"key": "fileCreatedAt"}},
                        ],
                    },
                    {"operator": "NOT", "children": [{"criteria": {"key": "isArchived"}}]},
                ],
            },
        }
    )

    assert isinstance(model, ExpressionCriteria)
    root = model.root
    assert isinstance(root, AndNode)
    first, second, third = root.children
    assert isinstance(first, LeafNode) and first.index == 0
    assert isinstance(second, OrNode)
    assert [child.index for child in second.children if isinstance(child, LeafNode)] == [1, 2]
    assert isinstance(third, NotNode)
    assert isinstance(third.child, LeafNode) and third.child.index == 3
    assert [criterion.key for criterion in model.all_criteria()] == [
        "originalFileName",
        "localDateTime",
        "fileCreatedAt",
        "isArchived",
    ]


def test_expression_mode_alias() -> None:
    model = parse_criteria({"mode": "expression", "expression": {"criteria": {"key": "type"}}})

    assert isinstance(model, ExpressionCriteria)


def test_regexes_are_precompiled_into_cache() -> None:
    cache = RegexCache()

    parse_criteria(
        [{"key": "originalFileName", "regex": {"key": r"^(\w+)_", "index": 1}}], cache=cache
    )

    assert r"^(\w+)_" in cache


@pytest.mark.parametrize(
    "source",
    [
        [],
        [{"key": "notAField"}],
        [{"key": "originalFileName", "delta": {"milliseconds": 10}}],
        [{"key": "localDateTime", "delta": {"milliseconds": -1}}],
        [{"key": "originalFileName", "split": {"delimiters": ["."]}, "regex": {"key": "x"}}],
        [{"key": "isFavorite", "regex": {"key": "true"}}],
        [{"key": "originalFileName", "split": {"delimiters": [""]}}],
        [{"key": "originalFileName", "unexpected": True}],
        {"mode": "sideways", "groups": []},
        {"mode": "advanced"},
        {"mode": "advanced", "groups": []},
        {"mode": "advanced", "groups": [{"operator": "XOR", "criteria": [{"key": "id"}]}]},
        {"mode": "expression"},
        42,
    ],
)
def test_malformed_criteria_are_rejected(source: object) -> None:
    with pytest.raises(CriteriaError):
        parse_criteria(source)


@pytest.mark.parametrize(
    "expression",
    [
        {"operator": "XOR", "children": [{"criteria": {"key": "id"}}]},
        {
            "operator": "NOT",
            "children": [{"criteria": {"key": "id"}}, {"criteria": {"key": "type"}}],
        },
        {"operator": "AND", "children": []},
        {"criteria": {"key": "id"}, "operator": "AND"},
        {"children": [{"criteria": {"key": "id"}}]},
    ],
)
def test_malformed_expressions_are_rejected(expression: dict) -> None:
    with pytest.raises(CriteriaError):
        parse_criteria({"mode": "advanced", "expression": expression})


def test_invalid_json_chains_decode_error() -> None:
    with pytest.raises(CriteriaError) as excinfo:
        parse_criteria("[{not json")

    assert isinstance(excinfo.value.__cause__, json.JSONDecodeError)


def test_validation_failure_chains_pydantic_error() -> None:
    with pytest.raises(CriteriaError) as excinfo:
        parse_criteria([{"key": "notAField"}])

    assert isinstance(excinfo.value.__cause__, ValidationError)
    assert "unknown criteria key" in str(excinfo.value)


def test_invalid_regex_chains_compile_error() -> None:
    with pytest.raises(CriteriaError) as excinfo:
        parse_criteria([{"key": "originalFileName", "regex": {"key": "(unclosed"}}])

    assert isinstance(excinfo.value.__cause__, re.error)


def test_regex_group_index_beyond_pattern_is_rejected() -> None:
    with pytest.raises(CriteriaError, match="out of range"):
        parse_criteria([{"key": "originalFileName", "regex": {"key": r"(\d+)", "index": 2}}])

    with pytest.raises(CriteriaError, match="out of range"):
        parse_criteria(
            [{"key": "originalFileName", "regex": {"key": r"(\d+)", "promote_index": 3}}]
        )
