"""Parsing of criteria declarations into the internal evaluation model."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

from pydantic import TypeAdapter, ValidationError

from photostack.errors import CriteriaError
from photostack.stacking.extractors import validate_regex
from photostack.stacking.models import CriteriaGroup, Criterion, ExpressionDeclaration
from photostack.stacking.regex_cache import RegexCache

LOGGER = logging.getLogger(__name__)

DEFAULT_CRITERIA: Tuple[Criterion, ...] = (
    Criterion.model_validate(
        {"key": "originalFileName", "split": {"delimiters": ["."], "index": 0}}
    ),
    Criterion.model_validate({"key": "localDateTime"}),
)

_CRITERIA_LIST = TypeAdapter(Tuple[Criterion, ...])
_GROUP_LIST = TypeAdapter(Tuple[CriteriaGroup, ...])


@dataclass(frozen=True)
class LeafNode:
    """Expression leaf wrapping one criterion; `index` is its pre-order position."""

    criterion: Criterion
    index: int


@dataclass(frozen=True)
class AndNode:
    children: Tuple["ExpressionNode", ...]


@dataclass(frozen=True)
class OrNode:
    children: Tuple["ExpressionNode", ...]


@dataclass(frozen=True)
class NotNode:
    child: "ExpressionNode"


ExpressionNode = Union[LeafNode, AndNode, OrNode, NotNode]


def iter_leaves(node: ExpressionNode) -> Iterator[LeafNode]:
    """Yield the leaves of an expression tree in declaration order."""
    if isinstance(node, LeafNode):
        yield node
    elif isinstance(node, NotNode):
        yield from iter_leaves(node.child)
    else:
        for child in node.children:
            yield from iter_leaves(child)


@dataclass(frozen=True)
class LegacyCriteria:
    """Flat AND list of criteria."""

    criteria: Tuple[Criterion, ...]
    mode: str = field(default="legacy", init=False)

    def all_criteria(self) -> Tuple[Criterion, ...]:
        return self.criteria


@dataclass(frozen=True)
class GroupedCriteria:
    """Declared AND/OR groups applied one after another."""

    groups: Tuple[CriteriaGroup, ...]
    mode: str = field(default="groups", init=False)

    def all_criteria(self) -> Tuple[Criterion, ...]:
        return tuple(criterion for group in self.groups for criterion in group.criteria)


@dataclass(frozen=True)
class ExpressionCriteria:
    """Boolean expression tree over criteria leaves."""

    root: ExpressionNode
    mode: str = field(default="expression", init=False)

    def all_criteria(self) -> Tuple[Criterion, ...]:
        return tuple(leaf.criterion for leaf in iter_leaves(self.root))


CriteriaModel = Union[LegacyCriteria, GroupedCriteria, ExpressionCriteria]


def parse_criteria(source: Any, *, cache: Optional[RegexCache] = None) -> CriteriaModel:
    """Parse a criteria declaration in any accepted shape.

    Args:
        source: JSON text, a legacy list of criteria, a mapping with `mode`
            and `groups` or `expression`, or None/blank for the defaults.
        cache: Regex cache warmed with every pattern; a private one is used
            when omitted.

    Returns:
        CriteriaModel: Parsed legacy, grouped or expression model.

    Raises:
        CriteriaError: If the declaration is malformed, names an unknown field
            or operator, or carries an invalid regular expression.
    """
    cache = cache if cache is not None else RegexCache()
    if isinstance(source, str):
        if not source.strip():
            source = None
        else:
            try:
                source = json.loads(source)
            except json.JSONDecodeError as exc:
                raise CriteriaError(f"Criteria is not valid JSON: {exc}") from exc

    try:
        if source is None:
            model: CriteriaModel = LegacyCriteria(criteria=DEFAULT_CRITERIA)
        elif isinstance(source, (list, tuple)):
            model = _parse_legacy(source)
        elif isinstance(source, Mapping):
            model = _parse_mapping(source)
        else:
            raise CriteriaError(
                f"Criteria must be a list or an object, not {type(source).__name__}."
            )
    except ValidationError as exc:
        raise CriteriaError(f"Invalid criteria: {exc}") from exc

    _precompile(model, cache)
    LOGGER.debug("Parsed %s criteria with %d rule(s).", model.mode, len(model.all_criteria()))
    return model


def _parse_legacy(items: Sequence[Any]) -> LegacyCriteria:
    if not items:
        raise CriteriaError("Criteria list must contain at least one criterion.")
    return LegacyCriteria(criteria=_CRITERIA_LIST.validate_python(items))


def _parse_mapping(data: Mapping[str, Any]) -> CriteriaModel:
    mode = data.get("mode")
    if mode is not None and not isinstance(mode, str):
        raise CriteriaError("Criteria mode must be a string.")
    mode = (mode or "").strip().lower()

    if mode == "legacy":
        return _parse_legacy(data.get("criteria") or [])
    if mode not in ("", "advanced", "expression"):
        raise CriteriaError(f"Unknown criteria mode: {mode}")

    expression = data.get("expression")
    groups = data.get("groups")
    if expression is not None:
        declaration = ExpressionDeclaration.model_validate(expression)
        return ExpressionCriteria(root=_build_expression(declaration, _Counter()))
    if mode == "expression":
        raise CriteriaError("Expression mode requires an 'expression' node.")
    if groups is not None:
        parsed = _GROUP_LIST.validate_python(groups)
        if not parsed:
            raise CriteriaError("Grouped criteria must declare at least one group.")
        return GroupedCriteria(groups=parsed)
    if mode == "" and "criteria" in data:
        return _parse_legacy(data.get("criteria") or [])
    raise CriteriaError("Advanced criteria require either 'groups' or 'expression'.")


class _Counter:
    def __init__(self) -> None:
        self.value = 0

    def next(self) -> int:
        current = self.value
        self.value += 1
        return current


def _build_expression(node: ExpressionDeclaration, counter: _Counter) -> ExpressionNode:
    if node.criteria is not None:
        if node.operator or node.children:
            raise CriteriaError("An expression leaf cannot also declare an operator or children.")
        return LeafNode(criterion=node.criteria, index=counter.next())

    if not node.operator:
        raise CriteriaError("An expression node needs either 'criteria' or an 'operator'.")
    operator = node.operator.strip().upper()
    if not node.children:
        raise CriteriaError(f"{operator} node requires at least one child.")

    if operator == "NOT":
        if len(node.children) != 1:
            raise CriteriaError(f"NOT node requires exactly one child, got {len(node.children)}.")
        return NotNode(child=_build_expression(node.children[0], counter))

    children = tuple(_build_expression(child, counter) for child in node.children)
    if operator == "AND":
        return AndNode(children=children)
    if operator == "OR":
        return OrNode(children=children)
    raise CriteriaError(f"Unknown expression operator: {node.operator}")


def _precompile(model: CriteriaModel, cache: RegexCache) -> None:
    for criterion in model.all_criteria():
        regex = criterion.regex
        if regex is None:
            continue
        try:
            validate_regex(cache, regex.key, regex.index, regex.promote_index)
        except re.error as exc:
            raise CriteriaError(f"Invalid regex '{regex.key}': {exc}") from exc
        except ValueError as exc:
            raise CriteriaError(str(exc)) from exc


def split_delimiters(model: CriteriaModel) -> Optional[Tuple[str, ...]]:
    """Return the delimiters of the first filename split criterion, if any."""
    for criterion in model.all_criteria():
        if criterion.key == "originalFileName" and criterion.split is not None:
            return criterion.split.delimiters
    return None


def promote_criteria(model: CriteriaModel) -> List[Criterion]:
    """Return regex criteria that carry promotion captures, in declaration order."""
    return [
        criterion
        for criterion in model.all_criteria()
        if criterion.regex is not None
        and criterion.regex.promote_index is not None
        and criterion.regex.promote_keys
    ]


__all__ = [
    "DEFAULT_CRITERIA",
    "LeafNode",
    "AndNode",
    "OrNode",
    "NotNode",
    "ExpressionNode",
    "iter_leaves",
    "LegacyCriteria",
    "GroupedCriteria",
    "ExpressionCriteria",
    "CriteriaModel",
    "parse_criteria",
    "split_delimiters",
    "promote_criteria",
]
