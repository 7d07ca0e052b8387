"""Partitioning of assets into candidate stacks."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Dict, Iterable, List, Literal, Sequence, Set, Tuple

from photostack.stacking.clustering import UnionFind, cluster_by_tolerance
from photostack.stacking.criteria import (
    AndNode,
    CriteriaModel,
    ExpressionCriteria,
    ExpressionNode,
    GroupedCriteria,
    LeafNode,
    LegacyCriteria,
    NotNode,
    OrNode,
)
from photostack.stacking.extractors import KeyExtractor
from photostack.stacking.models import Asset, CriteriaGroup, Criterion

LOGGER = logging.getLogger(__name__)

UnmatchedPolicy = Literal["singleton", "drop"]
Contribution = Tuple[str, str]
Evaluation = Tuple[bool, Tuple[Contribution, ...], Tuple[LeafNode, ...]]
DELTA_MARKER = "~delta"


class GroupingEngine:
    """Evaluate a parsed criteria model over an asset list.

    Groups are returned as lists of input positions so callers can map them
    back onto their own records. Groups are ordered by the earliest position
    among their members, and members keep their input order.
    """

    def __init__(
        self, extractor: KeyExtractor, *, unmatched: UnmatchedPolicy = "singleton"
    ) -> None:
        """Initialize the engine.

        Args:
            extractor: Key extractor used for every criterion.
            unmatched: What to do with assets that fail extraction in legacy
                and grouped modes: keep each as a singleton group or drop it.
        """
        if unmatched not in ("singleton", "drop"):
            raise ValueError(f"Unknown unmatched policy: {unmatched}")
        self._extractor = extractor
        self._unmatched = unmatched

    @property
    def unmatched(self) -> UnmatchedPolicy:
        return self._unmatched

    def group(self, assets: Sequence[Asset], model: CriteriaModel) -> List[List[int]]:
        """Partition assets according to the criteria model.

        Args:
            assets: Assets to partition.
            model: Parsed criteria.

        Returns:
            List[List[int]]: Groups of input positions.
        """
        if isinstance(model, LegacyCriteria):
            clusters, unmatched = self._group_and(assets, range(len(assets)), model.criteria)
            groups = clusters + self._apply_policy(unmatched)
        elif isinstance(model, GroupedCriteria):
            groups = self._group_declared(assets, model.groups)
        elif isinstance(model, ExpressionCriteria):
            groups = self._group_expression(assets, model)
        else:  # pragma: no cover - exhaustive over CriteriaModel
            raise TypeError(f"Unsupported criteria model: {type(model).__name__}")

        ordered = sorted((sorted(group) for group in groups if group), key=lambda group: group[0])
        LOGGER.debug(
            "Grouped %d asset(s) into %d group(s) using %s criteria.",
            len(assets),
            len(ordered),
            model.mode,
        )
        return ordered

    # Modes ------------------------------------------------------------

    def _group_and(
        self,
        assets: Sequence[Asset],
        positions: Iterable[int],
        criteria: Sequence[Criterion],
    ) -> Tuple[List[List[int]], List[int]]:
        exact = [criterion for criterion in criteria if not criterion.is_tolerant]
        tolerant = [criterion for criterion in criteria if criterion.is_tolerant]

        buckets: Dict[Tuple[str, ...], List[int]] = {}
        unmatched: List[int] = []
        for position in positions:
            asset = assets[position]
            key: List[str] = []
            for criterion in exact:
                value, ok = self._extractor.extract(asset, criterion)
                if not ok:
                    break
                key.append(value)
            else:
                if all(self._extractor.time_value(asset, c) is not None for c in tolerant):
                    buckets.setdefault(tuple(key), []).append(position)
                    continue
            unmatched.append(position)

        clusters: List[List[int]] = []
        for members in buckets.values():
            clusters.extend(self._refine(assets, members, tolerant))
        return clusters, unmatched

    def _group_or(
        self,
        assets: Sequence[Asset],
        positions: Sequence[int],
        criteria: Sequence[Criterion],
    ) -> Tuple[List[List[int]], List[int]]:
        pairs: Dict[int, Set[Tuple[int, str]]] = {position: set() for position in positions}

        for criterion_index, criterion in enumerate(criteria):
            if criterion.is_tolerant:
                timed = [
                    p
                    for p in positions
                    if self._extractor.time_value(assets[p], criterion) is not None
                ]
                clusters = self._refine(assets, timed, [criterion])
                for cluster_no, cluster in enumerate(clusters):
                    for position in cluster:
                        pairs[position].add((criterion_index, f"{DELTA_MARKER}{cluster_no}"))
                continue
            for position in positions:
                value, ok = self._extractor.extract(assets[position], criterion)
                if ok:
                    pairs[position].add((criterion_index, value))

        matched = [position for position in positions if pairs[position]]
        unmatched = [position for position in positions if not pairs[position]]

        local = {position: offset for offset, position in enumerate(matched)}
        forest = UnionFind(len(matched))
        owners: Dict[Tuple[int, str], int] = {}
        for position in matched:
            for pair in sorted(pairs[position]):
                owner = owners.setdefault(pair, position)
                if owner != position:
                    forest.union(local[owner], local[position])

        components = [
            [matched[offset] for offset in component] for component in forest.components()
        ]
        return components, unmatched

    def _group_declared(
        self, assets: Sequence[Asset], groups: Sequence[CriteriaGroup]
    ) -> List[List[int]]:
        remaining: List[int] = list(range(len(assets)))
        matched_any: Set[int] = set()
        result: List[List[int]] = []

        for number, group in enumerate(groups, start=1):
            if group.operator == "OR":
                clusters, _ = self._group_or(assets, remaining, group.criteria)
            else:
                clusters, _ = self._group_and(assets, remaining, group.criteria)

            claimed: Set[int] = set()
            for cluster in clusters:
                matched_any.update(cluster)
                if len(cluster) > 1:
                    result.append(cluster)
                    claimed.update(cluster)
            remaining = [position for position in remaining if position not in claimed]
            LOGGER.debug(
                "Criteria group %d (%s) claimed %d asset(s); %d remain.",
                number,
                group.operator,
                len(claimed),
                len(remaining),
            )

        leftovers = [position for position in remaining if position not in matched_any]
        result.extend([position] for position in remaining if position in matched_any)
        return result + self._apply_policy(leftovers)

    def _group_expression(
        self, assets: Sequence[Asset], model: ExpressionCriteria
    ) -> List[List[int]]:
        buckets: Dict[Tuple[Contribution, ...], List[int]] = {}
        # Delta leaves reached by each bucket, keyed by leaf index.
        tolerant: Dict[Tuple[Contribution, ...], Dict[int, Criterion]] = {}
        excluded = 0
        for position, asset in enumerate(assets):
            included, contributions, deltas = self._evaluate(model.root, asset)
            if not included:
                excluded += 1
                continue
            buckets.setdefault(contributions, []).append(position)
            reached = tolerant.setdefault(contributions, {})
            for leaf in deltas:
                reached.setdefault(leaf.index, leaf.criterion)

        if excluded:
            LOGGER.debug("Expression excluded %d asset(s).", excluded)

        clusters: List[List[int]] = []
        for key, members in buckets.items():
            criteria = [tolerant[key][index] for index in sorted(tolerant[key])]
            clusters.extend(self._refine(assets, members, criteria))
        return clusters

    def evaluate(self, node: ExpressionNode, asset: Asset) -> Tuple[bool, Tuple[Contribution, ...]]:
        """Evaluate an expression node for one asset.

        Returns:
            Tuple[bool, Tuple[Contribution, ...]]: Whether the asset is included
            and the `(field key, value)` pairs that make up its grouping key.
        """
        included, contributions, _ = self._evaluate(node, asset)
        return included, contributions

    def _evaluate(self, node: ExpressionNode, asset: Asset) -> Evaluation:
        if isinstance(node, LeafNode):
            return self._evaluate_leaf(node, asset)
        if isinstance(node, NotNode):
            included, _, _ = self._evaluate(node.child, asset)
            return not included, (), ()
        if isinstance(node, AndNode):
            collected: List[Contribution] = []
            deltas: List[LeafNode] = []
            for child in node.children:
                included, contributions, reached = self._evaluate(child, asset)
                if not included:
                    return False, (), ()
                collected.extend(contributions)
                deltas.extend(reached)
            return True, tuple(collected), tuple(deltas)
        if isinstance(node, OrNode):
            for child in node.children:
                result = self._evaluate(child, asset)
                if result[0]:
                    return result
            return False, (), ()
        raise TypeError(f"Unsupported expression node: {type(node).__name__}")

    def _evaluate_leaf(self, leaf: LeafNode, asset: Asset) -> Evaluation:
        criterion = leaf.criterion
        if criterion.is_boolean:
            value, _ = self._extractor.extract(asset, criterion)
            return value == "true", (), ()
        if criterion.is_tolerant:
            if self._extractor.time_value(asset, criterion) is None:
                return False, (), ()
            return True, ((criterion.key, DELTA_MARKER),), (leaf,)
        value, ok = self._extractor.extract(asset, criterion)
        if not ok:
            return False, (), ()
        return True, ((criterion.key, value),), ()

    # Helpers ----------------------------------------------------------

    def _refine(
        self,
        assets: Sequence[Asset],
        members: Sequence[int],
        tolerant: Sequence[Criterion],
    ) -> List[List[int]]:
        clusters: List[List[int]] = [list(members)] if members else []
        for criterion in tolerant:
            refined: List[List[int]] = []
            for cluster in clusters:
                refined.extend(self._cluster_on(assets, cluster, criterion))
            clusters = refined
        return clusters

    def _cluster_on(
        self, assets: Sequence[Asset], cluster: Sequence[int], criterion: Criterion
    ) -> List[List[int]]:
        if criterion.delta is None:
            return [list(cluster)]
        times: Dict[int, datetime] = {}
        for position in sorted(cluster):
            moment = self._extractor.time_value(assets[position], criterion)
            if moment is not None:
                times[position] = moment
        return cluster_by_tolerance(list(times), times.__getitem__, criterion.delta.milliseconds)

    def _apply_policy(self, unmatched: Sequence[int]) -> List[List[int]]:
        if not unmatched:
            return []
        if self._unmatched == "drop":
            LOGGER.debug("Dropping %d unmatched asset(s).", len(unmatched))
            return []
        return [[position] for position in unmatched]


__all__ = ["DELTA_MARKER", "GroupingEngine", "UnmatchedPolicy"]
