"""Clustering primitives shared by every grouping mode."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Callable, List, Sequence, TypeVar

T = TypeVar("T")


def cluster_by_tolerance(
    items: Sequence[T],
    time_of: Callable[[T], datetime],
    tolerance_ms: int,
) -> List[List[T]]:
    """Partition items into time clusters anchored on each cluster's earliest member.

    Items are sorted by time (ties keep their incoming order) and scanned once.
    An item joins the open cluster when it lies within `tolerance_ms` of the
    cluster's anchor, never of the previous item, so chains of near neighbours
    do not drift past the tolerance.

    Args:
        items: Items to partition; every item must have a time value.
        time_of: Accessor returning the item's time value.
        tolerance_ms: Maximum distance from the anchor, inclusive.

    Returns:
        List[List[T]]: Clusters in ascending time order.
    """
    if not items:
        return []

    tolerance = timedelta(milliseconds=tolerance_ms)
    ordered = sorted(items, key=time_of)

    clusters: List[List[T]] = []
    current: List[T] = [ordered[0]]
    anchor = time_of(ordered[0])
    for item in ordered[1:]:
        moment = time_of(item)
        if moment - anchor <= tolerance:
            current.append(item)
            continue
        clusters.append(current)
        current = [item]
        anchor = moment
    clusters.append(current)
    return clusters


class UnionFind:
    """Disjoint-set forest over `0..size-1` with path compression and union by size."""

    def __init__(self, size: int) -> None:
        self._parent = list(range(size))
        self._size = [1] * size

    def find(self, item: int) -> int:
        """Return the representative of the set containing item."""
        root = item
        while self._parent[root] != root:
            root = self._parent[root]
        while self._parent[item] != root:
            self._parent[item], item = root, self._parent[item]
        return root

    def union(self, left: int, right: int) -> int:
        """Merge the sets containing left and right and return the new representative."""
        left_root = self.find(left)
        right_root = self.find(right)
        if left_root == right_root:
            return left_root
        if self._size[left_root] < self._size[right_root]:
            left_root, right_root = right_root, left_root
        self._parent[right_root] = left_root
        self._size[left_root] += self._size[right_root]
        return left_root

    def components(self) -> List[List[int]]:
        """Return every set as a sorted member list, ordered by smallest member."""
        members: dict[int, List[int]] = {}
        for item in range(len(self._parent)):
            members.setdefault(self.find(item), []).append(item)
        return list(members.values())


__all__ = ["cluster_by_tolerance", "UnionFind"]
