"""Per-criterion key extraction from asset records."""

from __future__ import annotations

import posixpath
import re
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from photostack.stacking.models import ASSET_FIELDS, Asset, Criterion
from photostack.stacking.regex_cache import RegexCache

Extraction = Tuple[str, bool]
_MISS: Extraction = ("", False)


def format_time(value: datetime) -> str:
    """Render a timestamp as UTC ISO-8601 with millisecond precision."""
    rendered = value.astimezone(timezone.utc).isoformat(timespec="milliseconds")
    return rendered.replace("+00:00", "Z")


def split_segments(value: str, delimiters: Tuple[str, ...]) -> List[str]:
    """Split a value by each delimiter in turn, flattening every intermediate segment."""
    segments = [value]
    for delimiter in delimiters:
        segments = [piece for segment in segments for piece in segment.split(delimiter)]
    return segments


def _render(raw: object, kind: str) -> Optional[str]:
    # Time values are split and matched in their canonical UTC rendering.
    if raw is None or raw == "":
        return None
    if kind == "time" and isinstance(raw, datetime):
        return format_time(raw)
    value = str(raw)
    if kind == "path":
        value = value.replace("\\", "/")
    return value


class KeyExtractor:
    """Resolve criteria against assets, producing comparable string keys.

    Regex transforms are compiled through the shared `RegexCache`; extraction
    has no other side effects.
    """

    def __init__(self, cache: RegexCache) -> None:
        self._cache = cache

    @property
    def cache(self) -> RegexCache:
        """Return the regex cache consulted by this extractor."""
        return self._cache

    def extract(self, asset: Asset, criterion: Criterion) -> Extraction:
        """Return the key value for a criterion and whether extraction succeeded.

        Args:
            asset: Asset being evaluated.
            criterion: Criterion describing the field and its transform.

        Returns:
            Extraction: `(value, ok)`; `ok` is False when the field is empty,
            a split index is out of range or a regex does not match.
        """
        entry = ASSET_FIELDS.get(criterion.key)
        if entry is None:
            return _MISS
        attribute, kind = entry
        raw = getattr(asset, attribute)

        if kind == "bool":
            return ("true" if raw else "false"), True

        value = _render(raw, kind)
        if value is None:
            return _MISS

        if criterion.regex is not None:
            return self._regex_group(value, criterion.regex.key, criterion.regex.index)

        if kind == "filename":
            value = posixpath.splitext(value)[0]

        if criterion.split is not None:
            segments = split_segments(value, criterion.split.delimiters)
            if criterion.split.index >= len(segments):
                return _MISS
            value = segments[criterion.split.index]

        if not value:
            return _MISS
        return value, True

    def time_value(self, asset: Asset, criterion: Criterion) -> Optional[datetime]:
        """Return the raw time value a delta criterion clusters on, if present."""
        entry = ASSET_FIELDS.get(criterion.key)
        if entry is None or entry[1] != "time":
            return None
        return getattr(asset, entry[0])

    def promote_value(self, asset: Asset, criterion: Criterion) -> Optional[str]:
        """Return the regex promote capture for an asset, or None when it does not apply."""
        regex = criterion.regex
        if regex is None or regex.promote_index is None:
            return None
        attribute, kind = ASSET_FIELDS[criterion.key]
        value = _render(getattr(asset, attribute), kind)
        if value is None:
            return None
        captured, ok = self._regex_group(value, regex.key, regex.promote_index)
        return captured if ok else None

    def _regex_group(self, value: str, pattern: str, index: int) -> Extraction:
        compiled = self._cache.compile(pattern)
        match = compiled.search(value)
        if match is None or index > compiled.groups:
            return _MISS
        try:
            captured = match.group(index)
        except IndexError:
            return _MISS
        if not captured:
            return _MISS
        return captured, True


def validate_regex(cache: RegexCache, pattern: str, *indices: Optional[int]) -> re.Pattern[str]:
    """Compile a pattern through the cache and check the requested capture groups exist.

    Raises:
        re.error: If the pattern does not compile.
        ValueError: If a requested group index exceeds the pattern's group count.
    """
    compiled = cache.compile(pattern)
    for index in indices:
        if index is not None and index > compiled.groups:
            raise ValueError(
                f"regex '{pattern}' has {compiled.groups} group(s); index {index} is out of range"
            )
    return compiled


__all__ = ["Extraction", "KeyExtractor", "format_time", "split_segments", "validate_regex"]
