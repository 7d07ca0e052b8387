"""Ordering of assets inside a stack so the representative comes first."""

from __future__ import annotations

import posixpath
import re
from datetime import datetime
from typing import Any, List, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, field_validator

from photostack.stacking.extractors import KeyExtractor, split_segments
from photostack.stacking.models import Asset, Criterion
from photostack.stacking.regex_cache import RegexCache

DEFAULT_FILENAME_PROMOTE = "edit,crop,hdr"
DEFAULT_EXTENSION_PROMOTE = ".jpg,.png,.jpeg,.dng"
DEFAULT_DELIMITERS: Tuple[str, ...] = ("~", ".")

SEQUENCE_KEYWORD = "sequence"
BIGGEST_NUMBER_KEYWORD = "biggestNumber"

_BUILTIN_EXTENSION_RANK = {".jpeg": 0, ".jpg": 1, ".png": 2}
_DIGITS = re.compile(r"^[0-9]+$")
_NUMBERED_TOKEN = re.compile(r"^(.*?)(\d+)(.*?)$")


def parse_promote_list(value: str | Sequence[str] | None) -> Tuple[str, ...]:
    """Split a comma-joined promote list, trimming items but keeping empty ones.

    Examples:
        >>> parse_promote_list(",_edited, _crop")
        ('', '_edited', '_crop')
    """
    if value is None:
        return ()
    if isinstance(value, str):
        if value == "":
            return ()
        value = value.split(",")
    return tuple(item.strip() for item in value)


def is_sequence_keyword(token: str) -> bool:
    """Return True for `sequence`, `sequence:<N>` and `sequence:<prefix>` tokens."""
    return token == SEQUENCE_KEYWORD or token.startswith(f"{SEQUENCE_KEYWORD}:")


def sequence_pattern(token: str) -> str:
    """Return the regex that captures the sequence number for a sequence keyword."""
    _, _, argument = token.partition(":")
    if not argument:
        return r"(\d+)"
    if argument.isdigit():
        return rf"(?<!\d)(\d{{{int(argument)}}})(?!\d)"
    return rf"(?i){re.escape(argument)}(\d+)"


def numbered_pattern(tokens: Sequence[str]) -> Optional[str]:
    """Return a sequence regex when the promote list is itself a numbered series.

    A series has at least two tokens sharing one prefix and one suffix around
    distinct numbers, such as `0000,0001,0002` or `img1,img2`. Empty tokens
    and `biggestNumber` are ignored. Returns None for any other list.

    Examples:
        >>> numbered_pattern(["cover", "0001"]) is None
        True
    """
    shapes = set()
    numbers = set()
    counted = 0
    for token in tokens:
        if token == "" or token == BIGGEST_NUMBER_KEYWORD:
            continue
        match = _NUMBERED_TOKEN.match(token)
        if match is None:
            return None
        shapes.add((match.group(1), match.group(3)))
        numbers.add(int(match.group(2)))
        counted += 1

    if counted < 2 or len(shapes) != 1 or len(numbers) != counted:
        return None
    prefix, suffix = shapes.pop()
    if not prefix and not suffix:
        return r"(?:^|_)(\d+)(?:_|$)"
    return rf"(?i){re.escape(prefix)}(\d+){re.escape(suffix)}"


class PromotionConfig(BaseModel):
    """Filename and extension promote lists, accepted as comma-joined strings or sequences."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    filename: Tuple[str, ...] = parse_promote_list(DEFAULT_FILENAME_PROMOTE)
    extension: Tuple[str, ...] = parse_promote_list(DEFAULT_EXTENSION_PROMOTE)

    @field_validator("filename", "extension", mode="before")
    @classmethod
    def _split_lists(cls, value: Any) -> Any:
        if value is None or isinstance(value, str):
            return parse_promote_list(value)
        return value

    @classmethod
    def from_strings(cls, filename: str | None, extension: str | None) -> "PromotionConfig":
        """Build a configuration from raw comma-joined strings.

        An empty extension list falls back to the default extensions. An empty
        filename string disables filename promotion.
        """
        extensions = parse_promote_list(extension) or parse_promote_list(
            DEFAULT_EXTENSION_PROMOTE
        )
        filenames = parse_promote_list(filename)
        if filename and not filenames:
            filenames = parse_promote_list(DEFAULT_FILENAME_PROMOTE)
        return cls(filename=filenames, extension=extensions)


def _substring_rank(value: str, tokens: Sequence[str]) -> int:
    """Return the index of the first token contained in value.

    An empty token matches values that contain none of the other tokens.
    Values matching nothing rank after every token.
    """
    lowered = value.lower()
    empty_index: Optional[int] = None
    for index, token in enumerate(tokens):
        if token == "":
            if empty_index is None:
                empty_index = index
            continue
        if token.lower() in lowered:
            return index
    return empty_index if empty_index is not None else len(tokens)


class PromotionSorter:
    """Order stack members with a layered comparator ending in the asset id.

    Levels, highest first: regex promote captures, filename substrings,
    sequence numbers, biggest trailing number, extension substrings, the
    built-in extension rank, file name, capture time, id.
    """

    def __init__(
        self,
        config: PromotionConfig,
        *,
        cache: RegexCache,
        extractor: Optional[KeyExtractor] = None,
        promote_criteria: Sequence[Criterion] = (),
        delimiters: Optional[Sequence[str]] = None,
    ) -> None:
        self._config = config
        self._cache = cache
        self._extractor = extractor or KeyExtractor(cache)
        self._promote_criteria = tuple(promote_criteria)
        self._delimiters = tuple(delimiters) if delimiters else DEFAULT_DELIMITERS

        self._substring_tokens = tuple(
            token
            for token in config.filename
            if not is_sequence_keyword(token) and token != BIGGEST_NUMBER_KEYWORD
        )
        sequence_tokens = [token for token in config.filename if is_sequence_keyword(token)]
        self._sequence: Optional[re.Pattern[str]] = None
        if sequence_tokens:
            self._sequence = self._cache.compile(sequence_pattern(sequence_tokens[0]))
        else:
            numbered = numbered_pattern(config.filename)
            if numbered is not None:
                # Listed numbers and the ones beyond them rank by numeric value.
                self._sequence = self._cache.compile(numbered)
                self._substring_tokens = tuple(t for t in self._substring_tokens if t == "")
        self._biggest_number = BIGGEST_NUMBER_KEYWORD in config.filename

    @property
    def config(self) -> PromotionConfig:
        return self._config

    def order(self, group: Sequence[Asset]) -> List[Asset]:
        """Return the group sorted so the preferred representative comes first."""
        return sorted(group, key=self.sort_key)

    def sort_key(self, asset: Asset) -> Tuple[Any, ...]:
        """Return the composite comparison key for one asset."""
        name = asset.original_file_name
        stem, extension = posixpath.splitext(name)
        extension = extension.lower()
        return (
            self._regex_ranks(asset),
            _substring_rank(name, self._substring_tokens),
            self._sequence_rank(stem),
            -self.biggest_number(stem) if self._biggest_number else 0,
            _substring_rank(extension, self._config.extension),
            _BUILTIN_EXTENSION_RANK.get(extension, 3),
            "" if extension in _BUILTIN_EXTENSION_RANK else extension,
            name.lower(),
            _time_rank(asset.local_date_time),
            asset.id,
        )

    def sequence_number(self, stem: str) -> Optional[int]:
        """Return the detected sequence number in a file stem, if any."""
        if self._sequence is None:
            return None
        match = self._sequence.search(stem)
        return int(match.group(1)) if match else None

    def biggest_number(self, stem: str) -> int:
        """Return the trailing numeric segment of a stem split by the delimiters, or 0."""
        segments = split_segments(stem, self._delimiters)
        if len(segments) < 2 or not _DIGITS.match(segments[-1]):
            return 0
        return int(segments[-1])

    def _sequence_rank(self, stem: str) -> Tuple[int, int]:
        number = self.sequence_number(stem)
        return (1, 0) if number is None else (0, number)

    def _regex_ranks(self, asset: Asset) -> Tuple[int, ...]:
        ranks: List[int] = []
        for criterion in self._promote_criteria:
            if criterion.regex is None:
                continue
            keys = criterion.regex.promote_keys
            value = self._extractor.promote_value(asset, criterion)
            ranks.append(keys.index(value) if value in keys else len(keys))
        return tuple(ranks)


def _time_rank(moment: Optional[datetime]) -> Tuple[bool, float]:
    return (moment is None, moment.timestamp() if moment is not None else 0.0)


__all__ = [
    "DEFAULT_FILENAME_PROMOTE",
    "DEFAULT_EXTENSION_PROMOTE",
    "DEFAULT_DELIMITERS",
    "parse_promote_list",
    "is_sequence_keyword",
    "sequence_pattern",
    "numbered_pattern",
    "PromotionConfig",
    "PromotionSorter",
]
