"""Top-level stacking pipeline: parse criteria, group assets, order each stack."""

from __future__ import annotations

import logging
from typing import Any, Iterable, List, Optional, Tuple

from photostack.config.models import PhotostackConfig
from photostack.stacking.criteria import (
    CriteriaModel,
    ExpressionCriteria,
    GroupedCriteria,
    LegacyCriteria,
    parse_criteria,
    promote_criteria,
    split_delimiters,
)
from photostack.stacking.extractors import KeyExtractor
from photostack.stacking.grouping import GroupingEngine, UnmatchedPolicy
from photostack.stacking.models import Asset
from photostack.stacking.promotion import DEFAULT_DELIMITERS, PromotionConfig, PromotionSorter
from photostack.stacking.regex_cache import RegexCache

LOGGER = logging.getLogger(__name__)


class StackEngine:
    """Turn a flat asset collection into ordered stacks.

    Criteria are parsed once at construction, so a malformed declaration
    fails before any asset is examined. The regex cache may be shared between
    engines running in different threads.
    """

    def __init__(
        self,
        criteria: Any = None,
        promotion: Optional[PromotionConfig] = None,
        *,
        unmatched: UnmatchedPolicy = "singleton",
        regex_cache: Optional[RegexCache] = None,
    ) -> None:
        """Initialize the engine.

        Args:
            criteria: Criteria declaration (JSON text, list, mapping or a
                parsed model). None selects the default criteria.
            promotion: Promote lists used to order each stack.
            unmatched: Policy for assets that fail extraction outside
                expression mode.
            regex_cache: Shared regex cache; a private one is created when omitted.

        Raises:
            CriteriaError: If the criteria declaration is invalid.
        """
        self._cache = regex_cache if regex_cache is not None else RegexCache()
        if isinstance(criteria, (LegacyCriteria, GroupedCriteria, ExpressionCriteria)):
            self._criteria: CriteriaModel = criteria
        else:
            self._criteria = parse_criteria(criteria, cache=self._cache)
        self._promotion = promotion or PromotionConfig()
        self._extractor = KeyExtractor(self._cache)
        self._grouping = GroupingEngine(self._extractor, unmatched=unmatched)
        self._sorter = PromotionSorter(
            self._promotion,
            cache=self._cache,
            extractor=self._extractor,
            promote_criteria=promote_criteria(self._criteria),
            delimiters=_promotion_delimiters(self._criteria),
        )

    @classmethod
    def from_config(
        cls, config: PhotostackConfig, *, regex_cache: Optional[RegexCache] = None
    ) -> "StackEngine":
        """Build an engine from resolved application configuration."""
        cache = regex_cache
        if cache is None:
            cache = RegexCache(config.grouping.regex_cache_size)
        promotion = PromotionConfig.from_strings(
            config.promotion.parent_filename_promote,
            config.promotion.parent_ext_promote,
        )
        return cls(
            config.criteria,
            promotion,
            unmatched=config.grouping.unmatched,
            regex_cache=cache,
        )

    @property
    def criteria(self) -> CriteriaModel:
        return self._criteria

    @property
    def promotion(self) -> PromotionConfig:
        return self._promotion

    @property
    def regex_cache(self) -> RegexCache:
        return self._cache

    @property
    def sorter(self) -> PromotionSorter:
        return self._sorter

    def run(self, assets: Iterable[Asset]) -> List[List[Asset]]:
        """Group assets and order every group so its representative comes first.

        Args:
            assets: Assets to stack; the iterable is consumed once.

        Returns:
            List[List[Asset]]: Non-empty ordered groups.
        """
        items = list(assets)
        positions = self._grouping.group(items, self._criteria)
        groups = [
            self._sorter.order([items[position] for position in group]) for group in positions
        ]
        stacks = sum(1 for group in groups if len(group) > 1)
        LOGGER.info(
            "Formed %d group(s) from %d asset(s); %d contain more than one asset.",
            len(groups),
            len(items),
            stacks,
        )
        return groups


def _promotion_delimiters(model: CriteriaModel) -> Tuple[str, ...]:
    configured = split_delimiters(model) or ()
    return tuple(dict.fromkeys(configured + DEFAULT_DELIMITERS))


def stack_assets(
    assets: Iterable[Asset],
    criteria: Any = None,
    promotion: Optional[PromotionConfig] = None,
    *,
    unmatched: UnmatchedPolicy = "singleton",
    regex_cache: Optional[RegexCache] = None,
) -> List[List[Asset]]:
    """Run a one-off stacking pass with a temporary engine."""
    engine = StackEngine(criteria, promotion, unmatched=unmatched, regex_cache=regex_cache)
    return engine.run(assets)


__all__ = ["StackEngine", "stack_assets"]
