"""Stack formation: criteria parsing, grouping and parent promotion."""

from .clustering import UnionFind, cluster_by_tolerance
from .criteria import (
    DEFAULT_CRITERIA,
    AndNode,
    CriteriaModel,
    ExpressionCriteria,
    GroupedCriteria,
    LeafNode,
    LegacyCriteria,
    NotNode,
    OrNode,
    parse_criteria,
)
from .engine import StackEngine, stack_assets
from .extractors import KeyExtractor
from .grouping import GroupingEngine
from .models import (
    Asset,
    CriteriaGroup,
    Criterion,
    DeltaSpec,
    RegexSpec,
    SplitSpec,
    parse_assets,
)
from .promotion import PromotionConfig, PromotionSorter, parse_promote_list
from .regex_cache import RegexCache

__all__ = [
    "Asset",
    "parse_assets",
    "Criterion",
    "CriteriaGroup",
    "SplitSpec",
    "RegexSpec",
    "DeltaSpec",
    "DEFAULT_CRITERIA",
    "CriteriaModel",
    "LegacyCriteria",
    "GroupedCriteria",
    "ExpressionCriteria",
    "LeafNode",
    "AndNode",
    "OrNode",
    "NotNode",
    "parse_criteria",
    "RegexCache",
    "KeyExtractor",
    "cluster_by_tolerance",
    "UnionFind",
    "GroupingEngine",
    "PromotionConfig",
    "PromotionSorter",
    "parse_promote_list",
    "StackEngine",
    "stack_assets",
]
