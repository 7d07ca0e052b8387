"""Configuration models describing Photostack settings."""

from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class PhotostackBaseModel(BaseModel):
    """Shared configuration for Photostack Pydantic models."""

    model_config = ConfigDict(extra="forbid")


class PromotionSettings(PhotostackBaseModel):
    """Parent promotion preferences.

    Attributes:
        parent_filename_promote: Comma-joined filename substrings, in priority order.
            Supports the `sequence`, `sequence:<N>`, `sequence:<prefix>` and
            `biggestNumber` keywords; an empty item matches files containing none
            of the other substrings.
        parent_ext_promote: Comma-joined extensions, in priority order.
    """

    parent_filename_promote: str = "edit,crop,hdr"
    parent_ext_promote: str = ".jpg,.png,.jpeg,.dng"


class GroupingSettings(PhotostackBaseModel):
    """Options that govern how assets are grouped.

    Attributes:
        unmatched: Policy for assets that fail a required criterion outside
            expression mode. `singleton` returns each as its own group, `drop`
            leaves them out of the result.
        regex_cache_size: Capacity of the compiled pattern cache.
    """

    unmatched: Literal["singleton", "drop"] = "singleton"
    regex_cache_size: int = Field(default=1000, ge=1)


class LoggingSettings(PhotostackBaseModel):
    """Runtime logging configuration.

    Attributes:
        level: Logging verbosity level.
    """

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "WARNING"


class PhotostackConfig(PhotostackBaseModel):
    """Top-level configuration struct for Photostack.

    Attributes:
        criteria: Criteria specification as a JSON string, a list (legacy shape)
            or a mapping (grouped/expression shape). `None` selects the default
            filename + capture time criteria.
        promotion: Parent promotion settings.
        grouping: Grouping policy settings.
        logging: Logging configuration.
    """

    criteria: Optional[Any] = None
    promotion: PromotionSettings = Field(default_factory=PromotionSettings)
    grouping: GroupingSettings = Field(default_factory=GroupingSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


__all__ = [
    "PhotostackBaseModel",
    "PromotionSettings",
    "GroupingSettings",
    "LoggingSettings",
    "PhotostackConfig",
]
