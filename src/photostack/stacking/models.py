"""Data models for assets and criteria declarations."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# Criterion key -> (Asset attribute, value kind).
ASSET_FIELDS: dict[str, Tuple[str, str]] = {
    "id": ("id", "string"),
    "deviceAssetId": ("device_asset_id", "string"),
    "deviceId": ("device_id", "string"),
    "originalFileName": ("original_file_name", "filename"),
    "originalPath": ("original_path", "path"),
    "localDateTime": ("local_date_time", "time"),
    "fileCreatedAt": ("file_created_at", "time"),
    "fileModifiedAt": ("file_modified_at", "time"),
    "updatedAt": ("updated_at", "time"),
    "hasMetadata": ("has_metadata", "bool"),
    "isArchived": ("is_archived", "bool"),
    "isFavorite": ("is_favorite", "bool"),
    "isOffline": ("is_offline", "bool"),
    "isTrashed": ("is_trashed", "bool"),
    "ownerId": ("owner_id", "string"),
    "type": ("type", "string"),
    "checksum": ("checksum", "string"),
    "duration": ("duration", "string"),
}


def field_kind(key: str) -> Optional[str]:
    """Return the value kind for a criterion key, or None when the key is unknown."""
    entry = ASSET_FIELDS.get(key)
    return entry[1] if entry else None


class Asset(BaseModel):
    """Immutable photo/video record as returned by the library server.

    Accepts both the camelCase wire names and the snake_case attribute names.
    Time fields are normalized to timezone-aware datetimes; naive values are
    taken as UTC and empty strings become None.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    id: str
    device_asset_id: str = Field(default="", alias="deviceAssetId")
    device_id: str = Field(default="", alias="deviceId")
    original_file_name: str = Field(default="", alias="originalFileName")
    original_path: str = Field(default="", alias="originalPath")
    local_date_time: Optional[datetime] = Field(default=None, alias="localDateTime")
    file_created_at: Optional[datetime] = Field(default=None, alias="fileCreatedAt")
    file_modified_at: Optional[datetime] = Field(default=None, alias="fileModifiedAt")
    updated_at: Optional[datetime] = Field(default=None, alias="updatedAt")
    has_metadata: bool = Field(default=False, alias="hasMetadata")
    is_archived: bool = Field(default=False, alias="isArchived")
    is_favorite: bool = Field(default=False, alias="isFavorite")
    is_offline: bool = Field(default=False, alias="isOffline")
    is_trashed: bool = Field(default=False, alias="isTrashed")
    owner_id: str = Field(default="", alias="ownerId")
    type: str = ""
    checksum: str = ""
    duration: Optional[str] = None

    @field_validator(
        "local_date_time", "file_created_at", "file_modified_at", "updated_at", mode="before"
    )
    @classmethod
    def _blank_time_is_missing(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator(
        "local_date_time", "file_created_at", "file_modified_at", "updated_at", mode="after"
    )
    @classmethod
    def _assume_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


def parse_assets(payload: Any) -> List[Asset]:
    """Build assets from a decoded JSON payload.

    Accepts a plain list of asset objects or a search page shaped like
    `{"assets": {"items": [...]}}`.

    Raises:
        ValueError: If the payload is neither shape.
    """
    if isinstance(payload, dict):
        assets = payload.get("assets")
        payload = assets.get("items") if isinstance(assets, dict) else None
    if not isinstance(payload, list):
        raise ValueError("Expected a list of assets or an object with assets.items.")
    return [item if isinstance(item, Asset) else Asset.model_validate(item) for item in payload]


class CriteriaBaseModel(BaseModel):
    """Shared configuration for declarative criteria models."""

    model_config = ConfigDict(extra="forbid", frozen=True)


class SplitSpec(CriteriaBaseModel):
    """Sequential split by each delimiter, then select one segment.

    Attributes:
        delimiters: Delimiters applied in order over every current segment.
        index: Segment to select after all splits.
    """

    delimiters: Tuple[str, ...] = Field(min_length=1)
    index: int = Field(default=0, ge=0)

    @model_validator(mode="before")
    @classmethod
    def _single_delimiter(cls, data: Any) -> Any:
        # Older configurations name a single delimiter under `key`.
        if isinstance(data, dict) and "key" in data and "delimiters" not in data:
            data = dict(data)
            data["delimiters"] = [data.pop("key")]
        return data

    @field_validator("delimiters")
    @classmethod
    def _non_empty_delimiters(cls, value: Tuple[str, ...]) -> Tuple[str, ...]:
        if any(not delimiter for delimiter in value):
            raise ValueError("split delimiters must be non-empty strings")
        return value


class RegexSpec(CriteriaBaseModel):
    """Regular expression match with capture-group selection.

    Attributes:
        key: Pattern searched in the field value.
        index: Capture group used as the grouping value (0 = whole match).
        promote_index: Optional capture group used for parent promotion.
        promote_keys: Promote values ordered from highest to lowest priority.
    """

    key: str = Field(min_length=1)
    index: int = Field(default=0, ge=0)
    promote_index: Optional[int] = Field(default=None, ge=0)
    promote_keys: Tuple[str, ...] = ()


class DeltaSpec(CriteriaBaseModel):
    """Time tolerance, in milliseconds, for approximate timestamp matching."""

    milliseconds: int = Field(ge=0)


class Criterion(CriteriaBaseModel):
    """One extraction rule: a field key plus at most one transform."""

    key: str
    split: Optional[SplitSpec] = None
    regex: Optional[RegexSpec] = None
    delta: Optional[DeltaSpec] = None

    @model_validator(mode="after")
    def _check_transform(self) -> "Criterion":
        kind = field_kind(self.key)
        if kind is None:
            raise ValueError(f"unknown criteria key: {self.key}")

        transforms = [
            name for name in ("split", "regex", "delta") if getattr(self, name) is not None
        ]
        if len(transforms) > 1:
            raise ValueError(
                f"criteria '{self.key}' combines {' and '.join(transforms)}; use at most one"
            )
        if self.delta is not None and kind != "time":
            raise ValueError(f"delta is only valid on time fields, not '{self.key}'")
        if kind == "bool" and transforms:
            raise ValueError(f"boolean field '{self.key}' does not accept transforms")
        return self

    @property
    def is_tolerant(self) -> bool:
        """Return True when the criterion clusters by time tolerance."""
        return self.delta is not None

    @property
    def is_boolean(self) -> bool:
        """Return True when the criterion reads a boolean flag."""
        return field_kind(self.key) == "bool"


class CriteriaGroup(CriteriaBaseModel):
    """Named set of criteria combined with AND or OR."""

    operator: Literal["AND", "OR"] = "AND"
    criteria: Tuple[Criterion, ...] = Field(min_length=1)

    @field_validator("operator", mode="before")
    @classmethod
    def _upper_operator(cls, value: Any) -> Any:
        return value.upper() if isinstance(value, str) else value


class ExpressionDeclaration(CriteriaBaseModel):
    """Raw expression node as declared: either a leaf or an operator with children."""

    operator: Optional[str] = None
    criteria: Optional[Criterion] = None
    children: Tuple["ExpressionDeclaration", ...] = ()


ExpressionDeclaration.model_rebuild()


__all__ = [
    "ASSET_FIELDS",
    "field_kind",
    "Asset",
    "parse_assets",
    "SplitSpec",
    "RegexSpec",
    "DeltaSpec",
    "Criterion",
    "CriteriaGroup",
    "ExpressionDeclaration",
]
