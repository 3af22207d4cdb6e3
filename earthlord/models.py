"""Data models for location fixes, tracks and exploration rewards."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Final, Mapping

from earthlord.timeutils import format_mmss


@dataclass(frozen=True, slots=True)
class LocationFix:
    """A single reading from the location service.

    Attributes:
        latitude: Latitude in decimal degrees.
        longitude: Longitude in decimal degrees.
        horizontal_accuracy_m: Horizontal accuracy in meters. Negative means invalid.
        timestamp_ms: Unix epoch milliseconds.
    """

    latitude: float
    longitude: float
    horizontal_accuracy_m: float
    timestamp_ms: int

    @property
    def timestamp_s(self) -> float:
        """Unix epoch seconds as float."""

        return self.timestamp_ms / 1000.0


@dataclass(frozen=True, slots=True)
class TrackPoint:
    """A fix that passed every filter and was retained in the track."""

    latitude: float
    longitude: float
    timestamp_ms: int
    accuracy_m: float

    @classmethod
    def from_fix(cls, fix: LocationFix) -> TrackPoint:
        return cls(
            latitude=fix.latitude,
            longitude=fix.longitude,
            timestamp_ms=fix.timestamp_ms,
            accuracy_m=fix.horizontal_accuracy_m,
        )


class StopReason(str, Enum):
    CLOSED = "closed"
    OVERSPEED = "overspeed"
    MANUAL = "manual"


@dataclass(slots=True)
class Track:
    """Retained points of the current session plus derived state.

    Only the sampler mutates a track. Once ``stopped`` is set the track is
    frozen: no more points, and ``closed`` never goes back to False.
    """

    points: list[TrackPoint] = field(default_factory=list)
    distance_m: float = 0.0
    closed: bool = False
    stopped: bool = False
    stop_reason: StopReason | None = None
    last_point: TrackPoint | None = None
    speed_warning: str | None = None
    last_speed_kmh: float = 0.0

    @property
    def point_count(self) -> int:
        return len(self.points)

    @property
    def first_point(self) -> TrackPoint | None:
        return self.points[0] if self.points else None


class RewardTier(str, Enum):
    NONE = "none"
    BRONZE = "bronze"
    SILVER = "silver"
    GOLD = "gold"
    DIAMOND = "diamond"

    @property
    def rank(self) -> int:
        return _TIER_ORDER.index(self)

    @property
    def display_name(self) -> str:
        return _TIER_NAMES[self]


_TIER_ORDER: Final[tuple[RewardTier, ...]] = tuple(RewardTier)
_TIER_NAMES: Final[dict[RewardTier, str]] = {
    RewardTier.NONE: "无",
    RewardTier.BRONZE: "铜级",
    RewardTier.SILVER: "银级",
    RewardTier.GOLD: "金级",
    RewardTier.DIAMOND: "钻石级",
}


class ItemRarity(str, Enum):
    """Which item is dropped. Declared from most to least common."""

    COMMON = "common"
    RARE = "rare"
    EPIC = "epic"

    @property
    def display_name(self) -> str:
        return {"common": "普通", "rare": "稀有", "epic": "史诗"}[self.value]


class ItemQuality(str, Enum):
    """Condition of a dropped item, independent of its rarity."""

    PRISTINE = "pristine"
    GOOD = "good"
    WORN = "worn"
    DAMAGED = "damaged"
    RUINED = "ruined"

    @property
    def display_name(self) -> str:
        return {
            "pristine": "完美",
            "good": "良好",
            "worn": "陈旧",
            "damaged": "破损",
            "ruined": "报废",
        }[self.value]


class ItemCategory(str, Enum):
    WATER = "water"
    FOOD = "food"
    MEDICAL = "medical"
    MATERIAL = "material"
    TOOL = "tool"
    WEAPON = "weapon"
    OTHER = "other"


@dataclass(frozen=True, slots=True)
class ItemDefinition:
    """Catalog entry for a lootable item."""

    id: str
    name: str
    description: str
    category: ItemCategory
    icon: str
    rarity: ItemRarity = ItemRarity.COMMON

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> ItemDefinition:
        """Build from an ``item_definitions`` row.

        Unknown categories map to ``other`` and unknown rarities to ``common``.

        Raises:
            KeyError: If ``id`` or ``name`` is missing.
        """

        try:
            category = ItemCategory(str(row.get("category", "other")))
        except ValueError:
            category = ItemCategory.OTHER
        try:
            rarity = ItemRarity(str(row.get("rarity", "common")))
        except ValueError:
            rarity = ItemRarity.COMMON
        return cls(
            id=str(row["id"]),
            name=str(row["name"]),
            description=str(row.get("description", "") or ""),
            category=category,
            icon=str(row.get("icon", "") or ""),
            rarity=rarity,
        )


@dataclass(frozen=True, slots=True)
class CollectedItem:
    """A looted item waiting to be handed to the inventory."""

    definition: ItemDefinition
    quality: ItemQuality
    found_at: datetime
    quantity: int = 1
    id: uuid.UUID = field(default_factory=uuid.uuid4)

    @property
    def item_id(self) -> str:
        return self.definition.id


@dataclass(frozen=True, slots=True)
class ExplorationStats:
    total_distance_m: float
    duration_s: float
    points_verified: int
    distance_rank: str

    @property
    def duration_mmss(self) -> str:
        return format_mmss(self.duration_s)


@dataclass(frozen=True, slots=True)
class ExplorationResult:
    """Outcome of one finished exploration.

    Note:
        ``enclosed_area_m2`` is only non-zero for tracks that closed into a loop.
    """

    is_success: bool
    message: str
    tier: RewardTier
    items: tuple[CollectedItem, ...]
    experience: int
    distance_m: float
    stats: ExplorationStats
    start_time: datetime
    end_time: datetime
    stop_reason: StopReason
    enclosed_area_m2: float = 0.0
    session_id: str | None = None

    @property
    def point_count(self) -> int:
        return self.stats.points_verified


DEFAULT_TZ: Final[str] = "Asia/Shanghai"
