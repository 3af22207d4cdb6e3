"""Reward tiers, experience and loot rolls for finished explorations."""

from __future__ import annotations

import logging
import math
import random
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Callable, Final, Sequence

from earthlord.catalog import ItemCatalog
from earthlord.models import CollectedItem, ItemQuality, ItemRarity, RewardTier

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class TierRule:
    """Tuning data for one reward tier.

    ``rarity_probabilities`` lines up with ``ItemRarity`` declaration order
    (common, rare, epic) and should sum to 1.
    """

    tier: RewardTier
    min_distance_m: float
    item_count: int
    rarity_probabilities: tuple[float, ...]
    experience_multiplier: float


DEFAULT_TIER_RULES: Final[tuple[TierRule, ...]] = (
    TierRule(RewardTier.BRONZE, 200.0, 1, (0.90, 0.10, 0.00), 1.0),
    TierRule(RewardTier.SILVER, 500.0, 2, (0.70, 0.25, 0.05), 1.5),
    TierRule(RewardTier.GOLD, 1000.0, 3, (0.50, 0.35, 0.15), 2.0),
    TierRule(RewardTier.DIAMOND, 2000.0, 5, (0.30, 0.45, 0.25), 3.0),
)

# Cumulative upper bounds, checked in order.
QUALITY_THRESHOLDS: Final[tuple[tuple[float, ItemQuality], ...]] = (
    (0.05, ItemQuality.PRISTINE),
    (0.30, ItemQuality.GOOD),
    (0.70, ItemQuality.WORN),
    (0.95, ItemQuality.DAMAGED),
    (1.00, ItemQuality.RUINED),
)


@dataclass(frozen=True, slots=True)
class RewardConfig:
    """Distance thresholds and loot tables for every tier above ``none``."""

    rules: tuple[TierRule, ...] = DEFAULT_TIER_RULES

    def __post_init__(self) -> None:
        last = -math.inf
        for rule in self.rules:
            if rule.tier is RewardTier.NONE:
                raise ValueError("the none tier is implicit and must not have a rule")
            if rule.min_distance_m <= last:
                raise ValueError("tier thresholds must be strictly increasing")
            if rule.item_count < 0:
                raise ValueError(f"{rule.tier.value}: item_count must be >= 0")
            if len(rule.rarity_probabilities) > len(ItemRarity):
                raise ValueError(f"{rule.tier.value}: more probabilities than rarities")
            last = rule.min_distance_m

    @property
    def min_reward_distance_m(self) -> float:
        return self.rules[0].min_distance_m if self.rules else math.inf

    def tier_for(self, distance_m: float) -> RewardTier:
        """Map total distance walked to a tier (monotonic step function)."""

        tier = RewardTier.NONE
        if math.isnan(distance_m):
            return tier
        for rule in self.rules:
            if distance_m >= rule.min_distance_m:
                tier = rule.tier
        return tier

    def rule_for(self, tier: RewardTier) -> TierRule | None:
        for rule in self.rules:
            if rule.tier is tier:
                return rule
        return None

    def experience_for(self, tier: RewardTier, distance_m: float) -> int:
        """Experience = floor(distance / 10) x tier multiplier."""

        rule = self.rule_for(tier)
        if rule is None or distance_m <= 0:
            return 0
        base = math.floor(distance_m / 10.0)
        return int(base * rule.experience_multiplier)


def select_rarity(rng: random.Random, probabilities: Sequence[float]) -> ItemRarity:
    """Sample a rarity from per-rarity probabilities (common first)."""

    draw = rng.random()
    cumulative = 0.0
    rarities = list(ItemRarity)
    for index, probability in enumerate(probabilities):
        cumulative += probability
        if draw < cumulative:
            return rarities[index]
    return ItemRarity.COMMON


def random_quality(rng: random.Random) -> ItemQuality:
    """Sample an item quality: 5% / 25% / 40% / 25% / 5%."""

    draw = rng.random()
    for upper, quality in QUALITY_THRESHOLDS:
        if draw < upper:
            return quality
    return ItemQuality.RUINED


class RewardGenerator:
    """Roll loot for a reward tier from an :class:`ItemCatalog`."""

    def __init__(
        self,
        catalog: ItemCatalog,
        config: RewardConfig | None = None,
        rng: random.Random | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._catalog = catalog
        self._cfg = config or RewardConfig()
        self._rng = rng or random.Random()
        self._clock = clock or (lambda: datetime.now(UTC))

    @property
    def config(self) -> RewardConfig:
        return self._cfg

    @property
    def catalog(self) -> ItemCatalog:
        return self._catalog

    def preload(self) -> None:
        self._catalog.preload()

    def generate(self, tier: RewardTier) -> list[CollectedItem]:
        """Draw ``item_count`` independent items for the tier.

        Returns:
            Collected items; empty for ``none``. A draw whose rarity bucket and
            the common bucket are both empty is skipped.
        """

        rule = self._cfg.rule_for(tier)
        if rule is None:
            return []

        items: list[CollectedItem] = []
        for _ in range(rule.item_count):
            rarity = select_rarity(self._rng, rule.rarity_probabilities)
            bucket = self._catalog.definitions_for(rarity)
            if not bucket:
                logger.info("稀有度 %s 无可用物品，降级到普通", rarity.value)
                bucket = self._catalog.definitions_for(ItemRarity.COMMON)
            if not bucket:
                continue
            definition = self._rng.choice(bucket)
            quality = random_quality(self._rng)
            items.append(CollectedItem(definition=definition, quality=quality, found_at=self._clock()))
            logger.debug("生成物品：%s [%s] [%s]", definition.name, rarity.value, quality.value)

        logger.info("奖励等级 %s，共生成 %s 个物品", tier.value, len(items))
        return items
