import random
from collections import Counter
from datetime import UTC, datetime

import pytest

from earthlord.catalog import ItemCatalog
from earthlord.models import ItemCategory, ItemDefinition, ItemQuality, ItemRarity, RewardTier
from earthlord.rewards import (
    DEFAULT_TIER_RULES,
    RewardConfig,
    RewardGenerator,
    TierRule,
    random_quality,
    select_rarity,
)

FOUND_AT = datetime(2026, 1, 1, 8, 0, tzinfo=UTC)


def _definition(item_id, rarity):
    return ItemDefinition(
        id=item_id,
        name=item_id,
        description="",
        category=ItemCategory.MATERIAL,
        icon="",
        rarity=rarity,
    )


def _generator(catalog=None, config=None, seed=1):
    return RewardGenerator(
        catalog or ItemCatalog(),
        config=config,
        rng=random.Random(seed),
        clock=lambda: FOUND_AT,
    )


@pytest.mark.parametrize(
    "distance,tier",
    [
        (0.0, RewardTier.NONE),
        (150.0, RewardTier.NONE),
        (199.99, RewardTier.NONE),
        (200.0, RewardTier.BRONZE),
        (250.0, RewardTier.BRONZE),
        (500.0, RewardTier.SILVER),
        (1000.0, RewardTier.GOLD),
        (5000.0, RewardTier.DIAMOND),
        (float("nan"), RewardTier.NONE),
    ],
)
def test_tier_for_distance(distance, tier):
    assert RewardConfig().tier_for(distance) is tier


def test_tier_is_monotonic_in_distance():
    cfg = RewardConfig()
    ranks = [cfg.tier_for(float(d)).rank for d in range(0, 3000, 25)]
    assert ranks == sorted(ranks)
    assert cfg.tier_for(250.0) is not RewardTier.NONE


def test_none_tier_gives_nothing():
    gen = _generator()
    assert gen.generate(RewardTier.NONE) == []
    assert gen.config.experience_for(RewardTier.NONE, 150.0) == 0


def test_experience_uses_tier_multiplier():
    cfg = RewardConfig()
    assert cfg.experience_for(RewardTier.BRONZE, 228.0) == 22
    assert cfg.experience_for(RewardTier.SILVER, 600.0) == 90
    assert cfg.experience_for(RewardTier.DIAMOND, 2000.0) == 600


@pytest.mark.parametrize(
    "tier,count",
    [(RewardTier.BRONZE, 1), (RewardTier.SILVER, 2), (RewardTier.GOLD, 3), (RewardTier.DIAMOND, 5)],
)
def test_item_count_per_tier(tier, count):
    items = _generator().generate(tier)
    assert len(items) == count
    assert all(item.found_at == FOUND_AT for item in items)
    assert all(item.quantity == 1 for item in items)


def test_same_seed_same_loot():
    a = [(i.item_id, i.quality) for i in _generator(seed=9).generate(RewardTier.DIAMOND)]
    b = [(i.item_id, i.quality) for i in _generator(seed=9).generate(RewardTier.DIAMOND)]
    assert a == b


def test_quality_frequencies_match_table():
    rng = random.Random(1234)
    n = 100_000
    counts = Counter(random_quality(rng) for _ in range(n))
    expected = {
        ItemQuality.PRISTINE: 0.05,
        ItemQuality.GOOD: 0.25,
        ItemQuality.WORN: 0.40,
        ItemQuality.DAMAGED: 0.25,
        ItemQuality.RUINED: 0.05,
    }
    for quality, p in expected.items():
        assert counts[quality] / n == pytest.approx(p, abs=0.01)


def test_select_rarity_follows_probabilities():
    rng = random.Random(3)
    assert {select_rarity(rng, (0.0, 1.0, 0.0)) for _ in range(50)} == {ItemRarity.RARE}
    assert {select_rarity(rng, (0.0, 0.0, 1.0)) for _ in range(50)} == {ItemRarity.EPIC}


@pytest.mark.parametrize("rule", DEFAULT_TIER_RULES, ids=lambda r: r.tier.value)
def test_rarity_frequencies_match_tier_table(rule):
    rng = random.Random(2026)
    draws = 100_000
    counts = Counter(select_rarity(rng, rule.rarity_probabilities) for _ in range(draws))
    for rarity, probability in zip(ItemRarity, rule.rarity_probabilities):
        assert counts[rarity] / draws == pytest.approx(probability, abs=0.01)


def test_empty_rarity_bucket_falls_back_to_common():
    catalog = ItemCatalog(lambda: [_definition("scrap", ItemRarity.COMMON)])
    cfg = RewardConfig(rules=(TierRule(RewardTier.BRONZE, 200.0, 4, (0.0, 0.0, 1.0), 1.0),))
    items = _generator(catalog, cfg).generate(RewardTier.BRONZE)
    assert [i.item_id for i in items] == ["scrap"] * 4


def test_draw_is_skipped_when_common_is_empty_too():
    catalog = ItemCatalog(lambda: [_definition("lamp", ItemRarity.RARE)])
    cfg = RewardConfig(rules=(TierRule(RewardTier.BRONZE, 200.0, 3, (0.0, 0.0, 1.0), 1.0),))
    assert _generator(catalog, cfg).generate(RewardTier.BRONZE) == []


def test_rules_must_increase():
    with pytest.raises(ValueError):
        RewardConfig(
            rules=(
                TierRule(RewardTier.BRONZE, 500.0, 1, (1.0,), 1.0),
                TierRule(RewardTier.SILVER, 200.0, 1, (1.0,), 1.0),
            )
        )
    with pytest.raises(ValueError):
        RewardConfig(rules=(TierRule(RewardTier.NONE, 0.0, 0, (), 0.0),))


def test_min_reward_distance():
    assert RewardConfig().min_reward_distance_m == 200.0
