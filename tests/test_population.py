import random

import pytest

pytest.importorskip("numpy")

from village_economy.config import EconomyConfig
from village_economy.population import (
    PopulationManager,
    PopulationTrend,
    decline_probability,
    event_probability,
    growth_probability,
    population_trend,
)
from village_economy.village import BalanceLevel, GameTime, ResourceAmounts, create_village


class FixedRandom(random.Random):
    """Random source that always draws the same value."""

    def __init__(self, value: float):
        super().__init__(0)
        self.value = value

    def random(self) -> float:
        return self.value


def starving_village(population=20):
    village = create_village(3, 3, population=population, storage=ResourceAmounts())
    village.economy.supply_demand_status["food"] = BalanceLevel.CRITICAL
    return village


def thriving_village(population=10):
    village = create_village(3, 3, population=population, storage=ResourceAmounts(food=100.0))
    village.economy.production.food = 10.0
    village.economy.supply_demand_status["food"] = BalanceLevel.SURPLUS
    return village


# ------------------------------------------------------------------ #
# Pure helpers
# ------------------------------------------------------------------ #
def test_event_probability_is_clamped():
    assert event_probability(0.02, 1.0) == pytest.approx(0.02)
    assert event_probability(0.5, 4.0) == 1.0
    assert event_probability(-1.0, 1.0) == 0.0


def test_growth_and_decline_probability_modifiers():
    assert growth_probability(0.02, 1.0, 10.0) == pytest.approx(0.04)
    assert growth_probability(0.02, 1.0, 0.0) == 0.0
    assert decline_probability(0.05, 1.0, 0.2) == pytest.approx(0.05)
    assert decline_probability(0.05, 1.0, 2.0) == pytest.approx(0.1)


@pytest.mark.parametrize(
    "history, expected",
    [
        ([], PopulationTrend.STABLE),
        ([7], PopulationTrend.STABLE),
        ([4, 5, 6], PopulationTrend.GROWING),
        ([1, 9, 8, 7], PopulationTrend.DECLINING),
        ([5, 6, 6], PopulationTrend.STABLE),
        ([5, 7, 6], PopulationTrend.STABLE),
    ],
)
def test_population_trend(history, expected):
    assert population_trend(history) == expected


# ------------------------------------------------------------------ #
# Transition rules
# ------------------------------------------------------------------ #
def test_growth_happens_when_food_is_plentiful():
    manager = PopulationManager(rng=FixedRandom(0.0))
    village = thriving_village()

    manager.update_population(village, GameTime(delta_time=1.0))

    assert village.population == 11
    assert village.storage.food == pytest.approx(98.0)
    assert village.economy.stock.food == village.storage.food
    assert village.population_history[-1] == 11


def test_growth_blocked_at_cap_or_when_critical():
    manager = PopulationManager(EconomyConfig(max_population=10), rng=FixedRandom(0.0))
    capped = thriving_village(population=10)
    assert not manager.can_grow(capped)

    manager = PopulationManager(rng=FixedRandom(0.0))
    critical = thriving_village()
    critical.economy.supply_demand_status["food"] = BalanceLevel.CRITICAL
    assert not manager.can_grow(critical)


def test_growth_needs_a_food_buffer():
    manager = PopulationManager(rng=FixedRandom(0.0))
    village = thriving_village()
    village.storage.food = 5.0
    village.sync_stock()

    assert not manager.can_grow(village)


def test_low_production_while_critical_triggers_decrease():
    manager = PopulationManager(rng=FixedRandom(0.0))
    village = create_village(0, 0, population=20, storage=ResourceAmounts(food=30.0))
    village.economy.production.food = 0.5  # well under 30% of ~3.9
    village.economy.supply_demand_status["food"] = BalanceLevel.CRITICAL

    assert manager.should_decrease(village)
    manager.update_population(village, GameTime(delta_time=1.0))
    assert village.population == 19


def test_sustained_exhaustion_guarantees_decline():
    config = EconomyConfig(starvation_grace_ticks=5)
    # a draw of 0.99 never passes the probabilistic check
    manager = PopulationManager(config, rng=FixedRandom(0.99))
    village = starving_village(population=20)

    for _ in range(config.starvation_grace_ticks):
        manager.update_population(village, GameTime(delta_time=1.0))

    assert village.population == 19


def test_population_never_drops_below_one():
    manager = PopulationManager(rng=random.Random(3))
    village = starving_village(population=4)

    seen = []
    for _ in range(200):
        manager.update_population(village, GameTime(delta_time=1.0))
        seen.append(village.population)

    assert min(seen) == 1
    assert village.population == 1
    assert seen == sorted(seen, reverse=True)


def test_history_keeps_last_ten_entries():
    manager = PopulationManager(rng=FixedRandom(0.99))
    village = thriving_village()

    for _ in range(15):
        manager.update_population(village, GameTime(delta_time=1.0))

    assert len(village.population_history) == 10


def test_decline_shrinks_collection_radius():
    manager = PopulationManager(rng=FixedRandom(0.0))
    village = starving_village(population=20)
    village.collection_radius = 3

    manager.update_population(village, GameTime(delta_time=1.0))

    assert village.population == 19
    assert village.collection_radius == 1


def test_population_stats(village):
    manager = PopulationManager(rng=FixedRandom(0.5))
    village.population_history = [8, 9, 10]

    stats = manager.population_stats(village)

    assert stats.current_population == 10
    assert stats.food_consumption == pytest.approx(2.0)
    assert stats.trend == PopulationTrend.GROWING
    assert not stats.should_decline
