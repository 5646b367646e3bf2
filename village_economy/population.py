# population.py
from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from enum import Enum
from typing import Sequence

from .config import DEFAULT_ECONOMY_CONFIG, EconomyConfig
from .economy import VillageEconomyManager, compute_food_consumption
from .integrity import EconomyErrorHandler
from .village import HISTORY_LENGTH, BalanceLevel, GameTime, Village

logger = logging.getLogger(__name__)

# production below this share of consumption counts as a food crisis
STARVATION_PRODUCTION_SHARE = 0.3


class PopulationTrend(str, Enum):
    GROWING = "growing"
    STABLE = "stable"
    DECLINING = "declining"


def population_trend(history: Sequence[float]) -> PopulationTrend:
    """Trend of the last three history entries (newest last)."""
    recent = list(history)[-3:]
    if len(recent) < 2:
        return PopulationTrend.STABLE
    pairs = list(zip(recent, recent[1:]))
    if all(b > a for a, b in pairs):
        return PopulationTrend.GROWING
    if all(b < a for a, b in pairs):
        return PopulationTrend.DECLINING
    return PopulationTrend.STABLE


# ------------------------------------------------------------------ #
# Probability mapping (pure, no randomness)
# ------------------------------------------------------------------ #
def event_probability(rate: float, delta_time: float) -> float:
    return max(0.0, min(1.0, rate * delta_time))


def growth_probability(rate: float, delta_time: float, abundance: float) -> float:
    """Chance of one birth this tick; ``abundance`` is capped at 2."""
    return event_probability(rate * max(0.0, min(2.0, abundance)), delta_time)


def decline_probability(rate: float, delta_time: float, severity: float) -> float:
    """Chance of one death this tick; ``severity`` is at least 1."""
    return event_probability(rate * max(1.0, severity), delta_time)


@dataclass
class PopulationStats:
    current_population: float
    food_consumption: float
    can_grow: bool
    should_decline: bool
    trend: PopulationTrend
    starvation_ticks: int


class PopulationManager:
    """Food-driven population growth and decline."""

    def __init__(
        self,
        config: EconomyConfig = DEFAULT_ECONOMY_CONFIG,
        rng: random.Random | None = None,
        error_handler: EconomyErrorHandler | None = None,
        economy: VillageEconomyManager | None = None,
    ):
        self.config = config
        self.rng = rng or random.Random()
        self.error_handler = error_handler or EconomyErrorHandler(config)
        self.economy = economy or VillageEconomyManager(config, self.error_handler)

    def food_consumption(self, population: float) -> float:
        return compute_food_consumption(population, self.config)

    # ------------------------------------------------------------------ #
    # Per-tick update
    # ------------------------------------------------------------------ #
    def update_population(self, village: Village, game_time: GameTime) -> None:
        vid = village.village_id
        handler = self.error_handler
        try:
            handler.correct(village)
            self.economy.apply_consumption(village, game_time.delta_time, ("food",))

            if self.is_food_exhausted(village):
                village.starvation_ticks += 1
            else:
                village.starvation_ticks = 0

            decrease = handler.safe_calculation(lambda: self.should_decrease(village), False,
                                                "should_decrease", vid)
            grow = handler.safe_calculation(lambda: self.can_grow(village), False, "can_grow", vid)

            if decrease:
                self._decrease(village, game_time)
            elif grow:
                self._increase(village, game_time)

            village.population_history.append(village.population)
            del village.population_history[:-HISTORY_LENGTH]

            handler.correct(village)
        except Exception:
            logger.exception("population update failed for village %s", vid)
            handler.reset_to_defaults(village)

    # ------------------------------------------------------------------ #
    # Transition rules
    # ------------------------------------------------------------------ #
    def is_food_exhausted(self, village: Village) -> bool:
        return (
            village.storage.food <= 0
            and village.economy.production.food <= 0
            and village.economy.supply_demand_status.get("food") == BalanceLevel.CRITICAL
        )

    def should_decrease(self, village: Village) -> bool:
        if village.population <= 1:
            return False
        if village.economy.supply_demand_status.get("food") != BalanceLevel.CRITICAL:
            return False
        if self.is_food_exhausted(village):
            return True
        required = self.food_consumption(village.population)
        return village.economy.production.food < required * STARVATION_PRODUCTION_SHARE

    def can_grow(self, village: Village) -> bool:
        if village.population >= self.config.max_population:
            return False
        if village.economy.supply_demand_status.get("food") == BalanceLevel.CRITICAL:
            return False

        current = self.food_consumption(village.population)
        future = self.food_consumption(village.population + 1)
        # stock left after next tick's draw must cover the buffer horizon
        buffer_after_draw = village.storage.food - current
        has_buffer = buffer_after_draw >= future * self.config.growth_buffer_ticks
        has_production = village.economy.production.food >= future
        return has_buffer and has_production

    def _increase(self, village: Village, game_time: GameTime) -> None:
        consumption = self.food_consumption(village.population)
        abundance = village.storage.food / (consumption * 10) if consumption > 0 else 2.0
        chance = growth_probability(self.config.population_growth_rate, game_time.delta_time, abundance)
        if self.rng.random() >= chance:
            return

        village.population = min(self.config.max_population, village.population + 1)
        radius = min(4, int(village.population // 20) + 1)
        village.collection_radius = max(village.collection_radius, radius)
        logger.debug("village %s grew to %s", village.village_id, village.population)

    def _decrease(self, village: Village, game_time: GameTime) -> None:
        forced = village.starvation_ticks >= self.config.starvation_grace_ticks
        if not forced:
            consumption = max(0.1, self.food_consumption(village.population))
            severity = 2.0 - village.storage.food / consumption
            chance = decline_probability(self.config.population_decline_rate, game_time.delta_time, severity)
            if self.rng.random() >= chance:
                return

        village.population = max(1, village.population - 1)
        village.starvation_ticks = 0
        radius = max(1, int(village.population // 20) + 1)
        village.collection_radius = min(village.collection_radius, radius)
        logger.debug("village %s declined to %s%s", village.village_id, village.population,
                     " (starvation)" if forced else "")

    # ------------------------------------------------------------------ #
    # Queries
    # ------------------------------------------------------------------ #
    def population_stats(self, village: Village) -> PopulationStats:
        return PopulationStats(
            current_population=village.population,
            food_consumption=self.food_consumption(village.population),
            can_grow=self.can_grow(village),
            should_decline=self.should_decrease(village),
            trend=population_trend(village.population_history),
            starvation_ticks=village.starvation_ticks,
        )


__all__ = [
    "PopulationManager",
    "PopulationStats",
    "PopulationTrend",
    "decline_probability",
    "event_probability",
    "growth_probability",
    "population_trend",
]
