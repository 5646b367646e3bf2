# buildings.py
from __future__ import annotations

import logging
import math
from dataclasses import dataclass

from .config import DEFAULT_ECONOMY_CONFIG, EconomyConfig
from .integrity import EconomyErrorHandler
from .village import BalanceLevel, GameTime, Village

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BuildingCost:
    wood: float
    ore: float


@dataclass
class BuildingStats:
    current_count: int
    target_count: int
    construction_queue: int
    can_build: bool
    cost: BuildingCost
    max_buildable: int


class BuildingManager:
    """Population-driven construction gated by wood and ore buffers.

    Buildings are paid for when they enter the construction queue and move
    to the completed count as time passes. Losing population only lowers
    the target; finished or queued buildings are never removed.
    """

    def __init__(
        self,
        config: EconomyConfig = DEFAULT_ECONOMY_CONFIG,
        error_handler: EconomyErrorHandler | None = None,
    ):
        self.config = config
        self.error_handler = error_handler or EconomyErrorHandler(config)

    @property
    def queue_limit(self) -> int:
        return self.config.max_construction_queue

    def building_cost(self) -> BuildingCost:
        return BuildingCost(wood=self.config.building_wood_cost, ore=self.config.building_ore_cost)

    def target_building_count(self, population: float) -> int:
        if not population or population <= 0 or not math.isfinite(population):
            return 0
        proportional = math.floor(population * self.config.buildings_per_population)
        half = math.floor(population / 2)
        return max(1, min(proportional, half))

    # ------------------------------------------------------------------ #
    # Resource gating
    # ------------------------------------------------------------------ #
    def can_build(self, village: Village) -> bool:
        cost = self.building_cost()
        wood = village.storage.wood
        ore = village.storage.ore
        if wood < cost.wood or ore < cost.ore:
            return False

        # keep twice the cost in reserve after paying for one building
        if wood - cost.wood < cost.wood * 2 or ore - cost.ore < cost.ore * 2:
            return False

        status = village.economy.supply_demand_status
        if status.get("wood") == BalanceLevel.CRITICAL or status.get("ore") == BalanceLevel.CRITICAL:
            return False

        return village.economy.buildings.construction_queue < self.queue_limit

    def max_buildable(self, village: Village) -> int:
        cost = self.building_cost()
        by_wood = math.floor(village.storage.wood / cost.wood)
        by_ore = math.floor(village.storage.ore / cost.ore)
        free_slots = max(0, self.queue_limit - village.economy.buildings.construction_queue)
        return max(0, min(by_wood, by_ore, free_slots))

    # ------------------------------------------------------------------ #
    # Per-tick update
    # ------------------------------------------------------------------ #
    def update_buildings(self, village: Village, game_time: GameTime) -> None:
        vid = village.village_id
        handler = self.error_handler
        try:
            handler.correct(village)
            self.process_construction_queue(village, game_time)

            buildings = village.economy.buildings
            buildings.target_count = handler.safe_calculation(
                lambda: self.target_building_count(village.population), 0, "target_building_count", vid
            )
            needed = max(0, buildings.target_count - (buildings.count + buildings.construction_queue))
            if needed > 0:
                buildable = handler.safe_calculation(lambda: self.max_buildable(village), 0, "max_buildable", vid)
                allowed = handler.safe_calculation(lambda: self.can_build(village), False, "can_build", vid)
                to_build = min(needed, buildable)
                if allowed and to_build > 0:
                    self._start_construction(village, to_build)

            handler.correct(village)
        except Exception:
            logger.exception("building update failed for village %s", vid)
            handler.reset_to_defaults(village)

    def _start_construction(self, village: Village, count: int) -> None:
        cost = self.building_cost()
        village.storage.wood = max(0.0, village.storage.wood - cost.wood * count)
        village.storage.ore = max(0.0, village.storage.ore - cost.ore * count)
        village.sync_stock()
        village.economy.buildings.construction_queue += count
        logger.debug("village %s started %d building(s) (wood %.1f, ore %.1f)",
                     village.village_id, count, cost.wood * count, cost.ore * count)

    def process_construction_queue(self, village: Village, game_time: GameTime) -> int:
        """Complete queued buildings for the elapsed time; returns how many finished."""
        buildings = village.economy.buildings
        queued = buildings.construction_queue
        if queued <= 0:
            return 0

        rate = game_time.delta_time / self.config.construction_time_per_building
        completed = min(queued, math.floor(queued * rate))
        if completed <= 0:
            return 0

        buildings.count += completed
        buildings.construction_queue -= completed
        village.economy.stock.capacity = (
            self.config.base_storage_capacity + buildings.count * self.config.storage_capacity_per_building
        )
        logger.debug("village %s finished %d building(s), %d total", village.village_id, completed, buildings.count)
        return completed

    def building_stats(self, village: Village) -> BuildingStats:
        buildings = village.economy.buildings
        return BuildingStats(
            current_count=buildings.count,
            target_count=buildings.target_count,
            construction_queue=buildings.construction_queue,
            can_build=self.can_build(village),
            cost=self.building_cost(),
            max_buildable=self.max_buildable(village),
        )


__all__ = ["BuildingCost", "BuildingManager", "BuildingStats"]
