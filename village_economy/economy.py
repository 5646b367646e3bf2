# economy.py
from __future__ import annotations

import logging
from typing import Iterable

from .config import DEFAULT_ECONOMY_CONFIG, EconomyConfig
from .integrity import EconomyErrorHandler
from .supply_demand import classify
from .terrain import Terrain, scan_available
from .village import RESOURCE_TYPES, BalanceLevel, GameTime, ResourceAmounts, Village, default_status

logger = logging.getLogger(__name__)

# Share of the surrounding stock a village turns into production per tick
PRODUCTION_RATES = {"food": 0.1, "wood": 0.08, "ore": 0.05}


def population_bonus(population: float) -> float:
    """Saturating, non-decreasing efficiency bonus from population."""
    return min(2.0, 1.0 + (max(0.0, population) - 10) * 0.02)


def building_bonus(count: float) -> float:
    """Saturating, non-decreasing efficiency bonus from completed buildings."""
    return min(1.5, 1.0 + max(0.0, count) * 0.1)


def compute_food_consumption(population: float, config: EconomyConfig = DEFAULT_ECONOMY_CONFIG) -> float:
    """Food eaten per tick; larger villages are slightly cheaper per head."""
    if not population or population <= 0:
        return 0.0
    efficiency = max(0.8, 1.0 - (population - 10) * 0.002)
    return max(0.0, population * config.food_consumption_per_person * efficiency)


class VillageEconomyManager:
    """Derives production, consumption and balance status for a village."""

    def __init__(
        self,
        config: EconomyConfig = DEFAULT_ECONOMY_CONFIG,
        error_handler: EconomyErrorHandler | None = None,
    ):
        self.config = config
        self.error_handler = error_handler or EconomyErrorHandler(config)

    # ------------------------------------------------------------------ #
    # Per-tick update
    # ------------------------------------------------------------------ #
    def update_village_economy(self, village: Village, game_time: GameTime, terrain: Terrain) -> None:
        vid = village.village_id
        handler = self.error_handler
        try:
            if not handler.validate(village).is_valid:
                handler.correct(village)

            available = handler.safe_calculation(
                lambda: scan_available(terrain, village.x, village.y, int(village.collection_radius))[0],
                ResourceAmounts(),
                "scan_available",
                vid,
            )
            village.economy.production = handler.safe_calculation(
                lambda: self.compute_production(village, available),
                ResourceAmounts(),
                "compute_production",
                vid,
            )
            village.economy.consumption = handler.safe_calculation(
                lambda: self.compute_consumption(village),
                ResourceAmounts(),
                "compute_consumption",
                vid,
            )
            self.update_stock(village)
            village.economy.supply_demand_status = handler.safe_calculation(
                lambda: self.evaluate_supply_demand(village),
                default_status(),
                "evaluate_supply_demand",
                vid,
            )
            village.last_update_time = game_time.current_time

            handler.correct(village)
        except Exception:
            logger.exception("economy update failed for village %s", vid)
            handler.reset_to_defaults(village)

    # ------------------------------------------------------------------ #
    # Production / consumption
    # ------------------------------------------------------------------ #
    def compute_production(self, village: Village, available: ResourceAmounts) -> ResourceAmounts:
        handler = self.error_handler
        vid = village.village_id
        radius = max(1, village.collection_radius or 1)

        pop_bonus = handler.safe_calculation(lambda: population_bonus(village.population), 1.0,
                                             "population bonus", vid)
        bld_bonus = handler.safe_calculation(lambda: building_bonus(village.economy.buildings.count), 1.0,
                                             "building bonus", vid)
        multiplier = handler.safe_calculation(lambda: pop_bonus * bld_bonus * radius * radius, 1.0,
                                              "production multiplier", vid)

        production = ResourceAmounts()
        for resource in RESOURCE_TYPES:
            amount = max(0.0, available.get(resource) or 0.0)
            if amount == 0:
                continue
            production.set(
                resource,
                handler.safe_calculation(
                    lambda: max(0.0, amount * multiplier * PRODUCTION_RATES[resource]),
                    0.0,
                    f"{resource} production",
                    vid,
                ),
            )
        return production

    def compute_consumption(self, village: Village) -> ResourceAmounts:
        handler = self.error_handler
        vid = village.village_id
        queue = max(0, village.economy.buildings.construction_queue or 0)
        return ResourceAmounts(
            food=handler.safe_calculation(
                lambda: compute_food_consumption(village.population, self.config), 0.0, "food consumption", vid
            ),
            wood=handler.safe_calculation(
                lambda: queue * self.config.building_wood_cost, 0.0, "wood consumption", vid
            ),
            ore=handler.safe_calculation(
                lambda: queue * self.config.building_ore_cost, 0.0, "ore consumption", vid
            ),
        )

    def apply_consumption(
        self,
        village: Village,
        delta_time: float,
        resources: Iterable[str] = ("food",),
    ) -> dict[str, float]:
        """Draw ``rate * delta_time`` from storage, never below zero."""
        vid = village.village_id
        taken: dict[str, float] = {}
        for resource in resources:
            if resource == "food":
                rate = compute_food_consumption(village.population, self.config)
            else:
                rate = village.economy.consumption.get(resource)
            stored = village.storage.get(resource)
            amount = self.error_handler.safe_calculation(
                lambda: max(0.0, min(rate * delta_time, stored)), 0.0, f"{resource} draw", vid
            )
            village.storage.set(resource, max(0.0, stored - amount))
            taken[resource] = amount
        village.sync_stock()
        return taken

    def update_stock(self, village: Village) -> None:
        village.sync_stock()
        village.economy.stock.capacity = (
            self.config.base_storage_capacity
            + village.economy.buildings.count * self.config.storage_capacity_per_building
        )

    def evaluate_supply_demand(self, village: Village) -> dict[str, BalanceLevel]:
        economy = village.economy
        return {
            r: classify(economy.production.get(r), economy.consumption.get(r), economy.stock.get(r), self.config)
            for r in RESOURCE_TYPES
        }

    # ------------------------------------------------------------------ #
    # Queries
    # ------------------------------------------------------------------ #
    def shortage_villages(self, villages: Iterable[Village]) -> list[Village]:
        bad = {BalanceLevel.SHORTAGE, BalanceLevel.CRITICAL}
        return [v for v in villages if any(s in bad for s in v.economy.supply_demand_status.values())]

    def surplus_villages(self, villages: Iterable[Village]) -> list[Village]:
        return [
            v for v in villages
            if any(s == BalanceLevel.SURPLUS for s in v.economy.supply_demand_status.values())
        ]


__all__ = [
    "PRODUCTION_RATES",
    "VillageEconomyManager",
    "building_bonus",
    "compute_food_consumption",
    "population_bonus",
]
