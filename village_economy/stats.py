# village_economy/stats.py
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Sequence

import numpy as np

from .terrain import Terrain
from .village import RESOURCE_TYPES, BalanceLevel, Village


# ----------------------------------------------------------------------
# Global economy snapshot
# ----------------------------------------------------------------------
@dataclass
class EconomySnapshot:
    tick: int
    village_count: int

    # Population
    total_population: float
    avg_population: float
    median_population: float
    max_population: float

    # Storage totals across villages
    total_food: float
    total_wood: float
    total_ore: float

    # Rates
    total_food_production: float
    total_food_consumption: float

    # Construction
    total_buildings: int
    total_queued: int

    # Balance levels, summed over all villages and resources
    surplus_count: int
    balanced_count: int
    shortage_count: int
    critical_count: int

    # Terrain
    avg_depletion: float

    # Integrity
    error_count: int


def depletion_grid(terrain: Terrain) -> np.ndarray:
    """Mean depletion state per tile over the resources it can hold (NaN for barren tiles)."""
    rows = len(terrain)
    cols = len(terrain[0]) if rows else 0
    grid = np.full((rows, cols), np.nan)
    for y, row in enumerate(terrain):
        for x, tile in enumerate(row):
            active = [tile.depletion_state[r] for r in RESOURCE_TYPES if tile.max_resources[r] > 0]
            if active:
                grid[y, x] = float(np.mean(active))
    return grid


# ----------------------------------------------------------------------
# Economy stats over time
# ----------------------------------------------------------------------
@dataclass
class EconomyStats:
    """
    Tracks the whole world's economy over time:
    - population size and spread
    - stored resources and food flow
    - construction progress
    - how many village resources sit in each balance level
    """
    history: list[EconomySnapshot] = field(default_factory=list)
    max_history_len: int = 500

    latest: EconomySnapshot | None = None

    def latest_as_dict(self) -> dict | None:
        if self.latest is None:
            return None
        return asdict(self.latest)

    def history_as_dicts(self) -> list[dict]:
        return [asdict(s) for s in self.history]

    def update(
        self,
        tick: int,
        villages: Sequence[Village],
        terrain: Terrain | None = None,
        error_count: int = 0,
    ) -> EconomySnapshot:
        pops = np.array([v.population for v in villages], dtype=float)
        n = len(villages)

        levels = {lvl: 0 for lvl in BalanceLevel}
        for v in villages:
            for level in v.economy.supply_demand_status.values():
                levels[BalanceLevel(level)] += 1

        avg_depletion = 0.0
        if terrain is not None and len(terrain):
            grid = depletion_grid(terrain)
            if np.any(~np.isnan(grid)):
                avg_depletion = float(np.nanmean(grid))

        snapshot = EconomySnapshot(
            tick=tick,
            village_count=n,
            total_population=float(pops.sum()) if n else 0.0,
            avg_population=float(pops.mean()) if n else 0.0,
            median_population=float(np.median(pops)) if n else 0.0,
            max_population=float(pops.max()) if n else 0.0,
            total_food=sum(v.storage.food for v in villages),
            total_wood=sum(v.storage.wood for v in villages),
            total_ore=sum(v.storage.ore for v in villages),
            total_food_production=sum(v.economy.production.food for v in villages),
            total_food_consumption=sum(v.economy.consumption.food for v in villages),
            total_buildings=sum(v.economy.buildings.count for v in villages),
            total_queued=sum(v.economy.buildings.construction_queue for v in villages),
            surplus_count=levels[BalanceLevel.SURPLUS],
            balanced_count=levels[BalanceLevel.BALANCED],
            shortage_count=levels[BalanceLevel.SHORTAGE],
            critical_count=levels[BalanceLevel.CRITICAL],
            avg_depletion=avg_depletion,
            error_count=error_count,
        )

        self.latest = snapshot
        self.history.append(snapshot)
        if len(self.history) > self.max_history_len:
            self.history.pop(0)
        return snapshot
