from __future__ import annotations

import json
import logging
import random
import time
from dataclasses import dataclass

import numpy as np

from .buildings import BuildingManager
from .config import (
    DEFAULT_ECONOMY_CONFIG,
    DEFAULT_RESOURCE_CONFIG,
    EconomyConfig,
    ResourceConfig,
)
from .economy import VillageEconomyManager
from .integrity import EconomyErrorHandler
from .population import PopulationManager
from .spatial_hash import SpatialHash
from .stats import EconomyStats
from .supply_demand import SupplyDemandBalancer, SupplyOffer
from .telemetry import TelemetryRecorder
from .terrain import ResourceManager, collect_resources, generate_terrain
from .village import GameTime, Village, create_village

logger = logging.getLogger(__name__)


@dataclass
class HealthStatus:
    """Operator-facing counters; informational only."""

    ticks: int = 0
    slow_ticks: int = 0
    error_count: int = 0
    last_tick_ms: float = 0.0


class Simulation:
    """Headless tick driver wiring terrain, villages and the economy engines."""

    def __init__(
        self,
        size: int = 32,
        num_villages: int = 4,
        *,
        seed: int | None = None,
        economy_config: EconomyConfig = DEFAULT_ECONOMY_CONFIG,
        resource_config: ResourceConfig = DEFAULT_RESOURCE_CONFIG,
        trajectory_log_path: str | None = None,
        telemetry: TelemetryRecorder | None = None,
    ):
        self.size = size
        self.economy_config = economy_config
        self.resource_config = resource_config

        # Randomness & reproducibility
        self.base_seed = seed if seed is not None else random.randrange(2**32)
        self.seed_rng = random.Random(self.base_seed)
        self.terrain_seed = self.seed_rng.randrange(2**32)
        self.population_seed = self.seed_rng.randrange(2**32)
        self.trajectory_log_path = trajectory_log_path
        self.telemetry = telemetry

        # World
        self.terrain = generate_terrain(size, self.terrain_seed)

        # Engines share one error log
        self.error_handler = EconomyErrorHandler(economy_config)
        self.resource_manager = ResourceManager(resource_config)
        self.economy = VillageEconomyManager(economy_config, self.error_handler)
        self.population = PopulationManager(
            economy_config,
            rng=random.Random(self.population_seed),
            error_handler=self.error_handler,
            economy=self.economy,
        )
        self.buildings = BuildingManager(economy_config, self.error_handler)
        self.balancer = SupplyDemandBalancer(economy_config)

        self.villages: list[Village] = self._place_villages(num_villages)
        self.village_index = SpatialHash(cell_size=8.0)
        self.village_index.rebuild(self.villages)

        # Simulation time / stats
        self.tick = 0
        self.game_time = GameTime()
        self.stats = EconomyStats()
        self.health = HealthStatus()

    # ------------------------------------------------------------------ #
    # Setup
    # ------------------------------------------------------------------ #
    def _place_villages(self, count: int) -> list[Village]:
        """Settle on mid-height tiles, one village per tile."""
        candidates = [
            (x, y)
            for y, row in enumerate(self.terrain)
            for x, tile in enumerate(row)
            if 0.3 < tile.height < 0.8
        ]
        if len(candidates) < count:
            candidates = [(x, y) for y in range(self.size) for x in range(self.size)]

        chosen = self.seed_rng.sample(candidates, min(count, len(candidates)))
        return [create_village(x, y, config=self.economy_config) for x, y in chosen]

    def seed_manifest(self) -> dict:
        """Expose the seeds used for the run for offline replay."""

        return {
            "base_seed": self.base_seed,
            "terrain_seed": self.terrain_seed,
            "population_seed": self.population_seed,
        }

    # ------------------------------------------------------------------ #
    # Simulation step
    # ------------------------------------------------------------------ #
    def step(self, delta_time: float = 1.0) -> None:
        started = time.perf_counter()
        errors_before = self.error_handler.total_logged

        # Advance simulation time
        self.tick += 1
        self.game_time = GameTime(
            current_time=self.game_time.current_time + delta_time,
            delta_time=delta_time,
            tick=self.tick,
        )
        self.resource_manager.update_tick(self.tick)

        # Terrain recovery, then harvesting (villages in a fixed order)
        for row in self.terrain:
            for tile in row:
                self.resource_manager.advance(tile, delta_time)
        for village in self.villages:
            # radius and storage must be sane before tiles are touched
            self.error_handler.correct(village)
            collect_resources(self.resource_manager, self.terrain, village)

        # Economy -> population -> buildings
        for village in self.villages:
            self.economy.update_village_economy(village, self.game_time, self.terrain)
            self.population.update_population(village, self.game_time)
            self.buildings.update_buildings(village, self.game_time)

        # Update economy statistics
        self.stats.update(self.tick, self.villages, self.terrain, self.error_handler.total_logged)

        if self.trajectory_log_path is not None:
            self._append_trajectory_log()

        if self.telemetry is not None:
            new_errors = self.error_handler.total_logged - errors_before
            self.telemetry.log_errors(self.tick, self.error_handler.error_log(new_errors))
            if self.tick % self.telemetry.snapshot_interval == 0:
                self.telemetry.record_snapshot(tick=self.tick, villages=self.villages, terrain=self.terrain)

        self._update_health(started, errors_before)

    def run(self, ticks: int, delta_time: float = 1.0) -> None:
        for _ in range(ticks):
            self.step(delta_time)

    def _update_health(self, started: float, errors_before: int) -> None:
        elapsed_ms = (time.perf_counter() - started) * 1000.0
        new_errors = self.error_handler.total_logged - errors_before

        self.health.ticks += 1
        self.health.last_tick_ms = elapsed_ms
        self.health.error_count += new_errors
        if elapsed_ms > self.economy_config.tick_budget_ms:
            self.health.slow_ticks += 1
            logger.warning("tick %d took %.1f ms (budget %.1f ms)", self.tick, elapsed_ms,
                           self.economy_config.tick_budget_ms)
        if new_errors:
            logger.warning("tick %d recorded %d integrity error(s)", self.tick, new_errors)

    def _append_trajectory_log(self) -> None:
        """Persist a machine-readable record of this tick's state."""

        snapshot = self.stats.latest_as_dict()
        if snapshot is None:
            return

        record = {
            "tick": self.tick,
            "seeds": self.seed_manifest(),
            "snapshot": snapshot,
            "health": {
                "slow_ticks": self.health.slow_ticks,
                "error_count": self.health.error_count,
            },
        }

        with open(self.trajectory_log_path, "a", encoding="utf-8") as f:
            json.dump(record, f)
            f.write("\n")

    # ------------------------------------------------------------------ #
    # Queries
    # ------------------------------------------------------------------ #
    def suppliers_for(self, village: Village, resource: str, max_distance: float = 10.0) -> list[SupplyOffer]:
        nearby = self.village_index.query_radius(village.x, village.y, max_distance)
        return self.balancer.find_suppliers(village, nearby, resource, max_distance)

    def population_array(self) -> np.ndarray:
        return np.array([v.population for v in self.villages], dtype=float)
