# terrain.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Sequence

import numpy as np

from .config import DEFAULT_RESOURCE_CONFIG, TILE_TYPES, ResourceConfig
from .village import RESOURCE_TYPES, ResourceAmounts, Village, check_resource

logger = logging.getLogger(__name__)

Terrain = Sequence[Sequence["Tile"]]


def _per_resource(value: float = 0.0) -> dict[str, float]:
    return {r: value for r in RESOURCE_TYPES}


# ------------------------------------------------------------------ #
# Tiles
# ------------------------------------------------------------------ #
@dataclass
class Tile:
    """One terrain cell with harvestable resources.

    ``depletion_state[r]`` is always ``resources[r] / max_resources[r]``
    (0 when the maximum is 0). ``recovery_timer[r]`` counts ticks since the
    resource was last touched.
    """

    tile_type: str = "land"
    resources: dict[str, float] = field(default_factory=_per_resource)
    max_resources: dict[str, float] = field(default_factory=_per_resource)
    depletion_state: dict[str, float] = field(default_factory=_per_resource)
    recovery_timer: dict[str, float] = field(default_factory=_per_resource)
    last_harvest_time: float = 0.0
    height: float = 0.5

    def __post_init__(self) -> None:
        if self.tile_type not in TILE_TYPES:
            raise ValueError(f"unknown tile type: {self.tile_type!r}")
        for resource in RESOURCE_TYPES:
            self.resources.setdefault(resource, 0.0)
            self.max_resources.setdefault(resource, 0.0)
            self.recovery_timer.setdefault(resource, 0.0)
            self.refresh_depletion(resource)

    def refresh_depletion(self, resource: str) -> None:
        maximum = self.max_resources[resource]
        if maximum > 0:
            self.depletion_state[resource] = self.resources[resource] / maximum
        else:
            self.depletion_state[resource] = 0.0


def make_tile(tile_type: str, height: float = 0.5, **amounts: float) -> Tile:
    """Tile starting full: every given amount is also its maximum."""
    resources = _per_resource()
    for resource, amount in amounts.items():
        resources[check_resource(resource)] = float(amount)
    return Tile(
        tile_type=tile_type,
        resources=dict(resources),
        max_resources=dict(resources),
        height=height,
    )


@dataclass
class ResourceVisualState:
    opacity: float  # 0.3 - 1.0
    tint: tuple[int, int, int]  # reddish when nearly depleted
    is_depleted: bool
    recovery_progress: float  # 0 - 1


# ------------------------------------------------------------------ #
# Resource manager
# ------------------------------------------------------------------ #
class ResourceManager:
    """Harvesting, recovery and administrative overrides for tiles."""

    def __init__(self, config: ResourceConfig = DEFAULT_RESOURCE_CONFIG):
        self.config = config
        self.current_tick = 0

    def update_tick(self, tick: int) -> None:
        self.current_tick = tick

    def harvest(self, tile: Tile, resource: str, amount: float) -> float:
        """Remove up to ``amount`` and return what was actually taken."""
        check_resource(resource)
        if tile.max_resources[resource] <= 0:
            return 0.0

        taken = min(max(0.0, amount), tile.resources[resource])
        if taken <= 0:
            return 0.0

        tile.resources[resource] = max(0.0, tile.resources[resource] - taken)
        tile.refresh_depletion(resource)
        tile.recovery_timer[resource] = 0.0
        tile.last_harvest_time = self.current_tick
        return taken

    def advance(self, tile: Tile, elapsed: float = 1.0) -> None:
        """Tick recovery timers and regrow resources whose delay has passed."""
        for resource in RESOURCE_TYPES:
            maximum = tile.max_resources[resource]
            if maximum <= 0:
                tile.depletion_state[resource] = 0.0
                continue

            tile.recovery_timer[resource] += elapsed
            current = tile.resources[resource]
            if current >= maximum:
                tile.resources[resource] = maximum
                tile.depletion_state[resource] = 1.0
                continue

            if tile.recovery_timer[resource] <= self.config.recovery_delay:
                continue

            multiplier = self.config.multiplier(tile.tile_type, resource)
            regrowth = self.config.recovery_rate * maximum * multiplier
            tile.resources[resource] = min(maximum, current + regrowth)
            tile.refresh_depletion(resource)

    def divine_intervention(self, tile: Tile, resource: str, amount: float) -> None:
        """Force a resource to ``amount``, clamped to ``[0, max]``."""
        check_resource(resource)
        maximum = tile.max_resources[resource]
        tile.resources[resource] = max(0.0, min(maximum, float(amount)))
        tile.refresh_depletion(resource)
        tile.recovery_timer[resource] = 0.0
        tile.last_harvest_time = self.current_tick
        logger.debug("divine intervention: %s set to %.2f (max %.2f)", resource,
                     tile.resources[resource], maximum)

    def visual_state(self, tile: Tile) -> ResourceVisualState:
        active = [r for r in RESOURCE_TYPES if tile.max_resources[r] > 0]
        if not active:
            return ResourceVisualState(opacity=1.0, tint=(255, 255, 255), is_depleted=False, recovery_progress=0.0)

        average = sum(tile.depletion_state[r] for r in active) / len(active)
        opacity = 0.3 + average * 0.7

        tint = (255, 255, 255)
        if average < 0.3:
            red = int((1 - average / 0.3) * 100)
            tint = (255, 255 - red, 255 - red)

        is_depleted = all(tile.resources[r] <= 0 for r in active)
        recovery_progress = 0.0
        if is_depleted:
            delay = self.config.recovery_delay
            timer = max(tile.recovery_timer[r] for r in active)
            recovery_progress = 1.0 if delay <= 0 else min(1.0, timer / delay)

        return ResourceVisualState(
            opacity=opacity,
            tint=tint,
            is_depleted=is_depleted,
            recovery_progress=recovery_progress,
        )


# ------------------------------------------------------------------ #
# Terrain generation
# ------------------------------------------------------------------ #
def generate_terrain(size: int, seed: int | None = None) -> list[list[Tile]]:
    """Seeded square grid: smoothed noise heights mapped to tile types."""
    rng = np.random.default_rng(seed)
    raw = rng.random((size + 2, size + 2))

    # 3x3 box blur
    heights = np.zeros((size, size))
    for dy in range(3):
        for dx in range(3):
            heights += raw[dy:dy + size, dx:dx + size]
    heights /= 9.0
    span = float(heights.max() - heights.min())
    if span > 0:
        heights = (heights - heights.min()) / span

    terrain: list[list[Tile]] = []
    for y in range(size):
        row: list[Tile] = []
        for x in range(size):
            h = float(heights[y, x])
            if h < 0.3:
                tile = make_tile("water", h)
            elif h < 0.5:
                tile = make_tile("land", h, food=int(rng.integers(5, 20)))
            elif h < 0.7:
                tile = make_tile("forest", h, wood=int(rng.integers(0, 10)))
            else:
                tile = make_tile("mountain", h, ore=int(rng.integers(0, 10)))
            row.append(tile)
        terrain.append(row)
    return terrain


# ------------------------------------------------------------------ #
# Scanning & collection
# ------------------------------------------------------------------ #
def tiles_in_radius(terrain: Terrain, x: int, y: int, radius: int):
    """Yield every in-grid tile in the square neighbourhood of (x, y)."""
    rows = len(terrain)
    for dy in range(-radius, radius + 1):
        ty = y + dy
        if not 0 <= ty < rows:
            continue
        row = terrain[ty]
        for dx in range(-radius, radius + 1):
            tx = x + dx
            if 0 <= tx < len(row):
                yield row[tx]


def scan_available(terrain: Terrain, x: int, y: int, radius: int) -> tuple[ResourceAmounts, ResourceAmounts]:
    """Current and maximum resource totals around (x, y)."""
    available = ResourceAmounts()
    maximum = ResourceAmounts()
    for tile in tiles_in_radius(terrain, x, y, int(radius)):
        for resource in RESOURCE_TYPES:
            available.set(resource, available.get(resource) + tile.resources[resource])
            maximum.set(resource, maximum.get(resource) + tile.max_resources[resource])
    return available, maximum


def resource_efficiency(available: ResourceAmounts, maximum: ResourceAmounts) -> float:
    """1.0 when the area is at least 80% stocked, 0.1 at 30% or below."""
    total_max = maximum.total()
    if total_max <= 0:
        return 1.0
    ratio = available.total() / total_max
    if ratio >= 0.8:
        return 1.0
    if ratio <= 0.3:
        return 0.1
    return 0.1 + (ratio - 0.3) / 0.5 * 0.9


def collect_resources(
    manager: ResourceManager,
    terrain: Terrain,
    village: Village,
    base_amount: float = 1.0,
) -> dict[str, float]:
    """Harvest every tile in the village's radius into its storage.

    The most plentiful resource is harvested at full rate, the next at
    75% and the last at 50%.
    """
    radius = int(village.collection_radius)
    available, maximum = scan_available(terrain, village.x, village.y, radius)
    efficiency = resource_efficiency(available, maximum)
    priority = sorted(RESOURCE_TYPES, key=available.get, reverse=True)

    collected = _per_resource()
    for tile in tiles_in_radius(terrain, village.x, village.y, radius):
        for rank, resource in enumerate(priority):
            if tile.resources[resource] <= 0:
                continue
            amount = max(0.1, base_amount * efficiency * (1 - rank * 0.25))
            collected[resource] += manager.harvest(tile, resource, amount)

    for resource, amount in collected.items():
        village.storage.add(resource, amount)
    village.sync_stock()
    return collected


__all__ = [
    "ResourceManager",
    "ResourceVisualState",
    "Terrain",
    "Tile",
    "collect_resources",
    "generate_terrain",
    "make_tile",
    "resource_efficiency",
    "scan_available",
    "tiles_in_radius",
]
