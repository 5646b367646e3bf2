# village.py
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from .config import DEFAULT_ECONOMY_CONFIG, EconomyConfig

RESOURCE_TYPES = ("food", "wood", "ore")
HISTORY_LENGTH = 10


def check_resource(resource: str) -> str:
    if resource not in RESOURCE_TYPES:
        raise ValueError(f"unknown resource type: {resource!r}")
    return resource


class BalanceLevel(str, Enum):
    """Supply/demand category of one resource, from worst to best."""

    CRITICAL = "critical"
    SHORTAGE = "shortage"
    BALANCED = "balanced"
    SURPLUS = "surplus"

    @property
    def severity(self) -> int:
        return _LEVEL_ORDER[self]


_LEVEL_ORDER = {
    BalanceLevel.CRITICAL: 0,
    BalanceLevel.SHORTAGE: 1,
    BalanceLevel.BALANCED: 2,
    BalanceLevel.SURPLUS: 3,
}


@dataclass
class GameTime:
    """Clock handed to every per-tick mutator."""

    current_time: float = 0.0
    delta_time: float = 1.0
    tick: int = 0


@dataclass
class ResourceAmounts:
    food: float = 0.0
    wood: float = 0.0
    ore: float = 0.0

    def get(self, resource: str) -> float:
        return getattr(self, check_resource(resource))

    def set(self, resource: str, amount: float) -> None:
        setattr(self, check_resource(resource), amount)

    def add(self, resource: str, amount: float) -> None:
        if amount <= 0:
            return
        self.set(resource, self.get(resource) + amount)

    def total(self) -> float:
        return self.food + self.wood + self.ore

    def as_dict(self) -> dict[str, float]:
        return {"food": self.food, "wood": self.wood, "ore": self.ore}


@dataclass
class Stock(ResourceAmounts):
    capacity: float = DEFAULT_ECONOMY_CONFIG.base_storage_capacity


@dataclass
class Buildings:
    count: int = 0
    target_count: int = 0
    construction_queue: int = 0


def default_status() -> dict[str, BalanceLevel]:
    return {r: BalanceLevel.BALANCED for r in RESOURCE_TYPES}


@dataclass
class Economy:
    production: ResourceAmounts = field(default_factory=ResourceAmounts)
    consumption: ResourceAmounts = field(default_factory=ResourceAmounts)
    stock: Stock = field(default_factory=Stock)
    buildings: Buildings = field(default_factory=Buildings)
    supply_demand_status: dict[str, BalanceLevel] = field(default_factory=default_status)


@dataclass
class Village:
    """
    A settlement on the terrain grid:
    - position (tile coordinates of the centre)
    - population and its recent history (newest last)
    - raw storage, mirrored into ``economy.stock``
    - the economy block owned by this village
    """
    x: int
    y: int
    population: float = 10
    storage: ResourceAmounts = field(default_factory=ResourceAmounts)
    collection_radius: int = 1
    population_history: list[float] = field(default_factory=list)
    last_update_time: float = 0.0
    economy: Economy = field(default_factory=Economy)
    # consecutive ticks of complete food exhaustion
    starvation_ticks: int = 0

    @property
    def village_id(self) -> str:
        return f"{self.x},{self.y}"

    def distance_to(self, other: "Village") -> float:
        dx = self.x - other.x
        dy = self.y - other.y
        return (dx * dx + dy * dy) ** 0.5

    def sync_stock(self) -> None:
        for resource in RESOURCE_TYPES:
            self.economy.stock.set(resource, self.storage.get(resource))

    def totals(self) -> dict:
        return self.storage.as_dict()


def create_village(
    x: int,
    y: int,
    population: float = 10,
    storage: ResourceAmounts | None = None,
    collection_radius: int = 1,
    config: EconomyConfig = DEFAULT_ECONOMY_CONFIG,
) -> Village:
    """Build a village whose invariants already hold."""
    if population < 0:
        raise ValueError("population must be non-negative")
    if collection_radius < 1:
        raise ValueError("collection_radius must be at least 1")

    storage = storage if storage is not None else ResourceAmounts(food=5.0, wood=5.0, ore=2.0)
    village = Village(
        x=x,
        y=y,
        population=population,
        storage=ResourceAmounts(
            food=max(0.0, storage.food),
            wood=max(0.0, storage.wood),
            ore=max(0.0, storage.ore),
        ),
        collection_radius=collection_radius,
        population_history=[population],
    )
    village.economy.stock.capacity = config.base_storage_capacity
    village.sync_stock()
    return village
