# supply_demand.py
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Iterable, Sequence

from .config import DEFAULT_ECONOMY_CONFIG, EconomyConfig
from .village import RESOURCE_TYPES, BalanceLevel, Village, check_resource

# Absolute stock bands used when nothing is being consumed: (lower bound, level)
ZERO_CONSUMPTION_BANDS = (
    (50.0, BalanceLevel.SURPLUS),
    (20.0, BalanceLevel.BALANCED),
    (5.0, BalanceLevel.SHORTAGE),
)


def _safe(value: float | None) -> float:
    if value is None or not math.isfinite(value):
        return 0.0
    return max(0.0, value)


def classify(
    production: float,
    consumption: float,
    stock: float,
    config: EconomyConfig = DEFAULT_ECONOMY_CONFIG,
) -> BalanceLevel:
    """Balance category for one resource.

    With consumption the production/consumption ratio is compared against
    the configured thresholds; without it only the stock level counts.
    """
    production = _safe(production)
    consumption = _safe(consumption)
    stock = _safe(stock)

    if consumption <= 0:
        for lower, level in ZERO_CONSUMPTION_BANDS:
            if stock > lower:
                return level
        return BalanceLevel.CRITICAL

    ratio = production / consumption
    if ratio < config.critical_threshold:
        return BalanceLevel.CRITICAL
    if ratio < config.shortage_threshold:
        return BalanceLevel.SHORTAGE
    if ratio >= config.surplus_threshold:
        return BalanceLevel.SURPLUS
    return BalanceLevel.BALANCED


def stock_days(stock: float, consumption: float) -> float:
    """How many ticks the stock lasts; infinite when nothing is consumed."""
    if consumption > 0:
        return stock / consumption
    return math.inf if stock > 0 else 0.0


@dataclass
class VillageResourceBalance:
    village: Village
    resource: str
    level: BalanceLevel
    production: float
    consumption: float
    stock: float
    net_balance: float
    stock_days: float


@dataclass
class BalanceBuckets:
    surplus: list[VillageResourceBalance] = field(default_factory=list)
    balanced: list[VillageResourceBalance] = field(default_factory=list)
    shortage: list[VillageResourceBalance] = field(default_factory=list)
    critical: list[VillageResourceBalance] = field(default_factory=list)

    def bucket(self, level: BalanceLevel) -> list[VillageResourceBalance]:
        return getattr(self, BalanceLevel(level).value)

    def counts(self) -> dict[str, int]:
        return {lvl.value: len(self.bucket(lvl)) for lvl in BalanceLevel}


@dataclass
class SupplyOffer:
    supplier: Village
    distance: float
    available_supply: float
    supply_capacity: float


@dataclass
class SupplyDemandSummary:
    shortage_villages: list[Village]
    surplus_villages: list[Village]
    critical_villages: list[Village]
    resource_balances: dict[str, BalanceBuckets]


class SupplyDemandBalancer:
    """Read-only comparisons across villages; never mutates a village."""

    def __init__(self, config: EconomyConfig = DEFAULT_ECONOMY_CONFIG):
        self.config = config

    def evaluate_village_balance(self, village: Village) -> dict[str, BalanceLevel]:
        economy = village.economy
        return {
            r: classify(economy.production.get(r), economy.consumption.get(r), economy.stock.get(r), self.config)
            for r in RESOURCE_TYPES
        }

    def resource_balance(self, village: Village, resource: str) -> VillageResourceBalance:
        economy = village.economy
        production = _safe(economy.production.get(resource))
        consumption = _safe(economy.consumption.get(resource))
        stock = _safe(economy.stock.get(resource))
        return VillageResourceBalance(
            village=village,
            resource=resource,
            level=classify(production, consumption, stock, self.config),
            production=production,
            consumption=consumption,
            stock=stock,
            net_balance=production - consumption,
            stock_days=stock_days(stock, consumption),
        )

    def calculate_resource_balance(self, villages: Iterable[Village], resource: str) -> BalanceBuckets:
        check_resource(resource)
        buckets = BalanceBuckets()
        for village in villages:
            balance = self.resource_balance(village, resource)
            buckets.bucket(balance.level).append(balance)
        return buckets

    def compare_village_balances(self, villages: Sequence[Village]) -> dict[str, BalanceBuckets]:
        return {r: self.calculate_resource_balance(villages, r) for r in RESOURCE_TYPES}

    def identify_supply_demand_villages(self, villages: Sequence[Village]) -> SupplyDemandSummary:
        def having(level: BalanceLevel) -> list[Village]:
            return [v for v in villages if level in v.economy.supply_demand_status.values()]

        return SupplyDemandSummary(
            shortage_villages=having(BalanceLevel.SHORTAGE),
            surplus_villages=having(BalanceLevel.SURPLUS),
            critical_villages=having(BalanceLevel.CRITICAL),
            resource_balances=self.compare_village_balances(villages),
        )

    def find_suppliers(
        self,
        shortage_village: Village,
        candidates: Iterable[Village],
        resource: str,
        max_distance: float = 10.0,
    ) -> list[SupplyOffer]:
        """Surplus villages in range, best supply capacity first, nearest on ties."""
        check_resource(resource)
        offers: list[SupplyOffer] = []
        for supplier in candidates:
            if supplier is shortage_village:
                continue
            if supplier.economy.supply_demand_status.get(resource) != BalanceLevel.SURPLUS:
                continue
            distance = shortage_village.distance_to(supplier)
            if distance > max_distance:
                continue

            economy = supplier.economy
            production = _safe(economy.production.get(resource))
            consumption = _safe(economy.consumption.get(resource))
            stock = _safe(economy.stock.get(resource))

            # keep three ticks of consumption, offer 10% of the rest
            net_production = max(0.0, production - consumption)
            excess_stock = max(0.0, stock - consumption * 3)
            available = net_production + excess_stock * 0.1

            decay = max(0.1, 1 - distance / max_distance) if max_distance > 0 else 1.0
            capacity = available * decay
            if capacity <= 0:
                continue
            offers.append(SupplyOffer(supplier=supplier, distance=distance,
                                      available_supply=available, supply_capacity=capacity))

        offers.sort(key=lambda o: (-o.supply_capacity, o.distance))
        return offers


__all__ = [
    "BalanceBuckets",
    "SupplyDemandBalancer",
    "SupplyDemandSummary",
    "SupplyOffer",
    "VillageResourceBalance",
    "ZERO_CONSUMPTION_BANDS",
    "classify",
    "stock_days",
]
