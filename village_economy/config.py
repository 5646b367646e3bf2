from __future__ import annotations

import math
from dataclasses import dataclass, field, fields, replace
from typing import Mapping


TILE_TYPES = ("water", "land", "forest", "mountain", "road")


def _default_multipliers() -> dict[str, dict[str, float]]:
    return {
        "water": {"food": 0.0, "wood": 0.0, "ore": 0.0},
        "land": {"food": 1.5, "wood": 0.5, "ore": 0.3},
        "forest": {"food": 0.8, "wood": 2.0, "ore": 0.2},
        "mountain": {"food": 0.3, "wood": 0.5, "ore": 2.5},
        "road": {"food": 0.1, "wood": 0.1, "ore": 0.1},
    }


# ------------------------------------------------------------------ #
# Configuration values
# ------------------------------------------------------------------ #
@dataclass(frozen=True)
class ResourceConfig:
    """How terrain resources deplete and recover."""

    depletion_rate: float = 0.1
    recovery_rate: float = 0.02  # fraction of max per recovery step
    recovery_delay: float = 5.0  # ticks since last harvest before recovery
    min_recovery_threshold: float = 0.1
    type_multipliers: Mapping[str, Mapping[str, float]] = field(
        default_factory=_default_multipliers
    )

    def multiplier(self, tile_type: str, resource: str) -> float:
        return float(self.type_multipliers.get(tile_type, {}).get(resource, 1.0))


@dataclass(frozen=True)
class EconomyConfig:
    """Numeric knobs shared by the economy, population and construction engines."""

    # Population
    food_consumption_per_person: float = 0.2
    population_growth_rate: float = 0.02
    population_decline_rate: float = 0.05
    max_population: int = 100
    population_hard_cap: int = 1000
    growth_buffer_ticks: float = 3.0
    starvation_grace_ticks: int = 5

    # Buildings
    buildings_per_population: float = 0.1
    building_wood_cost: float = 10.0
    building_ore_cost: float = 5.0
    construction_time_per_building: float = 5.0
    max_construction_queue: int = 3

    # Supply / demand thresholds (production / consumption ratio)
    surplus_threshold: float = 1.5
    shortage_threshold: float = 0.8
    critical_threshold: float = 0.3

    # Storage
    base_storage_capacity: float = 100.0
    storage_capacity_per_building: float = 20.0

    # Health reporting
    tick_budget_ms: float = 50.0


DEFAULT_RESOURCE_CONFIG = ResourceConfig()
DEFAULT_ECONOMY_CONFIG = EconomyConfig()


# ------------------------------------------------------------------ #
# Presets
# ------------------------------------------------------------------ #
RESOURCE_PRESETS: dict[str, ResourceConfig] = {
    "easy": ResourceConfig(
        depletion_rate=0.05,
        recovery_rate=0.04,
        recovery_delay=3.0,
        min_recovery_threshold=0.2,
        type_multipliers={
            "water": {"food": 0.0, "wood": 0.0, "ore": 0.0},
            "land": {"food": 2.0, "wood": 0.8, "ore": 0.5},
            "forest": {"food": 1.2, "wood": 2.5, "ore": 0.3},
            "mountain": {"food": 0.5, "wood": 0.8, "ore": 3.0},
            "road": {"food": 0.1, "wood": 0.1, "ore": 0.1},
        },
    ),
    "normal": DEFAULT_RESOURCE_CONFIG,
    "hard": ResourceConfig(
        depletion_rate=0.15,
        recovery_rate=0.01,
        recovery_delay=10.0,
        min_recovery_threshold=0.05,
        type_multipliers={
            "water": {"food": 0.0, "wood": 0.0, "ore": 0.0},
            "land": {"food": 1.2, "wood": 0.3, "ore": 0.2},
            "forest": {"food": 0.5, "wood": 1.5, "ore": 0.1},
            "mountain": {"food": 0.2, "wood": 0.3, "ore": 2.0},
            "road": {"food": 0.05, "wood": 0.05, "ore": 0.05},
        },
    ),
    "extreme": ResourceConfig(
        depletion_rate=0.25,
        recovery_rate=0.005,
        recovery_delay=15.0,
        min_recovery_threshold=0.02,
        type_multipliers={
            "water": {"food": 0.0, "wood": 0.0, "ore": 0.0},
            "land": {"food": 1.0, "wood": 0.2, "ore": 0.1},
            "forest": {"food": 0.3, "wood": 1.2, "ore": 0.05},
            "mountain": {"food": 0.1, "wood": 0.2, "ore": 1.5},
            "road": {"food": 0.02, "wood": 0.02, "ore": 0.02},
        },
    ),
}


def get_preset(name: str) -> ResourceConfig | None:
    return RESOURCE_PRESETS.get(name)


# ------------------------------------------------------------------ #
# Validation
# ------------------------------------------------------------------ #
@dataclass
class ConfigValidation:
    is_valid: bool
    errors: list[str]
    warnings: list[str]
    corrected: ResourceConfig | EconomyConfig


# field -> (min, max, recommended_min, recommended_max)
ECONOMY_CONSTRAINTS: dict[str, tuple[float, float, float, float]] = {
    "food_consumption_per_person": (0.1, 2.0, 0.3, 1.0),
    "population_growth_rate": (0.001, 0.1, 0.01, 0.05),
    "population_decline_rate": (0.001, 0.2, 0.02, 0.1),
    "max_population": (1, 1000, 50, 500),
    "population_hard_cap": (1, 100000, 100, 10000),
    "growth_buffer_ticks": (0.0, 100.0, 1.0, 10.0),
    "starvation_grace_ticks": (1, 1000, 2, 20),
    "buildings_per_population": (0.05, 1.0, 0.08, 0.2),
    "building_wood_cost": (1.0, 100.0, 5.0, 20.0),
    "building_ore_cost": (1.0, 50.0, 2.0, 15.0),
    "construction_time_per_building": (0.1, 1000.0, 1.0, 20.0),
    "max_construction_queue": (1, 10, 1, 5),
    "surplus_threshold": (1.1, 3.0, 1.2, 2.0),
    "shortage_threshold": (0.3, 0.95, 0.6, 0.9),
    "critical_threshold": (0.1, 0.6, 0.2, 0.5),
    "base_storage_capacity": (50.0, 500.0, 80.0, 200.0),
    "storage_capacity_per_building": (5.0, 100.0, 10.0, 50.0),
    "tick_budget_ms": (1.0, 10000.0, 10.0, 100.0),
}


def validate_economy_config(config: EconomyConfig) -> ConfigValidation:
    """Check every knob against its allowed range and the threshold ordering.

    ``corrected`` is a copy with out-of-range (or non-finite) values clamped
    into range; the input config is never modified.
    """
    errors: list[str] = []
    warnings: list[str] = []
    changes: dict[str, float] = {}

    for f in fields(config):
        if f.name not in ECONOMY_CONSTRAINTS:
            continue
        lo, hi, rec_lo, rec_hi = ECONOMY_CONSTRAINTS[f.name]
        value = getattr(config, f.name)
        is_int = isinstance(f.default, int)

        if not isinstance(value, (int, float)) or not math.isfinite(value):
            errors.append(f"{f.name} must be a finite number (got {value!r})")
            changes[f.name] = f.default
            continue
        if value < lo or value > hi:
            errors.append(f"{f.name}={value} outside allowed range [{lo}, {hi}]")
            clamped = max(lo, min(hi, value))
            changes[f.name] = int(clamped) if is_int else float(clamped)
        elif value < rec_lo or value > rec_hi:
            warnings.append(f"{f.name}={value} outside recommended range [{rec_lo}, {rec_hi}]")

    corrected = replace(config, **changes) if changes else config

    if not (corrected.critical_threshold < corrected.shortage_threshold < 1.0 < corrected.surplus_threshold):
        errors.append("thresholds must satisfy critical < shortage < 1 < surplus")
        corrected = replace(
            corrected,
            critical_threshold=DEFAULT_ECONOMY_CONFIG.critical_threshold,
            shortage_threshold=DEFAULT_ECONOMY_CONFIG.shortage_threshold,
            surplus_threshold=DEFAULT_ECONOMY_CONFIG.surplus_threshold,
        )

    if corrected.max_population > corrected.population_hard_cap:
        errors.append("max_population must not exceed population_hard_cap")
        corrected = replace(corrected, max_population=corrected.population_hard_cap)

    return ConfigValidation(
        is_valid=not errors,
        errors=errors,
        warnings=warnings,
        corrected=corrected,
    )


def validate_resource_config(config: ResourceConfig) -> ConfigValidation:
    errors: list[str] = []
    warnings: list[str] = []
    changes: dict = {}

    for name, upper in (
        ("depletion_rate", 1.0),
        ("recovery_rate", 1.0),
        ("min_recovery_threshold", 1.0),
        ("recovery_delay", None),
    ):
        value = getattr(config, name)
        if not math.isfinite(value) or value < 0:
            errors.append(f"{name} must be non-negative")
            changes[name] = getattr(DEFAULT_RESOURCE_CONFIG, name)
        elif upper is not None and value > upper:
            errors.append(f"{name} must not exceed {upper}")
            changes[name] = upper

    if config.depletion_rate > 0.5:
        warnings.append("depletion_rate above 0.5 may cause very rapid resource depletion")
    if config.recovery_rate > 0.1:
        warnings.append("recovery_rate above 0.1 may cause very rapid recovery")
    if config.recovery_delay > 60:
        warnings.append("recovery_delay above 60 ticks may be too long")
    if config.depletion_rate > config.recovery_rate * 10:
        warnings.append("depletion_rate is much higher than recovery_rate; tiles may stay depleted")

    multipliers = {tile: dict(per) for tile, per in config.type_multipliers.items()}
    bad_multiplier = False
    for tile_type, per_resource in multipliers.items():
        if tile_type not in TILE_TYPES:
            warnings.append(f"unknown tile type in type_multipliers: {tile_type}")
        for resource, value in per_resource.items():
            if not math.isfinite(value) or value < 0:
                errors.append(f"type_multipliers.{tile_type}.{resource} must be non-negative")
                per_resource[resource] = _default_multipliers().get(tile_type, {}).get(resource, 1.0)
                bad_multiplier = True
            elif value > 10:
                warnings.append(f"type_multipliers.{tile_type}.{resource} above 10 may cause very rapid recovery")
    if bad_multiplier:
        changes["type_multipliers"] = multipliers

    corrected = replace(config, **changes) if changes else config
    return ConfigValidation(
        is_valid=not errors,
        errors=errors,
        warnings=warnings,
        corrected=corrected,
    )


__all__ = [
    "ResourceConfig",
    "EconomyConfig",
    "DEFAULT_RESOURCE_CONFIG",
    "DEFAULT_ECONOMY_CONFIG",
    "RESOURCE_PRESETS",
    "TILE_TYPES",
    "ConfigValidation",
    "get_preset",
    "validate_economy_config",
    "validate_resource_config",
]
