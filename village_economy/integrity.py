from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass, field, fields, is_dataclass
from enum import Enum
from typing import Any, Callable, Generic, TypeVar

from .config import DEFAULT_ECONOMY_CONFIG, EconomyConfig
from .village import (
    HISTORY_LENGTH,
    RESOURCE_TYPES,
    BalanceLevel,
    Buildings,
    Economy,
    ResourceAmounts,
    Stock,
    Village,
    default_status,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_LOG_SIZE = 1000


class ErrorType(str, Enum):
    DATA_INTEGRITY = "data_integrity"
    CALCULATION = "calculation"


@dataclass
class EconomyError:
    village_id: str
    error_type: ErrorType
    message: str
    recovery_action: str
    timestamp: float = field(default_factory=time.time)
    original_value: Any = None
    corrected_value: Any = None


@dataclass
class ValidationResult:
    is_valid: bool
    errors: list[EconomyError]
    warnings: list[str]


@dataclass
class CalcResult(Generic[T]):
    """Outcome of a fallible numeric computation."""

    ok: bool
    value: T | None = None
    error: str | None = None

    @classmethod
    def success(cls, value: T) -> "CalcResult[T]":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: str) -> "CalcResult[T]":
        return cls(ok=False, error=error)

    def value_or(self, fallback: T) -> T:
        return self.value if self.ok else fallback


@dataclass(frozen=True)
class NumericRange:
    lo: float
    hi: float
    default: float

    def contains(self, value: Any) -> bool:
        return is_finite_number(value) and self.lo <= value <= self.hi

    def clamp(self, value: Any) -> float:
        if not is_finite_number(value):
            return self.default
        return max(self.lo, min(self.hi, value))


def is_finite_number(value: Any) -> bool:
    if isinstance(value, bool) or value is None:
        return False
    try:
        return math.isfinite(value)
    except TypeError:
        return False


def _is_corrupt(result: Any) -> str | None:
    """Describe why ``result`` is unusable, or None when it is fine."""
    if result is None:
        return "result is None"
    if isinstance(result, bool):
        return None
    if isinstance(result, (int, float)) or hasattr(result, "__float__") and not isinstance(result, str):
        try:
            if not math.isfinite(result):
                return f"non-finite result {result!r}"
        except TypeError:
            return None
        return None
    if is_dataclass(result) and not isinstance(result, type):
        for f in fields(result):
            value = getattr(result, f.name)
            if isinstance(value, (int, float)) and not isinstance(value, bool) and not math.isfinite(value):
                return f"non-finite field {f.name}={value!r}"
    return None


class EconomyErrorHandler:
    """Validation, clamping and safe arithmetic for village economies.

    Every detected problem is appended to a bounded in-memory log keyed by
    village id and error type. Nothing here raises for bad data.
    """

    def __init__(self, config: EconomyConfig = DEFAULT_ECONOMY_CONFIG):
        self.config = config
        self._log: list[EconomyError] = []
        # running total, unaffected by log trimming
        self.total_logged = 0

        self.ranges = {
            "population": NumericRange(0, config.population_hard_cap, 1),
            "resources": NumericRange(0, 100000, 0),
            "production": NumericRange(0, 10000, 0),
            "consumption": NumericRange(0, 10000, 0),
            "buildings": NumericRange(0, 500, 0),
            "queue": NumericRange(0, config.max_construction_queue, 0),
            "collection_radius": NumericRange(1, 10, 1),
            "capacity": NumericRange(0, 200000, config.base_storage_capacity),
        }

    # ------------------------------------------------------------------ #
    # Validation (read-only)
    # ------------------------------------------------------------------ #
    def validate(self, village: Village) -> ValidationResult:
        errors: list[EconomyError] = []
        warnings: list[str] = []
        vid = village.village_id

        def check(name: str, value: Any, rng: NumericRange) -> None:
            if not rng.contains(value):
                errors.append(
                    self._error(vid, ErrorType.DATA_INTEGRITY, f"{name} out of range: {value!r}",
                                f"clamp {name} into [{rng.lo}, {rng.hi}]", original=value)
                )

        check("population", village.population, self.ranges["population"])
        check("collection_radius", village.collection_radius, self.ranges["collection_radius"])
        for name in ("last_update_time", "starvation_ticks"):
            if not is_finite_number(getattr(village, name, None)):
                errors.append(self._error(vid, ErrorType.DATA_INTEGRITY, f"{name} is not finite",
                                          f"reset {name}"))

        if not isinstance(village.storage, ResourceAmounts):
            errors.append(self._error(vid, ErrorType.DATA_INTEGRITY, "storage missing", "create empty storage"))

        economy = village.economy
        if not isinstance(economy, Economy):
            errors.append(self._error(vid, ErrorType.DATA_INTEGRITY, "economy missing", "create default economy"))
            return ValidationResult(is_valid=False, errors=errors, warnings=warnings)

        for resource in RESOURCE_TYPES:
            if isinstance(village.storage, ResourceAmounts):
                check(f"storage.{resource}", getattr(village.storage, resource, None), self.ranges["resources"])
            for block, rng_name in (("production", "production"), ("consumption", "consumption"), ("stock", "resources")):
                amounts = getattr(economy, block, None)
                if amounts is None:
                    continue
                check(f"{block}.{resource}", getattr(amounts, resource, None), self.ranges[rng_name])

            if isinstance(village.storage, ResourceAmounts) and isinstance(economy.stock, Stock):
                stored = getattr(village.storage, resource, None)
                stocked = getattr(economy.stock, resource, None)
                if stored != stocked:
                    errors.append(
                        self._error(vid, ErrorType.DATA_INTEGRITY,
                                    f"stock.{resource} ({stocked!r}) does not mirror storage ({stored!r})",
                                    "resync stock from storage")
                    )

            status = (economy.supply_demand_status or {}).get(resource)
            if not isinstance(status, BalanceLevel) and status not in {lvl.value for lvl in BalanceLevel}:
                errors.append(self._error(vid, ErrorType.DATA_INTEGRITY,
                                          f"supply_demand_status.{resource} invalid: {status!r}",
                                          "reset to balanced"))

        if isinstance(economy.stock, Stock):
            check("stock.capacity", economy.stock.capacity, self.ranges["capacity"])

        buildings = economy.buildings
        if isinstance(buildings, Buildings):
            check("buildings.count", buildings.count, self.ranges["buildings"])
            check("buildings.target_count", buildings.target_count, self.ranges["buildings"])
            check("buildings.construction_queue", buildings.construction_queue, self.ranges["queue"])
            if is_finite_number(buildings.count) and is_finite_number(village.population):
                if buildings.count > village.population:
                    warnings.append(
                        f"building count exceeds population: population={village.population}, buildings={buildings.count}"
                    )
        else:
            errors.append(self._error(vid, ErrorType.DATA_INTEGRITY, "buildings missing", "create default buildings"))

        if isinstance(village.population_history, list) and len(village.population_history) > HISTORY_LENGTH:
            warnings.append(f"population history longer than {HISTORY_LENGTH} entries")

        return ValidationResult(is_valid=not errors, errors=errors, warnings=warnings)

    # ------------------------------------------------------------------ #
    # Correction
    # ------------------------------------------------------------------ #
    def correct(self, village: Village) -> bool:
        """Clamp every field back into its invariant; True when anything changed."""
        vid = village.village_id
        changed = False

        # population: invalid or negative values fall to the floor of 1
        pop = village.population
        if not is_finite_number(pop) or pop < 0:
            new_pop = 1
        else:
            new_pop = min(pop, self.config.population_hard_cap)
        if new_pop != pop or not is_finite_number(pop):
            self._log_correction(vid, "population", pop, new_pop)
            village.population = new_pop
            changed = True

        changed |= self._correct_attr(village, "collection_radius", self.ranges["collection_radius"], vid)
        radius = village.collection_radius
        if radius != int(radius):
            village.collection_radius = max(1, int(radius))
            self._log_correction(vid, "collection_radius", radius, village.collection_radius)
            changed = True

        for name in ("last_update_time", "starvation_ticks"):
            value = getattr(village, name, None)
            if not is_finite_number(value) or value < 0:
                self._log_correction(vid, name, value, 0)
                setattr(village, name, 0)
                changed = True

        if not isinstance(village.storage, ResourceAmounts):
            self._log_correction(vid, "storage", village.storage, "empty")
            village.storage = ResourceAmounts()
            changed = True
        for resource in RESOURCE_TYPES:
            changed |= self._correct_attr(village.storage, resource, self.ranges["resources"], vid,
                                          label=f"storage.{resource}")

        if not isinstance(village.economy, Economy):
            self._log_correction(vid, "economy", village.economy, "default")
            village.economy = self._default_economy(village)
            changed = True

        economy = village.economy
        for block, cls, rng_name in (
            ("production", ResourceAmounts, "production"),
            ("consumption", ResourceAmounts, "consumption"),
        ):
            amounts = getattr(economy, block, None)
            if not isinstance(amounts, cls):
                self._log_correction(vid, block, amounts, "zeroed")
                setattr(economy, block, cls())
                changed = True
                continue
            for resource in RESOURCE_TYPES:
                changed |= self._correct_attr(amounts, resource, self.ranges[rng_name], vid,
                                              label=f"{block}.{resource}")

        if not isinstance(economy.stock, Stock):
            self._log_correction(vid, "stock", economy.stock, "default")
            economy.stock = Stock(capacity=self.config.base_storage_capacity)
            changed = True
        changed |= self._correct_attr(economy.stock, "capacity", self.ranges["capacity"], vid,
                                      label="stock.capacity")
        for resource in RESOURCE_TYPES:
            stored = village.storage.get(resource)
            if economy.stock.get(resource) != stored:
                self._log_correction(vid, f"stock.{resource}", economy.stock.get(resource), stored)
                economy.stock.set(resource, stored)
                changed = True

        if not isinstance(economy.buildings, Buildings):
            self._log_correction(vid, "buildings", economy.buildings, "default")
            economy.buildings = Buildings()
            changed = True
        for attr, rng_name in (("count", "buildings"), ("target_count", "buildings"), ("construction_queue", "queue")):
            changed |= self._correct_attr(economy.buildings, attr, self.ranges[rng_name], vid,
                                          label=f"buildings.{attr}", integral=True)

        status = economy.supply_demand_status if isinstance(economy.supply_demand_status, dict) else {}
        fixed_status = {}
        for resource in RESOURCE_TYPES:
            level = status.get(resource)
            try:
                fixed_status[resource] = BalanceLevel(level)
            except ValueError:
                self._log_correction(vid, f"supply_demand_status.{resource}", level, BalanceLevel.BALANCED.value)
                fixed_status[resource] = BalanceLevel.BALANCED
                changed = True
        economy.supply_demand_status = fixed_status

        history = village.population_history if isinstance(village.population_history, list) else []
        clean_history = [v for v in history if is_finite_number(v) and v >= 0][-HISTORY_LENGTH:]
        if clean_history != village.population_history:
            village.population_history = clean_history
            changed = True

        return changed

    def _correct_attr(
        self,
        obj: Any,
        attr: str,
        rng: NumericRange,
        village_id: str,
        *,
        label: str | None = None,
        integral: bool = False,
    ) -> bool:
        original = getattr(obj, attr, None)
        value = rng.clamp(original)
        if integral:
            value = int(value)
        if is_finite_number(original) and value == original:
            return False
        setattr(obj, attr, value)
        self._log_correction(village_id, label or attr, original, value)
        return True

    # ------------------------------------------------------------------ #
    # Safe arithmetic
    # ------------------------------------------------------------------ #
    def attempt(
        self,
        calculation: Callable[[], T],
        context: str,
        village_id: str | None = None,
    ) -> CalcResult[T]:
        """Run ``calculation`` and return a success or a logged failure."""
        try:
            result = calculation()
        except Exception as exc:
            message = f"{type(exc).__name__}: {exc} (context: {context})"
            self.log_error(self._error(village_id or "unknown", ErrorType.CALCULATION, message, "use fallback"))
            return CalcResult.failure(message)

        problem = _is_corrupt(result)
        if problem is not None:
            message = f"{problem} (context: {context})"
            self.log_error(self._error(village_id or "unknown", ErrorType.CALCULATION, message, "use fallback",
                                       original=result))
            return CalcResult.failure(message)
        return CalcResult.success(result)

    def safe_calculation(
        self,
        calculation: Callable[[], T],
        fallback: T,
        context: str,
        village_id: str | None = None,
    ) -> T:
        return self.attempt(calculation, context, village_id).value_or(fallback)

    # ------------------------------------------------------------------ #
    # Last-resort recovery
    # ------------------------------------------------------------------ #
    def reset_to_defaults(self, village: Village) -> None:
        """Re-initialise the economy block, keeping completed buildings and storage."""
        vid = village.village_id
        if not isinstance(village.storage, ResourceAmounts):
            village.storage = ResourceAmounts()
        for resource in RESOURCE_TYPES:
            value = getattr(village.storage, resource, None)
            village.storage.set(resource, self.ranges["resources"].clamp(value))

        village.economy = self._default_economy(village)
        self.log_error(self._error(vid, ErrorType.DATA_INTEGRITY, "economy reset to defaults",
                                   "re-initialise economy block"))

    def _default_economy(self, village: Village) -> Economy:
        old = getattr(village, "economy", None)
        count = 0
        if isinstance(old, Economy) and isinstance(old.buildings, Buildings):
            count = int(self.ranges["buildings"].clamp(old.buildings.count))
        economy = Economy(
            production=ResourceAmounts(),
            consumption=ResourceAmounts(),
            stock=Stock(capacity=self.config.base_storage_capacity
                        + count * self.config.storage_capacity_per_building),
            buildings=Buildings(count=count),
            supply_demand_status=default_status(),
        )
        if isinstance(village.storage, ResourceAmounts):
            for resource in RESOURCE_TYPES:
                economy.stock.set(resource, village.storage.get(resource))
        return economy

    # ------------------------------------------------------------------ #
    # Log queries
    # ------------------------------------------------------------------ #
    def log_error(self, error: EconomyError) -> None:
        self._log.append(error)
        self.total_logged += 1
        if len(self._log) > MAX_LOG_SIZE:
            del self._log[: len(self._log) - MAX_LOG_SIZE]
        logger.warning("[%s] %s: %s (%s)", error.error_type.value, error.village_id, error.message,
                       error.recovery_action)

    def error_log(self, limit: int = 50) -> list[EconomyError]:
        return self._log[-limit:] if limit > 0 else []

    def village_error_log(self, village_id: str, limit: int = 20) -> list[EconomyError]:
        entries = [e for e in self._log if e.village_id == village_id]
        return entries[-limit:] if limit > 0 else []

    def error_count(self) -> int:
        return len(self._log)

    def clear_error_log(self) -> None:
        self._log.clear()

    def error_statistics(self, now: float | None = None) -> dict:
        now = time.time() if now is None else now
        one_hour_ago = now - 3600.0
        by_type = {t.value: 0 for t in ErrorType}
        by_village: dict[str, int] = {}
        recent = 0
        for entry in self._log:
            by_type[entry.error_type.value] += 1
            by_village[entry.village_id] = by_village.get(entry.village_id, 0) + 1
            if entry.timestamp >= one_hour_ago:
                recent += 1
        return {
            "total_errors": len(self._log),
            "errors_by_type": by_type,
            "errors_by_village": by_village,
            "recent_errors": recent,
        }

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #
    def _error(
        self,
        village_id: str,
        error_type: ErrorType,
        message: str,
        recovery_action: str,
        *,
        original: Any = None,
        corrected: Any = None,
    ) -> EconomyError:
        return EconomyError(
            village_id=village_id,
            error_type=error_type,
            message=message,
            recovery_action=recovery_action,
            original_value=original,
            corrected_value=corrected,
        )

    def _log_correction(self, village_id: str, name: str, original: Any, corrected: Any) -> None:
        self.log_error(
            self._error(village_id, ErrorType.DATA_INTEGRITY, f"{name} corrected: {original!r} -> {corrected!r}",
                        "automatic correction", original=original, corrected=corrected)
        )


__all__ = [
    "CalcResult",
    "EconomyError",
    "EconomyErrorHandler",
    "ErrorType",
    "NumericRange",
    "ValidationResult",
    "is_finite_number",
]
