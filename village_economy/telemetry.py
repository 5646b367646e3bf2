from __future__ import annotations

import datetime as _dt
import json
import sqlite3
from pathlib import Path
from typing import Iterable, Sequence

import numpy as np

from .integrity import EconomyError
from .stats import depletion_grid
from .terrain import Terrain
from .village import Village


def _percentiles(data: list[float]) -> tuple[float, float, float]:
    if not data:
        return 0.0, 0.0, 0.0
    arr = np.array(sorted(data))
    return float(np.percentile(arr, 10)), float(np.percentile(arr, 50)), float(np.percentile(arr, 90))


class TelemetryRecorder:
    """Lightweight SQLite-backed record of a simulation run (diagnostics only)."""

    def __init__(
        self,
        run_id: str,
        *,
        base_seed: int,
        world_size: int,
        snapshot_interval: int = 10,
        base_path: str | Path = "reports",
    ) -> None:
        self.run_id = run_id
        self.snapshot_interval = max(1, snapshot_interval)
        self.base_seed = base_seed
        self.world_size = world_size

        self.base_path = Path(base_path)
        self.run_dir = self.base_path / f"run_{self.run_id}"
        self.run_dir.mkdir(parents=True, exist_ok=True)
        self.db_path = self.run_dir / f"run_{self.run_id}.sqlite"

        self._conn = sqlite3.connect(self.db_path)
        self._init_db()

    # ------------------------------------------------------------------ #
    # Database schema
    # ------------------------------------------------------------------ #
    def _init_db(self) -> None:
        cur = self._conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS run_meta (
                run_id TEXT PRIMARY KEY,
                seed INTEGER,
                world_size INTEGER,
                start_time TEXT
            )
            """
        )
        cur.execute(
            """
            INSERT OR REPLACE INTO run_meta(run_id, seed, world_size, start_time)
            VALUES (?, ?, ?, ?)
            """,
            (
                self.run_id,
                self.base_seed,
                self.world_size,
                _dt.datetime.now(_dt.timezone.utc).isoformat(),
            ),
        )

        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS snapshots (
                tick INTEGER PRIMARY KEY,
                village_count INTEGER,
                total_population REAL,
                p10_population REAL,
                median_population REAL,
                p90_population REAL,
                total_food REAL,
                total_wood REAL,
                total_ore REAL,
                total_buildings INTEGER,
                surplus_count INTEGER,
                balanced_count INTEGER,
                shortage_count INTEGER,
                critical_count INTEGER,
                depletion_grid TEXT
            )
            """
        )

        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS village_snapshots (
                tick INTEGER,
                village_id TEXT,
                population REAL,
                food REAL,
                wood REAL,
                ore REAL,
                buildings INTEGER,
                construction_queue INTEGER,
                food_status TEXT,
                wood_status TEXT,
                ore_status TEXT
            )
            """
        )

        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS integrity_errors (
                tick INTEGER,
                village_id TEXT,
                error_type TEXT,
                message TEXT,
                recovery_action TEXT
            )
            """
        )
        self._conn.commit()

    # ------------------------------------------------------------------ #
    # Recording
    # ------------------------------------------------------------------ #
    def log_errors(self, tick: int, errors: Iterable[EconomyError]) -> None:
        rows = [(tick, e.village_id, e.error_type.value, e.message, e.recovery_action) for e in errors]
        if not rows:
            return
        cur = self._conn.cursor()
        cur.executemany(
            """
            INSERT INTO integrity_errors(tick, village_id, error_type, message, recovery_action)
            VALUES (?, ?, ?, ?, ?)
            """,
            rows,
        )
        self._conn.commit()

    def record_snapshot(self, *, tick: int, villages: Sequence[Village], terrain: Terrain | None = None) -> None:
        pops = [float(v.population) for v in villages]
        p10, median, p90 = _percentiles(pops)

        levels = {"surplus": 0, "balanced": 0, "shortage": 0, "critical": 0}
        for v in villages:
            for level in v.economy.supply_demand_status.values():
                levels[getattr(level, "value", level)] += 1

        grid = []
        if terrain is not None and len(terrain):
            # NaN (barren tile) is not valid JSON
            grid = np.nan_to_num(depletion_grid(terrain), nan=-1.0).round(3).tolist()

        cur = self._conn.cursor()
        cur.execute(
            """
            INSERT OR REPLACE INTO snapshots(
                tick, village_count, total_population, p10_population, median_population, p90_population,
                total_food, total_wood, total_ore, total_buildings,
                surplus_count, balanced_count, shortage_count, critical_count, depletion_grid
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                tick,
                len(villages),
                sum(pops),
                p10,
                median,
                p90,
                sum(v.storage.food for v in villages),
                sum(v.storage.wood for v in villages),
                sum(v.storage.ore for v in villages),
                sum(v.economy.buildings.count for v in villages),
                levels["surplus"],
                levels["balanced"],
                levels["shortage"],
                levels["critical"],
                json.dumps(grid),
            ),
        )

        cur.executemany(
            """
            INSERT INTO village_snapshots(
                tick, village_id, population, food, wood, ore, buildings, construction_queue,
                food_status, wood_status, ore_status
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            [self._village_row(tick, v) for v in villages],
        )
        self._conn.commit()

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #
    def _village_row(self, tick: int, village: Village) -> tuple:
        status = village.economy.supply_demand_status
        return (
            tick,
            village.village_id,
            float(village.population),
            village.storage.food,
            village.storage.wood,
            village.storage.ore,
            village.economy.buildings.count,
            village.economy.buildings.construction_queue,
            *(getattr(status[r], "value", status[r]) for r in ("food", "wood", "ore")),
        )

    def close(self) -> None:
        self._conn.close()


__all__ = ["TelemetryRecorder"]
