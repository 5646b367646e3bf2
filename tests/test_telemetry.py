import json
import sqlite3

import pytest

pytest.importorskip("numpy")

from village_economy.integrity import EconomyError, ErrorType
from village_economy.simulation import Simulation
from village_economy.telemetry import TelemetryRecorder
from village_economy.terrain import make_tile
from village_economy.village import BalanceLevel, ResourceAmounts, create_village


def _make_recorder(tmp_path, snapshot_interval=1):
    return TelemetryRecorder(
        "test_run",
        base_seed=123,
        world_size=16,
        snapshot_interval=snapshot_interval,
        base_path=tmp_path,
    )


def test_snapshot_records_population_and_resources(tmp_path):
    villages = [
        create_village(0, 0, population=10, storage=ResourceAmounts(food=5.0, wood=1.0)),
        create_village(3, 3, population=30, storage=ResourceAmounts(food=7.0, ore=2.0)),
    ]
    villages[1].economy.supply_demand_status["food"] = BalanceLevel.CRITICAL
    terrain = [[make_tile("water"), make_tile("land", food=10)]]

    recorder = _make_recorder(tmp_path)
    recorder.record_snapshot(tick=10, villages=villages, terrain=terrain)

    conn = sqlite3.connect(recorder.db_path)
    row = conn.execute(
        "SELECT village_count, total_population, total_food, critical_count, balanced_count, depletion_grid "
        "FROM snapshots WHERE tick=10"
    ).fetchone()
    village_rows = conn.execute("SELECT village_id, food_status FROM village_snapshots ORDER BY village_id").fetchall()
    conn.close()
    recorder.close()

    assert row[:5] == (2, 40.0, 12.0, 1, 5)
    assert json.loads(row[5]) == [[-1.0, 1.0]]
    assert village_rows == [("0,0", "balanced"), ("3,3", "critical")]


def test_errors_are_logged_per_tick(tmp_path):
    recorder = _make_recorder(tmp_path)
    recorder.log_errors(4, [
        EconomyError("1,1", ErrorType.CALCULATION, "division by zero", "use fallback"),
        EconomyError("2,2", ErrorType.DATA_INTEGRITY, "population corrected", "automatic correction"),
    ])
    recorder.log_errors(5, [])

    conn = sqlite3.connect(recorder.db_path)
    rows = conn.execute("SELECT tick, village_id, error_type FROM integrity_errors ORDER BY village_id").fetchall()
    conn.close()
    recorder.close()

    assert rows == [(4, "1,1", "calculation"), (4, "2,2", "data_integrity")]


def test_simulation_writes_snapshots_on_interval(tmp_path):
    recorder = _make_recorder(tmp_path, snapshot_interval=5)
    sim = Simulation(size=12, num_villages=2, seed=5, telemetry=recorder)

    sim.run(10)
    recorder.close()

    conn = sqlite3.connect(recorder.db_path)
    ticks = [r[0] for r in conn.execute("SELECT tick FROM snapshots ORDER BY tick")]
    village_rows = conn.execute("SELECT COUNT(*) FROM village_snapshots").fetchone()[0]
    meta = conn.execute("SELECT seed, world_size FROM run_meta").fetchone()
    conn.close()

    assert ticks == [5, 10]
    assert village_rows == 4
    assert meta == (123, 16)
