import math
import random

import pytest

pytest.importorskip("numpy")

from village_economy.config import ResourceConfig
from village_economy.terrain import (
    ResourceManager,
    Tile,
    collect_resources,
    generate_terrain,
    make_tile,
    resource_efficiency,
    scan_available,
)
from village_economy.village import RESOURCE_TYPES, ResourceAmounts, create_village


def assert_tile_invariants(tile: Tile) -> None:
    for r in RESOURCE_TYPES:
        assert 0.0 <= tile.resources[r] <= tile.max_resources[r]
        if tile.max_resources[r] > 0:
            assert math.isclose(tile.depletion_state[r], tile.resources[r] / tile.max_resources[r])
        else:
            assert tile.depletion_state[r] == 0.0


def test_harvest_clamps_to_available_and_resets_timer():
    manager = ResourceManager()
    manager.update_tick(7)
    tile = make_tile("land", food=10)
    tile.resources["food"] = 5.0
    tile.refresh_depletion("food")
    tile.recovery_timer["food"] = 3.0

    taken = manager.harvest(tile, "food", 8.0)

    assert taken == 5.0
    assert tile.resources["food"] == 0.0
    assert tile.depletion_state["food"] == 0.0
    assert tile.recovery_timer["food"] == 0.0
    assert tile.last_harvest_time == 7
    assert_tile_invariants(tile)


def test_zero_max_resource_never_depletes_or_recovers():
    manager = ResourceManager()
    tile = make_tile("mountain", ore=6)

    assert manager.harvest(tile, "food", 3.0) == 0.0
    for _ in range(50):
        manager.advance(tile)

    assert tile.resources["food"] == 0.0
    assert tile.depletion_state["food"] == 0.0


def test_recovery_waits_for_delay_then_regrows_by_type_multiplier():
    config = ResourceConfig(recovery_rate=0.02, recovery_delay=5.0)
    manager = ResourceManager(config)
    tile = make_tile("land", food=10)
    manager.harvest(tile, "food", 10.0)

    for _ in range(5):
        manager.advance(tile)
    assert tile.resources["food"] == 0.0

    manager.advance(tile)
    # 0.02 * 10 * land food multiplier 1.5
    assert math.isclose(tile.resources["food"], 0.3)
    assert_tile_invariants(tile)


def test_recovery_is_clamped_to_max():
    manager = ResourceManager(ResourceConfig(recovery_rate=1.0, recovery_delay=0.0))
    tile = make_tile("forest", wood=8)
    tile.resources["wood"] = 7.5

    manager.advance(tile)

    assert tile.resources["wood"] == 8.0
    assert tile.depletion_state["wood"] == 1.0


def test_divine_intervention_clamps_to_bounds():
    manager = ResourceManager()
    manager.update_tick(3)
    tile = make_tile("land", food=12)
    tile.recovery_timer["food"] = 9.0

    manager.divine_intervention(tile, "food", 1000)
    assert tile.resources["food"] == 12.0
    assert tile.depletion_state["food"] == 1.0
    assert tile.recovery_timer["food"] == 0.0
    assert tile.last_harvest_time == 3

    manager.divine_intervention(tile, "food", -40)
    assert tile.resources["food"] == 0.0
    assert tile.depletion_state["food"] == 0.0


def test_unknown_resource_is_a_programmer_error():
    with pytest.raises(ValueError):
        ResourceManager().harvest(make_tile("land", food=1), "gold", 1.0)
    with pytest.raises(ValueError):
        Tile(tile_type="lava")


def test_invariants_hold_under_random_operations():
    rng = random.Random(99)
    manager = ResourceManager()
    tiles = [make_tile(t, food=rng.randint(0, 20), wood=rng.randint(0, 20), ore=rng.randint(0, 20))
             for t in ("land", "forest", "mountain", "road", "water")]

    for tick in range(300):
        manager.update_tick(tick)
        tile = rng.choice(tiles)
        resource = rng.choice(RESOURCE_TYPES)
        op = rng.random()
        if op < 0.4:
            manager.harvest(tile, resource, rng.uniform(-5, 30))
        elif op < 0.8:
            manager.advance(tile, rng.uniform(0, 3))
        else:
            manager.divine_intervention(tile, resource, rng.uniform(-50, 50))
        for t in tiles:
            assert_tile_invariants(t)


def test_generate_terrain_is_seeded_and_valid():
    a = generate_terrain(12, seed=5)
    b = generate_terrain(12, seed=5)

    assert len(a) == 12 and all(len(row) == 12 for row in a)
    assert [[t.tile_type for t in row] for row in a] == [[t.tile_type for t in row] for row in b]
    for row in a:
        for tile in row:
            assert_tile_invariants(tile)
            if tile.tile_type == "land":
                assert 5 <= tile.resources["food"] <= 19
            if tile.tile_type == "water":
                assert sum(tile.max_resources.values()) == 0


def test_scan_available_skips_cells_outside_grid():
    terrain = [[make_tile("land", food=2, wood=1) for _ in range(3)] for _ in range(3)]

    available, maximum = scan_available(terrain, 0, 0, 1)

    assert available.food == 8.0  # 2x2 corner
    assert maximum.wood == 4.0


def test_resource_efficiency_curve():
    full = ResourceAmounts(food=10.0)
    assert resource_efficiency(ResourceAmounts(food=9.0), full) == 1.0
    assert resource_efficiency(ResourceAmounts(food=2.0), full) == 0.1
    assert math.isclose(resource_efficiency(ResourceAmounts(food=5.5), full), 0.1 + 0.5 * 0.9)
    assert resource_efficiency(ResourceAmounts(), ResourceAmounts()) == 1.0


def test_collect_resources_fills_storage_and_mirrors_stock():
    manager = ResourceManager()
    terrain = [[make_tile("land", food=10) for _ in range(3)] for _ in range(3)]
    village = create_village(1, 1, storage=ResourceAmounts())

    collected = collect_resources(manager, terrain, village)

    assert collected["food"] == pytest.approx(9.0)
    assert village.storage.food == pytest.approx(9.0)
    assert village.economy.stock.food == village.storage.food
    assert all(row[1].resources["food"] == 9.0 for row in terrain)


def test_visual_state_reports_depletion():
    manager = ResourceManager()
    barren = make_tile("water")
    assert manager.visual_state(barren).opacity == 1.0

    tile = make_tile("land", food=10)
    manager.harvest(tile, "food", 10)
    state = manager.visual_state(tile)
    assert state.is_depleted
    assert state.opacity == pytest.approx(0.3)
    assert state.tint[0] == 255 and state.tint[1] < 255
