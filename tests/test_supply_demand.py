import math

import pytest

from village_economy.config import EconomyConfig
from village_economy.supply_demand import SupplyDemandBalancer, classify, stock_days
from village_economy.village import BalanceLevel, create_village


def village_with(x, y, *, production=0.0, consumption=0.0, stock=0.0, status=None, resource="food"):
    village = create_village(x, y)
    village.economy.production.set(resource, production)
    village.economy.consumption.set(resource, consumption)
    village.economy.stock.set(resource, stock)
    if status is not None:
        village.economy.supply_demand_status[resource] = status
    return village


@pytest.mark.parametrize(
    "production, expected",
    [
        (0.0, BalanceLevel.CRITICAL),
        (2.9, BalanceLevel.CRITICAL),
        (3.0, BalanceLevel.SHORTAGE),
        (7.9, BalanceLevel.SHORTAGE),
        (8.0, BalanceLevel.BALANCED),
        (14.9, BalanceLevel.BALANCED),
        (15.0, BalanceLevel.SURPLUS),
    ],
)
def test_classify_by_production_ratio(production, expected):
    assert classify(production, 10.0, 0.0) == expected


@pytest.mark.parametrize(
    "stock, expected",
    [
        (60.0, BalanceLevel.SURPLUS),
        (30.0, BalanceLevel.BALANCED),
        (10.0, BalanceLevel.SHORTAGE),
        (5.0, BalanceLevel.CRITICAL),
        (0.0, BalanceLevel.CRITICAL),
    ],
)
def test_classify_by_stock_when_nothing_is_consumed(stock, expected):
    assert classify(0.0, 0.0, stock) == expected


def test_classify_uses_configured_thresholds():
    config = EconomyConfig(critical_threshold=0.5, shortage_threshold=0.9, surplus_threshold=2.0)
    assert classify(4.0, 10.0, 0.0, config) == BalanceLevel.CRITICAL
    assert classify(18.0, 10.0, 0.0, config) == BalanceLevel.BALANCED


def test_classify_never_worsens_as_production_rises():
    for consumption in (0.5, 3.0, 40.0):
        severities = [classify(p / 4, consumption, 12.0).severity for p in range(0, 400)]
        assert severities == sorted(severities)


def test_classify_treats_corrupt_numbers_as_zero():
    assert classify(float("nan"), float("inf"), 60.0) == BalanceLevel.SURPLUS
    assert classify(None, 10.0, 0.0) == BalanceLevel.CRITICAL


def test_stock_days():
    assert stock_days(30.0, 3.0) == 10.0
    assert math.isinf(stock_days(5.0, 0.0))
    assert stock_days(0.0, 0.0) == 0.0


def test_evaluate_village_balance_is_read_only():
    balancer = SupplyDemandBalancer()
    village = village_with(0, 0, production=20.0, consumption=10.0, stock=5.0)
    before = dict(village.economy.supply_demand_status)

    status = balancer.evaluate_village_balance(village)

    assert status["food"] == BalanceLevel.SURPLUS
    assert village.economy.supply_demand_status == before


def test_compare_village_balances_buckets_every_village():
    balancer = SupplyDemandBalancer()
    rich = village_with(0, 0, production=20.0, consumption=10.0, stock=40.0)
    poor = village_with(5, 5, production=1.0, consumption=10.0, stock=4.0)
    idle = village_with(9, 9, stock=30.0)

    result = balancer.compare_village_balances([rich, poor, idle])

    food = result["food"]
    assert [b.village for b in food.surplus] == [rich]
    assert [b.village for b in food.critical] == [poor]
    assert [b.village for b in food.balanced] == [idle]
    assert food.surplus[0].net_balance == 10.0
    assert food.surplus[0].stock_days == 4.0
    assert math.isinf(food.balanced[0].stock_days)
    assert sum(food.counts().values()) == 3
    assert set(result) == {"food", "wood", "ore"}


def test_identify_supply_demand_villages():
    balancer = SupplyDemandBalancer()
    a = village_with(0, 0, status=BalanceLevel.SURPLUS)
    b = village_with(1, 1, status=BalanceLevel.CRITICAL)
    c = village_with(2, 2, status=BalanceLevel.SHORTAGE, resource="ore")

    summary = balancer.identify_supply_demand_villages([a, b, c])

    assert summary.surplus_villages == [a]
    assert summary.critical_villages == [b]
    assert summary.shortage_villages == [c]


def test_find_suppliers_filters_and_ranks():
    balancer = SupplyDemandBalancer()
    needy = village_with(0, 0, status=BalanceLevel.CRITICAL)
    far_ok = village_with(3, 0, production=10.0, consumption=2.0, status=BalanceLevel.SURPLUS)
    near_ok = village_with(1, 0, production=10.0, consumption=2.0, status=BalanceLevel.SURPLUS)
    out_of_range = village_with(20, 0, production=50.0, status=BalanceLevel.SURPLUS)
    not_surplus = village_with(2, 0, production=50.0, status=BalanceLevel.BALANCED)

    offers = balancer.find_suppliers(needy, [far_ok, near_ok, out_of_range, not_surplus, needy], "food", 10.0)

    assert [o.supplier for o in offers] == [near_ok, far_ok]
    assert offers[0].available_supply == pytest.approx(8.0)
    assert offers[0].supply_capacity == pytest.approx(7.2)
    assert offers[1].supply_capacity == pytest.approx(5.6)


def test_find_suppliers_breaks_ties_by_distance():
    balancer = SupplyDemandBalancer()
    needy = village_with(0, 0)
    # both sit past 90% of the range, so distance decay bottoms out at 0.1
    farther = village_with(0, 10, production=5.0, status=BalanceLevel.SURPLUS)
    nearer = village_with(0, 9.5, production=5.0, status=BalanceLevel.SURPLUS)

    offers = balancer.find_suppliers(needy, [farther, nearer], "food", 10.0)

    assert [o.supplier for o in offers] == [nearer, farther]
    assert offers[0].supply_capacity == offers[1].supply_capacity


def test_find_suppliers_rejects_unknown_resource(village):
    with pytest.raises(ValueError):
        SupplyDemandBalancer().find_suppliers(village, [], "gold")
