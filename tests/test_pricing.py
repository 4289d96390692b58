import math

import pytest

from boxinator.domain import pricing
from boxinator.domain.records import utcnow
from boxinator.application.schemas import ShipmentRead
from boxinator.errors import ValidationFailed


@pytest.mark.parametrize("weight,multiplier,expected", [
    (1, 0, 200.0),
    (2, 5, 210.0),
    (5, 15, 275.0),
    (8, 32, 456.0),
    (2.0, 5.5, 211.0),
])
def test_compute_cost(weight, multiplier, expected):
    assert pricing.compute_cost(weight, multiplier) == expected


def test_nordic_destination_pays_flat_fee_for_every_tier():
    for weight in pricing.VALID_WEIGHTS:
        assert pricing.compute_cost(weight, 0) == pricing.FLAT_FEE


@pytest.mark.parametrize("weight", [0, 3, 1.5, -1, True, "2", None, math.nan])
def test_compute_cost_rejects_unsellable_weight(weight):
    with pytest.raises(ValidationFailed):
        pricing.compute_cost(weight, 5)


@pytest.mark.parametrize("multiplier", [-0.5, math.nan, math.inf, -math.inf, None, "5", False])
def test_compute_cost_rejects_bad_multiplier(multiplier):
    with pytest.raises(ValidationFailed):
        pricing.compute_cost(2, multiplier)


def test_cost_grows_with_weight_for_positive_multiplier():
    costs = [pricing.compute_cost(w, 4.5) for w in sorted(pricing.VALID_WEIGHTS)]
    assert costs == sorted(costs)
    assert len(set(costs)) == len(costs)


@pytest.mark.parametrize("weight,name", [(1, "Basic"), (2, "Humble"), (5, "Deluxe"), (8, "Premium")])
def test_tier_name(weight, name):
    assert pricing.tier_name(weight) == name


@pytest.mark.parametrize("weight", [3, 0, None, "8"])
def test_tier_name_unknown(weight):
    assert pricing.tier_name(weight) == "Unknown"


def test_is_nordic_country():
    assert pricing.is_nordic_country("Norway")
    assert pricing.is_nordic_country(" sweden ")
    assert not pricing.is_nordic_country("Finland")


def _shipment(shipment_id, cost):
    return ShipmentRead(
        id=shipment_id, account_id=1, receiver_name="R", weight=1, tier="Basic",
        box_color="rgba(0, 0, 0, 1)", country_id=1, total_cost=cost,
        status="CREATED", created_at=utcnow(),
    )


def test_total_cost_sums_stored_costs():
    shipments = [_shipment(1, 200.0), _shipment(2, 210.0), _shipment(3, 275.0)]
    assert pricing.total_cost(shipments) == 685.0


def test_total_cost_of_nothing_is_zero():
    assert pricing.total_cost([]) == 0
