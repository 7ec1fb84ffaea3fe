from decimal import Decimal

import pytest

from app.models.accommodation_option import AccommodationOption
from app.models.activity_addon import ActivityAddon
from app.models.tour import Tour
from app.services.errors import BookingError
from app.services.pricing_service import (
    addon_quantity,
    compare_client_pricing,
    price_booking,
    round_half_up,
    split_commission,
)


def _tour(**kw):
    fields = dict(id="t1", base_price=Decimal("1190"), child_price=None, group_discount_threshold=None, group_discount_percent=None)
    fields.update(kw)
    return Tour(**fields)


def _quote(tour, adults=2, children=0, accommodations=None, addons=None, options=(), catalog=()):
    return price_booking(tour, adults, children, accommodations or {}, addons or [], list(options), list(catalog), 5, 70)


def test_round_half_up():
    assert round_half_up(Decimal("374.85")) == Decimal("375")
    assert round_half_up(Decimal("2.5")) == Decimal("3")
    assert round_half_up(Decimal("1.005"), 2) == Decimal("1.01")
    assert round_half_up(0.1 + 0.2, 2) == Decimal("0.30")


@pytest.mark.parametrize("total,rate", [
    ("2499", "15"),
    ("999.99", "12.5"),
    ("1", "33.33"),
    ("0", "15"),
    ("12345.67", "0"),
])
def test_commission_split_conserves_total(total, rate):
    commission, earnings = split_commission(Decimal(total), Decimal(rate))
    assert commission + earnings == Decimal(total)
    assert commission == commission.to_integral_value()


def test_adult_only_quote():
    q = _quote(_tour())
    assert q.adults_total == Decimal("2380")
    assert q.service_fee == Decimal("119")
    assert q.total == Decimal("2499")


def test_children_default_to_percentage_of_base_price():
    q = _quote(_tour(), adults=1, children=2)
    assert q.children_total == Decimal("1666.00")

    q = _quote(_tour(child_price=Decimal("500")), adults=1, children=2)
    assert q.children_total == Decimal("1000")


def test_accommodation_and_addons():
    options = [AccommodationOption(id="lodge", tour_id="t1", name="Lodge", price_per_night=Decimal("180"))]
    catalog = [
        ActivityAddon(id="balloon", tour_id="t1", name="Balloon", price=Decimal("450"), price_type="PER_PERSON", max_capacity=8),
        ActivityAddon(id="village", tour_id="t1", name="Village", price=Decimal("120"), price_type="PER_GROUP"),
    ]
    q = _quote(_tour(), accommodations={1: "lodge", 2: "lodge"}, addons=[("balloon", None), ("village", 3)], options=options, catalog=catalog)

    assert q.accommodation_total == Decimal("360")
    assert [l.day_number for l in q.accommodations] == [1, 2]
    assert q.addons_total == Decimal("1020")  # 450 x 2 guests + 120 flat
    assert q.total == q.subtotal + q.service_fee - q.discount


def test_group_discount_applies_at_threshold():
    tour = _tour(group_discount_threshold=4, group_discount_percent=Decimal("10"))
    assert _quote(tour, adults=3).discount == 0
    q = _quote(tour, adults=4)
    assert q.discount == Decimal("476")
    assert q.total == Decimal("4760") + Decimal("238") - Decimal("476")


def test_options_from_other_tours_are_rejected():
    with pytest.raises(BookingError):
        _quote(_tour(), accommodations={1: "elsewhere"})
    with pytest.raises(BookingError):
        _quote(_tour(), addons=[("nope", 1)])


def test_addon_quantity_defaults_and_clamps():
    capped = ActivityAddon(id="a", price=Decimal("1"), price_type="PER_PERSON", max_capacity=3)
    uncapped = ActivityAddon(id="b", price=Decimal("1"), price_type="PER_PERSON", max_capacity=None)
    assert addon_quantity(capped, None, 5) == 3
    assert addon_quantity(capped, 2, 5) == 2
    assert addon_quantity(uncapped, None, 5) == 5
    assert addon_quantity(uncapped, 0, 5) == 5


def test_client_pricing_comparison():
    q = _quote(_tour())
    assert compare_client_pricing(q, {"baseTotal": 2380, "serviceFee": 119, "total": 2499}) == {}
    diffs = compare_client_pricing(q, {"total": 2000, "discount": None})
    assert diffs == {"total": (Decimal("2000"), Decimal("2499"))}
