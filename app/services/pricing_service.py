"""Server-side booking quotes and commission math.

Prices come from the tour catalog; the pricing object a client submits is
only compared against the quote and never charged.
"""
import logging
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP

from app.models.tour import Tour
from app.models.accommodation_option import AccommodationOption
from app.models.activity_addon import ActivityAddon
from app.services.errors import BookingError

log = logging.getLogger(__name__)

CENT = Decimal("0.01")
HUNDRED = Decimal("100")


def to_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    # str() keeps floats like 0.1 from leaking binary noise into money
    return Decimal(str(value))


def round_half_up(value, places: int = 0) -> Decimal:
    exp = Decimal(1).scaleb(-places)
    return to_decimal(value).quantize(exp, rounding=ROUND_HALF_UP)


def split_commission(total, commission_rate) -> tuple[Decimal, Decimal]:
    """Return (platform_commission, agent_earnings).

    The commission is rounded once to whole currency units; the agent gets the
    remainder so both parts always add up to the total.
    """
    total = to_decimal(total)
    commission = round_half_up(total * to_decimal(commission_rate) / HUNDRED)
    return commission, total - commission


@dataclass
class AccommodationLine:
    day_number: int
    option: AccommodationOption
    price: Decimal


@dataclass
class AddonLine:
    addon: ActivityAddon
    quantity: int
    price: Decimal


@dataclass
class Quote:
    adults_total: Decimal
    children_total: Decimal
    accommodation_total: Decimal
    addons_total: Decimal
    service_fee: Decimal
    discount: Decimal
    total: Decimal
    accommodations: list[AccommodationLine] = field(default_factory=list)
    addons: list[AddonLine] = field(default_factory=list)

    @property
    def base_total(self) -> Decimal:
        return self.adults_total + self.children_total

    @property
    def subtotal(self) -> Decimal:
        return self.base_total + self.accommodation_total + self.addons_total


def child_unit_price(tour: Tour, child_price_percent) -> Decimal:
    if tour.child_price is not None:
        return to_decimal(tour.child_price)
    return round_half_up(to_decimal(tour.base_price) * to_decimal(child_price_percent) / HUNDRED, 2)


def addon_quantity(addon: ActivityAddon, requested: int | None, guests: int) -> int:
    qty = requested if requested else guests
    if addon.max_capacity:
        qty = min(qty, addon.max_capacity)
    return max(qty, 1)


def price_booking(
    tour: Tour,
    adults: int,
    children: int,
    accommodations: dict[int, str],
    addons: list[tuple[str, int | None]],
    options: list[AccommodationOption],
    catalog_addons: list[ActivityAddon],
    service_fee_percent,
    child_price_percent,
) -> Quote:
    guests = adults + children
    adults_total = to_decimal(tour.base_price) * adults
    children_total = child_unit_price(tour, child_price_percent) * children

    by_id = {o.id: o for o in options}
    acc_lines = []
    for day_number in sorted(accommodations):
        opt = by_id.get(accommodations[day_number])
        if opt is None:
            raise BookingError(f"Accommodation option {accommodations[day_number]} is not offered on this tour")
        if day_number < 1:
            raise BookingError("Accommodation day numbers start at 1")
        acc_lines.append(AccommodationLine(day_number, opt, to_decimal(opt.price_per_night)))

    addons_by_id = {a.id: a for a in catalog_addons}
    addon_lines = []
    for addon_id, requested in addons:
        addon = addons_by_id.get(addon_id)
        if addon is None:
            raise BookingError(f"Add-on {addon_id} is not offered on this tour")
        qty = addon_quantity(addon, requested, guests)
        if addon.price_type == "PER_GROUP":
            price = to_decimal(addon.price)
        else:
            price = to_decimal(addon.price) * qty
        addon_lines.append(AddonLine(addon, qty, price))

    accommodation_total = sum((l.price for l in acc_lines), Decimal("0"))
    addons_total = sum((l.price for l in addon_lines), Decimal("0"))
    subtotal = adults_total + children_total + accommodation_total + addons_total

    service_fee = round_half_up(subtotal * to_decimal(service_fee_percent) / HUNDRED)

    discount = Decimal("0")
    if (
        tour.group_discount_threshold is not None
        and tour.group_discount_percent is not None
        and guests >= tour.group_discount_threshold
    ):
        discount = round_half_up(subtotal * to_decimal(tour.group_discount_percent) / HUNDRED)

    total = subtotal + service_fee - discount
    return Quote(
        adults_total=adults_total,
        children_total=children_total,
        accommodation_total=accommodation_total,
        addons_total=addons_total,
        service_fee=service_fee,
        discount=discount,
        total=total,
        accommodations=acc_lines,
        addons=addon_lines,
    )


def compare_client_pricing(quote: Quote, pricing: dict) -> dict:
    """Fields where the client's displayed pricing differs from the quote, as {field: (client, server)}."""
    expected = {
        "baseTotal": quote.adults_total,
        "childTotal": quote.children_total,
        "accommodationTotal": quote.accommodation_total,
        "addonsTotal": quote.addons_total,
        "serviceFee": quote.service_fee,
        "discount": quote.discount,
        "total": quote.total,
    }
    diffs = {}
    for key, server_value in expected.items():
        client_value = pricing.get(key)
        if client_value is None:
            continue
        if abs(to_decimal(client_value) - server_value) >= CENT:
            diffs[key] = (to_decimal(client_value), server_value)
    return diffs
