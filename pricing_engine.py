"""
Package Pricing Engine
======================
Single source of truth for every quoted price:
  - Per-city room cost from hotel price lists
  - Mandatory + optional tours at the transport class's tour rate
  - Airport reception / farewell fees (same city vs different city)
  - Add-on services by unit (flat, per unit, per person, per person per night)
  - Profit margin, discount code and currency conversion

The engine is pure: it reads a CatalogStore snapshot and never touches the
database. Calling `price` twice on the same itinerary gives the same quote.
Catalog gaps (missing hotel, unpriced room category, missing transport class
or service) contribute 0 and are reported in `warnings`, never raised.

Computation order:
  1. room cost      = sum(price x nights) over every room of every city
  2. tours cost     = sum(optional + mandatory tours) x tour rate
  3. transport cost = reception fee + farewell fee
  4. services cost  = add-ons by unit; per-night units count the nights
                      booked across the cities, not the arrival-departure
                      span (a mismatch between the two is a warning)
  5. subtotal       = 1 + 2 + 3 + 4
  6. margin         = percent x (rooms + tours)        [MarginPolicy.base]
  7. discount       = resolved against the subtotal    [MarginPolicy.discount_after_margin]
  8. total          = subtotal + margin - discount, floored at 0, then converted
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
import logging
from typing import Optional

import config
from catalog import CatalogStore
from currencies import CurrencyTable, default_currency_table
from discount_resolver import DiscountResolver, DiscountResult
from exceptions import InvalidConfigurationError
from itinerary_rules import (
    airport_city,
    needs_airport_transfer,
    normalize_city,
    recompute_mandatory_tours,
    reconcile_nights,
    total_city_nights,
    total_tour_count,
)
from models import AdditionalServices, Itinerary, ServiceSelection, Traveler

logger = logging.getLogger(__name__)

CENT = Decimal('0.01')
ZERO = Decimal('0')

MARGIN_BASES = ('rooms_and_tours', 'subtotal')


def money(value) -> Decimal:
    return Decimal(str(value)).quantize(CENT, ROUND_HALF_UP)


# =====================================================
# MARGIN POLICY
# =====================================================

@dataclass(frozen=True)
class MarginPolicy:
    """
    Where the profit margin sits relative to the discount.

    Default: margin on rooms + tours only, discount resolved against the
    pre-margin subtotal. `base='subtotal'` marks up everything and
    `discount_after_margin=True` resolves percentage codes against
    subtotal + margin instead.
    """

    percent: Decimal = Decimal('22')
    base: str = 'rooms_and_tours'
    discount_after_margin: bool = False

    def __post_init__(self):
        if self.base not in MARGIN_BASES:
            raise InvalidConfigurationError(f"Unknown margin base: {self.base}")
        if not (ZERO <= Decimal(str(self.percent)) <= Decimal('100')):
            raise InvalidConfigurationError(f"Margin percent out of range: {self.percent}")

    @classmethod
    def from_config(cls):
        return cls(
            percent=Decimal(config.PROFIT_MARGIN_PERCENT),
            base=config.MARGIN_BASE,
            discount_after_margin=config.DISCOUNT_AFTER_MARGIN,
        )

    def margin_on(self, room_cost: Decimal, tours_cost: Decimal, subtotal: Decimal) -> Decimal:
        base_amount = subtotal if self.base == 'subtotal' else room_cost + tours_cost
        return money(base_amount * Decimal(str(self.percent)) / 100)


# =====================================================
# QUOTE
# =====================================================

@dataclass
class CityBreakdown:
    city: str
    nights: int
    hotel: Optional[str]
    room_cost: Decimal = ZERO
    tours: int = 0
    mandatory_tours: int = 0
    tours_cost: Decimal = ZERO
    airport_transfer: bool = False

    def to_dict(self):
        return {
            'city': self.city,
            'nights': self.nights,
            'hotel': self.hotel,
            'roomCost': float(self.room_cost),
            'tours': self.tours,
            'mandatoryTours': self.mandatory_tours,
            'toursCost': float(self.tours_cost),
            'airportTransfer': self.airport_transfer,
        }


@dataclass
class PriceQuote:
    room_cost: Decimal = ZERO
    tours_cost: Decimal = ZERO
    reception_cost: Decimal = ZERO
    farewell_cost: Decimal = ZERO
    transport_cost: Decimal = ZERO
    services_cost: Decimal = ZERO
    subtotal: Decimal = ZERO
    margin_percent: Decimal = ZERO
    margin_amount: Decimal = ZERO
    discount: DiscountResult = field(default_factory=DiscountResult)
    total: Decimal = ZERO
    currency: str = 'USD'
    total_in_currency: Decimal = ZERO
    formatted_total: str = ''
    total_tours: int = 0
    over_budget: bool = False
    per_city: list = field(default_factory=list)
    services: dict = field(default_factory=dict)
    warnings: list = field(default_factory=list)

    @property
    def discount_amount(self) -> Decimal:
        return self.discount.discount_amount

    def to_dict(self):
        return {
            'success': True,
            'roomCost': float(self.room_cost),
            'toursCost': float(self.tours_cost),
            'receptionCost': float(self.reception_cost),
            'farewellCost': float(self.farewell_cost),
            'transportCost': float(self.transport_cost),
            'servicesCost': float(self.services_cost),
            'services': {k: float(v) for k, v in self.services.items()},
            'subtotal': float(self.subtotal),
            'marginPercent': float(self.margin_percent),
            'marginAmount': float(self.margin_amount),
            'discountAmount': float(self.discount_amount),
            'discount': self.discount.to_dict(),
            'total': float(self.total),
            'currency': self.currency,
            'totalInCurrency': float(self.total_in_currency),
            'formattedTotal': self.formatted_total,
            'totalTours': self.total_tours,
            'overBudget': self.over_budget,
            'perCity': [c.to_dict() for c in self.per_city],
            'warnings': list(self.warnings),
        }


# =====================================================
# PRICING ENGINE
# =====================================================

class PricingEngine:

    def __init__(
        self,
        catalog: CatalogStore,
        currencies: CurrencyTable = default_currency_table,
        resolver: Optional[DiscountResolver] = None,
        margin_policy: Optional[MarginPolicy] = None,
    ):
        self.catalog = catalog
        self.currencies = currencies
        self.resolver = resolver
        self.margin_policy = margin_policy or MarginPolicy()

    def price(self, itinerary: Itinerary, traveler: Traveler, now: Optional[datetime] = None) -> PriceQuote:
        """Full quote for the itinerary. Recomputed from scratch on every call."""
        itinerary = recompute_mandatory_tours(itinerary)
        quote = PriceQuote(currency=itinerary.currency, margin_percent=Decimal(str(self.margin_policy.percent)))

        transport = self.catalog.transport(itinerary.car_type)
        if itinerary.car_type and transport is None:
            quote.warnings.append(f"Transport class {itinerary.car_type!r} is not in the catalog")

        arrival_city = airport_city(itinerary.arrival_airport)
        departure_city = airport_city(itinerary.departure_airport)

        # Steps 1-2: rooms and tours, city by city
        for index, stay in enumerate(itinerary.cities):
            is_first = index == 0
            is_last = index == len(itinerary.cities) - 1
            breakdown = CityBreakdown(
                city=stay.city,
                nights=stay.nights,
                hotel=stay.hotel,
                tours=stay.tours,
                mandatory_tours=stay.mandatory_tours,
                airport_transfer=needs_airport_transfer(
                    index, stay.city, is_first, is_last, arrival_city, departure_city
                ),
            )
            breakdown.room_cost = self._room_cost(stay, quote.warnings)
            if transport is not None:
                breakdown.tours_cost = money((stay.tours + stay.mandatory_tours) * transport.daily_price)
            quote.per_city.append(breakdown)

        quote.room_cost = money(sum((c.room_cost for c in quote.per_city), ZERO))
        quote.tours_cost = money(sum((c.tours_cost for c in quote.per_city), ZERO))

        # Step 3: reception and farewell, evaluated once for the whole trip
        if transport is not None and itinerary.cities:
            first_city = normalize_city(itinerary.cities[0].city)
            last_city = normalize_city(itinerary.cities[-1].city)
            quote.reception_cost = money(transport.reception_fee(first_city == arrival_city))
            quote.farewell_cost = money(transport.farewell_fee(last_city == departure_city))
        quote.transport_cost = quote.reception_cost + quote.farewell_cost

        # Step 4: add-ons
        nights = total_city_nights(itinerary)
        quote.services = self._services_cost(itinerary.additional_services, traveler, nights, quote.warnings)
        quote.services_cost = money(sum(quote.services.values(), ZERO))

        # Steps 5-7
        quote.subtotal = quote.room_cost + quote.tours_cost + quote.transport_cost + quote.services_cost
        quote.margin_amount = self.margin_policy.margin_on(quote.room_cost, quote.tours_cost, quote.subtotal)

        if itinerary.discount_code and self.resolver is not None:
            discount_base = quote.subtotal
            if self.margin_policy.discount_after_margin:
                discount_base = quote.subtotal + quote.margin_amount
            quote.discount = self.resolver.resolve(
                itinerary.discount_code,
                discount_base,
                line_items={
                    'transport': quote.transport_cost,
                    'reception': quote.reception_cost,
                    'farewell': quote.farewell_cost,
                    'tours': quote.tours_cost,
                    'services': quote.services_cost,
                },
                now=now,
            )

        # Step 8
        quote.total = max(ZERO, quote.subtotal + quote.margin_amount - quote.discount_amount)

        if not self.currencies.is_supported(itinerary.currency):
            quote.warnings.append(f"Currency {itinerary.currency} is not supported, showing {self.currencies.base_code}")
        quote.total_in_currency = self.currencies.convert(quote.total, itinerary.currency)
        quote.formatted_total = self.currencies.format(quote.total_in_currency, itinerary.currency)

        quote.total_tours = total_tour_count(itinerary)
        quote.over_budget = bool(itinerary.budget and quote.total_in_currency > itinerary.budget)
        quote.warnings.extend(reconcile_nights(itinerary))

        logger.info(
            f"Quote: rooms={quote.room_cost} tours={quote.tours_cost} transport={quote.transport_cost} "
            f"services={quote.services_cost} margin={quote.margin_amount} "
            f"discount={quote.discount_amount} total={quote.total} {itinerary.currency}"
        )
        return quote

    # -------------------------------------------------
    # ROOMS
    # -------------------------------------------------

    def _room_cost(self, stay, warnings: list) -> Decimal:
        if not stay.hotel:
            return ZERO
        hotel = self.catalog.find_hotel(stay.hotel, stay.city)
        if hotel is None:
            warnings.append(f"{stay.city}: hotel {stay.hotel!r} is not in the catalog")
            return ZERO

        cost = ZERO
        for room in stay.room_selections:
            if not room.room_type:
                continue
            price = hotel.price_for(room.room_type)
            if price <= 0:
                warnings.append(f"{stay.city}: {hotel.name} has no price for {room.room_type}")
                continue
            cost += price * stay.nights
        return money(cost)

    # -------------------------------------------------
    # ADD-ON SERVICES
    # -------------------------------------------------

    def _services_cost(
        self,
        services: AdditionalServices,
        traveler: Traveler,
        nights: int,
        warnings: list,
    ) -> dict:
        headcount = traveler.adults + len(traveler.children)
        costs = {}
        for key, selection in services.selections():
            if not selection.enabled:
                continue
            service = self.catalog.service(key)
            if service is None:
                warnings.append(f"Service {key} is not in the catalog")
                costs[key] = ZERO
                continue
            costs[key] = money(service.price * self._service_multiplier(service.unit, selection, headcount, nights))
        return costs

    @staticmethod
    def _service_multiplier(unit: str, selection: ServiceSelection, headcount: int, nights: int) -> int:
        if unit == 'flat':
            return 1
        if unit == 'per_unit':
            return selection.quantity or 1
        persons = selection.persons or headcount
        if unit == 'per_person':
            return persons
        if unit == 'per_person_per_night':
            return persons * nights
        raise InvalidConfigurationError(f"Unknown service unit: {unit}")
