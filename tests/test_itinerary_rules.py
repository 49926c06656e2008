"""Tests for mandatory tours, stay length and transfer detection."""

from datetime import date

import pytest

from itinerary_rules import (
    airport_city,
    check_trip_length,
    mandatory_tours,
    minimum_nights,
    needs_airport_transfer,
    normalize_city,
    recompute_mandatory_tours,
    reconcile_nights,
    total_tour_count,
)
from models import CityStay, Itinerary


# --- mandatory_tours ---


@pytest.mark.parametrize("is_first,is_last", [
    (True, True), (True, False), (False, True), (False, False),
])
def test_batumi_always_needs_two_tours(is_first, is_last):
    assert mandatory_tours('Batumi', is_first, is_last, 'Batumi', 'Batumi') == 2


def test_batumi_as_entry_and_exit_point_still_needs_two():
    itinerary = Itinerary(
        arrival_airport='BUS', departure_airport='BUS',
        cities=[CityStay(city='Batumi', nights=4)],
    )
    assert recompute_mandatory_tours(itinerary).cities[0].mandatory_tours == 2


def test_arabic_batumi_alias_is_high_tour_city():
    assert mandatory_tours('باتومي', False, False, None, None) == 2


def test_first_city_at_arrival_airport_needs_no_tour():
    assert mandatory_tours('Tbilisi', True, False, airport_city('TBS'), None) == 0


def test_last_city_at_departure_airport_needs_no_tour():
    assert mandatory_tours('Kutaisi', False, True, 'Tbilisi', 'Kutaisi') == 0


def test_airport_city_in_the_middle_needs_one_tour():
    assert mandatory_tours('Tbilisi', False, False, 'Tbilisi', 'Tbilisi') == 1


def test_other_city_needs_one_tour():
    assert mandatory_tours('Borjomi', True, True, 'Tbilisi', 'Tbilisi') == 1


def test_recompute_ignores_user_supplied_value():
    itinerary = Itinerary(
        arrival_airport='TBS', departure_airport='KUT',
        cities=[
            CityStay(city='Tbilisi', nights=2, mandatory_tours=5),
            CityStay(city='Borjomi', nights=1),
            CityStay(city='Kutaisi', nights=2, mandatory_tours=3),
        ],
    )
    updated = recompute_mandatory_tours(itinerary)
    assert [c.mandatory_tours for c in updated.cities] == [0, 1, 0]
    # input untouched
    assert itinerary.cities[0].mandatory_tours == 5


def test_recompute_follows_airport_change():
    itinerary = Itinerary(
        arrival_airport='TBS', departure_airport='TBS',
        cities=[CityStay(city='Kutaisi', nights=3)],
    )
    assert recompute_mandatory_tours(itinerary).cities[0].mandatory_tours == 1
    moved = itinerary.model_copy(update={'arrival_airport': 'KUT'})
    assert recompute_mandatory_tours(moved).cities[0].mandatory_tours == 0


# --- airports / cities ---


def test_airport_city_mapping():
    assert airport_city('TBS') == 'Tbilisi'
    assert airport_city('bus') == 'Batumi'
    assert airport_city('KUT') == 'Kutaisi'
    assert airport_city('DXB') is None
    assert airport_city(None) is None


def test_normalize_city():
    assert normalize_city('تبليسي') == 'Tbilisi'
    assert normalize_city(' Gudauri ') == 'Gudauri'
    assert normalize_city(None) == ''


# --- stay length ---


def test_minimum_nights():
    assert minimum_nights(date(2025, 6, 1), date(2025, 6, 5)) == 4
    assert minimum_nights(None, date(2025, 6, 5)) == 0


def test_trip_of_three_nights_passes():
    assert check_trip_length(date(2025, 6, 1), date(2025, 6, 4)) == []


def test_trip_under_three_nights_is_blocked():
    errors = check_trip_length(date(2025, 6, 1), date(2025, 6, 3))
    assert errors and '3 nights' in errors[0]


def test_departure_before_arrival_is_blocked():
    assert check_trip_length(date(2025, 6, 5), date(2025, 6, 1))


def test_missing_dates_are_blocked():
    assert check_trip_length(None, None)


def test_reconcile_nights_is_advisory():
    itinerary = Itinerary(
        arrival_date=date(2025, 6, 1), departure_date=date(2025, 6, 6),
        cities=[CityStay(city='Tbilisi', nights=2), CityStay(city='Batumi', nights=2)],
    )
    warnings = reconcile_nights(itinerary)
    assert len(warnings) == 1
    assert '1 night' in warnings[0]


def test_reconcile_nights_matching():
    itinerary = Itinerary(
        arrival_date=date(2025, 6, 1), departure_date=date(2025, 6, 5),
        cities=[CityStay(city='Tbilisi', nights=2), CityStay(city='Batumi', nights=2)],
    )
    assert reconcile_nights(itinerary) == []


# --- transfers ---


def test_needs_airport_transfer():
    assert needs_airport_transfer(0, 'Tbilisi', True, False, 'Tbilisi', 'Batumi')
    assert needs_airport_transfer(2, 'Batumi', False, True, 'Tbilisi', 'Batumi')
    assert not needs_airport_transfer(1, 'Borjomi', False, False, 'Tbilisi', 'Batumi')
    assert not needs_airport_transfer(0, 'Kutaisi', True, False, 'Tbilisi', 'Batumi')


def test_total_tour_count_adds_transfer_legs():
    itinerary = Itinerary(cities=[
        CityStay(city='Tbilisi', nights=2, tours=1, mandatory_tours=0),
        CityStay(city='Batumi', nights=2, tours=2, mandatory_tours=2),
    ])
    assert total_tour_count(itinerary) == 7
    assert total_tour_count(Itinerary()) == 2
