"""
Itinerary rules: mandatory tours, stay length and airport transfers.

Everything here is pure. `mandatory_tours` is a derived value and is
recomputed from the whole itinerary whenever the city list or an airport
changes; it is never taken from user input.
"""

from datetime import date
import logging

from models import Itinerary

logger = logging.getLogger(__name__)

MIN_TRIP_NIGHTS = 3

# Reception and farewell legs, always counted once each.
TRANSFER_LEGS = 2

# Cities that always carry two mandatory tours, whatever their position.
HIGH_TOUR_CITIES = frozenset({'Batumi'})

AIRPORT_CITIES = {
    'TBS': 'Tbilisi',
    'BUS': 'Batumi',
    'KUT': 'Kutaisi',
}

# Literal Arabic city names used by the wizard and older bookings.
CITY_ALIASES = {
    'تبليسي': 'Tbilisi',
    'باتومي': 'Batumi',
    'كوتايسي': 'Kutaisi',
    'بورجومي': 'Borjomi',
    'برجومي': 'Borjomi',
    'غودوري': 'Gudauri',
    'كوداوري': 'Gudauri',
    'كاخيتي': 'Kakheti',
    'داش باش': 'Dashbashi',
    'باكورياني': 'Bakuriani',
    'متسخيتا': 'Mtskheta',
    'زوغديدي': 'Zugdidi',
    'كازبيغي': 'Kazbegi',
    'سيغناغي': 'Sighnaghi',
}


def normalize_city(name: str | None) -> str:
    if not name:
        return ''
    name = name.strip()
    return CITY_ALIASES.get(name, name)


def airport_city(code: str | None) -> str | None:
    """City served by an airport code, None when the code is unknown."""
    if not code:
        return None
    return AIRPORT_CITIES.get(code.strip().upper())


# =====================================================
# MANDATORY TOURS
# =====================================================

def mandatory_tours(
    city: str,
    is_first: bool,
    is_last: bool,
    arrival_airport_city: str | None,
    departure_airport_city: str | None,
) -> int:
    """
    Mandatory tour count for one city stay.

    High-tour cities always need 2. Any other city needs 1, except the
    literal point of entry (first stop in the arrival airport's city) and
    the literal point of exit (last stop in the departure airport's city),
    which need none.
    """
    city = normalize_city(city)
    if city in HIGH_TOUR_CITIES:
        return 2
    if is_first and city and city == normalize_city(arrival_airport_city):
        return 0
    if is_last and city and city == normalize_city(departure_airport_city):
        return 0
    return 1


def recompute_mandatory_tours(itinerary: Itinerary) -> Itinerary:
    """Return a copy of the itinerary with every stay's mandatory tours refreshed."""
    arrival_city = airport_city(itinerary.arrival_airport)
    departure_city = airport_city(itinerary.departure_airport)
    last_index = len(itinerary.cities) - 1

    cities = [
        stay.model_copy(update={
            'mandatory_tours': mandatory_tours(
                stay.city,
                index == 0,
                index == last_index,
                arrival_city,
                departure_city,
            )
        })
        for index, stay in enumerate(itinerary.cities)
    ]
    return itinerary.model_copy(update={'cities': cities})


# =====================================================
# STAY LENGTH
# =====================================================

def minimum_nights(arrival_date: date | None, departure_date: date | None) -> int:
    """Nights between the two dates: inclusive day count minus one."""
    if not arrival_date or not departure_date:
        return 0
    inclusive_days = (departure_date - arrival_date).days + 1
    return max(0, inclusive_days - 1)


def check_trip_length(arrival_date: date | None, departure_date: date | None) -> list[str]:
    """Hard constraint: the whole trip must last at least MIN_TRIP_NIGHTS nights."""
    if not arrival_date or not departure_date:
        return ['Arrival and departure dates are required']
    if departure_date <= arrival_date:
        return ['Departure date must be after arrival date']
    nights = minimum_nights(arrival_date, departure_date)
    if nights < MIN_TRIP_NIGHTS:
        return [f'Trip must be at least {MIN_TRIP_NIGHTS} nights, got {nights}']
    return []


def total_city_nights(itinerary: Itinerary) -> int:
    return sum(stay.nights for stay in itinerary.cities)


def reconcile_nights(itinerary: Itinerary) -> list[str]:
    """Advisory only: city nights that do not add up to the trip length."""
    required = minimum_nights(itinerary.arrival_date, itinerary.departure_date)
    if not required or not itinerary.cities:
        return []
    selected = total_city_nights(itinerary)
    if selected < required:
        return [f'{required - selected} night(s) of the trip are not assigned to a city']
    if selected > required:
        return [f'City stays exceed the trip length by {selected - required} night(s)']
    return []


# =====================================================
# TRANSFERS
# =====================================================

def needs_airport_transfer(
    city_index: int,
    city_name: str,
    is_first: bool,
    is_last: bool,
    arrival_airport_city: str | None,
    departure_airport_city: str | None,
) -> bool:
    """True when this stay is the literal entry or exit point of the trip."""
    city = normalize_city(city_name)
    if not city:
        return False
    if is_first and city == normalize_city(arrival_airport_city):
        return True
    if is_last and city == normalize_city(departure_airport_city):
        return True
    return False


def total_tour_count(itinerary: Itinerary) -> int:
    """Displayed tour count: mandatory + optional tours plus the two transfer legs."""
    mandatory = sum(stay.mandatory_tours for stay in itinerary.cities)
    optional = sum(stay.tours for stay in itinerary.cities)
    return mandatory + optional + TRANSFER_LEGS
