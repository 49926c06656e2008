"""
Room occupancy calculator and allocation validator.

Children aged 6 and under share a bed and do not count towards room
capacity; older children count as adults.
"""

import math
from typing import Optional

from pydantic import BaseModel

from models import HotelRecord, Itinerary, ROOM_TYPES, Traveler

CHILD_FREE_BED_MAX_AGE = 6
LARGEST_ROOM_CAPACITY = 3

ROOM_CAPACITY = {
    'single': 1,
    'single_view': 1,
    'double_no_view': 2,
    'double_view': 2,
    'triple_no_view': 3,
    'triple_view': 3,
}


class AllocationResult(BaseModel):
    ok: bool
    reason: Optional[str] = None
    city: Optional[str] = None


def capacity_of(room_type: str) -> int:
    try:
        return ROOM_CAPACITY[room_type]
    except KeyError:
        raise ValueError(f"Unknown room type: {room_type!r}") from None


def bed_demand(traveler: Traveler) -> int:
    """Adults plus children old enough to need their own bed."""
    older_children = sum(1 for child in traveler.children if child.age > CHILD_FREE_BED_MAX_AGE)
    return traveler.adults + older_children


def minimum_rooms_needed(traveler_count: int) -> int:
    """Fewest rooms that can hold everyone, using the largest room category."""
    return max(1, math.ceil(traveler_count / LARGEST_ROOM_CAPACITY))


def selectable_room_types(hotel: HotelRecord | None) -> list[str]:
    """Room categories this hotel actually prices; unpriced ones are not offered."""
    if hotel is None:
        return []
    return [room_type for room_type in ROOM_TYPES if hotel.price_for(room_type) > 0]


class RoomAllocationValidator:
    """
    Checks the per-city room choices against the party size.

    Rules run in order and the first failure is reported:
      1. each city has exactly `room_count` room entries
      2. every entry has a room type
      3. the summed capacity in each city covers the travelers
      4. every chosen room type is priced by that city's hotel
    The last rule needs a catalog; without one it is skipped.
    """

    def __init__(self, catalog=None):
        self.catalog = catalog

    def validate(self, itinerary: Itinerary, traveler_count: int) -> AllocationResult:
        for stay in itinerary.cities:
            if len(stay.room_selections) != itinerary.room_count:
                return AllocationResult(
                    ok=False,
                    city=stay.city,
                    reason=(
                        f"{stay.city}: {len(stay.room_selections)} room(s) selected, "
                        f"{itinerary.room_count} required"
                    ),
                )

        for stay in itinerary.cities:
            for room in stay.room_selections:
                if not room.room_type:
                    return AllocationResult(
                        ok=False,
                        city=stay.city,
                        reason=f"{stay.city}: room {room.room_number} has no room type",
                    )

        for stay in itinerary.cities:
            capacity = sum(capacity_of(room.room_type) for room in stay.room_selections)
            if capacity < traveler_count:
                return AllocationResult(
                    ok=False,
                    city=stay.city,
                    reason=(
                        f"{stay.city}: rooms hold {capacity} traveler(s), "
                        f"{traveler_count} need a bed"
                    ),
                )

        if self.catalog is not None:
            for stay in itinerary.cities:
                hotel = self.catalog.find_hotel(stay.hotel, stay.city)
                offered = set(selectable_room_types(hotel))
                for room in stay.room_selections:
                    if room.room_type not in offered:
                        return AllocationResult(
                            ok=False,
                            city=stay.city,
                            reason=(
                                f"{stay.city}: room type {room.room_type} "
                                f"is not offered by the selected hotel"
                            ),
                        )

        return AllocationResult(ok=True)


def validate(itinerary: Itinerary, traveler_count: int, catalog=None) -> AllocationResult:
    return RoomAllocationValidator(catalog).validate(itinerary, traveler_count)
