"""
In-memory catalog snapshot: cities, hotels, transport classes and add-on
services.

The pricing engine only ever reads from a CatalogStore, never from the
database. The service layer reloads the snapshot after every admin
mutation so quotes always reflect the latest price lists.
"""

import logging
from typing import Iterable, Optional

from models import CityRecord, HotelRecord, ServicePrice, TransportClass
from itinerary_rules import normalize_city
from room_allocation import selectable_room_types as _selectable_room_types

logger = logging.getLogger(__name__)


def _as(model, items):
    return [i if isinstance(i, model) else model.model_validate(i) for i in items]


class CatalogStore:

    def __init__(
        self,
        hotels: Iterable[HotelRecord] = (),
        transports: Iterable[TransportClass] = (),
        services: Iterable[ServicePrice] = (),
        cities: Iterable[CityRecord] = (),
    ):
        self._load(hotels, transports, services, cities)

    @classmethod
    def from_records(cls, hotels=(), transports=(), services=(), cities=()):
        """Build a snapshot from plain dicts (rows or seed data)."""
        return cls(
            hotels=_as(HotelRecord, hotels),
            transports=_as(TransportClass, transports),
            services=_as(ServicePrice, services),
            cities=_as(CityRecord, cities),
        )

    def _load(self, hotels, transports, services, cities):
        # Inactive entries are not offered to customers.
        self.cities = [c for c in cities if c.is_active]
        self.hotels = [h for h in hotels if h.is_active]
        self.transports = [t for t in transports if t.is_active]
        self.services = [s for s in services if s.is_active]

        self._cities = {normalize_city(c.name): c for c in self.cities}
        self._hotels_by_id = {h.id: h for h in self.hotels if h.id}
        self._hotels_by_name = {}
        for hotel in self.hotels:
            key = (normalize_city(hotel.city), hotel.name.strip().lower())
            self._hotels_by_name.setdefault(key, hotel)
        self._transports = {t.type: t for t in self.transports}
        self._services = {s.key: s for s in self.services}

    def reload(self, store) -> None:
        """Replace the snapshot with the current active rows from the store."""
        self._load(
            store.list_hotels(),
            store.list_transports(),
            store.list_services(),
            store.list_cities(),
        )
        logger.info(
            f"Catalog reloaded: {len(self.cities)} cities, {len(self.hotels)} hotels, "
            f"{len(self.transports)} transport classes, {len(self.services)} services"
        )

    # -------------------------------------------------
    # CITIES / HOTELS
    # -------------------------------------------------

    def city_names(self) -> list[str]:
        return sorted(self._cities)

    def city(self, name: Optional[str]) -> Optional[CityRecord]:
        return self._cities.get(normalize_city(name))

    def is_active_city(self, name: Optional[str]) -> bool:
        return self.city(name) is not None

    def hotels_in_city(self, city: str) -> list[HotelRecord]:
        city = normalize_city(city)
        return [h for h in self.hotels if normalize_city(h.city) == city]

    def find_hotel(self, ref: Optional[str], city: Optional[str] = None) -> Optional[HotelRecord]:
        """
        Resolve a hotel reference from a city stay.

        The wizard stores either the hotel id or its display name. An id
        match wins; a name match is only accepted inside the stay's city.
        """
        if not ref:
            return None
        hotel = self._hotels_by_id.get(ref)
        if hotel is not None:
            return hotel
        name = ref.strip().lower()
        if city:
            return self._hotels_by_name.get((normalize_city(city), name))
        for (_, hotel_name), hotel in self._hotels_by_name.items():
            if hotel_name == name:
                return hotel
        return None

    def selectable_room_types(self, hotel_ref: Optional[str], city: Optional[str] = None) -> list[str]:
        return _selectable_room_types(self.find_hotel(hotel_ref, city))

    # -------------------------------------------------
    # TRANSPORT / SERVICES
    # -------------------------------------------------

    def transport(self, car_type: Optional[str]) -> Optional[TransportClass]:
        if not car_type:
            return None
        return self._transports.get(car_type)

    def service(self, key: str) -> Optional[ServicePrice]:
        return self._services.get(key)
