"""
Typed booking and catalog structures.

Nested booking data (children, selected cities, additional services) is
stored as JSON. These models are the single shape for that JSON: the
camelCase aliases match the stored blobs and the wizard payloads, and
unknown or malformed fields are rejected instead of silently dropped.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


RoomType = Literal[
    'single',
    'single_view',
    'double_no_view',
    'double_view',
    'triple_no_view',
    'triple_view',
]

ROOM_TYPES: tuple[str, ...] = (
    'single',
    'single_view',
    'double_no_view',
    'double_view',
    'triple_no_view',
    'triple_view',
)

# Keys used by older wizard payloads and stored bookings.
LEGACY_ROOM_TYPES = {
    'single_v': 'single_view',
    'dbl_wv': 'double_no_view',
    'dbl_v': 'double_view',
    'trbl_wv': 'triple_no_view',
    'trbl_v': 'triple_view',
}

BookingStatus = Literal['pending', 'confirmed', 'completed', 'cancelled']
BOOKING_STATUSES: tuple[str, ...] = ('pending', 'confirmed', 'completed', 'cancelled')

DocumentKind = Literal['passport', 'ticket']
ServiceUnit = Literal['flat', 'per_unit', 'per_person', 'per_person_per_night']
WaivableItem = Literal['transport', 'reception', 'farewell', 'tours', 'services']


class ApiModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra='forbid',
    )

    def to_json_dict(self) -> dict:
        return self.model_dump(mode='json', by_alias=True)


# =====================================================
# TRAVELERS
# =====================================================

class Child(ApiModel):
    age: int = Field(ge=0, le=17)


class Traveler(ApiModel):
    adults: int = Field(default=1, ge=1)
    children: list[Child] = Field(default_factory=list)


# =====================================================
# ITINERARY
# =====================================================

class RoomSelection(ApiModel):
    room_number: int = Field(ge=1)
    room_type: RoomType | Literal[''] = ''

    @field_validator('room_type', mode='before')
    @classmethod
    def _normalize_legacy_key(cls, value):
        if value is None:
            return ''
        if isinstance(value, str):
            return LEGACY_ROOM_TYPES.get(value, value)
        return value


class CityStay(ApiModel):
    city: str
    nights: int = Field(default=1, ge=1)
    hotel: Optional[str] = None
    tours: int = Field(default=0, ge=0)
    mandatory_tours: int = Field(default=0, ge=0)
    room_selections: list[RoomSelection] = Field(default_factory=list)


class ServiceSelection(ApiModel):
    enabled: bool = False
    quantity: int = Field(default=0, ge=0)
    persons: int = Field(default=0, ge=0)


class AdditionalServices(ApiModel):
    travel_insurance: ServiceSelection = Field(default_factory=ServiceSelection)
    phone_lines: ServiceSelection = Field(default_factory=ServiceSelection)
    room_decoration: ServiceSelection = Field(default_factory=ServiceSelection)
    airport_reception: ServiceSelection = Field(default_factory=ServiceSelection)
    photo_session: ServiceSelection = Field(default_factory=ServiceSelection)
    flower_reception: ServiceSelection = Field(default_factory=ServiceSelection)

    def selections(self) -> list[tuple[str, ServiceSelection]]:
        """(catalog service key, selection) pairs in display order."""
        return [(name, getattr(self, name)) for name in type(self).model_fields]


class Itinerary(ApiModel):
    cities: list[CityStay] = Field(default_factory=list)
    arrival_airport: Optional[str] = None
    departure_airport: Optional[str] = None
    arrival_date: Optional[date] = None
    departure_date: Optional[date] = None
    room_count: int = Field(default=1, ge=1)
    car_type: Optional[str] = None
    currency: str = 'USD'
    budget: Decimal = Decimal('0')
    additional_services: AdditionalServices = Field(default_factory=AdditionalServices)
    discount_code: Optional[str] = None

    @field_validator('currency', mode='before')
    @classmethod
    def _upper_currency(cls, value):
        return value.strip().upper() if isinstance(value, str) else value

    @field_validator('arrival_airport', 'departure_airport', mode='before')
    @classmethod
    def _upper_airport(cls, value):
        if isinstance(value, str):
            return value.strip().upper() or None
        return value


# =====================================================
# CATALOG
# =====================================================

class CityRecord(ApiModel):
    id: Optional[str] = None
    name: str
    description: str = ''
    available_tours: list[str] = Field(default_factory=list)
    tour_prices: dict[str, Decimal] = Field(default_factory=dict)
    is_active: bool = True

    @field_validator('name')
    @classmethod
    def _strip_name(cls, value):
        value = value.strip()
        if not value:
            raise ValueError('city name is required')
        return value


class HotelRecord(ApiModel):
    id: Optional[str] = None
    name: str
    city: str
    single_price: Optional[Decimal] = None
    single_view_price: Optional[Decimal] = None
    double_without_view_price: Optional[Decimal] = None
    double_view_price: Optional[Decimal] = None
    triple_without_view_price: Optional[Decimal] = None
    triple_view_price: Optional[Decimal] = None
    rating: Optional[int] = Field(default=None, ge=1, le=5)
    distance_from_center: Optional[Decimal] = None
    amenities: list[str] = Field(default_factory=list)
    is_active: bool = True

    def price_for(self, room_type: str) -> Decimal:
        """Per-night price for a room category, 0 when not offered."""
        column = HOTEL_PRICE_COLUMNS.get(room_type)
        if not column:
            return Decimal('0')
        return getattr(self, column) or Decimal('0')


HOTEL_PRICE_COLUMNS = {
    'single': 'single_price',
    'single_view': 'single_view_price',
    'double_no_view': 'double_without_view_price',
    'double_view': 'double_view_price',
    'triple_no_view': 'triple_without_view_price',
    'triple_view': 'triple_view_price',
}


class TransportClass(ApiModel):
    id: Optional[str] = None
    type: str
    capacity: str = ''
    daily_price: Decimal = Field(ge=0)
    reception_same_city_price: Decimal = Field(default=Decimal('0'), ge=0)
    reception_different_city_price: Decimal = Field(default=Decimal('0'), ge=0)
    farewell_same_city_price: Decimal = Field(default=Decimal('0'), ge=0)
    farewell_different_city_price: Decimal = Field(default=Decimal('0'), ge=0)
    is_active: bool = True

    def reception_fee(self, same_city: bool) -> Decimal:
        return self.reception_same_city_price if same_city else self.reception_different_city_price

    def farewell_fee(self, same_city: bool) -> Decimal:
        return self.farewell_same_city_price if same_city else self.farewell_different_city_price


class ServicePrice(ApiModel):
    id: Optional[str] = None
    key: str
    name: str
    price: Decimal = Field(ge=0)
    unit: ServiceUnit = 'flat'
    description: str = ''
    is_active: bool = True


class DiscountCode(ApiModel):
    id: Optional[str] = None
    code: str
    percentage: Optional[Decimal] = Field(default=None, ge=1, le=100)
    waived_item: Optional[WaivableItem] = None
    expires_at: Optional[datetime] = None
    max_uses: Optional[int] = Field(default=None, ge=1)
    current_uses: int = Field(default=0, ge=0)
    is_active: bool = True

    @field_validator('code', mode='before')
    @classmethod
    def _upper_code(cls, value):
        return value.strip().upper() if isinstance(value, str) else value

    @model_validator(mode='after')
    def _one_policy(self):
        if (self.percentage is None) == (self.waived_item is None):
            raise ValueError('a discount code needs exactly one of percentage or waived_item')
        return self


# =====================================================
# BOOKINGS
# =====================================================

class CustomerIdentity(ApiModel):
    customer_name: str = ''
    phone_number: str = ''
    email: Optional[str] = None


class UploadedDocument(ApiModel):
    id: str
    kind: DocumentKind
    file_name: str
    url: str
    mime_type: str
    size: int = Field(ge=0)


class BookingDraft(ApiModel):
    """Wizard state for one in-progress booking."""

    model_config = ConfigDict(frozen=True)

    draft_id: str
    traveler: Traveler = Field(default_factory=Traveler)
    itinerary: Itinerary = Field(default_factory=Itinerary)
    customer: CustomerIdentity = Field(default_factory=CustomerIdentity)
    documents: list[UploadedDocument] = Field(default_factory=list)


class BookingRecord(ApiModel):
    id: Optional[str] = None
    reference_number: str
    customer_name: str
    phone_number: str
    email: Optional[str] = None
    adults: int = Field(ge=1)
    children: list[Child] = Field(default_factory=list)
    arrival_date: date
    departure_date: date
    arrival_airport: Optional[str] = None
    departure_airport: Optional[str] = None
    rooms: int = Field(ge=1)
    budget: Decimal = Decimal('0')
    currency: str = 'USD'
    car_type: Optional[str] = None
    room_types: list[str] = Field(default_factory=list)
    selected_cities: list[CityStay] = Field(default_factory=list)
    additional_services: AdditionalServices = Field(default_factory=AdditionalServices)
    total_cost: Decimal = Decimal('0')
    discount_amount: Decimal = Decimal('0')
    discount_coupon: Optional[str] = None
    status: BookingStatus = 'pending'
    documents: list[UploadedDocument] = Field(default_factory=list)
    created_at: Optional[datetime] = None

    def public_dict(self) -> dict:
        """Lookup view for anyone holding the reference: no document ids or URLs."""
        return self.model_dump(mode='json', by_alias=True, exclude={'documents'})
