from datetime import date, datetime, timezone
from decimal import Decimal
import io
import uuid

import pytest
from werkzeug.datastructures import FileStorage

from catalog import CatalogStore
from exceptions import (
    ComponentNotFoundError,
    DiscountExhaustedError,
    DocumentAttachedError,
    DuplicateReferenceError,
)
from file_storage import LocalFileStorage
from models import CityRecord, DiscountCode, HotelRecord, ServicePrice, TransportClass
from service import BookingService

ECONOMY = 'سيارة اقتصادية'
VAN = 'فان'

FIXED_NOW = datetime(2025, 5, 20, 12, 0, tzinfo=timezone.utc)


def make_cities():
    return [
        CityRecord(id='c-tbs', name='Tbilisi', available_tours=['Old Town', 'Mtskheta']),
        CityRecord(id='c-bus', name='Batumi', tour_prices={'Botanical Garden': Decimal('40')}),
        CityRecord(id='c-kut', name='Kutaisi'),
        CityRecord(id='c-gud', name='Gudauri'),
        CityRecord(id='c-zug', name='Zugdidi', is_active=False),
    ]


def make_hotels():
    return [
        HotelRecord(
            id='h-tbs', name='Tbilisi Marriott', city='Tbilisi',
            single_price=Decimal('90'), single_view_price=Decimal('110'),
            double_without_view_price=Decimal('70'), double_view_price=Decimal('80'),
            triple_without_view_price=Decimal('140'), triple_view_price=Decimal('160'),
            rating=5,
        ),
        HotelRecord(
            id='h-bus', name='Hilton Batumi', city='Batumi',
            single_price=Decimal('100'),
            double_without_view_price=Decimal('110'), double_view_price=Decimal('140'),
            triple_without_view_price=Decimal('150'),
            rating=5,
        ),
        HotelRecord(
            id='h-kut', name='Best Western Kutaisi', city='Kutaisi',
            single_price=Decimal('55'), double_without_view_price=Decimal('65'),
            triple_without_view_price=Decimal('90'),
            rating=4,
        ),
        HotelRecord(
            id='h-old', name='Closed Inn', city='Tbilisi',
            double_view_price=Decimal('10'), is_active=False,
        ),
    ]


def make_transports():
    return [
        TransportClass(
            id='t-eco', type=ECONOMY, capacity='1-3', daily_price=Decimal('50'),
            reception_same_city_price=Decimal('30'), reception_different_city_price=Decimal('80'),
            farewell_same_city_price=Decimal('30'), farewell_different_city_price=Decimal('80'),
        ),
        TransportClass(
            id='t-van', type=VAN, capacity='1-8', daily_price=Decimal('120'),
            reception_same_city_price=Decimal('60'), reception_different_city_price=Decimal('150'),
            farewell_same_city_price=Decimal('60'), farewell_different_city_price=Decimal('150'),
        ),
    ]


def make_services():
    return [
        ServicePrice(id='s-1', key='travel_insurance', name='تأمين السفر', price=Decimal('5'), unit='per_person_per_night'),
        ServicePrice(id='s-2', key='phone_lines', name='خطوط اتصال', price=Decimal('15'), unit='per_unit'),
        ServicePrice(id='s-3', key='room_decoration', name='تزيين الغرفة', price=Decimal('50'), unit='flat'),
        ServicePrice(id='s-4', key='airport_reception', name='استقبال VIP', price=Decimal('25'), unit='per_person'),
        ServicePrice(id='s-5', key='photo_session', name='جلسة تصوير', price=Decimal('100'), unit='per_unit'),
    ]


def make_discounts():
    return [
        DiscountCode(id='d-10', code='10PERCENT', percentage=Decimal('10'), max_uses=100),
        DiscountCode(id='d-ride', code='FREERIDE', waived_item='transport'),
        DiscountCode(
            id='d-old', code='SUMMER2020', percentage=Decimal('20'),
            expires_at=datetime(2020, 9, 1, tzinfo=timezone.utc),
        ),
        DiscountCode(id='d-off', code='PAUSED', percentage=Decimal('15'), is_active=False),
        DiscountCode(id='d-full', code='LASTONE', percentage=Decimal('25'), max_uses=1, current_uses=1),
    ]


class FakeStore:
    """In-memory stand-in for BookingStore with the same method surface."""

    def __init__(self):
        self.cities = {c.id: c for c in make_cities()}
        self.hotels = {h.id: h for h in make_hotels()}
        self.transports = {t.id: t for t in make_transports()}
        self.services = {s.id: s for s in make_services()}
        self.discounts = {d.id: d for d in make_discounts()}
        self.bookings = {}
        self.discount_usage = []

    # catalog

    def list_cities(self, include_inactive=False):
        return [c for c in self.cities.values() if include_inactive or c.is_active]

    def create_city(self, city):
        created = city.model_copy(update={'id': str(uuid.uuid4())})
        self.cities[created.id] = created
        return created

    def update_city(self, city_id, city):
        if city_id not in self.cities:
            raise ComponentNotFoundError(f"cities entry {city_id} not found")
        self.cities[city_id] = city.model_copy(update={'id': city_id})
        return self.cities[city_id]

    def set_city_active(self, city_id, active):
        if city_id not in self.cities:
            raise ComponentNotFoundError(f"cities entry {city_id} not found")
        self.cities[city_id] = self.cities[city_id].model_copy(update={'is_active': active})

    def delete_city(self, city_id):
        if self.cities.pop(city_id, None) is None:
            raise ComponentNotFoundError(f"cities entry {city_id} not found")

    def list_hotels(self, city=None, include_inactive=False):
        return [
            h for h in self.hotels.values()
            if (include_inactive or h.is_active) and (city is None or h.city == city)
        ]

    def list_transports(self, include_inactive=False):
        return [t for t in self.transports.values() if include_inactive or t.is_active]

    def list_services(self, include_inactive=False):
        return [s for s in self.services.values() if include_inactive or s.is_active]

    def create_hotel(self, hotel):
        created = hotel.model_copy(update={'id': str(uuid.uuid4())})
        self.hotels[created.id] = created
        return created

    def update_hotel(self, hotel_id, hotel):
        if hotel_id not in self.hotels:
            raise ComponentNotFoundError(f"hotels entry {hotel_id} not found")
        self.hotels[hotel_id] = hotel.model_copy(update={'id': hotel_id})
        return self.hotels[hotel_id]

    def set_hotel_active(self, hotel_id, active):
        if hotel_id not in self.hotels:
            raise ComponentNotFoundError(f"hotels entry {hotel_id} not found")
        self.hotels[hotel_id] = self.hotels[hotel_id].model_copy(update={'is_active': active})

    def delete_hotel(self, hotel_id):
        if self.hotels.pop(hotel_id, None) is None:
            raise ComponentNotFoundError(f"hotels entry {hotel_id} not found")

    # discounts

    def find_discount_by_code(self, code):
        for discount in self.discounts.values():
            if discount.code == code.strip().upper():
                return discount
        return None

    def list_discounts(self):
        return list(self.discounts.values())

    def create_discount(self, discount):
        created = discount.model_copy(update={'id': str(uuid.uuid4())})
        self.discounts[created.id] = created
        return created

    # bookings

    def create_booking(self, record, discount_code_id=None):
        if any(b.reference_number == record.reference_number for b in self.bookings.values()):
            raise DuplicateReferenceError(f"Reference {record.reference_number} already exists")
        if any(self.is_file_attached(doc.id) for doc in record.documents):
            raise DocumentAttachedError('A document is already attached to another booking')
        if discount_code_id:
            discount = self.discounts[discount_code_id]
            if discount.max_uses is not None and discount.current_uses >= discount.max_uses:
                raise DiscountExhaustedError(f"Discount code {discount.code} is no longer available")
            self.discounts[discount_code_id] = discount.model_copy(
                update={'current_uses': discount.current_uses + 1}
            )
        saved = record.model_copy(update={'id': str(uuid.uuid4()), 'created_at': FIXED_NOW})
        self.bookings[saved.id] = saved
        if discount_code_id:
            self.discount_usage.append((saved.id, discount_code_id))
        return saved

    def is_file_attached(self, file_id):
        return any(doc.id == file_id for b in self.bookings.values() for doc in b.documents)

    def get_booking_by_reference(self, reference):
        for booking in self.bookings.values():
            if booking.reference_number == reference.strip().upper():
                return booking
        return None

    def list_bookings(self, status=None):
        return [b for b in self.bookings.values() if status is None or b.status == status]

    def update_booking_status(self, booking_id, status):
        if booking_id not in self.bookings:
            raise ComponentNotFoundError(f"Booking {booking_id} not found")
        self.bookings[booking_id] = self.bookings[booking_id].model_copy(update={'status': status})
        return self.bookings[booking_id]

    def delete_booking(self, booking_id):
        booking = self.bookings.pop(booking_id, None)
        if booking is None:
            raise ComponentNotFoundError(f"Booking {booking_id} not found")
        return booking.documents


class FakeNotifier:

    def __init__(self, ok=True):
        self.ok = ok
        self.sent = []

    def send_booking_email(self, record):
        self.sent.append(record.reference_number)
        return self.ok

    def whatsapp_link(self, record, phone=None):
        return f"https://wa.me/995500000000?text={record.reference_number}"


@pytest.fixture
def catalog():
    return CatalogStore(make_hotels(), make_transports(), make_services(), make_cities())


@pytest.fixture
def fake_store():
    return FakeStore()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def file_storage(tmp_path):
    return LocalFileStorage(tmp_path / 'uploads', base_url='/uploads', max_bytes=5 * 1024 * 1024)


@pytest.fixture
def booking_service(fake_store, notifier, file_storage):
    service = BookingService(
        fake_store,
        file_storage=file_storage,
        notifier=notifier,
        clock=lambda: FIXED_NOW,
    )
    return service.start()


def upload(storage, draft_id, kind, file_name, content_type, data=b'%PDF-1.4 scan'):
    return storage.upload(draft_id, FileStorage(io.BytesIO(data), file_name, content_type=content_type), kind)


@pytest.fixture
def make_payload(file_storage):
    """
    Build a complete two-city booking (Tbilisi then Batumi, in via TBS, out
    via BUS) whose passport and ticket are real uploads under `draft_id`.
    """
    def _make(draft_id='draft-1'):
        passport = upload(file_storage, draft_id, 'passport', 'passport.pdf', 'application/pdf')
        ticket = upload(file_storage, draft_id, 'ticket', 'ticket.png', 'image/png', b'\x89PNG ticket')
        return {
            'draftId': draft_id,
            'traveler': {'adults': 2, 'children': []},
            'itinerary': {
                'arrivalAirport': 'TBS',
                'departureAirport': 'BUS',
                'arrivalDate': date(2025, 6, 1).isoformat(),
                'departureDate': date(2025, 6, 5).isoformat(),
                'roomCount': 1,
                'carType': ECONOMY,
                'currency': 'USD',
                'cities': [
                    {
                        'city': 'Tbilisi', 'nights': 2, 'hotel': 'h-tbs',
                        'roomSelections': [{'roomNumber': 1, 'roomType': 'double_view'}],
                    },
                    {
                        'city': 'Batumi', 'nights': 2, 'hotel': 'h-bus',
                        'roomSelections': [{'roomNumber': 1, 'roomType': 'double_no_view'}],
                    },
                ],
            },
            'customer': {'customerName': 'أحمد علي', 'phoneNumber': '0501234567'},
            'documents': [passport.to_json_dict(), ticket.to_json_dict()],
        }
    return _make


@pytest.fixture
def wizard_payload(make_payload):
    return make_payload('draft-1')
