"""
PostgreSQL persistence for the catalog, discount codes and bookings.

Every call opens its own connection, commits or rolls back, and closes it.
Driver errors are logged and re-raised as StorageError so the HTTP layer
can report them as retryable.
"""

import json
import logging
from typing import Optional

import psycopg2
import psycopg2.errors
from psycopg2.extras import RealDictCursor

import config
from booking_assembler import decode_record, encode_record
from exceptions import (
    ComponentNotFoundError,
    DiscountExhaustedError,
    DocumentAttachedError,
    DuplicateReferenceError,
    StorageError,
)
from models import (
    BOOKING_STATUSES,
    BookingRecord,
    CityRecord,
    DiscountCode,
    HotelRecord,
    ServicePrice,
    TransportClass,
    UploadedDocument,
)

logger = logging.getLogger(__name__)


# Columns written by create/update for each catalog table.
CITY_COLUMNS = ('name', 'description', 'available_tours', 'tour_prices', 'is_active')
HOTEL_COLUMNS = (
    'name', 'city',
    'single_price', 'single_view_price',
    'double_without_view_price', 'double_view_price',
    'triple_without_view_price', 'triple_view_price',
    'rating', 'distance_from_center', 'amenities', 'is_active',
)
TRANSPORT_COLUMNS = (
    'type', 'capacity', 'daily_price',
    'reception_same_city_price', 'reception_different_city_price',
    'farewell_same_city_price', 'farewell_different_city_price',
    'is_active',
)
SERVICE_COLUMNS = ('key', 'name', 'price', 'unit', 'description', 'is_active')
DISCOUNT_COLUMNS = (
    'code', 'percentage', 'waived_item', 'expires_at', 'max_uses', 'is_active',
)

BOOKING_COLUMNS = (
    'reference_number', 'customer_name', 'phone_number', 'email',
    'adults', 'children', 'arrival_date', 'departure_date',
    'arrival_airport', 'departure_airport', 'rooms', 'budget', 'currency',
    'car_type', 'room_types', 'selected_cities', 'additional_services',
    'total_cost', 'discount_amount', 'discount_coupon', 'status',
)

JSON_CATALOG_COLUMNS = ('amenities', 'available_tours', 'tour_prices')

REFERENCE_CONSTRAINT = 'uq_bookings_reference'

CATALOG_TABLES = {
    'cities': (CityRecord, CITY_COLUMNS, 'name'),
    'hotels': (HotelRecord, HOTEL_COLUMNS, 'city, name'),
    'transport': (TransportClass, TRANSPORT_COLUMNS, 'daily_price'),
    'services': (ServicePrice, SERVICE_COLUMNS, 'name'),
    'discount_codes': (DiscountCode, DISCOUNT_COLUMNS, 'created_at DESC'),
}


def _to_model(model, row):
    data = {k: v for k, v in dict(row).items() if k in model.model_fields}
    if data.get('id') is not None:
        data['id'] = str(data['id'])
    return model.model_validate(data)


def _column_value(column, value):
    if column == 'tour_prices':
        return json.dumps({k: str(v) for k, v in (value or {}).items()}, ensure_ascii=False)
    if column in JSON_CATALOG_COLUMNS:
        return json.dumps(value or [], ensure_ascii=False)
    return value


class BookingStore:

    def __init__(self, db_config: Optional[dict] = None):
        self.db_config = db_config or config.DB_CONFIG

    def connect(self):
        try:
            return psycopg2.connect(**self.db_config)
        except psycopg2.Error as e:
            logger.error(f"Database connection failed: {e}", exc_info=True)
            raise StorageError('Database is unavailable, please retry') from e

    def _query(self, sql, params=(), fetch='all', commit=False):
        """Run one statement on its own connection."""
        db = self.connect()
        try:
            cur = db.cursor(cursor_factory=RealDictCursor)
            cur.execute(sql, params)
            if fetch == 'all':
                result = cur.fetchall()
            elif fetch == 'one':
                result = cur.fetchone()
            else:
                result = cur.rowcount
            if commit:
                db.commit()
            return result
        except psycopg2.Error as e:
            db.rollback()
            logger.error(f"Query failed: {e}", exc_info=True)
            raise StorageError('Database error, please retry') from e
        finally:
            db.close()

    # =====================================================
    # GENERIC CATALOG CRUD
    # =====================================================

    def _list(self, table, include_inactive=False, where='', params=()):
        model, _, order = CATALOG_TABLES[table]
        sql = f"SELECT * FROM {table} WHERE deleted=FALSE"
        if not include_inactive:
            sql += " AND is_active=TRUE"
        sql += where + f" ORDER BY {order}"
        return [_to_model(model, row) for row in self._query(sql, params)]

    def _get(self, table, item_id):
        model, _, _ = CATALOG_TABLES[table]
        row = self._query(
            f"SELECT * FROM {table} WHERE id=%s AND deleted=FALSE", (item_id,), fetch='one'
        )
        if not row:
            raise ComponentNotFoundError(f"{table} entry {item_id} not found")
        return _to_model(model, row)

    def _create(self, table, item):
        model, columns, _ = CATALOG_TABLES[table]
        values = [_column_value(c, getattr(item, c)) for c in columns]
        row = self._query(
            f"INSERT INTO {table} ({', '.join(columns)}) "
            f"VALUES ({', '.join(['%s'] * len(columns))}) RETURNING *",
            values, fetch='one', commit=True,
        )
        logger.info(f"Created {table} entry {row['id']}")
        return _to_model(model, row)

    def _update(self, table, item_id, item):
        model, columns, _ = CATALOG_TABLES[table]
        assignments = ', '.join(f"{c}=%s" for c in columns)
        values = [_column_value(c, getattr(item, c)) for c in columns]
        row = self._query(
            f"UPDATE {table} SET {assignments}, updated_at=now() "
            f"WHERE id=%s AND deleted=FALSE RETURNING *",
            values + [item_id], fetch='one', commit=True,
        )
        if not row:
            raise ComponentNotFoundError(f"{table} entry {item_id} not found")
        return _to_model(model, row)

    def _set_active(self, table, item_id, active):
        count = self._query(
            f"UPDATE {table} SET is_active=%s, updated_at=now() WHERE id=%s AND deleted=FALSE",
            (bool(active), item_id), fetch=None, commit=True,
        )
        if not count:
            raise ComponentNotFoundError(f"{table} entry {item_id} not found")

    def _soft_delete(self, table, item_id):
        count = self._query(
            f"UPDATE {table} SET deleted=TRUE, is_active=FALSE, updated_at=now() "
            f"WHERE id=%s AND deleted=FALSE",
            (item_id,), fetch=None, commit=True,
        )
        if not count:
            raise ComponentNotFoundError(f"{table} entry {item_id} not found")
        logger.info(f"Soft-deleted {table} entry {item_id}")

    # =====================================================
    # CITIES
    # =====================================================

    def list_cities(self, include_inactive=False) -> list[CityRecord]:
        return self._list('cities', include_inactive)

    def create_city(self, city: CityRecord) -> CityRecord:
        return self._create('cities', city)

    def update_city(self, city_id, city: CityRecord) -> CityRecord:
        return self._update('cities', city_id, city)

    def set_city_active(self, city_id, active: bool):
        self._set_active('cities', city_id, active)

    def delete_city(self, city_id):
        self._soft_delete('cities', city_id)

    # =====================================================
    # HOTELS
    # =====================================================

    def list_hotels(self, city=None, include_inactive=False) -> list[HotelRecord]:
        if city:
            return self._list('hotels', include_inactive, ' AND city=%s', (city,))
        return self._list('hotels', include_inactive)

    def get_hotel(self, hotel_id) -> HotelRecord:
        return self._get('hotels', hotel_id)

    def create_hotel(self, hotel: HotelRecord) -> HotelRecord:
        return self._create('hotels', hotel)

    def update_hotel(self, hotel_id, hotel: HotelRecord) -> HotelRecord:
        return self._update('hotels', hotel_id, hotel)

    def set_hotel_active(self, hotel_id, active: bool):
        self._set_active('hotels', hotel_id, active)

    def delete_hotel(self, hotel_id):
        self._soft_delete('hotels', hotel_id)

    # =====================================================
    # TRANSPORT
    # =====================================================

    def list_transports(self, include_inactive=False) -> list[TransportClass]:
        return self._list('transport', include_inactive)

    def create_transport(self, transport: TransportClass) -> TransportClass:
        return self._create('transport', transport)

    def update_transport(self, transport_id, transport: TransportClass) -> TransportClass:
        return self._update('transport', transport_id, transport)

    def set_transport_active(self, transport_id, active: bool):
        self._set_active('transport', transport_id, active)

    def delete_transport(self, transport_id):
        self._soft_delete('transport', transport_id)

    # =====================================================
    # SERVICES
    # =====================================================

    def list_services(self, include_inactive=False) -> list[ServicePrice]:
        return self._list('services', include_inactive)

    def create_service(self, service: ServicePrice) -> ServicePrice:
        return self._create('services', service)

    def update_service(self, service_id, service: ServicePrice) -> ServicePrice:
        return self._update('services', service_id, service)

    def set_service_active(self, service_id, active: bool):
        self._set_active('services', service_id, active)

    def delete_service(self, service_id):
        self._soft_delete('services', service_id)

    # =====================================================
    # DISCOUNT CODES
    # =====================================================

    def find_discount_by_code(self, code: str) -> Optional[DiscountCode]:
        row = self._query(
            "SELECT * FROM discount_codes WHERE upper(code)=upper(%s) AND deleted=FALSE",
            (code.strip(),), fetch='one',
        )
        return _to_model(DiscountCode, row) if row else None

    def list_discounts(self) -> list[DiscountCode]:
        return self._list('discount_codes', include_inactive=True)

    def create_discount(self, discount: DiscountCode) -> DiscountCode:
        return self._create('discount_codes', discount)

    def update_discount(self, discount_id, discount: DiscountCode) -> DiscountCode:
        return self._update('discount_codes', discount_id, discount)

    def delete_discount(self, discount_id):
        self._soft_delete('discount_codes', discount_id)

    # =====================================================
    # BOOKINGS
    # =====================================================

    def create_booking(self, record: BookingRecord, discount_code_id=None) -> BookingRecord:
        """
        Persist a finalized booking in a single transaction.

        When a discount is applied its use counter is incremented with a
        conditional UPDATE, so two sessions racing for the last use of a
        capped code cannot both succeed. The loser gets
        DiscountExhaustedError and nothing is written.
        """
        row = encode_record(record)
        db = self.connect()
        try:
            cur = db.cursor(cursor_factory=RealDictCursor)

            if discount_code_id:
                cur.execute(
                    """UPDATE discount_codes SET current_uses = current_uses + 1, updated_at=now()
                       WHERE id=%s AND is_active=TRUE AND deleted=FALSE
                         AND (max_uses IS NULL OR current_uses < max_uses)
                         AND (expires_at IS NULL OR expires_at > now())
                       RETURNING current_uses""",
                    (discount_code_id,)
                )
                if cur.fetchone() is None:
                    db.rollback()
                    raise DiscountExhaustedError(f"Discount code {record.discount_coupon} is no longer available")

            cur.execute(
                f"""INSERT INTO bookings ({', '.join(BOOKING_COLUMNS)})
                    VALUES ({', '.join(['%s'] * len(BOOKING_COLUMNS))})
                    RETURNING id, created_at""",
                [row[c] for c in BOOKING_COLUMNS]
            )
            inserted = cur.fetchone()
            booking_id = str(inserted['id'])

            if discount_code_id:
                cur.execute(
                    "INSERT INTO discount_code_usage (booking_id, discount_code_id) VALUES (%s, %s)",
                    (booking_id, discount_code_id)
                )

            for doc in record.documents:
                cur.execute(
                    """INSERT INTO booking_files
                       (id, booking_id, file_name, file_type, file_url, file_size, mime_type)
                       VALUES (%s,%s,%s,%s,%s,%s,%s)""",
                    (doc.id, booking_id, doc.file_name, doc.kind, doc.url, doc.size, doc.mime_type)
                )

            db.commit()
            logger.info(f"Booking {record.reference_number} saved as {booking_id}")
            return record.model_copy(update={'id': booking_id, 'created_at': inserted['created_at']})

        except psycopg2.errors.UniqueViolation as e:
            db.rollback()
            constraint = getattr(e.diag, 'constraint_name', None)
            if constraint == REFERENCE_CONSTRAINT:
                raise DuplicateReferenceError(f"Reference {record.reference_number} already exists") from e
            if constraint == 'booking_files_pkey':
                raise DocumentAttachedError('A document is already attached to another booking') from e
            logger.error(f"Unexpected unique violation on {constraint}: {e}", exc_info=True)
            raise StorageError('Could not save the booking, please retry') from e
        except psycopg2.Error as e:
            db.rollback()
            logger.error(f"Error creating booking {record.reference_number}: {e}", exc_info=True)
            raise StorageError('Could not save the booking, please retry') from e
        finally:
            db.close()

    def is_file_attached(self, file_id) -> bool:
        row = self._query(
            "SELECT 1 AS attached FROM booking_files WHERE id=%s", (file_id,), fetch='one'
        )
        return row is not None

    def _files_for(self, booking_ids) -> dict:
        if not booking_ids:
            return {}
        rows = self._query(
            "SELECT * FROM booking_files WHERE booking_id = ANY(%s::uuid[]) ORDER BY uploaded_at",
            (list(booking_ids),),
        )
        files = {}
        for row in rows:
            files.setdefault(str(row['booking_id']), []).append(row)
        return files

    def _decode_bookings(self, rows) -> list[BookingRecord]:
        files = self._files_for([str(r['id']) for r in rows])
        return [decode_record(row, files.get(str(row['id']), [])) for row in rows]

    def list_bookings(self, status=None) -> list[BookingRecord]:
        if status:
            if status not in BOOKING_STATUSES:
                raise ValueError(f"Unknown booking status: {status}")
            rows = self._query(
                "SELECT * FROM bookings WHERE status=%s ORDER BY created_at DESC", (status,)
            )
        else:
            rows = self._query("SELECT * FROM bookings ORDER BY created_at DESC")
        return self._decode_bookings(rows)

    def get_booking(self, booking_id) -> BookingRecord:
        row = self._query("SELECT * FROM bookings WHERE id=%s", (booking_id,), fetch='one')
        if not row:
            raise ComponentNotFoundError(f"Booking {booking_id} not found")
        return self._decode_bookings([row])[0]

    def get_booking_by_reference(self, reference: str) -> Optional[BookingRecord]:
        row = self._query(
            "SELECT * FROM bookings WHERE upper(reference_number)=upper(%s)",
            (reference.strip(),), fetch='one',
        )
        if not row:
            return None
        return self._decode_bookings([row])[0]

    def update_booking_status(self, booking_id, status: str) -> BookingRecord:
        if status not in BOOKING_STATUSES:
            raise ValueError(f"Unknown booking status: {status}")
        row = self._query(
            "UPDATE bookings SET status=%s, updated_at=now() WHERE id=%s RETURNING *",
            (status, booking_id), fetch='one', commit=True,
        )
        if not row:
            raise ComponentNotFoundError(f"Booking {booking_id} not found")
        logger.info(f"Booking {row['reference_number']} status -> {status}")
        return self._decode_bookings([row])[0]

    def delete_booking(self, booking_id) -> list[UploadedDocument]:
        """Hard-delete a booking; file rows go with it. Returns the files so blobs can be removed."""
        booking = self.get_booking(booking_id)
        self._query(
            "DELETE FROM bookings WHERE id=%s", (booking_id,), fetch=None, commit=True,
        )
        logger.info(f"Deleted booking {booking.reference_number} with {len(booking.documents)} file(s)")
        return booking.documents
