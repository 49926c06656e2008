"""
Booking assembly: wizard draft merging, the finalize gate, reference
numbers and the record <-> row mapping used at the persistence edge.
"""

from datetime import datetime, timezone
import json
import logging
import secrets
from typing import Optional
import uuid

from pydantic import ValidationError
from pydantic.alias_generators import to_camel, to_snake

from catalog import CatalogStore
from currencies import CurrencyTable, default_currency_table
from exceptions import ItineraryValidationError, RecordDecodeError
from itinerary_rules import check_trip_length, normalize_city, recompute_mandatory_tours
from models import (
    BookingDraft,
    BookingRecord,
    CityStay,
    RoomSelection,
    UploadedDocument,
)
from room_allocation import bed_demand, minimum_rooms_needed, validate as validate_rooms

logger = logging.getLogger(__name__)

REFERENCE_PREFIX = 'GEO'
# No 0/O or 1/I/L, so a reference can be read out over the phone.
REFERENCE_ALPHABET = 'ABCDEFGHJKMNPQRSTUVWXYZ23456789'
REFERENCE_SUFFIX_LENGTH = 6

# Nested booking columns stored as JSON.
JSON_COLUMNS = ('children', 'room_types', 'selected_cities', 'additional_services')

REQUIRED_DOCUMENTS = ('passport', 'ticket')


def generate_reference(now: Optional[datetime] = None) -> str:
    """GEO-YYYYMMDD-XXXXXX, e.g. GEO-20250314-K7P2QX."""
    now = now or datetime.now(timezone.utc)
    suffix = ''.join(secrets.choice(REFERENCE_ALPHABET) for _ in range(REFERENCE_SUFFIX_LENGTH))
    return f"{REFERENCE_PREFIX}-{now:%Y%m%d}-{suffix}"


def _snake_keys(value):
    if isinstance(value, dict):
        return {to_snake(k): _snake_keys(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_snake_keys(v) for v in value]
    return value


def _merge(base: dict, changes: dict) -> dict:
    merged = dict(base)
    for key, value in changes.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def resize_room_selections(stay: CityStay, room_count: int) -> CityStay:
    """Exactly `room_count` entries numbered from 1; new entries have no type yet."""
    rooms = [
        RoomSelection(room_number=number, room_type=existing.room_type)
        for number, existing in enumerate(stay.room_selections[:room_count], start=1)
    ]
    rooms.extend(
        RoomSelection(room_number=number)
        for number in range(len(rooms) + 1, room_count + 1)
    )
    return stay.model_copy(update={'room_selections': rooms})


class BookingAssembler:

    def __init__(self, catalog: CatalogStore, currencies: CurrencyTable = default_currency_table):
        self.catalog = catalog
        self.currencies = currencies

    # -------------------------------------------------
    # DRAFTS
    # -------------------------------------------------

    def new_draft(self, changes: Optional[dict] = None, draft_id: Optional[str] = None) -> BookingDraft:
        changes = changes or {}
        draft_id = draft_id or changes.get('draftId') or changes.get('draft_id') or str(uuid.uuid4())
        draft = BookingDraft(draft_id=draft_id)
        if changes:
            return self.apply_update(draft, changes)
        return self._derive(draft)

    def apply_update(self, draft: BookingDraft, changes: dict) -> BookingDraft:
        """
        Merge a partial wizard update into a new draft.

        `changes` may use camelCase or snake_case keys. Nested objects are
        merged; lists replace, except `itinerary.cities` which is merged
        stay by stay so unchanged fields survive. The draft passed in is
        never modified.
        """
        changes = _snake_keys(changes or {})
        changes.pop('draft_id', None)
        current = draft.model_dump()

        raw_cities = (changes.get('itinerary') or {}).get('cities')
        if raw_cities is not None:
            old_cities = current['itinerary']['cities']
            merged_cities = []
            for index, raw in enumerate(raw_cities):
                old = old_cities[index] if index < len(old_cities) else {}
                stay = _merge(old, raw)
                if old and normalize_city(stay.get('city')) != normalize_city(old.get('city')):
                    # New city: the old hotel and rooms no longer apply.
                    if 'hotel' not in raw:
                        stay['hotel'] = None
                    if 'room_selections' not in raw:
                        stay['room_selections'] = []
                elif old and stay.get('hotel') != old.get('hotel') and 'room_selections' not in raw:
                    stay['room_selections'] = [
                        {'room_number': r['room_number'], 'room_type': ''}
                        for r in old.get('room_selections', [])
                    ]
                merged_cities.append(stay)
            changes['itinerary'] = dict(changes['itinerary'], cities=merged_cities)

        merged = _merge(current, changes)
        try:
            updated = BookingDraft.model_validate(merged)
        except ValidationError as e:
            raise ItineraryValidationError(
                [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()]
            ) from e
        return self._derive(updated)

    def _derive(self, draft: BookingDraft) -> BookingDraft:
        """Refresh every derived field: room count floor, room slots and mandatory tours."""
        itinerary = draft.itinerary
        room_count = max(itinerary.room_count, minimum_rooms_needed(bed_demand(draft.traveler)))
        cities = [resize_room_selections(stay, room_count) for stay in itinerary.cities]
        itinerary = itinerary.model_copy(update={'room_count': room_count, 'cities': cities})
        itinerary = recompute_mandatory_tours(itinerary)
        return draft.model_copy(update={'itinerary': itinerary})

    # -------------------------------------------------
    # FINALIZE GATE
    # -------------------------------------------------

    def validate_for_finalize(self, draft: BookingDraft) -> list[str]:
        """Every reason the draft cannot be booked yet; empty when it can."""
        itinerary = draft.itinerary
        errors = list(check_trip_length(itinerary.arrival_date, itinerary.departure_date))

        if not itinerary.cities:
            errors.append('At least one city is required')
        else:
            allocation = validate_rooms(itinerary, bed_demand(draft.traveler), self.catalog)
            if not allocation.ok:
                errors.append(allocation.reason)
            for stay in itinerary.cities:
                if not self.catalog.is_active_city(stay.city):
                    errors.append(f"{stay.city}: city is not available")
                if not stay.hotel:
                    errors.append(f"{stay.city}: no hotel selected")

        if not itinerary.car_type:
            errors.append('Transport type is required')
        elif self.catalog.transport(itinerary.car_type) is None:
            errors.append(f"Transport type {itinerary.car_type} is not available")

        if not draft.customer.customer_name.strip():
            errors.append('Customer name is required')
        if not draft.customer.phone_number.strip():
            errors.append('Phone number is required')

        kinds = {doc.kind for doc in draft.documents}
        for kind in REQUIRED_DOCUMENTS:
            if kind not in kinds:
                errors.append(f"At least one {kind} document is required")

        if not self.currencies.is_supported(itinerary.currency):
            errors.append(f"Currency {itinerary.currency} is not supported")

        return errors

    # -------------------------------------------------
    # RECORDS
    # -------------------------------------------------

    def assemble_record(self, draft: BookingDraft, quote, reference: str) -> BookingRecord:
        itinerary = draft.itinerary
        discount = quote.discount
        return BookingRecord(
            reference_number=reference,
            customer_name=draft.customer.customer_name.strip(),
            phone_number=draft.customer.phone_number.strip(),
            email=draft.customer.email,
            adults=draft.traveler.adults,
            children=draft.traveler.children,
            arrival_date=itinerary.arrival_date,
            departure_date=itinerary.departure_date,
            arrival_airport=itinerary.arrival_airport,
            departure_airport=itinerary.departure_airport,
            rooms=itinerary.room_count,
            budget=itinerary.budget,
            currency=itinerary.currency,
            car_type=itinerary.car_type,
            room_types=[
                room.room_type
                for stay in itinerary.cities
                for room in stay.room_selections
            ],
            selected_cities=itinerary.cities,
            additional_services=itinerary.additional_services,
            total_cost=quote.total,
            discount_amount=quote.discount_amount,
            discount_coupon=discount.code if discount.applied else None,
            documents=draft.documents,
        )


def encode_record(record: BookingRecord) -> dict:
    """Flatten a record into a bookings row; nested data becomes JSON text."""
    row = record.model_dump(exclude={'documents'})
    nested = record.model_dump(mode='json', by_alias=True, include=set(JSON_COLUMNS))
    for column in JSON_COLUMNS:
        row[column] = json.dumps(nested[to_camel(column)], ensure_ascii=False)
    return row


def decode_document(row: dict) -> UploadedDocument:
    try:
        return UploadedDocument(
            id=str(row['id']),
            kind=row['file_type'],
            file_name=row['file_name'],
            url=row['file_url'],
            mime_type=row.get('mime_type') or '',
            size=row.get('file_size') or 0,
        )
    except (KeyError, ValidationError) as e:
        raise RecordDecodeError(f"Malformed booking file row: {e}") from e


def decode_record(row: dict, files: Optional[list] = None) -> BookingRecord:
    """
    Rebuild a BookingRecord from a bookings row.

    JSON columns may arrive as text or already parsed (psycopg2 parses
    JSONB). Anything that does not match the model raises RecordDecodeError.
    """
    data = {k: v for k, v in row.items() if k in BookingRecord.model_fields}
    try:
        for column in JSON_COLUMNS:
            value = data.get(column)
            if isinstance(value, str):
                data[column] = json.loads(value)
            elif value is None:
                data.pop(column, None)
        if data.get('id') is not None:
            data['id'] = str(data['id'])
        data['documents'] = [decode_document(f) for f in (files or [])]
        return BookingRecord.model_validate(data)
    except (json.JSONDecodeError, ValidationError) as e:
        reference = row.get('reference_number', '?')
        logger.error(f"Booking {reference} does not decode: {e}")
        raise RecordDecodeError(f"Booking {reference} has malformed data: {e}") from e
