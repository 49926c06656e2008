"""Tests for BookingService: quoting, finalize and admin catalog flows."""

from decimal import Decimal
from unittest.mock import patch
import uuid

import pytest

from exceptions import (
    ComponentNotFoundError,
    DocumentAttachedError,
    DuplicateReferenceError,
    ItineraryValidationError,
)
from models import CityRecord, HotelRecord


def test_quote_does_not_consume_discount(booking_service, fake_store, wizard_payload):
    wizard_payload['itinerary']['discountCode'] = '10PERCENT'
    for _ in range(3):
        _, quote = booking_service.quote(wizard_payload)
        assert quote.discount_amount == Decimal('54.00')
    assert fake_store.discounts['d-10'].current_uses == 0
    assert booking_service.counters['quotes'] == 3


def test_finalize_consumes_discount_exactly_once(booking_service, fake_store, notifier, wizard_payload):
    wizard_payload['itinerary']['discountCode'] = '10percent'
    record = booking_service.finalize(wizard_payload)

    assert record.id in fake_store.bookings
    assert record.reference_number.startswith('GEO-20250520-')
    assert record.discount_amount == Decimal('54.00')
    assert record.discount_coupon == '10PERCENT'
    assert record.total_cost == Decimal('591.60')
    assert fake_store.discounts['d-10'].current_uses == 1
    assert fake_store.discount_usage == [(record.id, 'd-10')]
    assert notifier.sent == [record.reference_number]
    assert booking_service.counters['bookings'] == 1
    assert booking_service.counters['notifications_sent'] == 1


def test_finalize_without_discount(booking_service, fake_store, wizard_payload):
    record = booking_service.finalize(wizard_payload)
    assert record.total_cost == Decimal('645.60')
    assert record.discount_coupon is None
    assert fake_store.discount_usage == []


def test_finalize_blocked_by_gate(booking_service, fake_store, wizard_payload):
    wizard_payload['customer'] = {'customerName': '', 'phoneNumber': ''}
    wizard_payload['documents'] = []
    with pytest.raises(ItineraryValidationError) as exc:
        booking_service.finalize(wizard_payload)
    assert len(exc.value.errors) == 4
    assert fake_store.bookings == {}


def test_code_exhausted_at_save_time_books_without_discount(booking_service, fake_store, wizard_payload):
    wizard_payload['itinerary']['discountCode'] = '10PERCENT'
    # another session takes the last use between quote and save
    fake_store.discounts['d-10'] = fake_store.discounts['d-10'].model_copy(update={'max_uses': 1})
    original_find = fake_store.find_discount_by_code

    def stale_find(code):
        found = original_find(code)
        return found.model_copy(update={'current_uses': 0}) if found else None

    booking_service.resolver.lookup = stale_find
    fake_store.discounts['d-10'] = fake_store.discounts['d-10'].model_copy(update={'current_uses': 1})

    _, quote = booking_service.quote(wizard_payload)
    assert quote.discount_amount == Decimal('54.00')
    record = booking_service.finalize(wizard_payload)
    assert record.discount_amount == 0
    assert record.discount_coupon is None
    assert record.total_cost == Decimal('645.60')
    assert fake_store.discount_usage == []


def test_reference_collision_retries(booking_service, make_payload):
    references = iter(['GEO-20250520-AAAAAA', 'GEO-20250520-AAAAAA', 'GEO-20250520-BBBBBB'])
    with patch('service.generate_reference', side_effect=lambda now=None: next(references)):
        first = booking_service.finalize(make_payload('draft-a'))
        second = booking_service.finalize(make_payload('draft-b'))
    assert first.reference_number == 'GEO-20250520-AAAAAA'
    assert second.reference_number == 'GEO-20250520-BBBBBB'


def test_reference_collision_gives_up_after_three_attempts(booking_service, make_payload):
    booking_service.finalize(make_payload('draft-a'))
    taken = next(iter(booking_service.store.bookings.values())).reference_number
    with patch('service.generate_reference', return_value=taken):
        with pytest.raises(DuplicateReferenceError):
            booking_service.finalize(make_payload('draft-b'))


def test_failed_notification_does_not_fail_booking(booking_service, notifier, wizard_payload):
    notifier.ok = False
    record = booking_service.finalize(wizard_payload)
    assert record.id
    assert booking_service.counters['notifications_failed'] == 1


def test_find_booking(booking_service, wizard_payload):
    record = booking_service.finalize(wizard_payload)
    assert booking_service.find_booking(record.reference_number.lower()).id == record.id
    with pytest.raises(ComponentNotFoundError):
        booking_service.find_booking('GEO-00000000-XXXXXX')


# --- uploaded documents ---


def test_finalize_rejects_documents_that_were_never_uploaded(booking_service, fake_store, wizard_payload):
    wizard_payload['documents'] = [
        {'id': str(uuid.uuid4()), 'kind': 'passport', 'fileName': 'p.pdf',
         'url': 'http://elsewhere/p.pdf', 'mimeType': 'application/pdf', 'size': 10},
        {'id': str(uuid.uuid4()), 'kind': 'ticket', 'fileName': 't.pdf',
         'url': 'http://elsewhere/t.pdf', 'mimeType': 'application/pdf', 'size': 10},
    ]
    with pytest.raises(ItineraryValidationError) as exc:
        booking_service.finalize(wizard_payload)
    assert sum('was not uploaded' in e for e in exc.value.errors) == 2
    assert 'At least one passport document is required' in exc.value.errors
    assert fake_store.bookings == {}


def test_finalize_rejects_another_drafts_upload(booking_service, make_payload):
    other = make_payload('draft-other')
    payload = make_payload('draft-mine')
    payload['documents'][0] = other['documents'][0]
    with pytest.raises(ItineraryValidationError) as exc:
        booking_service.finalize(payload)
    assert any('was not uploaded' in e for e in exc.value.errors)


def test_finalize_uses_stored_document_details(booking_service, wizard_payload):
    stored_url = wizard_payload['documents'][0]['url']
    wizard_payload['documents'][0].update({'url': 'http://elsewhere/p.pdf', 'size': 1})
    record = booking_service.finalize(wizard_payload)
    assert record.documents[0].url == stored_url
    assert record.documents[0].size == len(b'%PDF-1.4 scan')


def test_documents_cannot_be_reused_for_a_second_booking(booking_service, fake_store, wizard_payload):
    booking_service.finalize(wizard_payload)
    with pytest.raises(ItineraryValidationError) as exc:
        booking_service.finalize(wizard_payload)
    assert sum('already attached' in e for e in exc.value.errors) == 2
    assert len(fake_store.bookings) == 1


def test_delete_upload_requires_owning_draft(booking_service, wizard_payload):
    file_id = wizard_payload['documents'][0]['id']
    with pytest.raises(ComponentNotFoundError):
        booking_service.delete_upload('draft-other', file_id)
    assert booking_service.delete_upload('draft-1', file_id) is True


def test_delete_upload_refuses_files_of_saved_bookings(booking_service, wizard_payload):
    booking_service.finalize(wizard_payload)
    with pytest.raises(DocumentAttachedError):
        booking_service.delete_upload('draft-1', wizard_payload['documents'][0]['id'])
    assert booking_service.file_storage.get('draft-1', wizard_payload['documents'][0]['id']) is not None


def test_delete_booking_removes_uploaded_files(booking_service, wizard_payload):
    record = booking_service.finalize(wizard_payload)

    with patch.object(booking_service.file_storage, 'delete', wraps=booking_service.file_storage.delete) as delete:
        removed = booking_service.delete_booking(record.id)
    assert len(removed) == 2
    assert delete.call_count == 2
    for doc in wizard_payload['documents']:
        assert booking_service.file_storage.get('draft-1', doc['id']) is None


# --- catalog ---


def test_catalog_mutation_reloads_snapshot(booking_service, wizard_payload):
    hotel = HotelRecord(name='Rooms Kazbegi', city='Kazbegi', double_view_price=Decimal('95'))
    created = booking_service.mutate_catalog(booking_service.store.create_hotel, hotel)
    assert booking_service.catalog.find_hotel(created.id) is not None

    booking_service.mutate_catalog(booking_service.store.set_hotel_active, 'h-tbs', False)
    _, quote = booking_service.quote(wizard_payload)
    assert any('h-tbs' in w for w in quote.warnings)


def test_disabled_city_blocks_finalize(booking_service, fake_store, wizard_payload):
    booking_service.mutate_catalog(booking_service.store.set_city_active, 'c-bus', False)
    assert not booking_service.catalog.is_active_city('Batumi')

    with pytest.raises(ItineraryValidationError) as exc:
        booking_service.finalize(wizard_payload)
    assert exc.value.errors == ['Batumi: city is not available']
    assert booking_service.validate_itinerary(wizard_payload)['errors'] == ['Batumi: city is not available']
    assert fake_store.bookings == {}


def test_new_city_is_bookable(booking_service):
    created = booking_service.mutate_catalog(
        booking_service.store.create_city, CityRecord(name='Kazbegi', description='Gergeti')
    )
    assert booking_service.catalog.city('Kazbegi').id == created.id
    # the Arabic spelling resolves to the same city
    assert booking_service.catalog.is_active_city('كازبيغي')


def test_validate_itinerary(booking_service, wizard_payload):
    wizard_payload['itinerary']['departureDate'] = '2025-06-06'
    result = booking_service.validate_itinerary(wizard_payload)
    assert result['valid'] is True
    assert result['minimumNights'] == 5
    assert result['warnings']


def test_room_calculator(booking_service):
    result = booking_service.room_calculator({'adults': 4, 'children': [{'age': 10}, {'age': 2}]})
    assert result == {'travelerCount': 5, 'minimumRooms': 2, 'freeChildren': 1}


def test_check_discount(booking_service):
    assert booking_service.check_discount('10percent') == {
        'valid': True, 'code': '10PERCENT', 'percentage': 10.0, 'waivedItem': None,
    }
    assert booking_service.check_discount('LASTONE') == {'valid': False, 'reason': 'exhausted'}
