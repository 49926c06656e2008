"""
BookingService: the one process-scoped object that wires the store,
catalog snapshot, pricing engine, discount resolver, assembler, file
storage and notifier together. The Flask app creates it once at startup
and keeps it in `app.extensions`; tests build it around a fake store.
"""

from datetime import datetime
import logging
from typing import Optional

from booking_assembler import BookingAssembler, generate_reference
from catalog import CatalogStore
from currencies import CurrencyTable, default_currency_table
from discount_resolver import DiscountResolver
from exceptions import (
    ComponentNotFoundError,
    DiscountExhaustedError,
    DocumentAttachedError,
    DuplicateReferenceError,
    ItineraryValidationError,
)
from itinerary_rules import check_trip_length, minimum_nights, reconcile_nights
from models import BookingDraft, BookingRecord, Traveler
from pricing_engine import MarginPolicy, PricingEngine
from room_allocation import bed_demand, minimum_rooms_needed, validate as validate_rooms

logger = logging.getLogger(__name__)

REFERENCE_ATTEMPTS = 3


class BookingService:

    def __init__(
        self,
        store,
        file_storage=None,
        notifier=None,
        currencies: CurrencyTable = default_currency_table,
        margin_policy: Optional[MarginPolicy] = None,
        clock=None,
    ):
        self.store = store
        self.file_storage = file_storage
        self.notifier = notifier
        self.currencies = currencies
        self.clock = clock
        self.catalog = CatalogStore()
        self.resolver = DiscountResolver(store.find_discount_by_code, clock=clock)
        self.engine = PricingEngine(self.catalog, currencies, self.resolver, margin_policy)
        self.assembler = BookingAssembler(self.catalog, currencies)
        self.counters = {
            'quotes': 0,
            'bookings': 0,
            'notifications_sent': 0,
            'notifications_failed': 0,
        }

    @classmethod
    def from_config(cls):
        from file_storage import LocalFileStorage
        from notifications import Notifier
        from store import BookingStore

        return cls(
            store=BookingStore(),
            file_storage=LocalFileStorage(),
            notifier=Notifier(),
            margin_policy=MarginPolicy.from_config(),
        )

    def start(self):
        """Load the catalog snapshot. Call once before serving requests."""
        self.catalog.reload(self.store)
        return self

    def _now(self) -> Optional[datetime]:
        return self.clock() if self.clock else None

    # =====================================================
    # WIZARD
    # =====================================================

    def build_draft(self, payload: dict):
        return self.assembler.new_draft(payload)

    def quote(self, payload: dict):
        draft = self.build_draft(payload)
        quote = self.engine.price(draft.itinerary, draft.traveler, now=self._now())
        self.counters['quotes'] += 1
        return draft, quote

    def validate_itinerary(self, payload: dict) -> dict:
        """Step-transition check: hard errors block, warnings are advisory."""
        draft = self.build_draft(payload)
        itinerary = draft.itinerary
        errors = list(check_trip_length(itinerary.arrival_date, itinerary.departure_date))
        if itinerary.cities:
            allocation = validate_rooms(itinerary, bed_demand(draft.traveler), self.catalog)
            if not allocation.ok:
                errors.append(allocation.reason)
            errors.extend(
                f"{stay.city}: city is not available"
                for stay in itinerary.cities
                if not self.catalog.is_active_city(stay.city)
            )
        return {
            'valid': not errors,
            'errors': errors,
            'warnings': reconcile_nights(itinerary),
            'minimumNights': minimum_nights(itinerary.arrival_date, itinerary.departure_date),
            'itinerary': itinerary.to_json_dict(),
        }

    def room_calculator(self, traveler_payload: dict) -> dict:
        traveler = Traveler.model_validate(traveler_payload)
        demand = bed_demand(traveler)
        return {
            'travelerCount': demand,
            'minimumRooms': minimum_rooms_needed(demand),
            'freeChildren': len(traveler.children) - (demand - traveler.adults),
        }

    def selectable_room_types(self, hotel_ref: str, city: Optional[str] = None) -> list[str]:
        return self.catalog.selectable_room_types(hotel_ref, city)

    def check_discount(self, code: str) -> dict:
        discount, reason = self.resolver.check(code, now=self._now())
        if discount is None:
            return {'valid': False, 'reason': reason}
        return {
            'valid': True,
            'code': discount.code,
            'percentage': float(discount.percentage) if discount.percentage is not None else None,
            'waivedItem': discount.waived_item,
        }

    # =====================================================
    # UPLOADS
    # =====================================================

    def upload_document(self, draft_id: str, file, kind: str):
        return self.file_storage.upload(draft_id, file, kind)

    def delete_upload(self, draft_id: str, file_id: str) -> bool:
        """Remove a draft's own upload. Files attached to a saved booking stay."""
        if self.file_storage is None or self.file_storage.get(draft_id, file_id) is None:
            raise ComponentNotFoundError(f"Upload {file_id} not found")
        if self.store.is_file_attached(file_id):
            raise DocumentAttachedError(f"Upload {file_id} belongs to a saved booking")
        return self.file_storage.delete(file_id)

    def resolve_documents(self, draft: BookingDraft):
        """
        Replace the draft's document entries with the stored upload records.

        Returns (draft, errors). Ids that were never uploaded under this
        draft, or that already belong to a saved booking, are dropped and
        reported.
        """
        documents, errors = [], []
        for doc in draft.documents:
            stored = self.file_storage.get(draft.draft_id, doc.id) if self.file_storage else None
            if stored is None:
                errors.append(f"Document {doc.id} was not uploaded for this booking")
            elif self.store.is_file_attached(stored.id):
                errors.append(f"Document {doc.id} is already attached to another booking")
            else:
                documents.append(stored)
        return draft.model_copy(update={'documents': documents}), errors

    # =====================================================
    # FINALIZE
    # =====================================================

    def finalize(self, payload: dict) -> BookingRecord:
        """
        Validate, price and persist a booking, then notify staff.

        If a capped discount code runs out between quoting and saving, the
        booking is re-priced without it and saved anyway.
        """
        draft, upload_errors = self.resolve_documents(self.build_draft(payload))
        errors = upload_errors + self.assembler.validate_for_finalize(draft)
        if errors:
            raise ItineraryValidationError(errors)

        quote = self.engine.price(draft.itinerary, draft.traveler, now=self._now())
        try:
            record = self._save(draft, quote)
        except DiscountExhaustedError as e:
            logger.warning(f"{e.message}; saving booking without the discount")
            itinerary = draft.itinerary.model_copy(update={'discount_code': None})
            quote = self.engine.price(itinerary, draft.traveler, now=self._now())
            record = self._save(draft, quote)

        self.counters['bookings'] += 1
        self.notify(record)
        return record

    def _save(self, draft, quote) -> BookingRecord:
        code_id = quote.discount.code_id if quote.discount.applied else None
        for attempt in range(1, REFERENCE_ATTEMPTS + 1):
            record = self.assembler.assemble_record(draft, quote, generate_reference(self._now()))
            try:
                return self.store.create_booking(record, discount_code_id=code_id)
            except DuplicateReferenceError:
                logger.warning(f"Reference {record.reference_number} taken (attempt {attempt})")
                if attempt == REFERENCE_ATTEMPTS:
                    raise

    def notify(self, record: BookingRecord) -> bool:
        if self.notifier is None:
            return False
        sent = self.notifier.send_booking_email(record)
        self.counters['notifications_sent' if sent else 'notifications_failed'] += 1
        return sent

    def whatsapp_link(self, record: BookingRecord) -> Optional[str]:
        if self.notifier is None:
            return None
        return self.notifier.whatsapp_link(record)

    # =====================================================
    # BOOKINGS (ADMIN)
    # =====================================================

    def find_booking(self, reference: str) -> BookingRecord:
        record = self.store.get_booking_by_reference(reference)
        if record is None:
            raise ComponentNotFoundError(f"Booking {reference} not found")
        return record

    def list_bookings(self, status=None):
        return self.store.list_bookings(status)

    def update_booking_status(self, booking_id, status):
        return self.store.update_booking_status(booking_id, status)

    def delete_booking(self, booking_id):
        documents = self.store.delete_booking(booking_id)
        if self.file_storage is not None:
            for doc in documents:
                self.file_storage.delete(doc.id)
        return documents

    # =====================================================
    # CATALOG (ADMIN)
    # =====================================================

    def mutate_catalog(self, operation, *args):
        """Run a store mutation and refresh the snapshot the engine prices from."""
        result = operation(*args)
        self.catalog.reload(self.store)
        return result
