"""
Georgia Package Booking: Flask JSON backend
===========================================
Wizard endpoints (pricing, itinerary checks, uploads, finalize) and the
admin API for price lists, discount codes and bookings.

All pricing goes through the BookingService held in
app.extensions['booking_service']; routes never compute prices themselves.
"""

from flask import Flask, request, jsonify, session, send_from_directory, current_app
from flask_cors import CORS
from functools import wraps
import logging

from pydantic import ValidationError
from werkzeug.utils import secure_filename

import config
from exceptions import BookingEngineError, ItineraryValidationError, StorageError
from models import CityRecord, DiscountCode, HotelRecord, ServicePrice, TransportClass
from service import BookingService

logging.basicConfig(level=getattr(logging, config.LOG_LEVEL.upper(), logging.INFO))
logger = logging.getLogger(__name__)

app = Flask(__name__)
app.secret_key = config.SECRET_KEY
CORS(app, supports_credentials=True)


def get_service() -> BookingService:
    service = current_app.extensions.get('booking_service')
    if service is None:
        service = BookingService.from_config().start()
        current_app.extensions['booking_service'] = service
    return service


def get_payload() -> dict:
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        raise ItineraryValidationError(['No data provided'])
    return payload


def _truthy(value) -> bool:
    return str(value).strip().lower() in ('1', 'true', 'yes', 'on')


# =====================================================
# ERROR HANDLING
# =====================================================

@app.errorhandler(BookingEngineError)
def handle_booking_error(e):
    body = {'success': False, 'error': e.message}
    if isinstance(e, ItineraryValidationError):
        body['errors'] = e.errors
    if isinstance(e, StorageError):
        body['retryable'] = True
    if e.status_code >= 500:
        logger.error(f"{type(e).__name__}: {e.message}")
    return jsonify(body), e.status_code


@app.errorhandler(ValidationError)
def handle_validation_error(e):
    errors = [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()]
    return jsonify({'success': False, 'error': 'Invalid data', 'errors': errors}), 400


@app.errorhandler(ValueError)
def handle_value_error(e):
    return jsonify({'success': False, 'error': str(e)}), 400


# =====================================================
# AUTHENTICATION
# =====================================================

def admin_login_required(f):
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not session.get('admin_logged_in'):
            return jsonify({'error': 'Admin login required'}), 401
        return f(*args, **kwargs)
    return decorated_function


@app.route('/admin/login', methods=['POST'])
def admin_login():
    data = request.get_json(silent=True) or request.form
    username = data.get('username', '')
    password = data.get('password', '')
    if username == config.ADMIN_USER and password == config.ADMIN_PASS:
        session['admin_logged_in'] = True
        session['admin_username'] = username
        logger.info(f"Admin {username} logged in")
        return jsonify({'message': 'Logged in'})
    logger.warning(f"Failed admin login for {username!r}")
    return jsonify({'error': 'Invalid credentials'}), 401


@app.route('/admin/logout', methods=['POST'])
def admin_logout():
    session.pop('admin_logged_in', None)
    session.pop('admin_username', None)
    return jsonify({'message': 'Logged out'})


# =====================================================
# WIZARD: PRICING & RULES
# =====================================================

@app.route('/calculate', methods=['POST'])
def calculate():
    """Full quote for the wizard's current state. Discount codes are previewed, never consumed."""
    payload = get_payload()
    draft, quote = get_service().quote(payload)
    result = quote.to_dict()
    result['draftId'] = draft.draft_id
    result['itinerary'] = draft.itinerary.to_json_dict()
    return jsonify(result)


@app.route('/api/itinerary/validate', methods=['POST'])
def validate_itinerary():
    return jsonify(get_service().validate_itinerary(get_payload()))


@app.route('/api/room-calculator', methods=['POST'])
def room_calc():
    """Standalone room calculation endpoint."""
    return jsonify(get_service().room_calculator(get_payload()))


@app.route('/api/room-types', methods=['GET'])
def room_types():
    hotel = request.args.get('hotel', '')
    city = request.args.get('city')
    return jsonify({'roomTypes': get_service().selectable_room_types(hotel, city)})


@app.route('/api/discount-codes/check', methods=['POST'])
def check_discount():
    code = get_payload().get('code', '')
    return jsonify(get_service().check_discount(code))


@app.route('/api/currencies', methods=['GET'])
def list_currencies():
    currencies = get_service().currencies
    return jsonify([c.to_dict() for c in currencies.list()])


# =====================================================
# UPLOADS
# =====================================================

@app.route('/api/uploads', methods=['POST'])
def upload_document():
    file = request.files.get('file')
    if file is None:
        raise ItineraryValidationError(['No file provided'])
    draft_id = request.form.get('draftId') or request.form.get('draft_id', '')
    kind = request.form.get('kind', '')
    document = get_service().upload_document(draft_id, file, kind)
    return jsonify(document.to_json_dict()), 201


@app.route('/api/uploads/<file_id>', methods=['DELETE'])
def delete_upload(file_id):
    """Only the draft that uploaded a file may remove it, and only before the booking is saved."""
    draft_id = request.args.get('draftId') or request.args.get('draft_id', '')
    if not get_service().delete_upload(draft_id, file_id):
        return jsonify({'error': 'File not found'}), 404
    return jsonify({'message': 'Deleted'})


@app.route('/uploads/<owner>/<path:file_name>', methods=['GET'])
@admin_login_required
def download_upload(owner, file_name):
    owner = secure_filename(owner)
    if not owner:
        return jsonify({'error': 'File not found'}), 404
    upload_dir = get_service().file_storage.upload_dir
    return send_from_directory(upload_dir / owner, file_name)


# =====================================================
# BOOKINGS
# =====================================================

@app.route('/api/bookings', methods=['POST'])
def create_booking():
    service = get_service()
    record = service.finalize(get_payload())
    logger.info(f"Booking {record.reference_number} created for {record.customer_name}")
    return jsonify({
        'success': True,
        'referenceNumber': record.reference_number,
        'booking': record.to_json_dict(),
        'whatsappLink': service.whatsapp_link(record),
    }), 201


@app.route('/api/bookings/<reference>', methods=['GET'])
def find_booking(reference):
    record = get_service().find_booking(reference)
    return jsonify(record.public_dict())


@app.route('/api/bookings', methods=['GET'])
@admin_login_required
def list_bookings():
    status = request.args.get('status')
    return jsonify([r.to_json_dict() for r in get_service().list_bookings(status)])


@app.route('/api/bookings/<booking_id>/status', methods=['PATCH'])
@admin_login_required
def update_booking_status(booking_id):
    status = get_payload().get('status', '')
    record = get_service().update_booking_status(booking_id, status)
    return jsonify(record.to_json_dict())


@app.route('/api/bookings/<booking_id>', methods=['DELETE'])
@admin_login_required
def delete_booking(booking_id):
    documents = get_service().delete_booking(booking_id)
    return jsonify({'message': 'Deleted', 'filesRemoved': len(documents)})


# =====================================================
# CITIES
# =====================================================

@app.route('/api/cities', methods=['GET'])
def list_cities():
    service = get_service()
    if _truthy(request.args.get('includeInactive', '')) and session.get('admin_logged_in'):
        cities = service.store.list_cities(include_inactive=True)
    else:
        cities = service.catalog.cities
    return jsonify([c.to_json_dict() for c in cities])


@app.route('/api/cities', methods=['POST'])
@admin_login_required
def create_city():
    service = get_service()
    city = CityRecord.model_validate(get_payload())
    created = service.mutate_catalog(service.store.create_city, city)
    logger.info(f"Created city {created.id}: {created.name}")
    return jsonify(created.to_json_dict()), 201


@app.route('/api/cities/<city_id>', methods=['PUT'])
@admin_login_required
def update_city(city_id):
    service = get_service()
    city = CityRecord.model_validate(get_payload())
    updated = service.mutate_catalog(service.store.update_city, city_id, city)
    return jsonify(updated.to_json_dict())


@app.route('/api/cities/<city_id>/toggle', methods=['PATCH'])
@admin_login_required
def toggle_city(city_id):
    service = get_service()
    data = get_payload()
    service.mutate_catalog(service.store.set_city_active, city_id, bool(data.get('active')))
    return jsonify({'message': 'Toggled'})


@app.route('/api/cities/<city_id>', methods=['DELETE'])
@admin_login_required
def delete_city(city_id):
    service = get_service()
    service.mutate_catalog(service.store.delete_city, city_id)
    return jsonify({'message': 'Deleted'})


# =====================================================
# HOTELS
# =====================================================

@app.route('/api/hotels', methods=['GET'])
def list_hotels():
    service = get_service()
    city = request.args.get('city')
    if _truthy(request.args.get('includeInactive', '')) and session.get('admin_logged_in'):
        hotels = service.store.list_hotels(city=city, include_inactive=True)
    elif city:
        hotels = service.catalog.hotels_in_city(city)
    else:
        hotels = service.catalog.hotels
    return jsonify([h.to_json_dict() for h in hotels])


@app.route('/api/hotels', methods=['POST'])
@admin_login_required
def create_hotel():
    service = get_service()
    hotel = HotelRecord.model_validate(get_payload())
    created = service.mutate_catalog(service.store.create_hotel, hotel)
    logger.info(f"Created hotel {created.id}: {created.name} ({created.city})")
    return jsonify(created.to_json_dict()), 201


@app.route('/api/hotels/<hotel_id>', methods=['PUT'])
@admin_login_required
def update_hotel(hotel_id):
    service = get_service()
    hotel = HotelRecord.model_validate(get_payload())
    updated = service.mutate_catalog(service.store.update_hotel, hotel_id, hotel)
    return jsonify(updated.to_json_dict())


@app.route('/api/hotels/<hotel_id>/toggle', methods=['PATCH'])
@admin_login_required
def toggle_hotel(hotel_id):
    service = get_service()
    data = get_payload()
    service.mutate_catalog(service.store.set_hotel_active, hotel_id, bool(data.get('active')))
    return jsonify({'message': 'Toggled'})


@app.route('/api/hotels/<hotel_id>', methods=['DELETE'])
@admin_login_required
def delete_hotel(hotel_id):
    service = get_service()
    service.mutate_catalog(service.store.delete_hotel, hotel_id)
    return jsonify({'message': 'Deleted'})


# =====================================================
# TRANSPORT
# =====================================================

@app.route('/api/transports', methods=['GET'])
def list_transports():
    service = get_service()
    if _truthy(request.args.get('includeInactive', '')) and session.get('admin_logged_in'):
        transports = service.store.list_transports(include_inactive=True)
    else:
        transports = service.catalog.transports
    return jsonify([t.to_json_dict() for t in transports])


@app.route('/api/transports', methods=['POST'])
@admin_login_required
def create_transport():
    service = get_service()
    transport = TransportClass.model_validate(get_payload())
    created = service.mutate_catalog(service.store.create_transport, transport)
    logger.info(f"Created transport class {created.id}: {created.type}")
    return jsonify(created.to_json_dict()), 201


@app.route('/api/transports/<transport_id>', methods=['PUT'])
@admin_login_required
def update_transport(transport_id):
    service = get_service()
    transport = TransportClass.model_validate(get_payload())
    updated = service.mutate_catalog(service.store.update_transport, transport_id, transport)
    return jsonify(updated.to_json_dict())


@app.route('/api/transports/<transport_id>/toggle', methods=['PATCH'])
@admin_login_required
def toggle_transport(transport_id):
    service = get_service()
    data = get_payload()
    service.mutate_catalog(service.store.set_transport_active, transport_id, bool(data.get('active')))
    return jsonify({'message': 'Toggled'})


@app.route('/api/transports/<transport_id>', methods=['DELETE'])
@admin_login_required
def delete_transport(transport_id):
    service = get_service()
    service.mutate_catalog(service.store.delete_transport, transport_id)
    return jsonify({'message': 'Deleted'})


# =====================================================
# ADD-ON SERVICES
# =====================================================

@app.route('/api/services', methods=['GET'])
def list_services():
    service = get_service()
    if _truthy(request.args.get('includeInactive', '')) and session.get('admin_logged_in'):
        services = service.store.list_services(include_inactive=True)
    else:
        services = service.catalog.services
    return jsonify([s.to_json_dict() for s in services])


@app.route('/api/services', methods=['POST'])
@admin_login_required
def create_service():
    service = get_service()
    price = ServicePrice.model_validate(get_payload())
    created = service.mutate_catalog(service.store.create_service, price)
    logger.info(f"Created service {created.id}: {created.key}")
    return jsonify(created.to_json_dict()), 201


@app.route('/api/services/<service_id>', methods=['PUT'])
@admin_login_required
def update_service(service_id):
    service = get_service()
    price = ServicePrice.model_validate(get_payload())
    updated = service.mutate_catalog(service.store.update_service, service_id, price)
    return jsonify(updated.to_json_dict())


@app.route('/api/services/<service_id>/toggle', methods=['PATCH'])
@admin_login_required
def toggle_service(service_id):
    service = get_service()
    data = get_payload()
    service.mutate_catalog(service.store.set_service_active, service_id, bool(data.get('active')))
    return jsonify({'message': 'Toggled'})


@app.route('/api/services/<service_id>', methods=['DELETE'])
@admin_login_required
def delete_service(service_id):
    service = get_service()
    service.mutate_catalog(service.store.delete_service, service_id)
    return jsonify({'message': 'Deleted'})


# =====================================================
# DISCOUNT CODES
# =====================================================

@app.route('/api/discount-codes', methods=['GET'])
@admin_login_required
def list_discount_codes():
    return jsonify([d.to_json_dict() for d in get_service().store.list_discounts()])


@app.route('/api/discount-codes', methods=['POST'])
@admin_login_required
def create_discount_code():
    discount = DiscountCode.model_validate(get_payload())
    created = get_service().store.create_discount(discount)
    logger.info(f"Created discount code {created.code}")
    return jsonify(created.to_json_dict()), 201


@app.route('/api/discount-codes/<discount_id>', methods=['PUT'])
@admin_login_required
def update_discount_code(discount_id):
    discount = DiscountCode.model_validate(get_payload())
    updated = get_service().store.update_discount(discount_id, discount)
    return jsonify(updated.to_json_dict())


@app.route('/api/discount-codes/<discount_id>', methods=['DELETE'])
@admin_login_required
def delete_discount_code(discount_id):
    get_service().store.delete_discount(discount_id)
    return jsonify({'message': 'Deleted'})


# =====================================================
# HEALTH
# =====================================================

@app.route('/api/health', methods=['GET'])
def health():
    return jsonify({'status': 'ok', 'counters': get_service().counters})


# =====================================================
# ENTRY POINT
# =====================================================

if __name__ == '__main__':
    app.run(debug=True, host='0.0.0.0', port=5001)
