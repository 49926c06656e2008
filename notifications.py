"""
Outbound booking notifications: the staff email (Resend HTTP API) and the
WhatsApp deep link shown to the customer after booking.

Sending is fire-and-forget. A failed send is logged and reported as False,
it never fails the booking.
"""

from html import escape
import logging
from typing import Optional
from urllib.parse import quote

import requests

import config
from currencies import CurrencyTable, default_currency_table
from models import BookingRecord

logger = logging.getLogger(__name__)

RESEND_API_URL = 'https://api.resend.com/emails'

ROOM_TYPE_LABELS = {
    'single': 'مفردة',
    'single_view': 'مفردة مع إطلالة',
    'double_no_view': 'مزدوجة بدون إطلالة',
    'double_view': 'مزدوجة مع إطلالة',
    'triple_no_view': 'ثلاثية بدون إطلالة',
    'triple_view': 'ثلاثية مع إطلالة',
}
NOT_SPECIFIED = 'غير محدد'


def format_phone_number(phone: Optional[str]) -> str:
    """International form for display: 00 -> +, Saudi mobiles (5...) get +966, others +995."""
    if not phone:
        return NOT_SPECIFIED
    phone = phone.strip().replace(' ', '')
    if phone.startswith('+'):
        return phone
    if phone.startswith('00'):
        return '+' + phone[2:]
    if phone.startswith('5'):
        return '+966' + phone
    return '+995' + phone


def _rooms_text(stay) -> str:
    rooms = [
        f"الغرفة {room.room_number}: {ROOM_TYPE_LABELS.get(room.room_type, NOT_SPECIFIED)}"
        for room in stay.room_selections
    ]
    return '، '.join(rooms) or NOT_SPECIFIED


def render_booking_email(record: BookingRecord, currencies: CurrencyTable = default_currency_table) -> str:
    total = currencies.format(currencies.convert(record.total_cost, record.currency), record.currency)

    cities_html = ''.join(
        f"""
        <div class="city-item">
            <h4>🏨 {escape(stay.city)} - {escape(stay.hotel or NOT_SPECIFIED)}</h4>
            <p><strong>عدد الليالي:</strong> {stay.nights}</p>
            <p><strong>الجولات:</strong> {stay.tours + stay.mandatory_tours} جولة</p>
            <p><strong>الغرف:</strong> {escape(_rooms_text(stay))}</p>
        </div>"""
        for stay in record.selected_cities
    )

    rows = [
        ('الاسم', record.customer_name),
        ('رقم الهاتف', format_phone_number(record.phone_number)),
        ('عدد البالغين', record.adults),
        ('عدد الأطفال', len(record.children)),
        ('تاريخ الوصول', record.arrival_date),
        ('تاريخ المغادرة', record.departure_date),
        ('مطار الوصول', record.arrival_airport or NOT_SPECIFIED),
        ('مطار المغادرة', record.departure_airport or NOT_SPECIFIED),
        ('نوع السيارة', record.car_type or NOT_SPECIFIED),
    ]
    if record.discount_coupon:
        rows.append(('كود الخصم', record.discount_coupon))
    rows_html = ''.join(
        f'<div class="info-row"><span class="label">{label}:</span>'
        f'<span class="value">{escape(str(value))}</span></div>'
        for label, value in rows
    )

    return f"""<!DOCTYPE html>
<html dir="rtl" lang="ar">
<head>
    <meta charset="UTF-8">
    <title>حجز جديد - {escape(record.reference_number)}</title>
    <style>
        body {{ font-family: Arial, sans-serif; background-color: #f5f5f5; padding: 20px; }}
        .container {{ max-width: 600px; margin: 0 auto; background: white; border-radius: 10px; }}
        .header {{ background: #059669; color: white; padding: 30px; text-align: center; }}
        .content {{ padding: 30px; }}
        .reference {{ background: #fef3c7; color: #92400e; padding: 15px; text-align: center; font-weight: bold; }}
        .info-row {{ display: flex; justify-content: space-between; border-bottom: 1px solid #e5e5e5; padding: 5px 0; }}
        .label {{ font-weight: bold; }}
        .city-item {{ margin-bottom: 15px; padding: 10px; border: 1px solid #e5e5e5; border-radius: 6px; }}
        .total-cost {{ background: #059669; color: white; padding: 20px; text-align: center; font-size: 20px; }}
    </style>
</head>
<body>
    <div class="container">
        <div class="header">
            <h1>🎉 حجز جديد من موقع جورجيا</h1>
            <p>تم استلام حجز جديد من العميل</p>
        </div>
        <div class="content">
            <div class="reference">📋 رقم الحجز المرجعي: {escape(record.reference_number)}</div>
            {rows_html}
            <h3>🏨 المدن والفنادق</h3>
            {cities_html}
            <div class="total-cost">💰 التكلفة الإجمالية: {escape(total)}</div>
            <p>الدفع نقداً عند الوصول</p>
        </div>
    </div>
</body>
</html>"""


class Notifier:

    def __init__(
        self,
        api_key=None,
        sender=None,
        recipient=None,
        whatsapp_number=None,
        currencies: CurrencyTable = default_currency_table,
    ):
        self.api_key = config.RESEND_API_KEY if api_key is None else api_key
        self.sender = sender or config.BOOKING_EMAIL_FROM
        self.recipient = config.BOOKING_EMAIL_TO if recipient is None else recipient
        self.whatsapp_number = whatsapp_number or config.WHATSAPP_NUMBER
        self.currencies = currencies

    def send_booking_email(self, record: BookingRecord) -> bool:
        """POST the booking summary to staff. Returns False instead of raising."""
        if not self.api_key or not self.recipient:
            logger.warning(f"Booking email for {record.reference_number} skipped: Resend is not configured")
            return False

        try:
            resp = requests.post(
                RESEND_API_URL,
                headers={'Authorization': f'Bearer {self.api_key}'},
                json={
                    'from': self.sender,
                    'to': [self.recipient],
                    'subject': f'حجز جديد - {record.reference_number}',
                    'html': render_booking_email(record, self.currencies),
                },
                timeout=10,
            )
            resp.raise_for_status()
        except requests.RequestException as e:
            logger.error(f"Booking email for {record.reference_number} failed: {e}", exc_info=True)
            return False

        logger.info(f"Booking email sent for {record.reference_number}: {resp.json().get('id')}")
        return True

    def whatsapp_link(self, record: BookingRecord, phone: Optional[str] = None) -> str:
        """wa.me link with a prefilled booking summary."""
        number = ''.join(ch for ch in (phone or self.whatsapp_number) if ch.isdigit())
        total = self.currencies.format(
            self.currencies.convert(record.total_cost, record.currency), record.currency
        )
        lines = [
            f"مرحباً، لدي حجز برقم {record.reference_number}",
            f"الاسم: {record.customer_name}",
            f"من {record.arrival_date} إلى {record.departure_date}",
            'المدن: ' + '، '.join(f"{stay.city} ({stay.nights})" for stay in record.selected_cities),
            f"الإجمالي: {total}",
        ]
        return f"https://wa.me/{number}?text={quote(chr(10).join(lines))}"
