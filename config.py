"""
Runtime configuration read from the environment.

A local .env file is loaded first.
"""

import os

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name, default=False):
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


# =====================================================
# DATABASE
# =====================================================

DB_CONFIG = {
    'host': os.environ.get('DB_HOST', 'localhost'),
    'port': int(os.environ.get('DB_PORT', 5432)),
    'database': os.environ.get('DB_NAME', 'georgia_booking'),
    'user': os.environ.get('DB_USER', 'postgres'),
    'password': os.environ.get('DB_PASS', ''),
}

# =====================================================
# WEB / ADMIN
# =====================================================

SECRET_KEY = os.environ.get('SECRET_KEY', 'change-me-in-production')
ADMIN_USER = os.environ.get('ADMIN_USER', 'admin')
ADMIN_PASS = os.environ.get('ADMIN_PASS', 'admin123')
LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')

# =====================================================
# PRICING
# =====================================================

BASE_CURRENCY = os.environ.get('BASE_CURRENCY', 'USD')
PROFIT_MARGIN_PERCENT = os.environ.get('PROFIT_MARGIN_PERCENT', '22')
# 'rooms_and_tours' or 'subtotal'
MARGIN_BASE = os.environ.get('MARGIN_BASE', 'rooms_and_tours')
DISCOUNT_AFTER_MARGIN = _env_bool('DISCOUNT_AFTER_MARGIN', False)

# =====================================================
# UPLOADS
# =====================================================

UPLOAD_DIR = os.environ.get('UPLOAD_DIR', os.path.join(os.getcwd(), 'uploads'))
UPLOAD_BASE_URL = os.environ.get('UPLOAD_BASE_URL', '/uploads')
MAX_UPLOAD_BYTES = int(os.environ.get('MAX_UPLOAD_BYTES', 5 * 1024 * 1024))

# =====================================================
# NOTIFICATIONS
# =====================================================

RESEND_API_KEY = os.environ.get('RESEND_API_KEY', '')
BOOKING_EMAIL_FROM = os.environ.get('BOOKING_EMAIL_FROM', 'bookings@example.com')
BOOKING_EMAIL_TO = os.environ.get('BOOKING_EMAIL_TO', '')
WHATSAPP_NUMBER = os.environ.get('WHATSAPP_NUMBER', '995500000000')
