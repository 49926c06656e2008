"""
Migration: create the booking schema and seed the default catalog
Run once: python migrate_schema.py
Safe to re-run; existing rows are left alone.
"""
import psycopg2

import config

SCHEMA_SQL = """
CREATE EXTENSION IF NOT EXISTS pgcrypto;

CREATE TABLE IF NOT EXISTS cities (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    name VARCHAR(100) NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    available_tours JSONB NOT NULL DEFAULT '[]',
    tour_prices JSONB NOT NULL DEFAULT '{}',
    is_active BOOLEAN NOT NULL DEFAULT TRUE,
    deleted BOOLEAN NOT NULL DEFAULT FALSE,
    created_at TIMESTAMPTZ DEFAULT now(),
    updated_at TIMESTAMPTZ DEFAULT now()
);
CREATE UNIQUE INDEX IF NOT EXISTS uq_cities_name ON cities(name) WHERE deleted = FALSE;

CREATE TABLE IF NOT EXISTS hotels (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    name VARCHAR(200) NOT NULL,
    city VARCHAR(100) NOT NULL,
    single_price NUMERIC(10,2),
    single_view_price NUMERIC(10,2),
    double_without_view_price NUMERIC(10,2),
    double_view_price NUMERIC(10,2),
    triple_without_view_price NUMERIC(10,2),
    triple_view_price NUMERIC(10,2),
    rating SMALLINT CHECK (rating BETWEEN 1 AND 5),
    distance_from_center NUMERIC(6,2),
    amenities JSONB NOT NULL DEFAULT '[]',
    is_active BOOLEAN NOT NULL DEFAULT TRUE,
    deleted BOOLEAN NOT NULL DEFAULT FALSE,
    created_at TIMESTAMPTZ DEFAULT now(),
    updated_at TIMESTAMPTZ DEFAULT now()
);
CREATE UNIQUE INDEX IF NOT EXISTS uq_hotels_city_name ON hotels(city, name) WHERE deleted = FALSE;
CREATE INDEX IF NOT EXISTS idx_hotels_city ON hotels(city);

CREATE TABLE IF NOT EXISTS transport (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    type VARCHAR(100) NOT NULL,
    capacity VARCHAR(100) NOT NULL DEFAULT '',
    daily_price NUMERIC(10,2) NOT NULL CHECK (daily_price >= 0),
    reception_same_city_price NUMERIC(10,2) NOT NULL DEFAULT 0,
    reception_different_city_price NUMERIC(10,2) NOT NULL DEFAULT 0,
    farewell_same_city_price NUMERIC(10,2) NOT NULL DEFAULT 0,
    farewell_different_city_price NUMERIC(10,2) NOT NULL DEFAULT 0,
    is_active BOOLEAN NOT NULL DEFAULT TRUE,
    deleted BOOLEAN NOT NULL DEFAULT FALSE,
    created_at TIMESTAMPTZ DEFAULT now(),
    updated_at TIMESTAMPTZ DEFAULT now()
);
CREATE UNIQUE INDEX IF NOT EXISTS uq_transport_type ON transport(type) WHERE deleted = FALSE;

CREATE TABLE IF NOT EXISTS services (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    key VARCHAR(50) NOT NULL,
    name VARCHAR(200) NOT NULL,
    price NUMERIC(10,2) NOT NULL CHECK (price >= 0),
    unit VARCHAR(30) NOT NULL DEFAULT 'flat'
        CHECK (unit IN ('flat', 'per_unit', 'per_person', 'per_person_per_night')),
    description TEXT NOT NULL DEFAULT '',
    is_active BOOLEAN NOT NULL DEFAULT TRUE,
    deleted BOOLEAN NOT NULL DEFAULT FALSE,
    created_at TIMESTAMPTZ DEFAULT now(),
    updated_at TIMESTAMPTZ DEFAULT now()
);
CREATE UNIQUE INDEX IF NOT EXISTS uq_services_key ON services(key) WHERE deleted = FALSE;

CREATE TABLE IF NOT EXISTS discount_codes (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    code VARCHAR(50) NOT NULL,
    percentage NUMERIC(5,2) CHECK (percentage BETWEEN 1 AND 100),
    waived_item VARCHAR(20)
        CHECK (waived_item IN ('transport', 'reception', 'farewell', 'tours', 'services')),
    expires_at TIMESTAMPTZ,
    max_uses INTEGER CHECK (max_uses >= 1),
    current_uses INTEGER NOT NULL DEFAULT 0,
    is_active BOOLEAN NOT NULL DEFAULT TRUE,
    deleted BOOLEAN NOT NULL DEFAULT FALSE,
    created_at TIMESTAMPTZ DEFAULT now(),
    updated_at TIMESTAMPTZ DEFAULT now(),
    CHECK ((percentage IS NULL) <> (waived_item IS NULL))
);
CREATE UNIQUE INDEX IF NOT EXISTS uq_discount_codes_code ON discount_codes(upper(code)) WHERE deleted = FALSE;

CREATE TABLE IF NOT EXISTS bookings (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    reference_number VARCHAR(30) NOT NULL CONSTRAINT uq_bookings_reference UNIQUE,
    customer_name VARCHAR(200) NOT NULL,
    phone_number VARCHAR(30) NOT NULL,
    email VARCHAR(200),
    adults INTEGER NOT NULL CHECK (adults >= 1),
    children JSONB NOT NULL DEFAULT '[]',
    arrival_date DATE NOT NULL,
    departure_date DATE NOT NULL,
    arrival_airport VARCHAR(3),
    departure_airport VARCHAR(3),
    rooms INTEGER NOT NULL CHECK (rooms >= 1),
    budget NUMERIC(12,2) NOT NULL DEFAULT 0,
    currency VARCHAR(3) NOT NULL DEFAULT 'USD',
    car_type VARCHAR(100),
    room_types JSONB NOT NULL DEFAULT '[]',
    selected_cities JSONB NOT NULL DEFAULT '[]',
    additional_services JSONB NOT NULL DEFAULT '{}',
    total_cost NUMERIC(12,2) NOT NULL DEFAULT 0,
    discount_amount NUMERIC(12,2) NOT NULL DEFAULT 0,
    discount_coupon VARCHAR(50),
    status VARCHAR(20) NOT NULL DEFAULT 'pending'
        CHECK (status IN ('pending', 'confirmed', 'completed', 'cancelled')),
    created_at TIMESTAMPTZ DEFAULT now(),
    updated_at TIMESTAMPTZ DEFAULT now()
);
CREATE INDEX IF NOT EXISTS idx_bookings_status ON bookings(status);
CREATE INDEX IF NOT EXISTS idx_bookings_created_at ON bookings(created_at);

CREATE TABLE IF NOT EXISTS discount_code_usage (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    booking_id UUID NOT NULL REFERENCES bookings(id) ON DELETE CASCADE,
    discount_code_id UUID NOT NULL REFERENCES discount_codes(id),
    used_at TIMESTAMPTZ DEFAULT now()
);

CREATE TABLE IF NOT EXISTS booking_files (
    id UUID PRIMARY KEY,
    booking_id UUID NOT NULL REFERENCES bookings(id) ON DELETE CASCADE,
    file_name VARCHAR(255) NOT NULL,
    file_type VARCHAR(20) NOT NULL CHECK (file_type IN ('passport', 'ticket')),
    file_url TEXT NOT NULL,
    file_size INTEGER,
    mime_type VARCHAR(100),
    uploaded_at TIMESTAMPTZ DEFAULT now()
);
CREATE INDEX IF NOT EXISTS idx_booking_files_booking ON booking_files(booking_id);
"""

CITIES_SEED = [
    # name, description
    ('Tbilisi', 'العاصمة والمدينة القديمة'),
    ('Kakheti', 'منطقة الكروم والأديرة'),
    ('Dashbashi', 'الوادي والجسر الزجاجي'),
    ('Gudauri', 'منتجع الجبال والتزلج'),
    ('Borjomi', 'المياه المعدنية والحدائق'),
    ('Bakuriani', 'منتجع جبلي'),
    ('Batumi', 'مدينة البحر الأسود'),
    ('Kutaisi', 'الكهوف والشلالات'),
]

TRANSPORT_SEED = [
    # type, capacity, daily, reception same/different, farewell same/different
    ('سيارة اقتصادية', '1-3 أشخاص', 50, 30, 80, 30, 80),
    ('سيارة متوسطة', '1-4 أشخاص', 70, 40, 100, 40, 100),
    ('سيارة كبيرة', '1-6 أشخاص', 90, 50, 120, 50, 120),
    ('فان', '1-8 أشخاص', 120, 60, 150, 60, 150),
    ('حافلة صغيرة', '1-15 شخص', 180, 80, 200, 80, 200),
    ('حافلة كبيرة', '1-30 شخص', 250, 100, 250, 100, 250),
]

SERVICES_SEED = [
    # key, name, price, unit
    ('travel_insurance', 'تأمين السفر', 5, 'per_person_per_night'),
    ('phone_lines', 'خطوط اتصال', 15, 'per_unit'),
    ('room_decoration', 'تزيين الغرفة', 50, 'flat'),
    ('airport_reception', 'استقبال VIP في المطار', 25, 'per_person'),
    ('photo_session', 'جلسة تصوير', 100, 'per_unit'),
    ('flower_reception', 'استقبال بالورود', 40, 'flat'),
]

HOTELS_SEED = [
    # name, city, single, single view, double, double view, triple, triple view, rating
    ('Tbilisi Marriott', 'Tbilisi', 90, 110, 100, 120, 140, 160, 5),
    ('Ibis Styles Tbilisi', 'Tbilisi', 45, None, 55, None, 75, None, 3),
    ('Hilton Batumi', 'Batumi', 100, 130, 110, 140, 150, 180, 5),
    ('Sea Breeze Batumi', 'Batumi', 50, 65, 60, 80, 85, 100, 4),
    ('Best Western Kutaisi', 'Kutaisi', 55, None, 65, 75, 90, None, 4),
    ('Borjomi Palace', 'Borjomi', 70, 85, 80, 95, 110, 125, 4),
]


def migrate(conn):
    cur = conn.cursor()
    cur.execute(SCHEMA_SQL)

    for row in CITIES_SEED:
        cur.execute(
            """INSERT INTO cities (name, description) VALUES (%s,%s)
               ON CONFLICT (name) WHERE deleted = FALSE DO NOTHING""",
            row
        )

    for row in TRANSPORT_SEED:
        cur.execute(
            """INSERT INTO transport (type, capacity, daily_price,
               reception_same_city_price, reception_different_city_price,
               farewell_same_city_price, farewell_different_city_price)
               VALUES (%s,%s,%s,%s,%s,%s,%s)
               ON CONFLICT (type) WHERE deleted = FALSE DO NOTHING""",
            row
        )

    for row in SERVICES_SEED:
        cur.execute(
            """INSERT INTO services (key, name, price, unit) VALUES (%s,%s,%s,%s)
               ON CONFLICT (key) WHERE deleted = FALSE DO NOTHING""",
            row
        )

    for row in HOTELS_SEED:
        cur.execute(
            """INSERT INTO hotels (name, city, single_price, single_view_price,
               double_without_view_price, double_view_price,
               triple_without_view_price, triple_view_price, rating)
               VALUES (%s,%s,%s,%s,%s,%s,%s,%s,%s)
               ON CONFLICT (city, name) WHERE deleted = FALSE DO NOTHING""",
            row
        )

    cur.execute(
        """INSERT INTO discount_codes (code, percentage, max_uses) VALUES ('10PERCENT', 10, 100)
           ON CONFLICT (upper(code)) WHERE deleted = FALSE DO NOTHING"""
    )
    conn.commit()


if __name__ == '__main__':
    conn = psycopg2.connect(**config.DB_CONFIG)
    try:
        migrate(conn)
    finally:
        conn.close()
    print("✅ booking schema created and default catalog seeded.")
