"""Apply the schema used by the backend. Safe to run repeatedly."""

from settings import settings
import psycopg

DDL = '''
CREATE TABLE IF NOT EXISTS invoices (
    id BIGSERIAL PRIMARY KEY,
    number BIGINT NOT NULL,
    series TEXT,
    created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT now()
);

CREATE INDEX IF NOT EXISTS idx_invoices_number ON invoices (number);

CREATE TABLE IF NOT EXISTS occurrence_codes (
    id BIGSERIAL PRIMARY KEY,
    code INTEGER NOT NULL UNIQUE CHECK (code > 0),
    description TEXT NOT NULL,
    tipo TEXT NOT NULL,
    processo TEXT NOT NULL,
    finalizadora BOOLEAN NOT NULL DEFAULT false,
    api BOOLEAN NOT NULL DEFAULT true,
    created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT now(),
    updated_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT now()
);

CREATE TABLE IF NOT EXISTS occurrences (
    id BIGSERIAL PRIMARY KEY,
    invoice_number BIGINT NOT NULL,
    code INTEGER NOT NULL CHECK (code > 0),
    description TEXT NOT NULL,
    sent_at TIMESTAMP WITH TIME ZONE NOT NULL,
    event_at TIMESTAMP WITH TIME ZONE,
    complement VARCHAR(255),
    recipient_name VARCHAR(255),
    recipient_document VARCHAR(20),
    latitude DOUBLE PRECISION CHECK (latitude BETWEEN -90 AND 90),
    longitude DOUBLE PRECISION CHECK (longitude BETWEEN -180 AND 180),
    proof_url TEXT,
    status TEXT NOT NULL DEFAULT 'waiting'
        CHECK (status IN ('waiting', 'running', 'finished')),
    created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT now(),
    updated_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT now()
);

CREATE INDEX IF NOT EXISTS idx_occurrences_invoice ON occurrences (invoice_number);

-- Closes the race between two identical concurrent inserts. Rows without
-- an event time never conflict (NULLs are distinct).
CREATE UNIQUE INDEX IF NOT EXISTS uq_occurrences_dedup
    ON occurrences (invoice_number, code, event_at);
'''

print('Connecting to', settings.db_url)
with psycopg.connect(settings.db_url, connect_timeout=settings.db_connect_timeout) as conn:
    with conn.cursor() as cur:
        cur.execute(DDL)
    conn.commit()
print('DDL applied')
