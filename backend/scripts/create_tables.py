import sys
import os

import psycopg

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)) + '/..')

from settings import settings

DDL = '''
CREATE TABLE IF NOT EXISTS devices (
    device_id TEXT PRIMARY KEY,
    token TEXT NOT NULL,
    enabled BOOLEAN NOT NULL DEFAULT FALSE,
    created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT now()
);

CREATE TABLE IF NOT EXISTS device_commands (
    id TEXT PRIMARY KEY DEFAULT gen_random_uuid()::text,
    device_id TEXT NOT NULL,
    type TEXT,
    payload JSONB NOT NULL DEFAULT '{}'::jsonb,
    status TEXT NOT NULL DEFAULT 'pending'
        CHECK (status IN ('pending', 'running', 'completed')),
    created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT now(),
    started_at TIMESTAMP WITH TIME ZONE,
    completed_at TIMESTAMP WITH TIME ZONE,
    result_ref TEXT
);

CREATE INDEX IF NOT EXISTS idx_commands_pending
    ON device_commands (device_id, status, created_at);
CREATE INDEX IF NOT EXISTS idx_commands_running
    ON device_commands (device_id, status, started_at DESC);

CREATE TABLE IF NOT EXISTS heart_rate_telemetry (
    id BIGSERIAL PRIMARY KEY,
    device_id TEXT NOT NULL,
    bpm DOUBLE PRECISION NOT NULL,
    spo2 DOUBLE PRECISION NOT NULL,
    created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT now()
);

CREATE TABLE IF NOT EXISTS heart_rate_analysis (
    id BIGSERIAL PRIMARY KEY,
    device_id TEXT NOT NULL,
    bpm DOUBLE PRECISION NOT NULL,
    spo2 DOUBLE PRECISION NOT NULL,
    flags TEXT[] NOT NULL DEFAULT '{}',
    primary_status TEXT NOT NULL,
    reason TEXT NOT NULL,
    prev_bpm DOUBLE PRECISION,
    created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT now()
);

CREATE INDEX IF NOT EXISTS idx_hr_analysis_device_ts
    ON heart_rate_analysis (device_id, created_at DESC, id DESC);

CREATE TABLE IF NOT EXISTS environment_analysis (
    id BIGSERIAL PRIMARY KEY,
    device_id TEXT NOT NULL,
    command_id TEXT,
    image_path TEXT NOT NULL,
    image_url TEXT NOT NULL,
    image_size INTEGER NOT NULL,
    mimetype TEXT,
    result JSONB NOT NULL,
    created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT now()
);

CREATE INDEX IF NOT EXISTS idx_env_analysis_device_ts
    ON environment_analysis (device_id, created_at DESC, id DESC);
'''

print('Connecting to', settings.db_url)
with psycopg.connect(settings.db_url, connect_timeout=settings.db_connect_timeout) as conn:
    with conn.cursor() as cur:
        cur.execute(DDL)
    conn.commit()
print('DDL applied')
