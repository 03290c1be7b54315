"""
Database connection helper.

This module centralizes how connections are created. Right now we use
`psycopg.connect(settings.db_url)` which opens a new connection per call,
so every repository method is its own short transaction. Nothing here
spans more than one statement group; read-then-write sequences in the
services are deliberately not atomic.

Usage:
    from db import get_conn
    with get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute("SELECT 1;")
"""

import psycopg
from settings import settings


def get_conn():
    """Return a new psycopg connection using `settings.db_url`.

    We add a short `connect_timeout` so HTTP requests don't hang
    indefinitely if the database is unreachable.
    """

    return psycopg.connect(settings.db_url, connect_timeout=settings.db_connect_timeout)
