"""
Database connection helper.

This module centralizes how connections are created. We use
`psycopg.connect(settings.db_url)` which opens a new connection per call,
with `dict_row` so repositories get rows keyed by column name.

Usage:
    from db import get_conn
    with get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute("SELECT 1;")
"""

import psycopg
from psycopg.rows import dict_row
from settings import settings


def get_conn():
    """Return a new psycopg connection using `settings.db_url`.

    A short `connect_timeout` keeps HTTP requests from hanging if the
    database is unreachable.
    """

    return psycopg.connect(
        settings.db_url,
        connect_timeout=settings.db_connect_timeout,
        row_factory=dict_row,
    )
