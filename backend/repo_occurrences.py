"""
Repository: SQL operations for `occurrences`.

This file contains only DB interaction code. Rows come back as plain
dicts (see `db.get_conn`, which uses `dict_row`). Keep business rules out
of this module; ordering, grouping and pagination live in `timeline`.

Important notes:
- Reads join `occurrence_codes` so each row carries `code_description`,
  `code_type` and `finalizadora` (NULL when the code is not catalogued).
- `insert` relies on the `uq_occurrences_dedup` index as a backstop for
  the read-before-write duplicate check done by the service; a unique
  violation is reported as `ConflictError`.
- Write methods commit before returning.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

import psycopg
from psycopg import sql

from db import get_conn
from errors import ConflictError
from log_config import get_logger

logger = get_logger(__name__)

_SELECT_JOINED = """
    SELECT o.*,
           co.description AS code_description,
           co.tipo AS code_type,
           co.finalizadora
    FROM occurrences o
    LEFT JOIN occurrence_codes co ON co.code = o.code
"""

# Same rule as timeline.sort_descending.
_ORDER_DESC = "ORDER BY COALESCE(o.event_at, o.sent_at) DESC, o.sent_at DESC, o.id DESC"

INSERT_COLUMNS = (
    "invoice_number",
    "code",
    "description",
    "sent_at",
    "event_at",
    "complement",
    "recipient_name",
    "recipient_document",
    "latitude",
    "longitude",
    "proof_url",
    "status",
)


class OccurrenceRepo:
    """DB access only. No business logic here."""

    def fetch_by_invoice(self, invoice_number: int) -> List[Dict[str, Any]]:
        """All occurrences of an invoice, newest first."""

        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"{_SELECT_JOINED} WHERE o.invoice_number = %s {_ORDER_DESC}",
                    (invoice_number,),
                )
                return cur.fetchall()

    def find_duplicate(
        self, invoice_number: int, code: int, event_at: datetime
    ) -> Optional[Dict[str, Any]]:
        """Return the occurrence sharing (invoice, code, event time), if any."""

        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "SELECT * FROM occurrences "
                    "WHERE invoice_number = %s AND code = %s AND event_at = %s LIMIT 1",
                    (invoice_number, code, event_at),
                )
                return cur.fetchone()

    def find_by_id(self, occurrence_id: int) -> Optional[Dict[str, Any]]:
        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute(f"{_SELECT_JOINED} WHERE o.id = %s", (occurrence_id,))
                return cur.fetchone()

    def insert(self, values: Dict[str, Any]) -> Dict[str, Any]:
        """Insert one occurrence and return the stored row.

        `values` is keyed by column name; missing optional columns are
        stored as NULL.
        """

        params = [values.get(col) for col in INSERT_COLUMNS]
        query = sql.SQL("INSERT INTO occurrences ({}) VALUES ({}) RETURNING *").format(
            sql.SQL(", ").join(map(sql.Identifier, INSERT_COLUMNS)),
            sql.SQL(", ").join(sql.Placeholder() * len(INSERT_COLUMNS)),
        )
        try:
            with get_conn() as conn:
                with conn.cursor() as cur:
                    cur.execute(query, params)
                    row = cur.fetchone()
                conn.commit()
        except psycopg.errors.UniqueViolation as e:
            logger.warning(
                "Unique index rejected occurrence: invoice=%s code=%s",
                values.get("invoice_number"), values.get("code"),
            )
            raise ConflictError(
                "Occurrence already exists for this invoice, code and event time"
            ) from e
        return row

    def update(self, occurrence_id: int, changes: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Apply `changes` (column -> value) and bump `updated_at`."""

        assignments = [
            sql.SQL("{} = {}").format(sql.Identifier(col), sql.Placeholder())
            for col in changes
        ]
        assignments.append(sql.SQL("updated_at = now()"))
        query = sql.SQL("UPDATE occurrences SET {} WHERE id = {} RETURNING *").format(
            sql.SQL(", ").join(assignments), sql.Placeholder()
        )
        try:
            with get_conn() as conn:
                with conn.cursor() as cur:
                    cur.execute(query, [*changes.values(), occurrence_id])
                    row = cur.fetchone()
                conn.commit()
        except psycopg.errors.UniqueViolation as e:
            raise ConflictError(
                "Occurrence already exists for this invoice, code and event time"
            ) from e
        return row

    def delete(self, occurrence_id: int) -> bool:
        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute("DELETE FROM occurrences WHERE id = %s", (occurrence_id,))
                deleted = cur.rowcount > 0
            conn.commit()
        return deleted

    def ping(self) -> None:
        """Lightweight DB health check. Raises on error."""

        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1;")
