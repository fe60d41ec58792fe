"""
Repository: read-only lookups on `invoices`.

Invoices are owned elsewhere; occurrences only need to know whether the
invoice they attach to exists.
"""

from typing import Any, Dict, Optional

from db import get_conn


class InvoiceRepo:
    def find_by_number(self, number: int) -> Optional[Dict[str, Any]]:
        """Return the invoice row for `number`, or None."""

        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "SELECT * FROM invoices WHERE number = %s ORDER BY created_at DESC LIMIT 1",
                    (number,),
                )
                return cur.fetchone()
