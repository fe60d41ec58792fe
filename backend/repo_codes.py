"""
Repository: SQL operations for the `occurrence_codes` catalog.

Unlike occurrences, catalog listing is paginated in SQL: the catalog is
shared by every invoice and has no natural per-request bound.

`insert` and `update` report a violation of `UNIQUE(code)` as
`ConflictError`, which covers a write racing the service's lookup.
"""

from typing import Any, Dict, List, Optional, Tuple

import psycopg
from psycopg import sql

from db import get_conn
from errors import ConflictError
from log_config import get_logger

logger = get_logger(__name__)

CODE_COLUMNS = ("code", "description", "tipo", "processo", "finalizadora", "api")


class OccurrenceCodeRepo:
    """DB access only. No business logic here."""

    def list(
        self, filters: Dict[str, Any], page: int, limit: int
    ) -> Tuple[List[Dict[str, Any]], int]:
        """Return one page of catalog rows ordered by code, plus the total.

        Supported filters: `tipo`, `processo`, `finalizadora`, `api`
        (exact match) and `search` (case-insensitive match on description).
        """

        where = []
        params: List[Any] = []
        for col in ("tipo", "processo", "finalizadora", "api"):
            if filters.get(col) is not None:
                where.append(sql.SQL("{} = %s").format(sql.Identifier(col)))
                params.append(filters[col])
        if filters.get("search"):
            where.append(sql.SQL("description ILIKE %s"))
            params.append(f"%{filters['search']}%")

        where_sql = (
            sql.SQL("WHERE ") + sql.SQL(" AND ").join(where) if where else sql.SQL("")
        )
        count_query = sql.SQL("SELECT COUNT(*) AS total FROM occurrence_codes {}").format(where_sql)
        data_query = sql.SQL(
            "SELECT * FROM occurrence_codes {} ORDER BY code ASC LIMIT %s OFFSET %s"
        ).format(where_sql)

        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute(count_query, params)
                total = cur.fetchone()["total"]
                cur.execute(data_query, [*params, limit, (page - 1) * limit])
                return cur.fetchall(), total

    def find_by_id(self, code_id: int) -> Optional[Dict[str, Any]]:
        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT * FROM occurrence_codes WHERE id = %s", (code_id,))
                return cur.fetchone()

    def find_by_code(self, code: int) -> Optional[Dict[str, Any]]:
        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT * FROM occurrence_codes WHERE code = %s LIMIT 1", (code,))
                return cur.fetchone()

    def insert(self, values: Dict[str, Any]) -> Dict[str, Any]:
        query = sql.SQL("INSERT INTO occurrence_codes ({}) VALUES ({}) RETURNING *").format(
            sql.SQL(", ").join(map(sql.Identifier, CODE_COLUMNS)),
            sql.SQL(", ").join(sql.Placeholder() * len(CODE_COLUMNS)),
        )
        try:
            with get_conn() as conn:
                with conn.cursor() as cur:
                    cur.execute(query, [values.get(col) for col in CODE_COLUMNS])
                    row = cur.fetchone()
                conn.commit()
        except psycopg.errors.UniqueViolation as e:
            logger.warning("Unique index rejected occurrence code %s", values.get("code"))
            raise ConflictError(
                f"An occurrence code with number {values.get('code')} already exists"
            ) from e
        return row

    def update(self, code_id: int, changes: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        assignments = [
            sql.SQL("{} = {}").format(sql.Identifier(col), sql.Placeholder())
            for col in changes
        ]
        assignments.append(sql.SQL("updated_at = now()"))
        query = sql.SQL("UPDATE occurrence_codes SET {} WHERE id = {} RETURNING *").format(
            sql.SQL(", ").join(assignments), sql.Placeholder()
        )
        try:
            with get_conn() as conn:
                with conn.cursor() as cur:
                    cur.execute(query, [*changes.values(), code_id])
                    row = cur.fetchone()
                conn.commit()
        except psycopg.errors.UniqueViolation as e:
            raise ConflictError(
                f"An occurrence code with number {changes.get('code')} already exists"
            ) from e
        return row

    def delete(self, code_id: int) -> bool:
        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute("DELETE FROM occurrence_codes WHERE id = %s", (code_id,))
                deleted = cur.rowcount > 0
            conn.commit()
        return deleted

    def is_in_use(self, code: int) -> bool:
        """True when at least one occurrence references `code`."""

        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1 FROM occurrences WHERE code = %s LIMIT 1", (code,))
                return cur.fetchone() is not None

    def stats(self) -> Dict[str, Any]:
        """Catalog totals plus counts per `tipo` and per `processo`."""

        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    SELECT COUNT(*) AS total,
                           COUNT(*) FILTER (WHERE finalizadora) AS finalizadoras,
                           COUNT(*) FILTER (WHERE api) AS api
                    FROM occurrence_codes
                    """
                )
                counts = dict(cur.fetchone())
                cur.execute("SELECT tipo, COUNT(*) AS n FROM occurrence_codes GROUP BY tipo")
                counts["by_tipo"] = {r["tipo"]: r["n"] for r in cur.fetchall()}
                cur.execute(
                    "SELECT processo, COUNT(*) AS n FROM occurrence_codes GROUP BY processo"
                )
                counts["by_processo"] = {r["processo"]: r["n"] for r in cur.fetchall()}
        return counts
