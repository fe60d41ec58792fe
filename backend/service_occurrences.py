"""
Service / facade layer for invoice occurrences.

This module implements business rules and normalization before any DB
interaction. It is free of SQL: it talks to an `OccurrenceStore` and an
`InvoiceLookup` (the SQL repositories in production, in-memory fakes in
tests) and delegates all ordering/grouping/pagination to `timeline`.

Write path (`create_occurrence`), in order:
1. `prepare_occurrence` validates and normalizes the input (UTC
   timestamps, plain-str URL).
2. `check_duplicate` rejects an (invoice, code, event time) triple that
   is already stored.
3. `store.insert` persists the row.

Every read and write first checks that the invoice exists and raises
`NotFoundError` otherwise.

`create_batch` runs the same write path once per item of an inbound
batch. A failing item is reported in the result and does not stop the
others.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol

from errors import ConflictError, InvalidArgumentError, NotFoundError, TrackingError
from log_config import get_logger
from models import OccurrenceBatchItem, OccurrenceCreate, OccurrenceUpdate
from settings import settings
import timeline

logger = get_logger(__name__)

# Columns that cannot be set back to NULL through an update.
_NOT_NULL_ON_UPDATE = {"description", "sent_at", "status"}


class OccurrenceStore(Protocol):
    def fetch_by_invoice(self, invoice_number: int) -> List[Dict[str, Any]]: ...

    def find_duplicate(
        self, invoice_number: int, code: int, event_at: datetime
    ) -> Optional[Dict[str, Any]]: ...

    def find_by_id(self, occurrence_id: int) -> Optional[Dict[str, Any]]: ...

    def insert(self, values: Dict[str, Any]) -> Dict[str, Any]: ...

    def update(self, occurrence_id: int, changes: Dict[str, Any]) -> Optional[Dict[str, Any]]: ...

    def delete(self, occurrence_id: int) -> bool: ...


class InvoiceLookup(Protocol):
    def find_by_number(self, number: int) -> Optional[Dict[str, Any]]: ...


def prepare_occurrence(invoice_number: int, data: OccurrenceCreate) -> Dict[str, Any]:
    """Turn a validated request into the column values to insert."""

    values = data.model_dump()
    values["invoice_number"] = invoice_number
    values["code"] = timeline.parse_code(data.code)
    values["sent_at"] = timeline.normalize_timestamp(data.sent_at, "sent_at")
    values["event_at"] = timeline.normalize_timestamp(data.event_at, "event_at")
    values["status"] = data.status.value
    values["proof_url"] = str(data.proof_url) if data.proof_url is not None else None
    return values


def check_duplicate(store: OccurrenceStore, values: Dict[str, Any]) -> None:
    """Raise `ConflictError` if the occurrence's natural key is taken."""

    key = timeline.dedup_key(values["invoice_number"], values["code"], values.get("event_at"))
    if key is None:
        return
    if store.find_duplicate(*key) is not None:
        logger.warning(
            "Duplicate occurrence rejected: invoice=%s code=%s event_at=%s",
            key[0], key[1], key[2].isoformat(),
        )
        raise ConflictError("Occurrence already exists for this invoice, code and event time")


def create_occurrence(
    store: OccurrenceStore, invoice_number: int, data: OccurrenceCreate
) -> Dict[str, Any]:
    values = prepare_occurrence(invoice_number, data)
    check_duplicate(store, values)
    row = store.insert(values)
    logger.info(
        "Occurrence %s created: invoice=%s code=%s",
        row.get("id"), invoice_number, values["code"],
    )
    return row


class OccurrenceService:
    """Per-invoice occurrence operations.

    Example usage:
        svc = OccurrenceService(OccurrenceRepo(), InvoiceRepo())
        svc.statistics(12345)
    """

    def __init__(self, store: OccurrenceStore, invoices: InvoiceLookup):
        self.store = store
        self.invoices = invoices

    def _require_invoice(self, invoice_number: int) -> Dict[str, Any]:
        invoice = self.invoices.find_by_number(invoice_number)
        if invoice is None:
            raise NotFoundError(f"Invoice {invoice_number} not found")
        return invoice

    def _ordered(self, invoice_number: int) -> List[Dict[str, Any]]:
        # Re-sorted so the order never depends on the store.
        return timeline.sort_descending(self.store.fetch_by_invoice(invoice_number))

    def _owned_occurrence(self, invoice_number: int, occurrence_id: int) -> Dict[str, Any]:
        occurrence = self.store.find_by_id(occurrence_id)
        if occurrence is None:
            raise NotFoundError(f"Occurrence {occurrence_id} not found")
        if occurrence["invoice_number"] != invoice_number:
            raise InvalidArgumentError(
                f"Occurrence {occurrence_id} does not belong to invoice {invoice_number}"
            )
        return occurrence

    def list_page(
        self, invoice_number: int, page: int = 1, limit: Optional[int] = None
    ) -> Dict[str, Any]:
        self._require_invoice(invoice_number)
        if limit is None:
            limit = settings.default_page_limit
        return timeline.paginate(
            self._ordered(invoice_number), page, limit, max_limit=settings.max_page_limit
        )

    def last_occurrence(self, invoice_number: int) -> Dict[str, Any]:
        self._require_invoice(invoice_number)
        _, last = timeline.first_and_last(self._ordered(invoice_number))
        if last is None:
            raise NotFoundError(f"No occurrences found for invoice {invoice_number}")
        return last

    def by_code(self, invoice_number: int, code: Any) -> List[Dict[str, Any]]:
        code = timeline.parse_code(code)
        self._require_invoice(invoice_number)
        matches = [o for o in self._ordered(invoice_number) if o["code"] == code]
        if not matches:
            raise NotFoundError(
                f"No occurrences found for invoice {invoice_number} with code {code}"
            )
        return matches

    def statistics(self, invoice_number: int) -> Dict[str, Any]:
        self._require_invoice(invoice_number)
        return timeline.build_statistics(self._ordered(invoice_number))

    def create(self, invoice_number: int, data: OccurrenceCreate) -> Dict[str, Any]:
        self._require_invoice(invoice_number)
        return create_occurrence(self.store, invoice_number, data)

    def create_batch(self, items: List[OccurrenceBatchItem]) -> Dict[str, Any]:
        """Create every item independently and report the outcome of each.

        Returns `{"summary": {"processed", "created", "errors"}, "details": [...]}`
        where each detail carries `index`, `nro_nf`, `code`, `status`
        (`success` or `error`) and `message`, plus `id` on success.
        """

        details = []
        created = 0
        for index, item in enumerate(items):
            detail: Dict[str, Any] = {"index": index, "nro_nf": item.nro_nf, "code": item.code}
            try:
                row = self.create(item.nro_nf, item.to_occurrence())
            except TrackingError as e:
                logger.warning("Batch item %s rejected: invoice=%s %s", index, item.nro_nf, e)
                detail.update(status="error", message=str(e))
            else:
                created += 1
                detail.update(status="success", message="Occurrence created", id=row.get("id"))
            details.append(detail)

        summary = {"processed": len(items), "created": created, "errors": len(items) - created}
        logger.info(
            "Occurrence batch processed: processed=%s created=%s errors=%s",
            summary["processed"], summary["created"], summary["errors"],
        )
        return {"summary": summary, "details": details}

    def update(
        self, invoice_number: int, occurrence_id: int, data: OccurrenceUpdate
    ) -> Dict[str, Any]:
        self._require_invoice(invoice_number)
        current = self._owned_occurrence(invoice_number, occurrence_id)

        changes = data.model_dump(exclude_unset=True)
        for col in _NOT_NULL_ON_UPDATE:
            if col in changes and changes[col] is None:
                raise InvalidArgumentError(f"{col} cannot be null")
        for col in ("sent_at", "event_at"):
            if col in changes:
                changes[col] = timeline.normalize_timestamp(changes[col], col)
        if changes.get("event_at") is not None:
            clash = self.store.find_duplicate(invoice_number, current["code"], changes["event_at"])
            if clash is not None and clash["id"] != occurrence_id:
                raise ConflictError(
                    "Occurrence already exists for this invoice, code and event time"
                )
        if changes.get("status") is not None:
            changes["status"] = data.status.value
        if changes.get("proof_url") is not None:
            changes["proof_url"] = str(data.proof_url)

        row = self.store.update(occurrence_id, changes)
        if row is None:
            raise NotFoundError(f"Occurrence {occurrence_id} not found")
        logger.info("Occurrence %s updated: fields=%s", occurrence_id, sorted(changes))
        return row

    def delete(self, invoice_number: int, occurrence_id: int) -> None:
        self._require_invoice(invoice_number)
        self._owned_occurrence(invoice_number, occurrence_id)
        if not self.store.delete(occurrence_id):
            raise NotFoundError(f"Occurrence {occurrence_id} not found")
        logger.info("Occurrence %s deleted from invoice %s", occurrence_id, invoice_number)
