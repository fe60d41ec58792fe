"""
Service layer for the occurrence-code catalog.

Code uniqueness is enforced here by lookup-before-write (the repository
maps a racing unique violation to `ConflictError`). A code that is still
referenced by occurrences can be neither deleted nor renumbered.
"""

from typing import Any, Dict, List, Optional, Protocol, Tuple

from errors import ConflictError, InvalidArgumentError, NotFoundError
from log_config import get_logger
from models import OccurrenceCodeCreate, OccurrenceCodeUpdate, OccurrenceProcess, OccurrenceType
from settings import settings
import timeline

logger = get_logger(__name__)


class OccurrenceCodeStore(Protocol):
    def list(
        self, filters: Dict[str, Any], page: int, limit: int
    ) -> Tuple[List[Dict[str, Any]], int]: ...

    def find_by_id(self, code_id: int) -> Optional[Dict[str, Any]]: ...

    def find_by_code(self, code: int) -> Optional[Dict[str, Any]]: ...

    def insert(self, values: Dict[str, Any]) -> Dict[str, Any]: ...

    def update(self, code_id: int, changes: Dict[str, Any]) -> Optional[Dict[str, Any]]: ...

    def delete(self, code_id: int) -> bool: ...

    def is_in_use(self, code: int) -> bool: ...

    def stats(self) -> Dict[str, Any]: ...


def _enum_values(data: Dict[str, Any]) -> Dict[str, Any]:
    for key in ("tipo", "processo"):
        if data.get(key) is not None:
            data[key] = getattr(data[key], "value", data[key])
    return data


class OccurrenceCodeService:
    def __init__(self, store: OccurrenceCodeStore):
        self.store = store

    @staticmethod
    def tipos() -> List[str]:
        return [t.value for t in OccurrenceType]

    @staticmethod
    def processos() -> List[str]:
        return [p.value for p in OccurrenceProcess]

    def list(
        self,
        page: int = 1,
        limit: Optional[int] = None,
        tipo: Optional[OccurrenceType] = None,
        processo: Optional[OccurrenceProcess] = None,
        finalizadora: Optional[bool] = None,
        api: Optional[bool] = None,
        search: Optional[str] = None,
    ) -> Dict[str, Any]:
        """One page of catalog entries ordered by code."""

        if limit is None:
            limit = settings.default_page_limit
        timeline.check_page(page, limit, settings.max_page_limit)
        if search is not None:
            search = search.strip()
            if len(search) < 2:
                raise InvalidArgumentError("search must have at least 2 characters")

        filters = _enum_values({
            "tipo": tipo,
            "processo": processo,
            "finalizadora": finalizadora,
            "api": api,
            "search": search,
        })
        rows, total = self.store.list(filters, page, limit)
        return {"items": rows, "pagination": timeline.page_info(page, limit, total)}

    def statistics(self) -> Dict[str, Any]:
        """Catalog totals, with a zero count for every unused tipo/processo."""

        counts = self.store.stats()
        return {
            "total": counts["total"],
            "finalizadoras": counts["finalizadoras"],
            "api": counts["api"],
            "byTipo": {t.value: counts["by_tipo"].get(t.value, 0) for t in OccurrenceType},
            "byProcesso": {
                p.value: counts["by_processo"].get(p.value, 0) for p in OccurrenceProcess
            },
        }

    def get(self, code_id: int) -> Dict[str, Any]:
        row = self.store.find_by_id(code_id)
        if row is None:
            raise NotFoundError(f"Occurrence code id {code_id} not found")
        return row

    def get_by_code(self, code: Any) -> Dict[str, Any]:
        code = timeline.parse_code(code)
        row = self.store.find_by_code(code)
        if row is None:
            raise NotFoundError(f"Occurrence code {code} not found")
        return row

    def create(self, data: OccurrenceCodeCreate) -> Dict[str, Any]:
        if self.store.find_by_code(data.code) is not None:
            raise ConflictError(f"An occurrence code with number {data.code} already exists")
        row = self.store.insert(_enum_values(data.model_dump()))
        logger.info("Occurrence code %s created", data.code)
        return row

    def update(self, code_id: int, data: OccurrenceCodeUpdate) -> Dict[str, Any]:
        current = self.get(code_id)
        changes = data.model_dump(exclude_unset=True)
        for col, value in changes.items():
            if value is None:
                raise InvalidArgumentError(f"{col} cannot be null")

        new_code = changes.get("code")
        if new_code is not None and new_code != current["code"]:
            other = self.store.find_by_code(new_code)
            if other is not None and other["id"] != code_id:
                raise ConflictError(f"An occurrence code with number {new_code} already exists")
            if self.store.is_in_use(current["code"]):
                raise ConflictError(
                    f"Occurrence code {current['code']} is referenced by occurrences "
                    "and cannot be renumbered"
                )

        row = self.store.update(code_id, _enum_values(changes))
        if row is None:
            raise NotFoundError(f"Occurrence code id {code_id} not found")
        logger.info("Occurrence code id %s updated: fields=%s", code_id, sorted(changes))
        return row

    def delete(self, code_id: int) -> None:
        current = self.get(code_id)
        if self.store.is_in_use(current["code"]):
            raise ConflictError(
                f"Occurrence code {current['code']} is referenced by occurrences"
            )
        self.store.delete(code_id)
        logger.info("Occurrence code %s deleted", current["code"])
