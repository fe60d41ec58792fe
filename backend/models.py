"""
Pydantic models used across the backend.

Only request shapes belong here. These models provide validation at the
FastAPI route boundary and are reused in service/repo layers. Rows read
back from the database stay plain dicts (see the repositories).

Guidelines:
- Keep models minimal and stable.
- Identity fields of an occurrence (`invoice_number`, `code`) are set on
  creation only, so the update shape forbids them.
"""

from datetime import datetime
from enum import Enum
from typing import Any, List, Optional

from pydantic import AnyUrl, BaseModel, ConfigDict, Field, field_validator, model_validator


class OccurrenceStatus(str, Enum):
    WAITING = "waiting"
    RUNNING = "running"
    FINISHED = "finished"


class OccurrenceType(str, Enum):
    """Classification ("tipo") of a catalog entry."""

    ENTREGA = "entrega"
    COLETA = "coleta"
    OCORRENCIA = "ocorrencia"
    STATUS = "status"
    INFORMATIVO = "informativo"


class OccurrenceProcess(str, Enum):
    """Process ("processo") a catalog entry belongs to."""

    TRANSPORTE = "transporte"
    ENTREGA = "entrega"
    COLETA = "coleta"
    FINALIZACAO = "finalizacao"
    CANCELAMENTO = "cancelamento"
    INFORMATIVO = "informativo"


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and value.strip() == "":
        return None
    return value


class _OccurrenceFields(BaseModel):
    """Optional fields shared by the create and update shapes."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    complement: Optional[str] = Field(default=None, max_length=255)
    recipient_name: Optional[str] = Field(default=None, max_length=255)
    recipient_document: Optional[str] = Field(default=None, max_length=20)
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    proof_url: Optional[AnyUrl] = None

    @field_validator(
        "complement", "recipient_name", "recipient_document", "proof_url", mode="before"
    )
    @classmethod
    def _empty_strings_are_null(cls, v: Any) -> Any:
        return _blank_to_none(v)


class OccurrenceCreate(_OccurrenceFields):
    """Input shape for a new tracking event on an invoice.

    Fields:
    - `code`: catalog code of the event (positive integer).
    - `description`: free text sent by the carrier.
    - `sent_at`: when the carrier submitted the event (required).
    - `event_at`: when the event happened; part of the dedup key when set.
    - `status`: processing status, `waiting` until picked up.
    """

    code: int = Field(gt=0)
    description: str = Field(min_length=1, max_length=65535)
    sent_at: datetime
    event_at: Optional[datetime] = None
    status: OccurrenceStatus = OccurrenceStatus.WAITING


BATCH_MAX_ITEMS = 200


class OccurrenceBatchItem(OccurrenceCreate):
    """One occurrence of an inbound batch, addressed to invoice `nro_nf`."""

    nro_nf: int = Field(gt=0)

    def to_occurrence(self) -> OccurrenceCreate:
        return OccurrenceCreate.model_construct(**self.model_dump(exclude={"nro_nf"}))


class OccurrenceBatch(BaseModel):
    ocorrencias: List[OccurrenceBatchItem] = Field(min_length=1, max_length=BATCH_MAX_ITEMS)


class OccurrenceUpdate(_OccurrenceFields):
    """Mutable fields of a stored occurrence. At least one must be given."""

    description: Optional[str] = Field(default=None, min_length=1, max_length=65535)
    sent_at: Optional[datetime] = None
    event_at: Optional[datetime] = None
    status: Optional[OccurrenceStatus] = None

    @model_validator(mode="after")
    def _not_empty(self) -> "OccurrenceUpdate":
        if not self.model_fields_set:
            raise ValueError("At least one field must be provided")
        return self


class _CodeFields(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    @field_validator("tipo", "processo", mode="before", check_fields=False)
    @classmethod
    def _lowercase(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().lower()
        return v


class OccurrenceCodeCreate(_CodeFields):
    """Catalog entry describing what an occurrence code means."""

    code: int = Field(gt=0)
    description: str = Field(min_length=5, max_length=1000)
    tipo: OccurrenceType
    processo: OccurrenceProcess
    finalizadora: bool = False
    api: bool = True


class OccurrenceCodeUpdate(_CodeFields):
    code: Optional[int] = Field(default=None, gt=0)
    description: Optional[str] = Field(default=None, min_length=5, max_length=1000)
    tipo: Optional[OccurrenceType] = None
    processo: Optional[OccurrenceProcess] = None
    finalizadora: Optional[bool] = None
    api: Optional[bool] = None

    @model_validator(mode="after")
    def _not_empty(self) -> "OccurrenceCodeUpdate":
        if not self.model_fields_set:
            raise ValueError("At least one field must be provided")
        return self
