from fastapi import FastAPI, HTTPException, Query, Request, Response
from fastapi.responses import JSONResponse
from typing import Optional

from errors import ConflictError, InvalidArgumentError, NotFoundError
from log_config import get_logger, setup_logging
from models import (
    OccurrenceBatch,
    OccurrenceCodeCreate,
    OccurrenceCodeUpdate,
    OccurrenceCreate,
    OccurrenceProcess,
    OccurrenceType,
    OccurrenceUpdate,
)
from repo_codes import OccurrenceCodeRepo
from repo_invoices import InvoiceRepo
from repo_occurrences import OccurrenceRepo
from service_codes import OccurrenceCodeService
from service_occurrences import OccurrenceService
from settings import settings
import timeline

setup_logging(settings.log_level, settings.log_format)
logger = get_logger(__name__)

app = FastAPI(title="Tracking Backend")

MAX_LIMIT = min(settings.max_page_limit, timeline.PAGE_LIMIT_MAX)

# Instantiate the repos + services here so the routes remain thin. Tests
# swap `occ_svc` / `code_svc` for services built on in-memory stores.
occ_repo = OccurrenceRepo()
occ_svc = OccurrenceService(occ_repo, InvoiceRepo())
code_svc = OccurrenceCodeService(OccurrenceCodeRepo())


@app.exception_handler(NotFoundError)
async def not_found(request: Request, e: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(e)})


@app.exception_handler(ConflictError)
async def conflict(request: Request, e: ConflictError):
    return JSONResponse(status_code=409, content={"detail": str(e)})


@app.exception_handler(InvalidArgumentError)
async def invalid_argument(request: Request, e: InvalidArgumentError):
    return JSONResponse(status_code=400, content={"detail": str(e)})


@app.exception_handler(Exception)
async def unexpected(request: Request, e: Exception):
    logger.error("%s %s failed", request.method, request.url.path, exc_info=e)
    return JSONResponse(status_code=500, content={"detail": f"Request failed: {e}"})


@app.get("/health")
def health():
    try:
        occ_repo.ping()
        return {"ok": True}
    except Exception as e:
        logger.error("DB health check failed: %s", e)
        raise HTTPException(status_code=500, detail=f"DB health check failed: {e}")


# --- Invoice occurrences ---

@app.get("/notas-fiscais/{nro_nf}/ocorrencias")
def list_occurrences(
    nro_nf: int,
    page: int = Query(1, ge=1),
    limit: int = Query(settings.default_page_limit, ge=1, le=MAX_LIMIT),
):
    return occ_svc.list_page(nro_nf, page, limit)


@app.get("/notas-fiscais/{nro_nf}/ocorrencias/ultima")
def last_occurrence(nro_nf: int):
    return occ_svc.last_occurrence(nro_nf)


@app.get("/notas-fiscais/{nro_nf}/ocorrencias/stats")
def occurrence_statistics(nro_nf: int):
    return occ_svc.statistics(nro_nf)


@app.get("/notas-fiscais/{nro_nf}/ocorrencias/codigo/{codigo}")
def occurrences_by_code(nro_nf: int, codigo: str):
    # `codigo` stays a string so a malformed code is reported as 400
    # by the service rather than as a framework 422.
    items = occ_svc.by_code(nro_nf, codigo)
    return {"code": items[0]["code"], "total": len(items), "items": items}


@app.post("/notas-fiscais/{nro_nf}/ocorrencias", status_code=201)
def create_occurrence(nro_nf: int, data: OccurrenceCreate):
    return occ_svc.create(nro_nf, data)


@app.put("/notas-fiscais/{nro_nf}/ocorrencias/{ocorrencia_id}")
def update_occurrence(nro_nf: int, ocorrencia_id: int, data: OccurrenceUpdate):
    return occ_svc.update(nro_nf, ocorrencia_id, data)


@app.delete("/notas-fiscais/{nro_nf}/ocorrencias/{ocorrencia_id}")
def delete_occurrence(nro_nf: int, ocorrencia_id: int):
    occ_svc.delete(nro_nf, ocorrencia_id)
    return {"deleted": ocorrencia_id}


@app.post("/ocorrencias/lote")
def create_occurrence_batch(batch: OccurrenceBatch, response: Response):
    result = occ_svc.create_batch(batch.ocorrencias)
    if result["summary"]["errors"]:
        response.status_code = 206
    return result


# --- Occurrence code catalog ---

@app.get("/codigo-ocorrencias")
def list_codes(
    page: int = Query(1, ge=1),
    limit: int = Query(settings.default_page_limit, ge=1, le=MAX_LIMIT),
    tipo: Optional[OccurrenceType] = None,
    processo: Optional[OccurrenceProcess] = None,
    finalizadora: Optional[bool] = None,
    api: Optional[bool] = None,
    search: Optional[str] = Query(None, min_length=2, max_length=100),
):
    return code_svc.list(page, limit, tipo, processo, finalizadora, api, search)


@app.get("/codigo-ocorrencias/tipos")
def list_tipos():
    return code_svc.tipos()


@app.get("/codigo-ocorrencias/processos")
def list_processos():
    return code_svc.processos()


@app.get("/codigo-ocorrencias/stats")
def code_statistics():
    return code_svc.statistics()


@app.get("/codigo-ocorrencias/codigo/{codigo}")
def get_code_by_number(codigo: str):
    return code_svc.get_by_code(codigo)


@app.get("/codigo-ocorrencias/{code_id}")
def get_code(code_id: int):
    return code_svc.get(code_id)


@app.post("/codigo-ocorrencias", status_code=201)
def create_code(data: OccurrenceCodeCreate):
    return code_svc.create(data)


@app.put("/codigo-ocorrencias/{code_id}")
def update_code(code_id: int, data: OccurrenceCodeUpdate):
    return code_svc.update(code_id, data)


@app.delete("/codigo-ocorrencias/{code_id}")
def delete_code(code_id: int):
    code_svc.delete(code_id)
    return {"deleted": code_id}
