"""
Conto Router - Conti proselitismo e servizi.
Import Excel delle competenze, ripartizione manuale e viste per ruolo.
"""
from fastapi import APIRouter, Depends, File, Form, UploadFile, status
from fastapi.responses import JSONResponse, StreamingResponse
from typing import Dict, Any
from datetime import datetime, timezone
import logging

from conto.config import settings
from conto.database import get_database
from conto.exceptions import ValidationError
from conto.models import CompetenzaCreate, ContoFilters
from conto.services.conto_aggregation import ContoAggregationService
from conto.services.conto_cache import ContoCache
from conto.services.conto_export import ContoExporter
from conto.services.conto_ingestion import ContoIngestionService
from conto.utils.dependencies import (
    conto_filters,
    get_account,
    get_conto_cache,
    get_current_admin_user,
    get_current_user,
    pagination_params
)

logger = logging.getLogger(__name__)
router = APIRouter()

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _as_flag(value: Any) -> bool:
    return str(value or "").strip().lower() in ("true", "1", "yes", "on")


def _check_size(file: UploadFile, size: int) -> None:
    if size > settings.max_upload_bytes:
        raise ValidationError(
            f"File troppo grande (max {settings.MAX_UPLOAD_SIZE_MB} MB)",
            details={"filename": file.filename, "size": size}
        )


async def _read_upload(file: UploadFile) -> bytes:
    # size is None when the multipart part carries no length
    if file.size is not None:
        _check_size(file, file.size)
    content = await file.read()
    if not content:
        raise ValidationError("Nessun file fornito", details={"filename": file.filename})
    _check_size(file, len(content))
    return content


def _xlsx_response(output, prefix: str, account: str) -> StreamingResponse:
    stamp = datetime.now(timezone.utc).strftime("%Y%m%d")
    return StreamingResponse(
        output,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{prefix}_{account}_{stamp}.xlsx"'}
    )


# =============================================================================
# SCRITTURE (solo admin)
# =============================================================================

@router.post("/preview")
async def preview_upload(
    file: UploadFile = File(...),
    account: str = Depends(get_account),
    admin: Dict[str, Any] = Depends(get_current_admin_user),
    db=Depends(get_database),
    cache: ContoCache = Depends(get_conto_cache)
) -> Dict[str, Any]:
    """
    Anteprima di un file Excel: validazione, aziende/responsabili/sportelli
    risolti, ripartizione calcolata e duplicati. Nessuna scrittura.
    """
    content = await _read_upload(file)
    service = ContoIngestionService(db, cache)
    return await service.preview(account, content, file.filename, admin)


@router.post("/upload")
async def upload_file(
    file: UploadFile = File(...),
    confirm_duplicates: str = Form("false", alias="confirmDuplicates"),
    account: str = Depends(get_account),
    admin: Dict[str, Any] = Depends(get_current_admin_user),
    db=Depends(get_database),
    cache: ContoCache = Depends(get_conto_cache)
) -> JSONResponse:
    """
    Importa un file Excel nel conto.

    Con duplicati (o file già caricato) e senza confirmDuplicates=true
    risponde 200 con requiresConfirmation e non scrive nulla.
    """
    content = await _read_upload(file)
    service = ContoIngestionService(db, cache)
    result = await service.upload(
        account, content, file.filename, admin,
        confirm_duplicates=_as_flag(confirm_duplicates)
    )
    # Same casing as the confirmDuplicates flag the client sends back
    result["requiresConfirmation"] = result.pop("requires_confirmation")
    status_code = status.HTTP_200_OK if result["requiresConfirmation"] else status.HTTP_201_CREATED
    return JSONResponse(status_code=status_code, content=result)


@router.post("/transactions", status_code=status.HTTP_201_CREATED)
async def create_competenza(
    payload: CompetenzaCreate,
    account: str = Depends(get_account),
    admin: Dict[str, Any] = Depends(get_current_admin_user),
    db=Depends(get_database),
    cache: ContoCache = Depends(get_conto_cache)
) -> Dict[str, Any]:
    """Ripartizione manuale di un importo base tra FIACOM, responsabile e sportello."""
    service = ContoIngestionService(db, cache)
    return await service.create_manual(
        account,
        payload.base_amount,
        payload.responsabile_id,
        payload.sportello_id,
        admin,
        description=payload.description,
        category=payload.category,
        company_id=payload.company_id,
        event_date=payload.date,
    )


# =============================================================================
# LETTURE (filtrate per ruolo)
# =============================================================================

@router.get("/summary")
async def get_summary(
    account: str = Depends(get_account),
    filters: ContoFilters = Depends(conto_filters),
    current_user: Dict[str, Any] = Depends(get_current_user),
    db=Depends(get_database),
    cache: ContoCache = Depends(get_conto_cache)
) -> Dict[str, Any]:
    return await ContoAggregationService(db, cache).summary(current_user, account, filters)


@router.get("/breakdown")
async def get_breakdown(
    account: str = Depends(get_account),
    filters: ContoFilters = Depends(conto_filters),
    current_user: Dict[str, Any] = Depends(get_current_user),
    db=Depends(get_database),
    cache: ContoCache = Depends(get_conto_cache)
) -> Dict[str, Any]:
    """Totali per responsabile territoriale e per sportello lavoro."""
    return await ContoAggregationService(db, cache).breakdown(current_user, account, filters)


@router.get("/transactions")
async def list_transactions(
    account: str = Depends(get_account),
    filters: ContoFilters = Depends(conto_filters),
    paging: Dict[str, int] = Depends(pagination_params),
    current_user: Dict[str, Any] = Depends(get_current_user),
    db=Depends(get_database)
) -> Dict[str, Any]:
    service = ContoAggregationService(db)
    return await service.list_transactions(current_user, account, filters, paging["page"], paging["limit"])


@router.get("/non-riconciliate")
async def list_non_riconciliate(
    account: str = Depends(get_account),
    filters: ContoFilters = Depends(conto_filters),
    paging: Dict[str, int] = Depends(pagination_params),
    current_user: Dict[str, Any] = Depends(get_current_user),
    db=Depends(get_database)
) -> Dict[str, Any]:
    service = ContoAggregationService(db)
    return await service.list_non_riconciliate(current_user, account, filters, paging["page"], paging["limit"])


@router.get("/imports")
async def list_imports(
    account: str = Depends(get_account),
    paging: Dict[str, int] = Depends(pagination_params),
    current_user: Dict[str, Any] = Depends(get_current_user),
    db=Depends(get_database)
) -> Dict[str, Any]:
    """Storico dei file importati nel conto."""
    return await ContoAggregationService(db).list_imports(account, paging["page"], paging["limit"])


@router.get("/export")
async def export_transactions(
    account: str = Depends(get_account),
    filters: ContoFilters = Depends(conto_filters),
    current_user: Dict[str, Any] = Depends(get_current_user),
    db=Depends(get_database)
) -> StreamingResponse:
    service = ContoAggregationService(db)
    rows = await service.scoped_transactions(current_user, account, filters)
    return _xlsx_response(ContoExporter().export_transactions(rows), "conto", account)


@router.get("/export-monthly")
async def export_monthly(
    account: str = Depends(get_account),
    filters: ContoFilters = Depends(conto_filters),
    current_user: Dict[str, Any] = Depends(get_current_user),
    db=Depends(get_database)
) -> StreamingResponse:
    """Totali mensili per azienda."""
    service = ContoAggregationService(db)
    rows = await service.scoped_transactions(current_user, account, filters)
    return _xlsx_response(ContoExporter().export_monthly_company_totals(rows), "conto_mensile", account)
