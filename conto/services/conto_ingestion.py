"""
CONTO INGESTION
===============

Import dei file Excel delle competenze e creazione manuale delle ripartizioni.

FLUSSO UPLOAD:
1. Lettura del primo foglio e normalizzazione delle intestazioni
2. Validazione riga per riga (matricola/ragione sociale, importi)
3. Risoluzione azienda -> responsabile territoriale -> sportello lavoro
4. Calcolo della ripartizione (FIACOM / responsabile / sportello)
5. Controllo duplicati (nel file, già presenti, file già caricato)
6. Se ci sono duplicati non confermati: nessuna scrittura, si chiede conferma
7. Altrimenti: scrittura delle righe uniche, import record, invalidazione cache

Le righe sono elaborate in sequenza: il risultato di una riga può rendere
duplicata una riga successiva dello stesso file.
"""
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional, Tuple
import logging
import uuid

from conto.database import Collections
from conto.exceptions import ValidationError
from conto.models import (
    ContoImport,
    ContoNonRiconciliata,
    TransactionSource
)
from conto.repositories import (
    ContoTransactionRepository,
    ContoNonRiconciliataRepository,
    ContoImportRepository,
    UserRepository,
    ROLE_SPORTELLO,
    is_active
)
from conto.services.commission_split import CommissionSplit, build_ledger_rows, compute_split
from conto.services.conto_cache import ContoCache
from conto.services.import_dedup import (
    REASON_EXISTING,
    REASON_IN_FILE,
    DuplicateRow,
    InFileDeduplicator,
    build_import_key,
    file_hash
)
from conto.services.party_directory import PartyDirectory, company_name, sportello_name
from conto.services.spreadsheet_normalizer import NormalizedRow, normalize_grid, read_grid
from conto.utils.logger import log_file_processing
from conto.utils.normalize_fields import display_name

logger = logging.getLogger(__name__)

ERR_IDENTITY_MISSING = "Matricola INPS o Ragione Sociale mancante"
ERR_BASE_MISSING = "Quota FIACOM mancante o non valida"
ERR_MANAGER_MISSING = "Responsabile territoriale non associato o inattivo"
ERR_SPORTELLO_MISSING = "Sportello lavoro non associato"
ERR_SAVE = "errore di salvataggio"

MSG_CONFIRM = "Sono state trovate righe duplicate. Conferma per continuare."
MSG_ALREADY_UPLOADED = "Il file è già stato caricato. Conferma per continuare."


def row_error(row_number: int, reason: str) -> str:
    return f"Riga {row_number}: {reason}"


def _event_date(row: NormalizedRow) -> str:
    """First day of the row's month, today when month/year are unusable."""
    if row.month and row.year:
        return date(row.year, row.month, 1).isoformat()
    return date.today().isoformat()


def _description(row: NormalizedRow, fallback: str, reconciled: bool) -> str:
    data = row.data
    parts = [
        f"Azienda: {data.ragione_sociale}" if data.ragione_sociale else None,
        f"Matricola: {data.matricola_inps}" if data.matricola_inps else None,
        f"Riconciliata: {data.quota_riconciliata}" if reconciled and data.quota_riconciliata is not None else None,
        f"Non riconciliata: {data.non_riconciliata}" if data.non_riconciliata is not None else None,
        f"Fondo sanitario: {data.fondo_sanitario}" if reconciled and data.fondo_sanitario is not None else None,
    ]
    return " | ".join(p for p in parts if p) or fallback


@dataclass
class RowOutcome:
    """Everything the pipeline learned about one spreadsheet row."""
    row: NormalizedRow
    import_key: str
    errors: List[str] = field(default_factory=list)
    company: Optional[Dict[str, Any]] = None
    manager: Optional[Dict[str, Any]] = None
    sportello: Optional[Dict[str, Any]] = None
    needs_backfill: bool = False
    split: Optional[CommissionSplit] = None
    ledger_rows: List[Dict[str, Any]] = field(default_factory=list)
    non_riconciliata: Optional[Dict[str, Any]] = None
    duplicate_reason: Optional[str] = None

    @property
    def is_candidate(self) -> bool:
        """Valid, not duplicated in the file, something to persist."""
        return (
            not self.errors
            and self.duplicate_reason != REASON_IN_FILE
            and (bool(self.ledger_rows) or self.non_riconciliata is not None)
        )

    def preview_dict(self) -> Dict[str, Any]:
        return {
            "row_number": self.row.row_number,
            "data": self.row.data.to_dict(),
            "errors": list(self.errors),
            "import_key": self.import_key,
            "company_id": (self.company or {}).get("id"),
            "company_name": company_name(self.company),
            "responsabile_name": display_name(self.manager) if self.manager else None,
            "sportello_name": sportello_name(self.sportello),
            "split": self.split.as_breakdown() if self.split else None,
            "duplicate": self.duplicate_reason is not None,
            "duplicate_reason": self.duplicate_reason,
        }


@dataclass
class FileAnalysis:
    file_hash: str
    row_count: int
    outcomes: List[RowOutcome]
    duplicates: List[DuplicateRow]
    existing_import: Optional[Dict[str, Any]]
    directory: Optional[PartyDirectory] = None

    @property
    def errors(self) -> List[str]:
        return [
            row_error(o.row.row_number, message)
            for o in self.outcomes
            for message in o.errors
        ]

    @property
    def to_persist(self) -> List[RowOutcome]:
        return [o for o in self.outcomes if o.is_candidate and o.duplicate_reason is None]


class ContoIngestionService:
    """
    Ingestion pipeline for the conto ledgers.
    """

    def __init__(self, db, cache: Optional[ContoCache] = None):
        """
        Args:
            db: Connessione database MongoDB
            cache: Cache delle viste aggregate da invalidare dopo ogni scrittura
        """
        self.db = db
        self.cache = cache
        self.transactions = ContoTransactionRepository(db[Collections.CONTO_TRANSACTIONS])
        self.non_riconciliate = ContoNonRiconciliataRepository(db[Collections.CONTO_NON_RICONCILIATE])
        self.imports = ContoImportRepository(db[Collections.CONTO_IMPORTS])
        self.users = UserRepository(db[Collections.USERS])

    # =========================================================================
    # ANALISI DEL FILE
    # =========================================================================

    def _process_row(
        self,
        account: str,
        row: NormalizedRow,
        directory: PartyDirectory,
        uploader_id: str
    ) -> RowOutcome:
        data = row.data
        outcome = RowOutcome(
            row=row,
            import_key=build_import_key(account, data, row.base_amount, row.non_riconciliata),
        )

        if not data.matricola_inps and not data.ragione_sociale:
            outcome.errors.append(ERR_IDENTITY_MISSING)
            return outcome

        has_base = row.base_amount is not None and row.base_amount > 0
        has_non_rec = row.non_riconciliata is not None and row.non_riconciliata > 0
        event_date = _event_date(row)

        if not has_base:
            if not has_non_rec:
                outcome.errors.append(ERR_BASE_MISSING)
                return outcome
            # Unreconciled amounts are tracked even when the company is unknown
            resolution = directory.resolve_company(data.matricola_inps, data.ragione_sociale)
            outcome.company = resolution.company
            outcome.non_riconciliata = ContoNonRiconciliata(
                account=account,
                amount=row.non_riconciliata,
                description=_description(row, "Quota non riconciliata", reconciled=False),
                user_id=uploader_id,
                company_id=(resolution.company or {}).get("id"),
                source=TransactionSource.XLSX,
                import_key=outcome.import_key,
                date=event_date,
            ).model_dump()
            return outcome

        resolution = directory.resolve_company(data.matricola_inps, data.ragione_sociale)
        if resolution.error:
            outcome.errors.append(resolution.error)
            return outcome
        company = resolution.company
        outcome.company = company

        manager = directory.resolve_manager(company)
        if not manager:
            outcome.errors.append(ERR_MANAGER_MISSING)
            return outcome
        outcome.manager = manager

        sportello, needs_backfill = directory.resolve_job_center(company)
        if not sportello:
            outcome.errors.append(ERR_SPORTELLO_MISSING)
            return outcome
        outcome.sportello = sportello
        outcome.needs_backfill = needs_backfill

        outcome.split = compute_split(
            row.base_amount,
            directory.manager_percent(manager["id"]),
            directory.center_percent(sportello["id"]),
        )
        outcome.ledger_rows = build_ledger_rows(
            outcome.split,
            {
                "account": account,
                "description": _description(row, "Competenza proselitismo", reconciled=True),
                "category": "Competenza",
                "company_id": company["id"],
                "source": TransactionSource.XLSX,
                "import_key": outcome.import_key,
                "date": event_date,
            },
            house_user_id=uploader_id,
            responsabile_id=manager["id"],
            sportello_owner_id=sportello.get("user_id") or sportello["id"],
            sportello_id=sportello["id"],
        )
        return outcome

    async def _analyze(self, account: str, content: bytes, filename: str, user: Dict[str, Any]) -> FileAnalysis:
        """Parse, validate, resolve and dedupe a file without writing anything."""
        digest = file_hash(content)
        rows = normalize_grid(read_grid(content, filename))
        if not rows:
            raise ValidationError("Il file Excel non contiene dati", details={"filename": filename})

        directory = await PartyDirectory.load(self.db)
        in_file = InFileDeduplicator()
        outcomes: List[RowOutcome] = []
        duplicates: List[DuplicateRow] = []

        for row in rows:
            outcome = self._process_row(account, row, directory, user["user_id"])
            if not outcome.errors and in_file.seen(outcome.import_key):
                outcome.duplicate_reason = REASON_IN_FILE
                duplicates.append(DuplicateRow(row.row_number, REASON_IN_FILE, row.data, outcome.import_key))
            outcomes.append(outcome)

        candidates = [o for o in outcomes if o.is_candidate]
        keys = [o.import_key for o in candidates]
        existing = await self.transactions.find_existing_import_keys(keys, account)
        existing |= await self.non_riconciliate.find_existing_import_keys(keys, account)
        for outcome in candidates:
            if outcome.import_key in existing:
                outcome.duplicate_reason = REASON_EXISTING
                duplicates.append(
                    DuplicateRow(outcome.row.row_number, REASON_EXISTING, outcome.row.data, outcome.import_key)
                )
        duplicates.sort(key=lambda d: d.row_number)

        analysis = FileAnalysis(
            file_hash=digest,
            row_count=len(rows),
            outcomes=outcomes,
            duplicates=duplicates,
            existing_import=await self.imports.find_by_hash(digest),
            directory=directory,
        )
        return analysis

    # =========================================================================
    # PREVIEW
    # =========================================================================

    async def preview(self, account: str, content: bytes, filename: str, user: Dict[str, Any]) -> Dict[str, Any]:
        """
        Run the whole pipeline without persisting anything.

        Returns:
            Rows with errors, resolved parties, split and duplicate flags
        """
        log_file_processing(logger, filename, "preview", {"account": account})
        analysis = await self._analyze(account, content, filename, user)

        preview_rows = []
        non_riconciliate = []
        for outcome in analysis.outcomes:
            item = outcome.preview_dict()
            if outcome.non_riconciliata is not None:
                item["amount"] = outcome.non_riconciliata["amount"]
                non_riconciliate.append(item)
            else:
                preview_rows.append(item)

        existing = analysis.existing_import
        return {
            "preview": preview_rows,
            "non_riconciliate": non_riconciliate,
            "errors": analysis.errors,
            "duplicates": [d.to_dict() for d in analysis.duplicates],
            "file_hash": analysis.file_hash,
            "file_already_uploaded": existing is not None,
            "file_already_uploaded_at": existing.get("created_at") if existing else None,
        }

    # =========================================================================
    # UPLOAD
    # =========================================================================

    def _confirmation_response(self, analysis: FileAnalysis, message: str, uploaded_at: Optional[str]) -> Dict[str, Any]:
        return {
            "message": message,
            "requires_confirmation": True,
            "duplicates": [d.to_dict() for d in analysis.duplicates],
            "errors": analysis.errors,
            "file_already_uploaded": uploaded_at is not None,
            "file_already_uploaded_at": uploaded_at,
        }

    async def _persist(self, repository, outcomes: List[RowOutcome], documents_of) -> Tuple[int, List[str]]:
        """Bulk insert; failures become per-row errors and the batch goes on."""
        documents: List[Dict[str, Any]] = []
        owners: List[int] = []
        for outcome in outcomes:
            for doc in documents_of(outcome):
                documents.append(doc)
                owners.append(outcome.row.row_number)

        inserted, failed = await repository.bulk_create(documents)
        failed_rows = sorted({owners[i] for i in failed})
        for row_number in failed_rows:
            logger.error(f"Row {row_number}: insert failed in {repository.collection.name}")
        return inserted, [row_error(n, ERR_SAVE) for n in failed_rows]

    async def upload(
        self,
        account: str,
        content: bytes,
        filename: str,
        user: Dict[str, Any],
        confirm_duplicates: bool = False
    ) -> Dict[str, Any]:
        """
        Import a spreadsheet into the ledgers.

        Args:
            account: proselitismo | servizi
            content: File bytes
            filename: Original file name
            user: Uploader ({"user_id", "role"})
            confirm_duplicates: Proceed even if duplicates or a re-upload were found

        Returns:
            Either a confirmation request (nothing written) or the import result
        """
        log_file_processing(logger, filename, "started", {"account": account})
        analysis = await self._analyze(account, content, filename, user)
        existing = analysis.existing_import

        if (analysis.duplicates or existing) and not confirm_duplicates:
            log_file_processing(
                logger, filename, "awaiting_confirmation",
                {"duplicates": len(analysis.duplicates), "file_already_uploaded": existing is not None}
            )
            return self._confirmation_response(
                analysis, MSG_CONFIRM, existing.get("created_at") if existing else None
            )

        already_uploaded = existing is not None
        if not already_uploaded:
            record = ContoImport(
                file_hash=analysis.file_hash,
                account=account,
                original_name=filename,
                uploaded_by=user["user_id"],
                row_count=analysis.row_count,
            ).model_dump()
            if not await self.imports.create_if_absent(record):
                already_uploaded = True
                if not confirm_duplicates:
                    # Same file committed concurrently by someone else
                    winner = await self.imports.find_by_hash(analysis.file_hash)
                    return self._confirmation_response(
                        analysis, MSG_ALREADY_UPLOADED, (winner or {}).get("created_at")
                    )

        to_persist = analysis.to_persist
        await self._backfill(analysis.directory, to_persist)

        errors = analysis.errors
        created_tx, tx_errors = await self._persist(
            self.transactions,
            [o for o in to_persist if o.ledger_rows],
            lambda o: o.ledger_rows,
        )
        created_non, non_errors = await self._persist(
            self.non_riconciliate,
            [o for o in to_persist if o.non_riconciliata is not None],
            lambda o: [o.non_riconciliata],
        )
        errors.extend(tx_errors + non_errors)

        self._invalidate_cache()

        message = f"{created_tx} transazioni create"
        if errors:
            message += f" con {len(errors)} errori"

        log_file_processing(
            logger, filename, "completed",
            {
                "account": account,
                "created_transactions": created_tx,
                "created_non_riconciliate": created_non,
                "errors": len(errors),
                "duplicates": len(analysis.duplicates),
            }
        )
        return {
            "message": message,
            "requires_confirmation": False,
            "created_transactions": created_tx,
            "created_non_riconciliate": created_non,
            "errors": errors,
            "duplicates": [d.to_dict() for d in analysis.duplicates],
            "file_already_uploaded": already_uploaded,
        }

    async def _backfill(self, directory: PartyDirectory, outcomes: List[RowOutcome]) -> None:
        done = set()
        for outcome in outcomes:
            if not outcome.needs_backfill or outcome.company["id"] in done:
                continue
            await directory.backfill_job_center(outcome.company, outcome.sportello)
            done.add(outcome.company["id"])

    def _invalidate_cache(self) -> None:
        if self.cache is not None:
            self.cache.clear()

    # =========================================================================
    # CREAZIONE MANUALE
    # =========================================================================

    async def _resolve_manual_sportello(
        self,
        directory: PartyDirectory,
        sportello_ref: str
    ) -> Tuple[Optional[Dict[str, Any]], Optional[str]]:
        """
        Accept either a sportello id or the id of a sportello_lavoro user.

        Returns:
            (sportello record or None, owner user id) - owner None when invalid
        """
        sportello = directory.sportello(sportello_ref)
        if sportello:
            return sportello, sportello.get("user_id") or sportello["id"]

        account_user = await self.users.find_by_id(sportello_ref)
        if not account_user or account_user.get("role") != ROLE_SPORTELLO or not is_active(account_user):
            return None, None
        return directory.sportello_for_user(account_user["id"]), account_user["id"]

    async def create_manual(
        self,
        account: str,
        base_amount: Any,
        responsabile_id: str,
        sportello_id: str,
        user: Dict[str, Any],
        description: str = "Competenza proselitismo",
        category: str = "Competenza",
        company_id: Optional[str] = None,
        event_date: Optional[date] = None
    ) -> Dict[str, Any]:
        """
        Create the three ledger rows of a manual commission event.

        Raises:
            ValidationError: Invalid amount, inactive manager or job center
        """
        if not responsabile_id or not sportello_id:
            raise ValidationError("responsabile_id e sportello_id sono obbligatori")

        directory = await PartyDirectory.load(self.db)

        manager = directory.manager(responsabile_id)
        if not manager:
            raise ValidationError(
                "Responsabile territoriale non valido o inattivo",
                details={"responsabile_id": responsabile_id}
            )

        sportello, owner_id = await self._resolve_manual_sportello(directory, sportello_id)
        if not owner_id:
            raise ValidationError(
                "Sportello lavoro non valido o inattivo",
                details={"sportello_id": sportello_id}
            )

        record_sportello_id = sportello["id"] if sportello else None
        split = compute_split(
            base_amount,
            directory.manager_percent(manager["id"]),
            directory.center_percent(record_sportello_id),
        )

        rows = build_ledger_rows(
            split,
            {
                "account": account,
                "description": description,
                "category": category,
                "company_id": company_id,
                "source": TransactionSource.MANUALE,
                "import_key": f"manuale|{uuid.uuid4()}",
                "date": (event_date or datetime.now(timezone.utc).date()).isoformat(),
            },
            house_user_id=user["user_id"],
            responsabile_id=manager["id"],
            sportello_owner_id=owner_id,
            sportello_id=record_sportello_id,
        )

        inserted, failed = await self.transactions.bulk_create(rows)
        if inserted:
            self._invalidate_cache()
        if failed:
            logger.error(f"Manual split: {len(failed)} of 3 rows not saved")

        logger.info(
            f"Manual split on {account}: base {split.base} -> "
            f"{split.house}/{split.manager}/{split.center}"
        )
        return {
            "message": "Transazioni create",
            "transactions": [row for i, row in enumerate(rows) if i not in failed],
            "breakdown": split.as_breakdown(),
            "errors": [f"Quota {rows[i]['party']}: {ERR_SAVE}" for i in failed],
        }
