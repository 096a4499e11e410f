"""
Conto models.
Pydantic schemas for ledger entries, unreconciled entries and import records.
"""
from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, Dict, Any
from datetime import datetime, date as date_type, timezone
from enum import Enum
import uuid


class AccountType(str, Enum):
    """Conto su cui viene registrata la competenza."""
    PROSELITISMO = "proselitismo"
    SERVIZI = "servizi"


class TransactionType(str, Enum):
    ENTRATA = "entrata"
    USCITA = "uscita"


class TransactionStatus(str, Enum):
    COMPLETATA = "completata"
    IN_ATTESA = "in_attesa"
    ANNULLATA = "annullata"


class TransactionSource(str, Enum):
    MANUALE = "manuale"
    XLSX = "xlsx"


class Party(str, Enum):
    """Destinatario della quota in una ripartizione a tre."""
    FIACOM = "fiacom"
    RESPONSABILE = "responsabile"
    SPORTELLO = "sportello"


def _new_id() -> str:
    return str(uuid.uuid4())


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class ContoTransaction(BaseModel):
    """Ledger entry document (conto_transactions)."""
    id: str = Field(default_factory=_new_id)
    account: AccountType
    amount: float = Field(..., ge=0, description="Quota della parte")
    raw_amount: Optional[float] = Field(None, description="Importo base della ripartizione")
    type: TransactionType = TransactionType.ENTRATA
    status: TransactionStatus = TransactionStatus.COMPLETATA
    description: str = ""
    category: str = "Competenza"
    user_id: str
    company_id: Optional[str] = None
    source: TransactionSource = TransactionSource.MANUALE
    import_key: Optional[str] = None
    date: str = Field(..., description="YYYY-MM-DD")

    party: Optional[Party] = None
    responsabile_id: Optional[str] = None
    sportello_id: Optional[str] = None

    created_at: str = Field(default_factory=_now_iso)

    model_config = ConfigDict(use_enum_values=True, validate_default=True)


class ContoNonRiconciliata(BaseModel):
    """Unreconciled entry document (conto_non_riconciliate)."""
    id: str = Field(default_factory=_new_id)
    account: AccountType
    amount: float = Field(..., ge=0)
    description: str = ""
    user_id: str
    company_id: Optional[str] = None
    source: TransactionSource = TransactionSource.XLSX
    import_key: Optional[str] = None
    date: str
    created_at: str = Field(default_factory=_now_iso)

    model_config = ConfigDict(use_enum_values=True, validate_default=True)


class ContoImport(BaseModel):
    """Import record, one per distinct uploaded file."""
    id: str = Field(default_factory=_new_id)
    file_hash: str
    account: AccountType
    original_name: str
    uploaded_by: str
    row_count: int = 0
    created_at: str = Field(default_factory=_now_iso)

    model_config = ConfigDict(use_enum_values=True, validate_default=True)


class CompetenzaCreate(BaseModel):
    """Manual commission-split creation request."""
    base_amount: float = Field(..., gt=0, alias="baseAmount")
    responsabile_id: str = Field(..., min_length=1, alias="responsabileId")
    sportello_id: str = Field(..., min_length=1, alias="sportelloId")
    description: str = "Competenza proselitismo"
    category: str = "Competenza"
    company_id: Optional[str] = Field(None, alias="companyId")
    date: Optional[date_type] = None

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "base_amount": 1000.0,
                "responsabile_id": "a3f1c2d4-0000-0000-0000-000000000001",
                "sportello_id": "b7e9d1a2-0000-0000-0000-000000000002",
                "description": "Competenza proselitismo",
                "company_id": None
            }
        }
    )


class ContoFilters(BaseModel):
    """Query filters shared by reads, summary and breakdown."""
    date_from: Optional[str] = None
    date_to: Optional[str] = None
    type: Optional[TransactionType] = None
    status: Optional[TransactionStatus] = None
    q: Optional[str] = None
    company_id: Optional[str] = None
    user_id: Optional[str] = None

    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    def cache_params(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)
