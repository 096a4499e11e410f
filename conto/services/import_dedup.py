"""
Import deduplicator.

Una riga del file identifica un evento economico tramite la chiave
account|mese|anno|matricola|ragione sociale|importo base|non riconciliata.
La stessa chiave in due upload diversi indica lo stesso evento.
"""
from dataclasses import dataclass
from typing import Any, Dict, Optional, Set
import hashlib

from conto.services.commission_split import round2
from conto.services.spreadsheet_normalizer import RowData

REASON_IN_FILE = "Duplicato nel file"
REASON_EXISTING = "Duplicato già presente"


def _format_amount(value: float) -> str:
    return f"{round2(value):.2f}"


def build_import_key(
    account: str,
    data: RowData,
    base_amount: Optional[float],
    non_riconciliata: Optional[float]
) -> str:
    """Composite dedup key for one spreadsheet row."""
    mese = (data.mese or "").strip()
    anno = (data.anno or "").strip()
    matricola = (data.matricola_inps or "").strip().upper()
    ragione = " ".join((data.ragione_sociale or "").split()).upper()
    base_part = f"F:{_format_amount(base_amount)}" if base_amount and base_amount > 0 else ""
    non_part = f"NR:{_format_amount(non_riconciliata)}" if non_riconciliata and non_riconciliata > 0 else ""
    return "|".join([account, mese, anno, matricola, ragione, base_part, non_part])


def file_hash(content: bytes) -> str:
    """Content hash identifying an uploaded file."""
    return hashlib.sha256(content).hexdigest()


@dataclass
class DuplicateRow:
    row_number: int
    reason: str
    data: RowData
    import_key: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "row_number": self.row_number,
            "reason": self.reason,
            "data": self.data.to_dict(),
            "import_key": self.import_key,
        }


class InFileDeduplicator:
    """Tracks the keys already seen while scanning one file."""

    def __init__(self):
        self._seen: Set[str] = set()

    def seen(self, key: str) -> bool:
        """Return True if the key was already met, otherwise remember it."""
        if key in self._seen:
            return True
        self._seen.add(key)
        return False
