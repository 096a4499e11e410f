"""
Spreadsheet normalizer.

Legge il primo foglio di un file Excel, individua le colonne tramite alias
delle intestazioni e restituisce una riga canonica per ogni riga non vuota.
"""
from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Optional
import io
import logging
import math
import re

import pandas as pd

from conto.exceptions import FileProcessingError

logger = logging.getLogger(__name__)

HEADER_ALIASES: Dict[str, List[str]] = {
    "mese": ["mese", "month"],
    "anno": ["anno", "year"],
    "matricola_inps": ["matricola inps", "matricola", "inps", "codice inps"],
    "ragione_sociale": ["ragione sociale", "ragione", "azienda", "impresa", "denominazione"],
    "non_riconciliata": ["non riconciliata", "quota non riconciliata", "non riconciliate"],
    "quota_riconciliata": ["quota riconciliata", "riconciliata"],
    "fondo_sanitario": ["fondo sanitario", "fondo sani"],
    "quota_fiacom": ["quota fiacom", "fiacom", "quota base"],
}

MONTHS = {
    "gen": 1, "gennaio": 1,
    "feb": 2, "febbraio": 2,
    "mar": 3, "marzo": 3,
    "apr": 4, "aprile": 4,
    "mag": 5, "maggio": 5,
    "giu": 6, "giugno": 6,
    "lug": 7, "luglio": 7,
    "ago": 8, "agosto": 8,
    "set": 9, "sett": 9, "settembre": 9,
    "ott": 10, "ottobre": 10,
    "nov": 11, "novembre": 11,
    "dic": 12, "dicembre": 12,
}

EXCEL_EXTENSIONS = (".xlsx", ".xls")

_NON_WORD_RE = re.compile(r"[^\w\s]")
_SPACES_RE = re.compile(r"\s+")


@dataclass
class RowData:
    """Valori grezzi di una riga, come letti dal file."""
    mese: str = ""
    anno: str = ""
    matricola_inps: str = ""
    ragione_sociale: str = ""
    non_riconciliata: Any = None
    quota_riconciliata: Any = None
    fondo_sanitario: Any = None
    quota_fiacom: Any = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class NormalizedRow:
    row_number: int
    data: RowData
    base_amount: Optional[float] = None
    non_riconciliata: Optional[float] = None
    month: Optional[int] = None
    year: Optional[int] = None


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    return isinstance(value, str) and not value.strip()


def normalize_header(value: Any) -> str:
    if _is_blank(value):
        return ""
    text = str(value).lower().strip()
    text = _SPACES_RE.sub(" ", text)
    return _NON_WORD_RE.sub("", text).strip()


def resolve_header_indexes(header_row: List[Any]) -> Dict[str, int]:
    """Map every logical field to its column index (-1 when absent)."""
    normalized = [normalize_header(cell) for cell in header_row]
    indexes: Dict[str, int] = {}
    for key, aliases in HEADER_ALIASES.items():
        indexes[key] = -1
        for alias in aliases:
            target = normalize_header(alias)
            if target in normalized:
                indexes[key] = normalized.index(target)
                break
    return indexes


def parse_number(value: Any) -> Optional[float]:
    """
    Parse an amount written with the Italian convention.

    "1.234,56" -> 1234.56, 12.5 -> 12.5, "abc" -> None. Never raises.
    """
    if _is_blank(value) or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
        return number if math.isfinite(number) else None

    cleaned = str(value).replace("€", "").replace(" ", "").strip()
    cleaned = cleaned.replace(".", "").replace(",", ".")
    try:
        number = float(cleaned)
    except ValueError:
        return None
    return number if math.isfinite(number) else None


def parse_month(value: Any) -> Optional[int]:
    """Month from an Italian name/abbreviation or a number clamped to [1, 12]."""
    if _is_blank(value) or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        if not math.isfinite(value):
            return None
        return int(min(max(value, 1), 12))

    text = str(value).lower().strip()
    if text in MONTHS:
        return MONTHS[text]
    number = parse_number(text)
    if number is None:
        return None
    return int(min(max(number, 1), 12))


def parse_year(value: Any) -> Optional[int]:
    number = parse_number(value)
    if number is None or number < 1900 or number > 2999:
        return None
    return int(number)


def is_empty_row(row: List[Any]) -> bool:
    return all(_is_blank(cell) for cell in row)


def _cell_text(value: Any) -> str:
    if _is_blank(value):
        return ""
    if isinstance(value, float) and value.is_integer():
        # Excel stores numeric codes as floats: 2024.0 -> "2024"
        return str(int(value))
    return str(value).strip()


def build_row_data(row: List[Any], indexes: Dict[str, int]) -> RowData:
    def get(key: str) -> Any:
        idx = indexes.get(key, -1)
        if idx < 0 or idx >= len(row):
            return None
        cell = row[idx]
        return None if _is_blank(cell) else cell

    return RowData(
        mese=_cell_text(get("mese")),
        anno=_cell_text(get("anno")),
        matricola_inps=_cell_text(get("matricola_inps")),
        ragione_sociale=_cell_text(get("ragione_sociale")),
        non_riconciliata=get("non_riconciliata"),
        quota_riconciliata=get("quota_riconciliata"),
        fondo_sanitario=get("fondo_sanitario"),
        quota_fiacom=get("quota_fiacom"),
    )


def read_grid(content: bytes, filename: str) -> List[List[Any]]:
    """
    Read the first sheet as a 2-D grid (header row included).

    Raises:
        FileProcessingError: If the file is not a readable Excel workbook
    """
    name = (filename or "").lower()
    if not name.endswith(EXCEL_EXTENSIONS):
        raise FileProcessingError(filename, "Sono ammessi solo file Excel (.xlsx, .xls)")

    engine = "xlrd" if name.endswith(".xls") else "openpyxl"
    try:
        df = pd.read_excel(io.BytesIO(content), sheet_name=0, header=None, engine=engine, dtype=object)
    except Exception as e:
        logger.warning(f"Unreadable workbook {filename}: {e}")
        raise FileProcessingError(filename, "File Excel non leggibile") from e

    df = df.astype(object).where(pd.notna(df), None)
    return df.values.tolist()


def normalize_grid(grid: List[List[Any]]) -> List[NormalizedRow]:
    """
    Turn a grid into canonical rows, skipping empty ones.

    Row numbers are 1-based spreadsheet rows (the header is row 1).
    """
    if not grid:
        return []

    indexes = resolve_header_indexes(grid[0])
    missing = [key for key, idx in indexes.items() if idx < 0]
    if missing:
        logger.debug(f"Columns not found in header: {missing}")

    rows: List[NormalizedRow] = []
    for offset, raw in enumerate(grid[1:]):
        if raw is None or is_empty_row(raw):
            continue
        data = build_row_data(list(raw), indexes)
        rows.append(
            NormalizedRow(
                row_number=offset + 2,
                data=data,
                base_amount=parse_number(data.quota_fiacom),
                non_riconciliata=parse_number(data.non_riconciliata),
                month=parse_month(data.mese),
                year=parse_year(data.anno),
            )
        )
    return rows
