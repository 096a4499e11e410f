"""
Conto Excel export.
Righe dei conti e totali mensili per azienda in formato xlsx.
"""
from typing import List, Dict, Any, Tuple
from io import BytesIO
import logging

from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill, Alignment, Border, Side
from openpyxl.utils import get_column_letter

from conto.models import Party, TransactionType
from conto.services.commission_split import round2

logger = logging.getLogger(__name__)

CURRENCY_FORMAT = '€#,##0.00'


class ContoExporter:
    """Export conto rows to Excel with formatting."""

    HEADER_FILL = PatternFill(start_color="366092", end_color="366092", fill_type="solid")
    HEADER_FONT = Font(color="FFFFFF", bold=True, size=11)
    TOTAL_FILL = PatternFill(start_color="E7E6E6", end_color="E7E6E6", fill_type="solid")
    BORDER = Border(
        left=Side(style='thin'),
        right=Side(style='thin'),
        top=Side(style='thin'),
        bottom=Side(style='thin')
    )

    def _write_headers(self, ws, headers: List[str]) -> None:
        for col_num, header in enumerate(headers, 1):
            cell = ws.cell(row=1, column=col_num, value=header)
            cell.font = self.HEADER_FONT
            cell.fill = self.HEADER_FILL
            cell.alignment = Alignment(horizontal='center', vertical='center')
            cell.border = self.BORDER

    def _write_row(self, ws, row_num: int, values: List[Any], currency_cols: Tuple[int, ...]) -> None:
        for col_num, value in enumerate(values, 1):
            cell = ws.cell(row=row_num, column=col_num, value=value)
            cell.border = self.BORDER
            if col_num in currency_cols:
                cell.number_format = CURRENCY_FORMAT

    def _write_totals(self, ws, row_num: int, label_col: int, totals: Dict[int, float]) -> None:
        ws.cell(row_num, label_col, "TOTALE")
        for col, value in totals.items():
            ws.cell(row_num, col, value).number_format = CURRENCY_FORMAT
        for col in [label_col, *totals.keys()]:
            ws.cell(row_num, col).font = Font(bold=True)
            ws.cell(row_num, col).fill = self.TOTAL_FILL

    @staticmethod
    def _save(wb: Workbook) -> BytesIO:
        output = BytesIO()
        wb.save(output)
        output.seek(0)
        return output

    def export_transactions(self, rows: List[Dict[str, Any]]) -> BytesIO:
        """
        One line per ledger row.

        Args:
            rows: Ledger rows, optionally enriched with company_name

        Returns:
            BytesIO with Excel file
        """
        wb = Workbook()
        ws = wb.active
        ws.title = "Transazioni"

        headers = [
            "Data", "Tipo", "Stato", "Quota", "Importo", "Importo base",
            "Azienda", "Descrizione", "Categoria", "Origine", "Chiave import"
        ]
        self._write_headers(ws, headers)

        for row_num, row in enumerate(rows, 2):
            self._write_row(ws, row_num, [
                row.get("date", ""),
                row.get("type", ""),
                row.get("status", ""),
                row.get("party") or "",
                row.get("amount", 0),
                row.get("raw_amount"),
                row.get("company_name") or row.get("company_id") or "",
                row.get("description", ""),
                row.get("category", ""),
                row.get("source", ""),
                row.get("import_key") or "",
            ], currency_cols=(5, 6))

        widths = [12, 10, 12, 14, 14, 14, 30, 60, 14, 10, 40]
        for col, width in enumerate(widths, 1):
            ws.column_dimensions[get_column_letter(col)].width = width

        incoming = sum(r.get("amount", 0) for r in rows if r.get("type") != TransactionType.USCITA.value)
        self._write_totals(ws, len(rows) + 2, 4, {5: round2(incoming)})

        logger.info(f"Exported {len(rows)} conto rows to Excel")
        return self._save(wb)

    def export_monthly_company_totals(self, rows: List[Dict[str, Any]]) -> BytesIO:
        """
        Totali per (anno, mese, azienda) dalle quote registrate.

        The base amount is counted once per import_key.
        """
        totals: Dict[Tuple[str, str, str], Dict[str, Any]] = {}
        seen_events = set()

        for row in rows:
            if row.get("type") == TransactionType.USCITA.value:
                continue
            day = row.get("date") or ""
            year, month = day[:4], day[5:7]
            company = row.get("company_name") or row.get("company_id") or "-"
            key = (year, month, company)
            entry = totals.setdefault(key, {
                "raw": 0.0, "fiacom": 0.0, "responsabile": 0.0, "sportello": 0.0, "events": 0
            })

            event_key = row.get("import_key") or row.get("id")
            if event_key not in seen_events:
                seen_events.add(event_key)
                entry["raw"] += row.get("raw_amount") or 0
                entry["events"] += 1

            party = row.get("party") or Party.FIACOM.value
            if party in entry:
                entry[party] += row.get("amount", 0)

        wb = Workbook()
        ws = wb.active
        ws.title = "Totali mensili"

        headers = [
            "Anno", "Mese", "Azienda", "Eventi", "Importo base",
            "Quota FIACOM", "Quota responsabile", "Quota sportello"
        ]
        self._write_headers(ws, headers)

        ordered = sorted(totals.items(), key=lambda item: item[0])
        for row_num, ((year, month, company), entry) in enumerate(ordered, 2):
            self._write_row(ws, row_num, [
                year, month, company, entry["events"],
                round2(entry["raw"]),
                round2(entry["fiacom"]),
                round2(entry["responsabile"]),
                round2(entry["sportello"]),
            ], currency_cols=(5, 6, 7, 8))

        for col in range(1, len(headers) + 1):
            ws.column_dimensions[get_column_letter(col)].width = 30 if col == 3 else 16

        total_row = len(ordered) + 2
        self._write_totals(ws, total_row, 3, {
            5: round2(sum(e["raw"] for e in totals.values())),
            6: round2(sum(e["fiacom"] for e in totals.values())),
            7: round2(sum(e["responsabile"] for e in totals.values())),
            8: round2(sum(e["sportello"] for e in totals.values())),
        })

        logger.info(f"Exported {len(ordered)} monthly company totals to Excel")
        return self._save(wb)
