"""
Test export Excel dei conti.
"""
from openpyxl import load_workbook

from conto.services.commission_split import build_ledger_rows, compute_split
from conto.services.conto_export import ContoExporter


def event_rows(base, month, company_id, import_key):
    rows = build_ledger_rows(
        compute_split(base, 80, 40),
        {
            "account": "proselitismo",
            "description": f"Azienda: {company_id}",
            "company_id": company_id,
            "import_key": import_key,
            "date": f"2025-{month:02d}-01",
        },
        house_user_id="admin-1",
        responsabile_id="resp-1",
        sportello_owner_id="sport-user-1",
        sportello_id="sp-1",
    )
    for row in rows:
        row["company_name"] = company_id.title()
    return rows


def sheet_values(output):
    ws = load_workbook(output).active
    return [list(r) for r in ws.iter_rows(values_only=True)]


def test_transactions_export_has_one_line_per_row_and_total():
    rows = event_rows(1000, 1, "alfa", "k1")

    values = sheet_values(ContoExporter().export_transactions(rows))

    assert values[0][:5] == ["Data", "Tipo", "Stato", "Quota", "Importo"]
    assert [v[3] for v in values[1:4]] == ["fiacom", "responsabile", "sportello"]
    assert values[1][1] == "entrata"
    assert values[4][3] == "TOTALE"
    assert values[4][4] == 2000.0


def test_monthly_totals_count_the_base_once_per_event():
    rows = event_rows(1000, 1, "alfa", "k1") + event_rows(500, 1, "alfa", "k2") + event_rows(200, 2, "beta", "k3")

    values = sheet_values(ContoExporter().export_monthly_company_totals(rows))

    january = values[1]
    assert january[:4] == ["2025", "01", "Alfa", 2]
    assert january[4:] == [1500.0, 1200.0, 1200.0, 600.0]
    february = values[2]
    assert february[:5] == ["2025", "02", "Beta", 1, 200.0]
    assert values[3][2] == "TOTALE"
    assert values[3][4] == 1700.0


def test_empty_export_still_has_headers():
    values = sheet_values(ContoExporter().export_monthly_company_totals([]))

    assert values[0][0] == "Anno"
    assert values[1][2] == "TOTALE"
