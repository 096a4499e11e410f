"""
Test Suite per il calcolo della ripartizione
============================================
"""
import pytest

from conto.exceptions import ValidationError
from conto.services.commission_split import (
    build_ledger_rows,
    compute_split,
    normalize_percent,
    round2
)


class TestComputeSplit:

    def test_every_share_is_computed_on_base(self):
        split = compute_split(1000, 80, 40)

        assert split.house == 800.00
        # 1000 x 0.80, not 800 x 0.80
        assert split.manager == 800.00
        assert split.center == 400.00

    @pytest.mark.parametrize("base, pm, ps", [
        (123.45, 12.5, 7),
        (0.01, 100, 100),
        (99999.99, 33.3, 0),
        (1.005, 50, 50),
    ])
    def test_shares_are_independent(self, base, pm, ps):
        split = compute_split(base, pm, ps)

        assert split.house == round2(base * 0.8)
        assert split.manager == round2(base * pm / 100)
        assert split.center == round2(base * ps / 100)

    def test_percent_defaults_and_clamping(self):
        split = compute_split(200, None, 150)

        assert split.manager == 0.0
        assert split.manager_percent == 0.0
        assert split.center == 200.0
        assert split.center_percent == 100.0

    @pytest.mark.parametrize("base", [0, -10, None, "abc", float("nan")])
    def test_invalid_base(self, base):
        with pytest.raises(ValidationError):
            compute_split(base, 10, 10)

    def test_breakdown(self):
        breakdown = compute_split(1000, 80, 40).as_breakdown()

        assert breakdown["base_amount"] == 1000.0
        assert breakdown["fiacom_amount"] == 800.0
        assert breakdown["responsabile_amount"] == 800.0
        assert breakdown["sportello_amount"] == 400.0


def test_round_half_up():
    assert round2(1.005) == 1.01
    assert round2(2.675) == 2.68
    assert round2(0.125) == 0.13


def test_normalize_percent():
    assert normalize_percent(-5) == 0.0
    assert normalize_percent(250) == 100.0
    assert normalize_percent("30") == 30.0
    assert normalize_percent(float("inf"), fallback=12) == 12.0


def test_ledger_rows_share_key_and_raw_amount():
    split = compute_split(1000, 80, 40)
    rows = build_ledger_rows(
        split,
        {
            "account": "proselitismo",
            "description": "Competenza",
            "category": "Competenza",
            "company_id": "comp-alpha",
            "source": "xlsx",
            "import_key": "proselitismo|1|2025|X|Y|F:1000.00|",
            "date": "2025-01-01",
        },
        house_user_id="admin-1",
        responsabile_id="resp-1",
        sportello_owner_id="sport-user-1",
        sportello_id="sp-1",
    )

    assert [r["amount"] for r in rows] == [800.0, 800.0, 400.0]
    assert [r["user_id"] for r in rows] == ["admin-1", "resp-1", "sport-user-1"]
    assert [r["party"] for r in rows] == ["fiacom", "responsabile", "sportello"]
    assert {r["raw_amount"] for r in rows} == {1000.0}
    assert len({r["import_key"] for r in rows}) == 1
    assert len({r["id"] for r in rows}) == 3
    assert all(r["type"] == "entrata" and r["status"] == "completata" for r in rows)
