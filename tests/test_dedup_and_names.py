"""
Test chiave di deduplica e normalizzazione dei nomi.
"""
import pytest

from conto.services.import_dedup import InFileDeduplicator, build_import_key, file_hash
from conto.services.spreadsheet_normalizer import RowData
from conto.utils.normalize_fields import names_match, normalize_name, person_names


class TestImportKey:

    def test_key_layout(self):
        data = RowData(mese="Gennaio", anno="2025", matricola_inps=" 12ab ", ragione_sociale="Alfa   Costruzioni")
        key = build_import_key("proselitismo", data, 1000, None)

        assert key == "proselitismo|Gennaio|2025|12AB|ALFA COSTRUZIONI|F:1000.00|"

    def test_same_event_same_key(self):
        a = RowData(mese="Gennaio", anno="2025", matricola_inps="12ab", ragione_sociale="alfa")
        b = RowData(mese="Gennaio", anno="2025", matricola_inps="12AB", ragione_sociale="ALFA")

        assert build_import_key("proselitismo", a, 99.999, None) == build_import_key("proselitismo", b, 100, None)

    def test_account_and_amount_change_the_key(self):
        data = RowData(mese="Gennaio", anno="2025", matricola_inps="1", ragione_sociale="A")

        assert build_import_key("proselitismo", data, 10, None) != build_import_key("servizi", data, 10, None)
        assert build_import_key("proselitismo", data, 10, None) != build_import_key("proselitismo", data, 11, None)
        assert build_import_key("proselitismo", data, None, 5).endswith("||NR:5.00")

    def test_in_file_deduplicator(self):
        seen = InFileDeduplicator()

        assert seen.seen("k1") is False
        assert seen.seen("k2") is False
        assert seen.seen("k1") is True

    def test_file_hash_is_content_based(self):
        assert file_hash(b"abc") == file_hash(b"abc")
        assert file_hash(b"abc") != file_hash(b"abd")
        assert len(file_hash(b"")) == 64


class TestNameMatching:

    @pytest.mark.parametrize("raw, expected", [
        ("  Rossi S.r.l. ", "rossi"),
        ("Caffè Nero SAS", "caffe nero"),
        ("ACME S.p.A.", "acme"),
        ("Srl", "srl"),
        (None, ""),
    ])
    def test_normalize_name(self, raw, expected):
        assert normalize_name(raw) == expected

    def test_suffix_and_accent_insensitive(self):
        assert names_match("Sportello Nord S.r.l.", "sportello nord srl")
        assert names_match("Società Più", "SOCIETA PIU")

    def test_partial_overlap_never_matches(self):
        assert not names_match("Rossi S.r.l.", "Rossi Mario")
        assert not names_match("Rossi", "Rossi Mario")
        assert not names_match("", "")

    def test_person_names(self):
        user = {"organization": "Rossi S.r.l.", "first_name": "Mario", "last_name": "Verdi", "username": "mverdi"}

        assert person_names(user) == ["Rossi S.r.l.", "Mario Verdi", "mverdi"]
        assert person_names({"username": "solo"}) == ["solo"]
        assert person_names(None) == []
