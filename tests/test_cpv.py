"""Unit tests for classification code extraction."""

import json

from veille.sourcing.cpv import (
    extract_codes,
    extract_direct_codes,
    extract_nested_codes,
    normalize_cpv_code,
    scan_serialized_codes,
)


class TestNormalizeCpvCode:
    """Tests for code normalization."""

    def test_standard(self):
        assert normalize_cpv_code("79711000") == "79711000"

    def test_with_check_digit(self):
        assert normalize_cpv_code("79711000-1") == "79711000"

    def test_partial_padded(self):
        assert normalize_cpv_code("7971") == "79710000"

    def test_numeric(self):
        assert normalize_cpv_code(79711000) == "79711000"

    def test_invalid(self):
        assert normalize_cpv_code("abc") is None
        assert normalize_cpv_code("1") is None
        assert normalize_cpv_code("123456789") is None
        assert normalize_cpv_code(None) is None
        assert normalize_cpv_code(True) is None


class TestExtractCodes:
    """Tests for the three row representations."""

    def test_direct_list(self):
        row = {"cpv": ["79711000", "45210000-1"]}
        assert extract_direct_codes(row) == ["79711000", "45210000"]

    def test_direct_scalar_and_comma_string(self):
        assert extract_codes({"code_cpv": "79711000, 79710000"}) == ["79711000", "79710000"]
        assert extract_codes({"cpv": 79711000}) == ["79711000"]

    def test_nested_key_in_embedded_json(self):
        row = {
            "idweb": "25-1",
            "donnees": json.dumps({"OBJET": {"CPV_PRINCIPAL": "79711000-1"}}),
        }
        assert extract_nested_codes(row) == ["79711000"]
        assert extract_codes(row) == ["79711000"]

    def test_list_name_value_pair(self):
        notice = {
            "lots": [
                {"cbc:ItemClassificationCode": {"@listName": "cpv", "#text": "45312000"}},
                {"cbc:ItemClassificationCode": {"@listName": "cpv", "#text": "79711000"}},
            ]
        }
        row = {"donnees": json.dumps(notice)}
        assert extract_codes(row) == ["45312000", "79711000"]

    def test_text_scan_fallback(self):
        """Code separated from its list name by intervening structure."""
        row = {
            "data": {
                "classification": {
                    "listName": "CPV",
                    "items": [{"id": "x"}, {"val": "45312000"}],
                }
            }
        }
        assert extract_nested_codes(row) == []
        assert scan_serialized_codes(row) == ["45312000"]
        assert extract_codes(row) == ["45312000"]

    def test_scan_only_when_structured_paths_empty(self):
        row = {"cpv": "79711000", "description": "cpv 45210000 mentionné"}
        assert extract_codes(row) == ["79711000"]

    def test_duplicates_removed(self):
        row = {
            "cpv": ["79711000", "79711000-1"],
            "donnees": {"cpv_secondaire": "79711000"},
        }
        assert extract_codes(row) == ["79711000"]

    def test_no_codes(self):
        assert extract_codes({"objet": "Nettoyage des locaux"}) == []
