"""
Unit tests for field name canonicalization, type inference and keyword tables.
"""

import json
from datetime import date

import pytest

from formgrid.core.field_normalizer import default_value_for, infer_field_type, normalize_field_name
from formgrid.core.keywords import KEYWORDS_PATH_ENV, TYPE_PRIORITY, load_keyword_tables
from formgrid.core.models import FieldType
from formgrid.utils.exceptions import ConfigurationError, ValidationError


class TestNormalizeFieldName:

    @pytest.mark.parametrize("raw,expected", [
        ("姓名", "name"),
        ("出生年月日", "birth_date"),
        ("電話", "phone"),
        ("Name:", "name"),
        ("E-MAIL", "email"),
        ("地址：", "address"),
    ])
    def test_known_labels_use_lookup_table(self, raw, expected):
        assert normalize_field_name(raw, "field_p0_r0_c0") == expected

    def test_unknown_label_is_snake_cased(self):
        assert normalize_field_name("Unit Price", "field_p0_r0_c0") == "unit_price"

    def test_punctuation_runs_collapse_to_one_underscore(self):
        assert normalize_field_name("  Ship -- To (Street)  ", "x") == "ship_to_street"

    def test_fullwidth_text_is_nfkc_normalized(self):
        assert normalize_field_name("Ｎａｍｅ　Ｘ", "x") == "name_x"

    def test_unmapped_cjk_uses_fallback(self):
        assert normalize_field_name("備註", "field_p0_r1_c2") == "field_p0_r1_c2"

    def test_empty_label_uses_fallback(self):
        assert normalize_field_name("", "Field P1") == "field_p1"
        assert normalize_field_name(None, "field_p0_r0_c0") == "field_p0_r0_c0"

    def test_empty_fallback_gives_generic_name(self):
        assert normalize_field_name("", "") == "field"

    def test_none_fallback_raises(self):
        with pytest.raises(ValidationError):
            normalize_field_name("Name", None)


class TestInferFieldType:

    @pytest.mark.parametrize("text,expected", [
        ("發票日期", FieldType.DATE),
        ("Invoice Date", FieldType.DATE),
        ("Total Amount", FieldType.NUMBER),
        ("金額", FieldType.NUMBER),
        ("Type of service", FieldType.SELECT),
        ("I agree (yes/no)", FieldType.CHECKBOX),
        ("同意", FieldType.CHECKBOX),
        ("Name", FieldType.TEXT),
    ])
    def test_keyword_categories(self, text, expected):
        assert infer_field_type(text) is expected

    def test_date_is_checked_before_number(self):
        # Both a date and a number keyword are present
        assert infer_field_type("Amount date") is FieldType.DATE

    def test_empty_text_is_text(self):
        assert infer_field_type("") is FieldType.TEXT
        assert infer_field_type(None) is FieldType.TEXT
        assert infer_field_type("::") is FieldType.TEXT

    def test_priority_order(self):
        assert TYPE_PRIORITY == (FieldType.DATE, FieldType.NUMBER, FieldType.SELECT, FieldType.CHECKBOX)


class TestDefaultValueFor:

    def test_defaults(self):
        assert default_value_for(FieldType.NUMBER) == "0"
        assert default_value_for(FieldType.CHECKBOX) == "false"
        assert default_value_for(FieldType.TEXT) == ""
        assert default_value_for(FieldType.SELECT) == ""

    def test_date_uses_today(self):
        assert default_value_for(FieldType.DATE, today=date(2024, 1, 2)) == "2024-01-02"


class TestKeywordTables:

    def test_bundled_tables_load(self):
        tables = load_keyword_tables()

        assert tables.canonical_names["姓名"] == "name"
        assert len(tables.default_records()) == 19
        assert {r.field_type for r in tables.suggestion_rules} == set(TYPE_PRIORITY)

    def test_custom_file_extends_defaults(self, tmp_path):
        path = tmp_path / "extra.json"
        path.write_text(json.dumps({
            "canonical_names": {"備註": "remarks"},
            "field_type_keywords": {"number": ["pcs"]},
        }), encoding="utf-8")

        tables = load_keyword_tables(path)

        assert normalize_field_name("備註", "x", tables) == "remarks"
        assert normalize_field_name("姓名", "x", tables) == "name"
        assert infer_field_type("Pcs", tables) is FieldType.NUMBER

    def test_custom_file_can_replace_defaults(self, tmp_path):
        path = tmp_path / "only.json"
        path.write_text(json.dumps({"canonical_names": {"備註": "remarks"}}), encoding="utf-8")

        tables = load_keyword_tables(path, extend_defaults=False)

        assert tables.canonical_names == {"備註": "remarks"}
        assert infer_field_type("Invoice Date", tables) is FieldType.TEXT

    def test_environment_variable_is_honored(self, tmp_path, monkeypatch):
        path = tmp_path / "env.json"
        path.write_text(json.dumps({"canonical_names": {"code": "product_code"}}), encoding="utf-8")
        monkeypatch.setenv(KEYWORDS_PATH_ENV, str(path))

        assert load_keyword_tables().canonical_names["code"] == "product_code"

    def test_invalid_field_type_raises(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text(json.dumps({"field_type_keywords": {"color": ["red"]}}), encoding="utf-8")

        with pytest.raises(ConfigurationError):
            load_keyword_tables(path)

    def test_unreadable_file_raises(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{not json", encoding="utf-8")

        with pytest.raises(ConfigurationError):
            load_keyword_tables(path)
