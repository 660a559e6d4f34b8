"""
Unit tests for carbon_spend/validators.py
"""
from carbon_spend.validators import (
    normalise_currency,
    normalise_emission_factor_row,
    normalise_fx_row,
    normalise_naics_row,
    normalise_transaction_row,
)


class TestNormaliseTransactionRow:

    def test_cleans_amount_and_currency(self):
        row, warnings = normalise_transaction_row(
            {"date": "2024-01-05", "amount": "$1,250.00", "currency": " gbp ", "category": "Meals"}
        )
        assert row["amount"] == 1250.0
        assert row["currency"] == "GBP"
        assert warnings == []

    def test_parses_us_date(self):
        row, _ = normalise_transaction_row({"date": "03/07/2024", "amount": "1", "category": "Meals"})
        assert row["date"] == "2024-03-07"

    def test_unparseable_date_dropped_with_warning(self):
        row, warnings = normalise_transaction_row({"date": "someday", "amount": "1", "category": "Meals"})
        assert row["date"] is None
        assert any("date" in w for w in warnings)

    def test_unparseable_amount_passed_through(self):
        row, warnings = normalise_transaction_row({"amount": "n/a", "category": "Meals"})
        assert row["amount"] == "n/a"
        assert warnings

    def test_blank_currency_warns(self):
        row, warnings = normalise_transaction_row({"amount": "5", "currency": "", "category": "Meals"})
        assert row["currency"] == ""
        assert any("currency" in w for w in warnings)

    def test_none_location_fields_removed(self):
        row, _ = normalise_transaction_row({"amount": "5", "category": "Meals", "region": None})
        assert "region" not in row


class TestReferenceRows:

    def test_emission_factor_numeric(self):
        row, warnings = normalise_emission_factor_row(
            {"category": "Meals", "region": "ANY", "kgCO2e_per_USD": " 0.27 ", "note": ""}
        )
        assert row["kgCO2e_per_USD"] == 0.27
        assert row["note"] is None
        assert warnings == []

    def test_fx_missing_rate_warns(self):
        row, warnings = normalise_fx_row({"currency": "eur", "usd_per_unit": ""})
        assert row["currency"] == "EUR"
        assert row["usd_per_unit"] is None
        assert warnings == ["usd_per_unit is missing"]

    def test_naics_blank_is_none_without_warning(self):
        row, warnings = normalise_naics_row({
            "naics_code": "453110",
            "scope3_upstream_kg_per_usd_2021": "0.11",
            "scope3_full_value_chain_kg_per_usd_2021": "",
        })
        assert row["scope3_upstream_kg_per_usd_2021"] == 0.11
        assert row["scope3_full_value_chain_kg_per_usd_2021"] is None
        assert warnings == []

    def test_normalise_currency(self):
        assert normalise_currency(" cad") == "CAD"
        assert normalise_currency(None) == ""
