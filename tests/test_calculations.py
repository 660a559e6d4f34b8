"""
Unit tests for carbon_spend/calculations.py

Covers the currency normaliser, region canonicalisation, the two-step
factor lookup with its zero fallback, and the baseline aggregator.
"""
import pytest

from carbon_spend.calculations import (
    CategoryTotals,
    FactorMatch,
    Totals,
    baseline_totals,
    compare_totals,
    region_key,
    resolve_factor,
    resolve_fx_rate,
    top_categories,
    usd_amount,
)
from carbon_spend.constants import (
    DEFAULT_KG_PER_USD,
    DEFAULT_USD_PER_UNIT,
    FACTOR_SOURCE_DEFAULT,
    FACTOR_SOURCE_EXACT,
    FACTOR_SOURCE_REGION_ANY,
)
from carbon_spend.emission_factors import index_emission_factors, index_fx_rates
from carbon_spend.schemas import EmissionFactor, FxRate, Transaction


# ─────────────────────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────────────────────

def make_tx(amount=100.0, category="Meals", currency="USD", country="USA", region="CA", **kw):
    return Transaction(
        date=kw.pop("date", "2024-01-01"),
        amount=amount,
        currency=currency,
        category=category,
        merchant=kw.pop("merchant", "Test Merchant"),
        city=kw.pop("city", "Somewhere"),
        region=region,
        country=country,
    )


def make_ef(category, region, kg):
    return EmissionFactor(category=category, region=region, kgCO2e_per_USD=kg)


FX = [
    FxRate(currency="EUR", usd_per_unit=1.10),
    FxRate(currency="GBP", usd_per_unit=1.25),
    FxRate(currency="JPY", usd_per_unit=0.0067),
]


# ─────────────────────────────────────────────────────────────────────────────
# 1. Currency normaliser
# ─────────────────────────────────────────────────────────────────────────────

class TestUsdAmount:

    def test_converts_with_matching_rate(self):
        tx = make_tx(amount=200.0, currency="EUR")
        assert usd_amount(tx, index_fx_rates(FX)) == pytest.approx(220.0)

    def test_missing_currency_is_identity(self):
        tx = make_tx(amount=75.0, currency="CHF")
        assert usd_amount(tx, index_fx_rates(FX)) == 75.0

    def test_missing_currency_reports_fallback(self):
        match = resolve_fx_rate("CHF", index_fx_rates(FX))
        assert match.is_fallback is True
        assert match.usd_per_unit == DEFAULT_USD_PER_UNIT

    def test_matching_currency_is_not_fallback(self):
        match = resolve_fx_rate("GBP", index_fx_rates(FX))
        assert match.is_fallback is False
        assert match.usd_per_unit == pytest.approx(1.25)

    def test_negative_amount_keeps_sign(self):
        tx = make_tx(amount=-40.0, currency="GBP")
        assert usd_amount(tx, index_fx_rates(FX)) == pytest.approx(-50.0)

    def test_currency_codes_upper_cased_on_records(self):
        assert make_tx(currency=" eur ").currency == "EUR"
        assert FxRate(currency="gbp", usd_per_unit=1.25).currency == "GBP"

    def test_lower_case_codes_match_rate(self):
        tx = [make_tx(amount=100.0, currency="eur")]
        totals = baseline_totals(tx, [], [FxRate(currency="EUR", usd_per_unit=1.1)])
        assert totals.total_usd == pytest.approx(110.0)
        assert totals.fx_fallbacks == 0

    def test_duplicate_fx_rows_first_wins(self):
        rows = [FxRate(currency="EUR", usd_per_unit=1.0), FxRate(currency="EUR", usd_per_unit=2.0)]
        assert resolve_fx_rate("EUR", index_fx_rates(rows)).usd_per_unit == 1.0


# ─────────────────────────────────────────────────────────────────────────────
# 2. Region canonicalisation + factor resolver
# ─────────────────────────────────────────────────────────────────────────────

class TestRegionKey:

    def test_us_transaction_gets_state_key(self):
        assert region_key(make_tx(country="USA", region="TX")) == "US-TX"

    def test_non_us_transaction_is_wildcard(self):
        assert region_key(make_tx(country="Canada", region="ON")) == "ANY"

    def test_country_match_is_exact(self):
        # "US" is not "USA": regional specificity only for the canonical name
        assert region_key(make_tx(country="US", region="CA")) == "ANY"


class TestResolveFactor:

    INDEX = index_emission_factors([
        make_ef("Cloud/IT", "ANY", 0.3),
        make_ef("Cloud/IT", "US-OR", 0.1),
        make_ef("Meals", "US-CA", 0.25),
    ])

    def test_exact_region_match(self):
        assert resolve_factor("Cloud/IT", "US-OR", self.INDEX) == FactorMatch(0.1, FACTOR_SOURCE_EXACT)

    def test_falls_back_to_any_row(self):
        assert resolve_factor("Cloud/IT", "US-VA", self.INDEX) == FactorMatch(0.3, FACTOR_SOURCE_REGION_ANY)

    def test_non_us_uses_any_row(self):
        match = resolve_factor("Cloud/IT", "ANY", self.INDEX)
        assert match.kg_per_usd == pytest.approx(0.3)

    def test_no_row_returns_zero_default(self):
        match = resolve_factor("Meals", "US-NY", self.INDEX)
        assert match.kg_per_usd == DEFAULT_KG_PER_USD
        assert match.source == FACTOR_SOURCE_DEFAULT

    def test_unknown_category_returns_zero_default(self):
        assert resolve_factor("Events", "ANY", self.INDEX).source == FACTOR_SOURCE_DEFAULT

    def test_duplicate_rows_first_wins(self):
        index = index_emission_factors([make_ef("Meals", "ANY", 0.2), make_ef("Meals", "ANY", 0.9)])
        assert resolve_factor("Meals", "ANY", index).kg_per_usd == pytest.approx(0.2)


# ─────────────────────────────────────────────────────────────────────────────
# 3. Baseline aggregator
# ─────────────────────────────────────────────────────────────────────────────

class TestBaselineTotals:

    def test_single_travel_air_example(self):
        tx = [make_tx(amount=1000, category="Travel-Air", currency="USD", country="USA", region="CA")]
        ef = [make_ef("Travel-Air", "US-CA", 0.5)]
        totals = baseline_totals(tx, ef, [])

        assert totals.total_usd == pytest.approx(1000.0)
        assert totals.total_kg == pytest.approx(500.0)
        assert totals.to_dict()["byCat"] == {"Travel-Air": {"usd": pytest.approx(1000.0), "kg": pytest.approx(500.0)}}

    def test_empty_set_returns_zero_totals(self):
        totals = baseline_totals([], [make_ef("Meals", "ANY", 0.2)], FX)
        assert totals.total_usd == 0.0
        assert totals.total_kg == 0.0
        assert totals.by_cat == {}

    def test_total_usd_is_sum_of_usd_amounts(self):
        tx = [
            make_tx(amount=100.0, currency="EUR"),
            make_tx(amount=250.5, currency="USD", category="Lodging"),
            make_tx(amount=9000, currency="JPY", category="Lodging", country="Japan"),
            make_tx(amount=-20.0, currency="GBP"),
        ]
        fx_index = index_fx_rates(FX)
        totals = baseline_totals(tx, [], FX)
        assert totals.total_usd == sum(usd_amount(t, fx_index) for t in tx)

    def test_categories_partition_the_totals(self):
        tx = [
            make_tx(amount=120.0, category="Meals"),
            make_tx(amount=80.0, category="Meals", currency="EUR", country="Germany", region="BE"),
            make_tx(amount=400.0, category="Cloud/IT", region="OR"),
            make_tx(amount=55.0, category="Events"),
        ]
        ef = [make_ef("Meals", "ANY", 0.27), make_ef("Cloud/IT", "US-OR", 0.09)]
        totals = baseline_totals(tx, ef, FX)

        assert set(totals.by_cat) == {"Meals", "Cloud/IT", "Events"}
        assert totals.total_kg == pytest.approx(sum(b.kg for b in totals.by_cat.values()))
        assert totals.total_usd == pytest.approx(sum(b.usd for b in totals.by_cat.values()))

    def test_uncovered_category_adds_spend_but_no_emissions(self):
        totals = baseline_totals([make_tx(amount=300.0, category="Events")], [], [])
        assert totals.by_cat["Events"].usd == pytest.approx(300.0)
        assert totals.by_cat["Events"].kg == 0.0
        assert totals.factor_fallbacks == 1

    def test_fx_fallback_counted(self):
        tx = [make_tx(currency="CHF"), make_tx(currency="EUR")]
        totals = baseline_totals(tx, [], FX)
        assert totals.fx_fallbacks == 1
        assert totals.transaction_count == 2

    def test_regional_row_beats_any_row(self):
        tx = [make_tx(amount=100.0, category="Cloud/IT", region="OR")]
        ef = [make_ef("Cloud/IT", "ANY", 0.32), make_ef("Cloud/IT", "US-OR", 0.09)]
        assert baseline_totals(tx, ef, []).total_kg == pytest.approx(9.0)

    def test_non_us_ignores_regional_rows(self):
        tx = [make_tx(amount=100.0, category="Cloud/IT", country="Canada", region="OR")]
        ef = [make_ef("Cloud/IT", "ANY", 0.32), make_ef("Cloud/IT", "US-OR", 0.09)]
        assert baseline_totals(tx, ef, []).total_kg == pytest.approx(32.0)

    def test_accepts_generators(self):
        tx = (make_tx(amount=a) for a in (10.0, 20.0))
        ef = (e for e in [make_ef("Meals", "ANY", 0.5)])
        totals = baseline_totals(tx, ef, iter(FX))
        assert totals.total_kg == pytest.approx(15.0)


# ─────────────────────────────────────────────────────────────────────────────
# 4. Reports
# ─────────────────────────────────────────────────────────────────────────────

def _totals(**cats):
    t = Totals()
    for name, (usd, kg) in cats.items():
        t.by_cat[name] = CategoryTotals(usd=usd, kg=kg)
        t.total_usd += usd
        t.total_kg += kg
    return t


class TestTopCategories:

    def test_sorted_by_kg_descending(self):
        rows = top_categories(_totals(A=(100.0, 10.0), B=(50.0, 40.0), C=(10.0, 50.0)))
        assert [r["category"] for r in rows] == ["C", "B", "A"]

    def test_percentages_of_total_kg(self):
        rows = top_categories(_totals(A=(100.0, 25.0), B=(100.0, 75.0)))
        assert rows[0]["kg_perc"] == pytest.approx(75.0)
        assert rows[1]["kg_perc"] == pytest.approx(25.0)

    def test_limit_applied(self):
        totals = _totals(**{f"c{i}": (1.0, float(i)) for i in range(12)})
        assert len(top_categories(totals, limit=8)) == 8

    def test_zero_total_gives_zero_percent(self):
        rows = top_categories(_totals(A=(100.0, 0.0)))
        assert rows[0]["kg_perc"] == 0.0


class TestCompareTotals:

    def test_total_delta_and_pct(self):
        result = compare_totals(_totals(A=(100.0, 50.0)), _totals(A=(75.0, 37.5)))
        assert result["totalKg"]["delta"] == pytest.approx(-12.5)
        assert result["totalKg"]["delta_pct"] == pytest.approx(-25.0)
        assert result["totalUSD"]["scenario"] == pytest.approx(75.0)

    def test_zero_baseline_pct_is_none(self):
        result = compare_totals(_totals(A=(10.0, 0.0)), _totals(A=(10.0, 5.0)))
        assert result["byCat"]["A"]["kg"]["delta_pct"] is None

    def test_categories_from_both_sides_present(self):
        result = compare_totals(_totals(A=(1.0, 1.0)), _totals(B=(2.0, 2.0)))
        assert set(result["byCat"]) == {"A", "B"}
        assert result["byCat"]["B"]["usd"]["baseline"] == 0.0
