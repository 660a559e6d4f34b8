"""
calculations.py – Spend-based emission aggregation engine.

Every function here is a pure computation over already-validated records:
no I/O, no shared mutable state, and no error path for missing reference
data. Missing data falls back silently to a named default and the fallback
is reported on the result objects (and at DEBUG level).

Formula references
──────────────────
 Step                    Formula / rule
 ─────────────────────────────────────────────────────────────────────────
 Currency normalisation  usd = amount × usd_per_unit   (no FX row → × 1.0)
 Region key              country == "USA" → "US-<region>", else "ANY"
 Factor resolution       (category, region key) → (category, "ANY") → 0.0
 Emissions               kg CO₂e = usd × kg_per_usd
 Aggregation             grand totals + per-category buckets (lazy, zeroed)

Usage
──────
    from carbon_spend.calculations import baseline_totals

    totals = baseline_totals(transactions, emission_factors, fx_rates)
    totals.to_dict()   # {"totalUSD": ..., "totalKg": ..., "byCat": {...}}
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Optional

from carbon_spend.constants import (
    DEFAULT_KG_PER_USD,
    DEFAULT_TOP_CATEGORIES,
    DEFAULT_USD_PER_UNIT,
    FACTOR_SOURCE_DEFAULT,
    FACTOR_SOURCE_EXACT,
    FACTOR_SOURCE_REGION_ANY,
    REGION_ANY,
    US_COUNTRY,
    US_REGION_PREFIX,
)
from carbon_spend.emission_factors import index_emission_factors, index_fx_rates
from carbon_spend.schemas import EmissionFactor, FxRate, Transaction

logger = logging.getLogger(__name__)


# ─────────────────────────────────────────────────────────────────────────────
# Result dataclasses
# ─────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class FxMatch:
    """USD-per-unit rate applied to a currency."""
    usd_per_unit: float
    is_fallback: bool


@dataclass(frozen=True)
class FactorMatch:
    """Intensity resolved for a (category, region key) pair."""
    kg_per_usd: float
    source: str              # exact | region_any | default


@dataclass
class CategoryTotals:
    usd: float = 0.0
    kg: float = 0.0


@dataclass
class Totals:
    """Aggregated spend and emissions for one transaction set."""
    total_usd: float = 0.0
    total_kg: float = 0.0
    by_cat: dict[str, CategoryTotals] = field(default_factory=dict)
    transaction_count: int = 0
    fx_fallbacks: int = 0        # transactions converted at the default 1.0
    factor_fallbacks: int = 0    # transactions priced at the default 0.0 kg/USD

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalUSD": self.total_usd,
            "totalKg": self.total_kg,
            "byCat": {
                cat: {"usd": bucket.usd, "kg": bucket.kg}
                for cat, bucket in self.by_cat.items()
            },
        }


# ─────────────────────────────────────────────────────────────────────────────
# Currency normaliser
# ─────────────────────────────────────────────────────────────────────────────

def resolve_fx_rate(currency: str, fx_index: Mapping[str, float]) -> FxMatch:
    """Return the rate for *currency*; absent currencies are treated as USD."""
    rate = fx_index.get(currency)
    if rate is None:
        return FxMatch(DEFAULT_USD_PER_UNIT, True)
    return FxMatch(rate, False)


def usd_amount(tx: Transaction, fx_index: Mapping[str, float]) -> float:
    """Convert the transaction's native amount to USD."""
    return tx.amount * resolve_fx_rate(tx.currency, fx_index).usd_per_unit


# ─────────────────────────────────────────────────────────────────────────────
# Category / region factor resolver
# ─────────────────────────────────────────────────────────────────────────────

def region_key(tx: Transaction) -> str:
    """Canonical factor region: "US-<region>" for US transactions, else "ANY"."""
    if tx.country == US_COUNTRY:
        return f"{US_REGION_PREFIX}{tx.region}"
    return REGION_ANY


def resolve_factor(
    category: str,
    region: str,
    factor_index: Mapping[tuple[str, str], float],
) -> FactorMatch:
    """Exact (category, region) row, then (category, "ANY"), then 0.0."""
    exact = factor_index.get((category, region))
    if exact is not None:
        return FactorMatch(exact, FACTOR_SOURCE_EXACT)
    wildcard = factor_index.get((category, REGION_ANY))
    if wildcard is not None:
        return FactorMatch(wildcard, FACTOR_SOURCE_REGION_ANY)
    return FactorMatch(DEFAULT_KG_PER_USD, FACTOR_SOURCE_DEFAULT)


# ─────────────────────────────────────────────────────────────────────────────
# Baseline aggregator
# ─────────────────────────────────────────────────────────────────────────────

def baseline_totals(
    transactions: Iterable[Transaction],
    emission_factors: Iterable[EmissionFactor],
    fx_rates: Iterable[FxRate],
) -> Totals:
    """
    Sum USD spend and kg CO₂e over *transactions*, broken down by category.

    Reference rows are indexed once per call (first row wins on duplicate
    keys), so each transaction costs O(1) lookups.
    """
    factor_index = index_emission_factors(emission_factors)
    fx_index = index_fx_rates(fx_rates)

    totals = Totals()
    for tx in transactions:
        fx = resolve_fx_rate(tx.currency, fx_index)
        usd = tx.amount * fx.usd_per_unit
        key = region_key(tx)
        factor = resolve_factor(tx.category, key, factor_index)
        kg = usd * factor.kg_per_usd

        if fx.is_fallback:
            totals.fx_fallbacks += 1
            logger.debug("No FX rate for %r; treating amount as USD", tx.currency)
        if factor.source == FACTOR_SOURCE_DEFAULT:
            totals.factor_fallbacks += 1
            logger.debug(
                "No emission factor for category=%r region=%s; using %.1f kg/USD",
                tx.category, key, DEFAULT_KG_PER_USD,
            )

        totals.total_usd += usd
        totals.total_kg += kg
        bucket = totals.by_cat.setdefault(tx.category, CategoryTotals())
        bucket.usd += usd
        bucket.kg += kg
        totals.transaction_count += 1

    logger.info(
        "baseline_totals | tx=%d categories=%d | %.2f USD → %.2f kg CO₂e | "
        "fx_fallbacks=%d factor_fallbacks=%d",
        totals.transaction_count,
        len(totals.by_cat),
        totals.total_usd,
        totals.total_kg,
        totals.fx_fallbacks,
        totals.factor_fallbacks,
    )
    return totals


# ─────────────────────────────────────────────────────────────────────────────
# Reports derived from Totals
# ─────────────────────────────────────────────────────────────────────────────

def top_categories(totals: Totals, limit: int = DEFAULT_TOP_CATEGORIES) -> list[dict[str, Any]]:
    """Categories ranked by kg CO₂e (descending) with their share of the total."""
    rows = [
        {
            "category": cat,
            "usd": bucket.usd,
            "kg": bucket.kg,
            "kg_perc": (bucket.kg / totals.total_kg) * 100 if totals.total_kg else 0.0,
        }
        for cat, bucket in totals.by_cat.items()
    ]
    rows.sort(key=lambda r: r["kg"], reverse=True)
    return rows[:limit]


def _delta(baseline: float, scenario: float) -> dict[str, Optional[float]]:
    diff = scenario - baseline
    return {
        "baseline": baseline,
        "scenario": scenario,
        "delta": diff,
        "delta_pct": (diff / baseline) * 100 if baseline else None,
    }


def compare_totals(baseline: Totals, scenario: Totals) -> dict[str, Any]:
    """Side-by-side baseline vs scenario figures, overall and per category."""
    categories = list(baseline.by_cat)
    categories += [cat for cat in scenario.by_cat if cat not in baseline.by_cat]

    by_cat: dict[str, dict[str, Any]] = {}
    for cat in categories:
        before = baseline.by_cat.get(cat, CategoryTotals())
        after = scenario.by_cat.get(cat, CategoryTotals())
        by_cat[cat] = {
            "usd": _delta(before.usd, after.usd),
            "kg": _delta(before.kg, after.kg),
        }

    return {
        "totalUSD": _delta(baseline.total_usd, scenario.total_usd),
        "totalKg": _delta(baseline.total_kg, scenario.total_kg),
        "byCat": by_cat,
    }
