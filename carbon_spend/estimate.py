"""
estimate.py – Per-transaction Scope 3 footprint estimator (EEIO, spend-based).

Resolution chain for one card transaction:

    amount (minor units) → |amount| / 10**exponent(currency) → USD
    merchant_data.category_code (MCC) → NAICS 2017 (crosswalk | fallback | none)
    NAICS → NaicsFactor row → upstream or full-value-chain intensity
    kg CO₂e = USD × intensity

Unlike the category aggregator, an unresolved factor yields ``kg_co2e=None``
("unknown"), never 0. Summaries exclude unknown footprints from kg totals.
"""
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any, Iterable, Mapping, Optional

from carbon_spend.calculations import Totals, resolve_fx_rate
from carbon_spend.constants import (
    ALLOWED_METHODS,
    DEFAULT_METHOD,
    DEFAULT_MINOR_UNIT_EXPONENT,
    METHOD_SCOPE3_UPSTREAM,
    MINOR_UNIT_EXPONENTS,
    NAICS_SOURCE_CROSSWALK,
    NAICS_SOURCE_FALLBACK,
    NAICS_SOURCE_UNRESOLVED,
)
from carbon_spend.emission_factors import FALLBACK_NAICS, get_naics_factor, lookup_mcc
from carbon_spend.schemas import CardTransaction, NaicsFactor

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NaicsMatch:
    naics: Optional[str]
    source: str              # crosswalk | fallback | unresolved


@dataclass
class Footprint:
    """Scope 3 estimate for a single transaction."""
    tx_id: str
    usd: float
    method: str
    mcc: Optional[str] = None
    naics: Optional[str] = None
    naics_title: Optional[str] = None
    factor_used: Optional[float] = None
    kg_co2e: Optional[float] = None
    naics_source: str = NAICS_SOURCE_UNRESOLVED

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class FootprintSummary:
    """Totals over a batch of footprints (unknown kg values excluded)."""
    method: Optional[str]
    total_usd: float = 0.0
    total_kg: float = 0.0
    estimated_count: int = 0
    unknown_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


# ─────────────────────────────────────────────────────────────
# Resolution helpers
# ─────────────────────────────────────────────────────────────

def minor_unit_divisor(currency: str) -> int:
    """10**exponent for *currency* (2 decimals unless ISO 4217 says otherwise)."""
    exponent = MINOR_UNIT_EXPONENTS.get(
        (currency or "").strip().upper(), DEFAULT_MINOR_UNIT_EXPONENT
    )
    return 10 ** exponent


def major_amount(tx: CardTransaction) -> float:
    """Absolute transaction amount in major currency units."""
    return abs(tx.amount) / minor_unit_divisor(tx.currency)


def resolve_naics(mcc: Optional[str], use_fallback: bool = True) -> NaicsMatch:
    """Crosswalk lookup; unmapped or missing MCCs take FALLBACK_NAICS if allowed."""
    entry = lookup_mcc(mcc)
    if entry is not None:
        return NaicsMatch(entry.naics, NAICS_SOURCE_CROSSWALK)
    if use_fallback:
        return NaicsMatch(FALLBACK_NAICS, NAICS_SOURCE_FALLBACK)
    return NaicsMatch(None, NAICS_SOURCE_UNRESOLVED)


def select_factor(row: Optional[NaicsFactor], method: str) -> Optional[float]:
    """Pick the intensity for *method* from a NAICS row (None when absent)."""
    if row is None:
        return None
    if method == METHOD_SCOPE3_UPSTREAM:
        return row.scope3_upstream_kg_per_usd_2021
    return row.scope3_full_value_chain_kg_per_usd_2021


def _check_method(method: str) -> None:
    if method not in ALLOWED_METHODS:
        raise ValueError(
            f"Unknown accounting method {method!r}; expected one of {', '.join(ALLOWED_METHODS)}"
        )


# ─────────────────────────────────────────────────────────────
# Estimator
# ─────────────────────────────────────────────────────────────

def estimate_tx_footprint(
    tx: CardTransaction,
    *,
    method: str = DEFAULT_METHOD,
    use_fallback: bool = True,
    naics_index: Optional[Mapping[str, NaicsFactor]] = None,
    fx_index: Optional[Mapping[str, float]] = None,
) -> Footprint:
    """
    Estimate the Scope 3 footprint of one card transaction.

    Parameters
    ──────────
    method       : ``scope3_upstream`` or ``scope3_full_value_chain``
    use_fallback : map unknown MCCs to FALLBACK_NAICS instead of leaving them unresolved
    naics_index  : NAICS factor table (defaults to the bundled table)
    fx_index     : optional currency → USD rates; without it the major-unit
                   amount is reported as USD

    Raises
    ──────
    ValueError if *method* is not a known accounting method.
    """
    _check_method(method)

    usd = major_amount(tx)
    if fx_index is not None:
        usd *= resolve_fx_rate(tx.currency.strip().upper(), fx_index).usd_per_unit

    mcc = tx.mcc
    match = resolve_naics(mcc, use_fallback)
    row = get_naics_factor(match.naics, naics_index) if match.naics else None
    factor = select_factor(row, method)
    kg = usd * factor if factor is not None else None

    if match.source != NAICS_SOURCE_CROSSWALK:
        logger.debug("tx %s: MCC %r not in crosswalk → naics=%s", tx.id, mcc, match.naics)
    if kg is None:
        logger.debug("tx %s: no %s factor for NAICS %s", tx.id, method, match.naics)

    return Footprint(
        tx_id=tx.id,
        usd=usd,
        method=method,
        mcc=mcc,
        naics=match.naics,
        naics_title=row.naics_title if row is not None else None,
        factor_used=factor,
        kg_co2e=kg,
        naics_source=match.source,
    )


def estimate_many(
    transactions: Iterable[CardTransaction],
    *,
    method: str = DEFAULT_METHOD,
    use_fallback: bool = True,
    naics_index: Optional[Mapping[str, NaicsFactor]] = None,
    fx_index: Optional[Mapping[str, float]] = None,
) -> list[Footprint]:
    """Estimate every transaction independently; output keeps input order."""
    footprints = [
        estimate_tx_footprint(
            tx,
            method=method,
            use_fallback=use_fallback,
            naics_index=naics_index,
            fx_index=fx_index,
        )
        for tx in transactions
    ]
    logger.info("estimate_many | method=%s tx=%d", method, len(footprints))
    return footprints


# ─────────────────────────────────────────────────────────────
# Summaries
# ─────────────────────────────────────────────────────────────

def summarize_footprints(footprints: Iterable[Footprint]) -> FootprintSummary:
    """Sum spend over all footprints and kg over those with a known value."""
    summary = FootprintSummary(method=None)
    methods = set()
    for fp in footprints:
        methods.add(fp.method)
        summary.total_usd += fp.usd
        if fp.kg_co2e is None:
            summary.unknown_count += 1
        else:
            summary.total_kg += fp.kg_co2e
            summary.estimated_count += 1
    if len(methods) == 1:
        summary.method = methods.pop()
    return summary


def scope_share(total_kg: float, scope3_kg: float) -> dict[str, float]:
    """Split an overall total into Scope 3 and the remaining Scope 1+2 share."""
    return {
        "scope3": scope3_kg,
        "scope1_2": max(total_kg - scope3_kg, 0.0),
    }


def headline_total_kg(baseline: Optional[Totals], full_value_chain_kg: float) -> float:
    """Prefer the category baseline total; fall back to the full-value-chain sum."""
    if baseline is not None:
        return baseline.total_kg
    return full_value_chain_kg
