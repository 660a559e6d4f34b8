"""
queries.py – Payload builders for the footprint API.

Each builder takes already-validated records, runs the engine, and returns
JSON-serialisable dicts. The dashboard payload mirrors what the demo page
shows: baseline tiles, top categories, the demo scenario, and Scope 3 vs
total split from per-transaction estimates.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Optional, Sequence

from carbon_spend.calculations import Totals, baseline_totals, compare_totals, top_categories
from carbon_spend.config import Config
from carbon_spend.constants import (
    DEMO_CARD_TRANSACTIONS_FILE,
    METHOD_SCOPE3_FULL_VALUE_CHAIN,
    METHOD_SCOPE3_UPSTREAM,
)
from carbon_spend.emission_factors import MCC_TO_NAICS_2017, get_naics_factor
from carbon_spend.estimate import (
    estimate_many,
    headline_total_kg,
    scope_share,
    summarize_footprints,
)
from carbon_spend.io_utils import DemoData, load_card_transactions, load_demo
from carbon_spend.scenarios import DEMO_SCENARIO, apply_scenario
from carbon_spend.schemas import (
    CardTransaction,
    EmissionFactor,
    FxRate,
    Scenario,
    Transaction,
)

logger = logging.getLogger(__name__)


# ─── spend aggregation ────────────────────────────────────────────────────

def baseline_payload(
    tx: Sequence[Transaction],
    ef: Sequence[EmissionFactor],
    fx: Sequence[FxRate],
    top: int,
) -> dict[str, Any]:
    totals = baseline_totals(tx, ef, fx)
    return {
        "totals": totals.to_dict(),
        "top_categories": top_categories(totals, top),
        "fallbacks": {
            "fx": totals.fx_fallbacks,
            "factor": totals.factor_fallbacks,
        },
    }


def scenario_payload(
    tx: Sequence[Transaction],
    ef: Sequence[EmissionFactor],
    fx: Sequence[FxRate],
    scenario: Scenario,
    baseline: Optional[Totals] = None,
) -> dict[str, Any]:
    """Baseline, post-scenario totals, and their comparison."""
    before = baseline if baseline is not None else baseline_totals(tx, ef, fx)
    after = apply_scenario(tx, ef, fx, scenario)
    return {
        "title": scenario.title,
        "steps": [step.model_dump() for step in scenario.steps],
        "baseline": before.to_dict(),
        "after": after.to_dict(),
        "comparison": compare_totals(before, after),
    }


# ─── per-transaction footprints ───────────────────────────────────────────

def footprints_payload(
    card_tx: Sequence[CardTransaction],
    method: str,
    use_fallback: bool,
) -> dict[str, Any]:
    footprints = estimate_many(card_tx, method=method, use_fallback=use_fallback)
    return {
        "footprints": [fp.to_dict() for fp in footprints],
        "summary": summarize_footprints(footprints).to_dict(),
    }


def crosswalk_rows() -> list[dict[str, Any]]:
    """MCC → NAICS table joined with the bundled NAICS titles."""
    rows = []
    for mcc, entry in sorted(MCC_TO_NAICS_2017.items()):
        factor = get_naics_factor(entry.naics)
        rows.append({
            "mcc": mcc,
            "naics": entry.naics,
            "reason": entry.reason,
            "naics_title": factor.naics_title if factor is not None else None,
        })
    return rows


# ─── dashboard ────────────────────────────────────────────────────────────

def build_dashboard_payload(
    demo: DemoData,
    card_tx: Sequence[CardTransaction],
    config: Config,
) -> dict[str, Any]:
    """
    Everything the demo page needs in one payload.

    Two footprint passes are run over the card transactions (upstream only
    and full value chain) so the tiles show distinct figures.
    """
    base = baseline_totals(demo.tx, demo.ef, demo.fx)

    upstream = summarize_footprints(
        estimate_many(card_tx, method=METHOD_SCOPE3_UPSTREAM, use_fallback=config.use_fallback)
    )
    full_chain = summarize_footprints(
        estimate_many(card_tx, method=METHOD_SCOPE3_FULL_VALUE_CHAIN, use_fallback=config.use_fallback)
    )
    total_kg = headline_total_kg(base, full_chain.total_kg)

    return {
        "counts": {"tx": len(demo.tx), "ef": len(demo.ef), "fx": len(demo.fx), "card_tx": len(card_tx)},
        "kpis": {
            "total_usd": base.total_usd,
            "total_kg": total_kg,
            "scope3_upstream_kg": upstream.total_kg,
            "full_value_chain_kg": full_chain.total_kg,
            "card_spend_usd": full_chain.total_usd,
        },
        "scope_share": scope_share(total_kg, upstream.total_kg),
        "top_categories": top_categories(base, config.top_categories),
        "scenario": scenario_payload(demo.tx, demo.ef, demo.fx, DEMO_SCENARIO, baseline=base),
    }


def get_demo_dashboard(config: Config) -> dict[str, Any]:
    """Load the demo files from ``config.data_dir`` and build the dashboard."""
    data_dir = Path(config.data_dir)
    demo = load_demo(data_dir)
    card_path = data_dir / DEMO_CARD_TRANSACTIONS_FILE
    card_tx = load_card_transactions(card_path) if card_path.exists() else []
    if not card_tx:
        logger.info("No card transactions in %s; footprint tiles will be zero", data_dir)
    return build_dashboard_payload(demo, card_tx, config)
