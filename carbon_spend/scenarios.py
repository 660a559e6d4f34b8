"""
scenarios.py – Counterfactual "what-if" transformations of a transaction set.

A scenario is an ordered list of declarative steps. Each step maps the
current transaction list to a new one (transactions are frozen pydantic
models, so changed records are fresh copies and the caller's list is never
touched), and the final list is re-aggregated with ``baseline_totals``.

Supported steps
───────────────
 scale_category_spend         amount × scale_factor for every tx in category
 region_override_for_category region ← to_region minus "US-" prefix;
                              country ← "USA" when to_region starts "US-"

``region_override_for_category`` ignores ``from_region``: every transaction
in the category is relocated whatever its current region.
"""
from __future__ import annotations

import logging
from typing import Iterable, Sequence

from carbon_spend.calculations import Totals, baseline_totals
from carbon_spend.constants import US_COUNTRY, US_REGION_PREFIX
from carbon_spend.schemas import (
    EmissionFactor,
    FxRate,
    RegionOverrideForCategory,
    ScaleCategorySpend,
    Scenario,
    ScenarioStep,
    Transaction,
)

logger = logging.getLogger(__name__)

DEMO_SCENARIO = Scenario(
    title="Cut flights by 25% + move cloud to Oregon?",
    steps=[
        ScaleCategorySpend(category="Travel-Air", scale_factor=0.75),
        RegionOverrideForCategory(category="Cloud/IT", from_region="ANY", to_region="US-OR"),
    ],
)


def _scale_category_spend(
    transactions: list[Transaction], step: ScaleCategorySpend
) -> list[Transaction]:
    return [
        tx.model_copy(update={"amount": tx.amount * step.scale_factor})
        if tx.category == step.category else tx
        for tx in transactions
    ]


def _region_override_for_category(
    transactions: list[Transaction], step: RegionOverrideForCategory
) -> list[Transaction]:
    to_us = step.to_region.startswith(US_REGION_PREFIX)
    # Only a leading "US-" is stripped.
    new_region = step.to_region[len(US_REGION_PREFIX):] if to_us else step.to_region

    out = []
    for tx in transactions:
        if tx.category != step.category:
            out.append(tx)
            continue
        out.append(tx.model_copy(update={
            "region": new_region,
            "country": US_COUNTRY if to_us else tx.country,
        }))
    return out


_STEP_HANDLERS = {
    "scale_category_spend": _scale_category_spend,
    "region_override_for_category": _region_override_for_category,
}


def apply_steps(
    transactions: Iterable[Transaction],
    steps: Sequence[ScenarioStep],
) -> list[Transaction]:
    """Return the transaction set after applying *steps* in order."""
    current = [tx.model_copy() for tx in transactions]
    for idx, step in enumerate(steps):
        handler = _STEP_HANDLERS[step.action]
        current = handler(current, step)
        logger.debug("Scenario step %d applied: %s", idx, step.action)
    return current


def apply_scenario(
    transactions: Iterable[Transaction],
    emission_factors: Iterable[EmissionFactor],
    fx_rates: Iterable[FxRate],
    scenario: Scenario | Sequence[ScenarioStep],
) -> Totals:
    """
    Re-aggregate *transactions* after the scenario's steps are applied.

    *scenario* may be a ``Scenario`` or a bare sequence of steps. With no
    steps the result equals ``baseline_totals`` on the same inputs.
    """
    steps = scenario.steps if isinstance(scenario, Scenario) else list(scenario)
    transformed = apply_steps(transactions, steps)
    logger.info(
        "apply_scenario | %d step(s) over %d transactions",
        len(steps), len(transformed),
    )
    return baseline_totals(transformed, emission_factors, fx_rates)
