"""
main.py – FastAPI service exposing the spend-based carbon footprint engine.

Start:
    cd /path/to/repo
    uvicorn footprint_api.main:app --reload --port 8000

All computation is in-process and stateless: every request carries its own
transactions and reference rows (or uses the bundled demo data).
"""
from __future__ import annotations

import logging
from functools import lru_cache
from typing import Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from carbon_spend.config import Config, get_config
from carbon_spend.constants import ALLOWED_METHODS
from carbon_spend.schemas import (
    CardTransaction,
    EmissionFactor,
    FxRate,
    Scenario,
    ScenarioStep,
    Transaction,
)

from . import queries

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Carbon Spend – Footprint API",
    version="1.0.0",
    description="Baseline, scenario, and per-transaction Scope 3 estimates from spend data.",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ─── request bodies ───────────────────────────────────────────────────────

class SpendRequest(BaseModel):
    transactions: list[Transaction]
    emission_factors: list[EmissionFactor] = Field(default_factory=list)
    fx_rates: list[FxRate] = Field(default_factory=list)


class ScenarioRequest(SpendRequest):
    title: Optional[str] = None
    steps: list[ScenarioStep] = Field(default_factory=list)


class FootprintRequest(BaseModel):
    transactions: list[CardTransaction]
    method: Optional[str] = Field(None, description=f"One of {', '.join(ALLOWED_METHODS)}")
    use_fallback: Optional[bool] = None


@lru_cache(maxsize=1)
def _config() -> Config:
    return get_config()


def _load_config() -> Config:
    try:
        return _config()
    except EnvironmentError as exc:
        raise HTTPException(status_code=500, detail=f"Config error: {exc}") from exc


# ─── routes ───────────────────────────────────────────────────────────────

@app.get("/api/demo", summary="Dashboard payload from the bundled demo data")
def demo():
    """
    Returns counts, kpis, scope_share, top_categories, and the demo scenario
    (baseline vs "cut flights by 25% + move cloud to Oregon").
    """
    config = _load_config()
    try:
        return queries.get_demo_dashboard(config)
    except (FileNotFoundError, ValueError) as exc:
        logger.error("Demo data load failed: %s", exc)
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    except Exception as exc:
        logger.exception("Demo dashboard failed")
        raise HTTPException(status_code=500, detail=str(exc)) from exc


@app.get("/api/crosswalk", summary="MCC → NAICS crosswalk")
def crosswalk():
    try:
        return queries.crosswalk_rows()
    except Exception as exc:
        logger.exception("Crosswalk lookup failed")
        raise HTTPException(status_code=500, detail=str(exc)) from exc


@app.post("/api/baseline", summary="Spend and kg CO₂e by category")
def baseline(body: SpendRequest):
    config = _load_config()
    return queries.baseline_payload(
        body.transactions, body.emission_factors, body.fx_rates, config.top_categories
    )


@app.post("/api/scenario", summary="Re-aggregate after scenario steps and compare")
def scenario(body: ScenarioRequest):
    return queries.scenario_payload(
        body.transactions,
        body.emission_factors,
        body.fx_rates,
        Scenario(title=body.title, steps=body.steps),
    )


@app.post("/api/footprints", summary="Per-transaction Scope 3 footprints")
def footprints(body: FootprintRequest):
    config = _load_config()
    method = body.method or config.method
    if method not in ALLOWED_METHODS:
        raise HTTPException(
            status_code=422,
            detail=f"method must be one of {', '.join(ALLOWED_METHODS)}",
        )
    use_fallback = config.use_fallback if body.use_fallback is None else body.use_fallback
    return queries.footprints_payload(body.transactions, method, use_fallback)


@app.get("/health")
def health():
    return {"status": "ok"}
