"""
io_utils.py – Loaders for transaction / reference data files and JSON writers.

Every loader reads the whole file, normalises each raw row
(see ``validators.py``), validates it against its pydantic schema, and
returns the full list. A file that fails to parse raises ``ValueError``
naming the file and the offending row; partial results are never returned.

Supported formats
-----------------
* ``.csv``  – header row required; header names are trimmed and blank
  lines skipped.
* ``.json`` – an array of objects (NAICS factors also accept a single
  object; card transactions also accept a ``{"data": [...]}`` envelope).
"""
from __future__ import annotations

import csv
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Optional, TypeVar

from pydantic import BaseModel, ValidationError

from carbon_spend.constants import (
    ALLOWED_SUFFIXES,
    CSV_SUFFIX,
    DEMO_EMISSION_FACTORS_FILE,
    DEMO_FX_FILE,
    DEMO_TRANSACTIONS_FILE,
)
from carbon_spend.schemas import (
    CardTransaction,
    EmissionFactor,
    FxRate,
    NaicsFactor,
    Scenario,
    Transaction,
)
from carbon_spend.validators import (
    normalise_emission_factor_row,
    normalise_fx_row,
    normalise_naics_row,
    normalise_transaction_row,
)

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)
Normaliser = Callable[[dict[str, Any]], tuple[dict[str, Any], list[str]]]


# ─────────────────────────────────────────────────────────────
# Readers
# ─────────────────────────────────────────────────────────────

def _check_suffix(path: Path) -> str:
    suffix = path.suffix.lower()
    if suffix not in ALLOWED_SUFFIXES:
        raise ValueError(
            f"{path.name}: unsupported file type {suffix!r} "
            f"(expected one of {', '.join(sorted(ALLOWED_SUFFIXES))})"
        )
    return suffix


def _read_json(path: Path) -> Any:
    """Parse a JSON file, re-raising decode errors as ValueError."""
    with path.open("r", encoding="utf-8") as fh:
        try:
            return json.load(fh)
        except json.JSONDecodeError as exc:
            raise ValueError(f"{path.name}: invalid JSON ({exc})") from exc


def _read_csv_rows(path: Path) -> list[dict[str, Any]]:
    """Read a CSV with a header row; trims header names and skips blank rows."""
    with path.open("r", encoding="utf-8-sig", newline="") as fh:
        reader = csv.DictReader(fh)
        if reader.fieldnames is None:
            return []
        reader.fieldnames = [name.strip() for name in reader.fieldnames]
        rows = []
        for row in reader:
            if all(v is None or not str(v).strip() for v in row.values()):
                continue
            rows.append(row)
        return rows


def _read_records(path: Path) -> list[dict[str, Any]]:
    """Read a CSV or JSON-array file as a list of raw dicts."""
    path = Path(path)
    suffix = _check_suffix(path)
    if suffix == CSV_SUFFIX:
        return _read_csv_rows(path)
    data = _read_json(path)
    if not isinstance(data, list):
        raise ValueError(f"{path.name}: expected a JSON array of records")
    return data


def _parse_records(
    path: Path,
    records: list[Any],
    model: type[ModelT],
    normalise: Optional[Normaliser] = None,
) -> list[ModelT]:
    """Validate every record; any failure aborts the whole file."""
    parsed: list[ModelT] = []
    for idx, raw in enumerate(records):
        if not isinstance(raw, dict):
            raise ValueError(f"{Path(path).name}: row {idx}: expected an object, got {type(raw).__name__}")
        row = raw
        if normalise is not None:
            row, warnings = normalise(raw)
            for warning in warnings:
                logger.warning("%s row %d: %s", Path(path).name, idx, warning)
        try:
            parsed.append(model.model_validate(row))
        except ValidationError as exc:
            raise ValueError(f"{Path(path).name}: row {idx}: {exc}") from exc
    return parsed


# ─────────────────────────────────────────────────────────────
# Public loaders
# ─────────────────────────────────────────────────────────────

def load_transactions(path: Path) -> list[Transaction]:
    """Load spend transactions (CSV or JSON array)."""
    path = Path(path)
    rows = _parse_records(path, _read_records(path), Transaction, normalise_transaction_row)
    logger.info("Loaded %d transactions from %s", len(rows), path.name)
    return rows


def load_emission_factors(path: Path) -> list[EmissionFactor]:
    """Load category/region emission-factor rows."""
    path = Path(path)
    rows = _parse_records(path, _read_records(path), EmissionFactor, normalise_emission_factor_row)
    logger.info("Loaded %d emission factors from %s", len(rows), path.name)
    return rows


def load_fx_rates(path: Path) -> list[FxRate]:
    """Load currency → USD conversion rows."""
    path = Path(path)
    rows = _parse_records(path, _read_records(path), FxRate, normalise_fx_row)
    logger.info("Loaded %d FX rates from %s", len(rows), path.name)
    return rows


def load_naics_factors(path: Path) -> list[NaicsFactor]:
    """Load NAICS factor rows; a JSON file may hold one object or an array."""
    path = Path(path)
    if _check_suffix(path) == CSV_SUFFIX:
        records = _read_csv_rows(path)
    else:
        data = _read_json(path)
        records = data if isinstance(data, list) else [data]
    return _parse_records(path, records, NaicsFactor, normalise_naics_row)


def load_card_transactions(path: Path) -> list[CardTransaction]:
    """Load card transactions from a JSON array or a ``{"data": [...]}`` list envelope."""
    path = Path(path)
    if _check_suffix(path) == CSV_SUFFIX:
        raise ValueError(f"{path.name}: card transactions must be JSON")
    data = _read_json(path)
    if isinstance(data, dict) and isinstance(data.get("data"), list):
        data = data["data"]
    if not isinstance(data, list):
        raise ValueError(f"{path.name}: expected a JSON array of card transactions")
    rows = _parse_records(path, data, CardTransaction)
    logger.info("Loaded %d card transactions from %s", len(rows), path.name)
    return rows


def load_scenario(path: Path) -> Scenario:
    """Load a scenario: ``{"title": ..., "steps": [...]}`` or a bare list of steps."""
    path = Path(path)
    data = _read_json(path)
    if isinstance(data, list):
        data = {"steps": data}
    try:
        return Scenario.model_validate(data)
    except ValidationError as exc:
        raise ValueError(f"{path.name}: invalid scenario: {exc}") from exc


# ─────────────────────────────────────────────────────────────
# Demo dataset
# ─────────────────────────────────────────────────────────────

@dataclass
class DemoData:
    """The three datasets the category aggregation path needs."""
    tx: list[Transaction]
    ef: list[EmissionFactor]
    fx: list[FxRate]


def load_demo(data_dir: Path) -> DemoData:
    """Load the demo transactions, emission factors, and FX table from *data_dir*."""
    data_dir = Path(data_dir)
    logger.info("Loading demo data from %s", data_dir)
    demo = DemoData(
        tx=load_transactions(data_dir / DEMO_TRANSACTIONS_FILE),
        ef=load_emission_factors(data_dir / DEMO_EMISSION_FACTORS_FILE),
        fx=load_fx_rates(data_dir / DEMO_FX_FILE),
    )
    logger.info("Counts -> tx: %d ef: %d fx: %d", len(demo.tx), len(demo.ef), len(demo.fx))
    return demo


# ─────────────────────────────────────────────────────────────
# Writers
# ─────────────────────────────────────────────────────────────

def write_json(path: Path, data: Any, indent: int = 2) -> Path:
    """Serialise *data* to JSON at *path*, creating parents as needed."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as fh:
        json.dump(data, fh, indent=indent, ensure_ascii=False, default=str)
    return path
