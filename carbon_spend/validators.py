"""
validators.py – Raw-row normalisation applied before pydantic validation.

Each ``normalise_*`` function:
* Accepts a raw dict as read from CSV/JSON (strings, numbers, or None).
* Returns a (normalised_dict, warnings_list) tuple.

Normalisation steps
-------------------
* Strip whitespace from every string value; blank optional fields become None.
* Strip commas / currency symbols from numeric fields and cast to float.
* Upper-case currency codes so FX lookups are case-insensitive.
* Parse and reformat dates to ISO YYYY-MM-DD.

Normalisation never drops a required value it cannot parse: the raw value is
passed through so that schema validation rejects the row.
"""
from __future__ import annotations

import re
from typing import Any

from dateutil import parser as dateutil_parser


# ─────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────

def _to_float(value: Any) -> float | None:
    """
    Try to convert *value* to float.

    Strips commas, spaces, and common currency prefixes/suffixes before
    conversion.  Returns None on failure.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        cleaned = re.sub(r"[,$€£¥\s]", "", value)
        if not cleaned:
            return None
        try:
            return float(cleaned)
        except ValueError:
            return None
    return None


def _to_iso_date(value: Any) -> str | None:
    """
    Parse *value* as a date and return YYYY-MM-DD string.

    Accepts ISO strings and common formats like ``MM/DD/YYYY`` or
    ``DD-Mon-YYYY``.  Returns None on failure.
    """
    if value is None:
        return None
    value = str(value).strip()
    if not value:
        return None
    if re.fullmatch(r"\d{4}-\d{2}-\d{2}", value):
        return value
    try:
        dt = dateutil_parser.parse(value, dayfirst=False)
        return dt.strftime("%Y-%m-%d")
    except (ValueError, OverflowError):
        return None


def _strip_strings(raw: dict[str, Any]) -> dict[str, Any]:
    return {
        k.strip() if isinstance(k, str) else k: v.strip() if isinstance(v, str) else v
        for k, v in raw.items()
        if k is not None
    }


def _blank_to_none(row: dict[str, Any], keys: tuple[str, ...]) -> None:
    for key in keys:
        if row.get(key) == "":
            row[key] = None


def normalise_currency(code: Any) -> str:
    """Return an upper-case ISO currency code ('' when missing)."""
    if code is None:
        return ""
    return str(code).strip().upper()


def _normalise_number(
    row: dict[str, Any], key: str, warnings: list[str], *, required: bool
) -> None:
    raw = row.get(key)
    if raw is None or raw == "":
        if required:
            warnings.append(f"{key} is missing")
        row[key] = None
        return
    value = _to_float(raw)
    if value is None:
        warnings.append(f"{key} {raw!r} is not numeric")
        return
    row[key] = value


# ─────────────────────────────────────────────────────────────
# Per-record normalisers
# ─────────────────────────────────────────────────────────────

def normalise_transaction_row(raw: dict[str, Any]) -> tuple[dict[str, Any], list[str]]:
    """Normalise a spend transaction row (date, amount, currency, location)."""
    row = _strip_strings(raw)
    warnings: list[str] = []

    if row.get("date") not in (None, ""):
        iso = _to_iso_date(row["date"])
        if iso is None:
            warnings.append(f"date {row['date']!r} could not be parsed; dropped")
        row["date"] = iso
    else:
        row["date"] = None

    _normalise_number(row, "amount", warnings, required=True)

    if "currency" in row:
        row["currency"] = normalise_currency(row["currency"])
        if not row["currency"]:
            warnings.append("currency is missing; amount treated as USD")

    for key in ("merchant", "city", "region", "country"):
        if row.get(key) is None:
            row.pop(key, None)

    return row, warnings


def normalise_emission_factor_row(raw: dict[str, Any]) -> tuple[dict[str, Any], list[str]]:
    """Normalise an emission-factor row (intensity numeric, blank note → None)."""
    row = _strip_strings(raw)
    warnings: list[str] = []
    _normalise_number(row, "kgCO2e_per_USD", warnings, required=True)
    _blank_to_none(row, ("note",))
    return row, warnings


def normalise_fx_row(raw: dict[str, Any]) -> tuple[dict[str, Any], list[str]]:
    """Normalise an FX row (upper-case currency, numeric rate)."""
    row = _strip_strings(raw)
    warnings: list[str] = []
    row["currency"] = normalise_currency(row.get("currency"))
    _normalise_number(row, "usd_per_unit", warnings, required=True)
    return row, warnings


def normalise_naics_row(raw: dict[str, Any]) -> tuple[dict[str, Any], list[str]]:
    """Normalise a NAICS factor row; blank intensities become None (unknown)."""
    row = _strip_strings(raw)
    warnings: list[str] = []
    for key in (
        "scope3_upstream_kg_per_usd_2021",
        "scope3_full_value_chain_kg_per_usd_2021",
    ):
        _normalise_number(row, key, warnings, required=False)
    return row, warnings
