"""
constants.py – Shared labels, fallback defaults, and data file names.
"""
from pathlib import Path

# ── Accounting methods (per-transaction footprint) ────────────
METHOD_SCOPE3_UPSTREAM = "scope3_upstream"
METHOD_SCOPE3_FULL_VALUE_CHAIN = "scope3_full_value_chain"

ALLOWED_METHODS = [
    METHOD_SCOPE3_UPSTREAM,
    METHOD_SCOPE3_FULL_VALUE_CHAIN,
]
DEFAULT_METHOD = METHOD_SCOPE3_FULL_VALUE_CHAIN

# ── Region canonicalisation ───────────────────────────────────
REGION_ANY = "ANY"
US_COUNTRY = "USA"
US_REGION_PREFIX = "US-"

# ── Silent fallbacks ──────────────────────────────────────────
# Currency without an FX row is treated as already USD.
DEFAULT_USD_PER_UNIT = 1.0
# Category/region without a factor row contributes spend but no emissions.
DEFAULT_KG_PER_USD = 0.0

# Where a baseline factor came from
FACTOR_SOURCE_EXACT = "exact"
FACTOR_SOURCE_REGION_ANY = "region_any"
FACTOR_SOURCE_DEFAULT = "default"

# Where a footprint's NAICS code came from
NAICS_SOURCE_CROSSWALK = "crosswalk"
NAICS_SOURCE_FALLBACK = "fallback"
NAICS_SOURCE_UNRESOLVED = "unresolved"

# ── Minor currency units ──────────────────────────────────────
# ISO 4217 exponents that differ from the usual 2 decimal places.
DEFAULT_MINOR_UNIT_EXPONENT = 2
MINOR_UNIT_EXPONENTS: dict[str, int] = {
    "BIF": 0,
    "CLP": 0,
    "DJF": 0,
    "GNF": 0,
    "ISK": 0,
    "JPY": 0,
    "KMF": 0,
    "KRW": 0,
    "PYG": 0,
    "RWF": 0,
    "UGX": 0,
    "VND": 0,
    "VUV": 0,
    "XAF": 0,
    "XOF": 0,
    "XPF": 0,
    "BHD": 3,
    "IQD": 3,
    "JOD": 3,
    "KWD": 3,
    "LYD": 3,
    "OMR": 3,
    "TND": 3,
}

# ── Reports ───────────────────────────────────────────────────
DEFAULT_TOP_CATEGORIES = 8

# ── Demo data file names ──────────────────────────────────────
BUNDLED_DATA_DIR = Path(__file__).resolve().parent / "data"

DEMO_TRANSACTIONS_FILE = "transactions_demo.csv"
DEMO_EMISSION_FACTORS_FILE = "emission_factors_demo.csv"
DEMO_FX_FILE = "fx_table_demo.csv"
NAICS_FACTORS_FILE = "naics_factors_min.json"
DEMO_CARD_TRANSACTIONS_FILE = "card_transactions_demo.json"

CSV_SUFFIX = ".csv"
JSON_SUFFIX = ".json"
ALLOWED_SUFFIXES = {CSV_SUFFIX, JSON_SUFFIX}
