"""
emission_factors.py – Reference tables used in spend-based GHG estimation.

Two families of tables live here:

* The MCC → NAICS 2017 crosswalk (a process-wide constant) and the NAICS
  EEIO factor table bundled in ``data/naics_factors_min.json``. The NAICS
  table is read from disk once per process and cached.
* Index builders that turn emission-factor, FX, and NAICS rows into
  read-only lookup maps. Duplicate keys are resolved by keeping the FIRST
  row seen, so lookups are deterministic whatever the source ordering quirks.

All intensities are kg CO₂e per USD.
Sources: US EPA USEEIO Supply Chain GHG Emission Factors (2021 USD basis).
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache
from types import MappingProxyType
from typing import Iterable, Mapping, Optional

from carbon_spend.constants import BUNDLED_DATA_DIR, NAICS_FACTORS_FILE
from carbon_spend.io_utils import load_naics_factors
from carbon_spend.schemas import EmissionFactor, FxRate, NaicsFactor

logger = logging.getLogger(__name__)


# ─────────────────────────────────────────────────────────────
# MCC → NAICS 2017 crosswalk
# Key: 4-digit merchant category code → (NAICS code, reason)
# Codes not listed resolve to FALLBACK_NAICS when fallback is on.
# ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class MccToNaicsEntry:
    naics: str
    reason: str = ""


MCC_TO_NAICS_2017: Mapping[str, MccToNaicsEntry] = MappingProxyType({
    # Retail / food
    "5411": MccToNaicsEntry("445110", "Supermarkets & grocery"),
    "5812": MccToNaicsEntry("722511", "Full-service restaurants"),
    "5814": MccToNaicsEntry("722513", "Limited-service/fast food"),
    "5912": MccToNaicsEntry("446110", "Pharmacies & drug stores"),
    "5331": MccToNaicsEntry("452319", "Variety/general merchandise"),
    "5999": MccToNaicsEntry("452319", "Misc specialty retail (proxy)"),
    # Travel / lodging / mobility
    "4511": MccToNaicsEntry("481111", "Passenger air transportation"),
    "3351": MccToNaicsEntry("532111", "Car rental"),
    "7011": MccToNaicsEntry("721110", "Hotels & motels"),
    "4789": MccToNaicsEntry("485310", "Transportation services (taxi proxy)"),
    # Tech & digital
    "5734": MccToNaicsEntry("443142", "Software retail (rolled into electronics stores)"),
    "5732": MccToNaicsEntry("443142", "Electronics stores"),
    "4814": MccToNaicsEntry("517311", "Telecom carriers"),
    "5815": MccToNaicsEntry("454110", "Digital goods media (e-commerce proxy)"),
    "5964": MccToNaicsEntry("454110", "Direct marketing/catalog (e-commerce)"),
    # Lifestyle
    "5941": MccToNaicsEntry("451110", "Sporting goods stores"),
    "7298": MccToNaicsEntry("812199", "Spas & personal care"),
    "5992": MccToNaicsEntry("453110", "Florists"),
    "5942": MccToNaicsEntry("451211", "Book stores"),
    "7832": MccToNaicsEntry("512131", "Movie theaters"),
})

# Electronic Shopping & Mail-Order Houses
FALLBACK_NAICS: str = "454110"


def lookup_mcc(mcc: Optional[str]) -> Optional[MccToNaicsEntry]:
    """Return the crosswalk entry for *mcc*, or None when it is absent/unmapped."""
    if not mcc:
        return None
    return MCC_TO_NAICS_2017.get(mcc.strip())


# ─────────────────────────────────────────────────────────────
# Index builders (first row wins on duplicate keys)
# ─────────────────────────────────────────────────────────────

def index_emission_factors(
    rows: Iterable[EmissionFactor],
) -> Mapping[tuple[str, str], float]:
    """Key emission-factor rows by (category, region)."""
    index: dict[tuple[str, str], float] = {}
    for row in rows:
        key = (row.category, row.region)
        if key in index:
            logger.debug("Duplicate emission factor %s ignored (first row wins)", key)
            continue
        index[key] = row.kg_co2e_per_usd
    return MappingProxyType(index)


def index_fx_rates(rows: Iterable[FxRate]) -> Mapping[str, float]:
    """Key FX rows by currency code."""
    index: dict[str, float] = {}
    for row in rows:
        if row.currency in index:
            logger.debug("Duplicate FX rate for %s ignored (first row wins)", row.currency)
            continue
        index[row.currency] = row.usd_per_unit
    return MappingProxyType(index)


def index_naics_factors(rows: Iterable[NaicsFactor]) -> Mapping[str, NaicsFactor]:
    """Key NAICS factor rows by NAICS code."""
    index: dict[str, NaicsFactor] = {}
    for row in rows:
        if row.naics_code in index:
            logger.debug("Duplicate NAICS factor %s ignored (first row wins)", row.naics_code)
            continue
        index[row.naics_code] = row
    return MappingProxyType(index)


# ─────────────────────────────────────────────────────────────
# Bundled NAICS factor table
# ─────────────────────────────────────────────────────────────

@lru_cache(maxsize=1)
def bundled_naics_factors() -> Mapping[str, NaicsFactor]:
    """Load ``data/naics_factors_min.json`` once and return the read-only index."""
    rows = load_naics_factors(BUNDLED_DATA_DIR / NAICS_FACTORS_FILE)
    index = index_naics_factors(rows)
    logger.info("Loaded %d bundled NAICS factor rows", len(index))
    return index


def get_naics_factor(
    naics: str,
    naics_index: Optional[Mapping[str, NaicsFactor]] = None,
) -> Optional[NaicsFactor]:
    """Return the factor row for *naics* from *naics_index* (bundled table by default)."""
    table = bundled_naics_factors() if naics_index is None else naics_index
    return table.get(naics)
