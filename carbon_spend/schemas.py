"""
schemas.py – Pydantic models for every record shape the engine consumes.

Transactions are frozen: scenario steps build new instances with
``model_copy(update=...)`` instead of mutating the input set.
All date fields use ISO 8601 (YYYY-MM-DD).
"""
from __future__ import annotations

from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _code_to_str(value):
    """Codes may arrive as JSON numbers (5411, 445110); keep them as strings."""
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return str(value)
    if isinstance(value, str):
        return value.strip()
    return value


def _currency_to_upper(value):
    """ISO codes compare upper-case so "eur" and "EUR" hit the same FX row."""
    if isinstance(value, str):
        return value.strip().upper()
    return value


# ─────────────────────────────────────────────────────────────
# Spend transactions (category aggregation path)
# ─────────────────────────────────────────────────────────────

class Transaction(BaseModel):
    """A single spend record in its native currency."""

    model_config = ConfigDict(frozen=True)

    date: Optional[str] = Field(None, description="Transaction date YYYY-MM-DD")
    amount: float = Field(..., description="Signed amount in the native currency unit")
    currency: str = Field("USD", description="ISO 4217 currency code, e.g. USD")
    category: str = Field(..., description='Spend category label, e.g. "Cloud/IT"')
    merchant: str = Field("", description="Merchant name")
    city: str = Field("", description="Merchant city")
    region: str = Field("", description='Sub-national region code, e.g. "CA", "ON"')
    country: str = Field("", description='Country name, e.g. "USA", "Canada"')

    @field_validator("currency", mode="before")
    @classmethod
    def normalise_currency(cls, value):
        return _currency_to_upper(value)


# ─────────────────────────────────────────────────────────────
# Reference rows
# ─────────────────────────────────────────────────────────────

class EmissionFactor(BaseModel):
    """Spend-based intensity for a category in a region ("US-CA" or "ANY")."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    category: str
    region: str = Field(..., description='"ANY" or "US-<STATE>"')
    kg_co2e_per_usd: float = Field(..., alias="kgCO2e_per_USD")
    note: Optional[str] = None


class FxRate(BaseModel):
    """USD value of one unit of a currency."""

    model_config = ConfigDict(frozen=True)

    currency: str
    usd_per_unit: float

    @field_validator("currency", mode="before")
    @classmethod
    def normalise_currency(cls, value):
        return _currency_to_upper(value)


class NaicsFactor(BaseModel):
    """EEIO intensities for one NAICS industry (kg CO₂e per USD, 2021 basis)."""

    model_config = ConfigDict(frozen=True)

    naics_code: str
    naics_title: str = ""
    scope3_upstream_kg_per_usd_2021: Optional[float] = None
    scope3_full_value_chain_kg_per_usd_2021: Optional[float] = None

    @field_validator("naics_code", mode="before")
    @classmethod
    def normalise_code(cls, value):
        return _code_to_str(value)


# ─────────────────────────────────────────────────────────────
# Card transactions (payment-processor shape, per-transaction path)
# ─────────────────────────────────────────────────────────────

class MerchantData(BaseModel):
    """Merchant block attached to a card transaction."""

    model_config = ConfigDict(frozen=True)

    category_code: Optional[str] = Field(None, description='Merchant category code, e.g. "5411"')
    category: Optional[str] = Field(None, description="Processor category slug")
    name: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None

    @field_validator("category_code", mode="before")
    @classmethod
    def normalise_code(cls, value):
        return _code_to_str(value)


class CardTransaction(BaseModel):
    """A card transaction with the amount in minor units (sign = direction)."""

    model_config = ConfigDict(frozen=True)

    id: str
    amount: int = Field(..., description="Minor currency units, negative for charges")
    currency: str = "usd"
    merchant_data: Optional[MerchantData] = None

    @property
    def mcc(self) -> Optional[str]:
        """Merchant category code, or None when the merchant block omits it."""
        if self.merchant_data is None:
            return None
        return self.merchant_data.category_code or None


# ─────────────────────────────────────────────────────────────
# Scenario steps
# ─────────────────────────────────────────────────────────────

class ScaleCategorySpend(BaseModel):
    """Multiply the amount of every transaction in *category*."""

    model_config = ConfigDict(frozen=True)

    action: Literal["scale_category_spend"] = "scale_category_spend"
    category: str
    scale_factor: float


class RegionOverrideForCategory(BaseModel):
    """Relocate every transaction in *category* to *to_region*.

    ``from_region`` is carried for display only; it does not filter.
    """

    model_config = ConfigDict(frozen=True)

    action: Literal["region_override_for_category"] = "region_override_for_category"
    category: str
    from_region: str = ""
    to_region: str


ScenarioStep = Annotated[
    Union[ScaleCategorySpend, RegionOverrideForCategory],
    Field(discriminator="action"),
]


class Scenario(BaseModel):
    """An ordered list of steps with an optional display title."""

    model_config = ConfigDict(frozen=True)

    title: Optional[str] = None
    steps: tuple[ScenarioStep, ...] = Field(default_factory=tuple)
