"""Pydantic models for raw NSE option-chain payloads and compiled analytics."""

from __future__ import annotations

from types import MappingProxyType
from typing import Any, Dict, List, Mapping

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

Number = int | float


class OptionLeg(BaseModel):
    """One side (CE or PE) of a raw strike entry."""

    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    last_price: Number = Field(default=0, alias="lastPrice")
    open_interest: Number = Field(default=0, alias="openInterest")
    change: Number = Field(default=0, alias="change")
    implied_volatility: Number = Field(default=0, alias="impliedVolatility")

    @field_validator("last_price", "open_interest", "change", "implied_volatility", mode="before")
    @staticmethod
    def _null_is_zero(value: Any) -> Any:
        return 0 if value is None or value == "-" else value


ZERO_LEG = OptionLeg()


class StrikeEntry(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    strike_price: Number = Field(alias="strikePrice")
    expiry_date: str = Field(alias="expiryDate")
    ce: OptionLeg | None = Field(default=None, alias="CE")
    pe: OptionLeg | None = Field(default=None, alias="PE")

    @property
    def call(self) -> OptionLeg:
        """Call side, or an all-zero leg when NSE omitted it."""
        return self.ce if self.ce is not None else ZERO_LEG

    @property
    def put(self) -> OptionLeg:
        """Put side, or an all-zero leg when NSE omitted it."""
        return self.pe if self.pe is not None else ZERO_LEG


class OptionChainRecords(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    timestamp: str | None = None
    underlying_value: Number = Field(alias="underlyingValue")
    data: List[StrikeEntry] = Field(default_factory=list)
    expiry_dates: List[str] = Field(default_factory=list, alias="expiryDates")


class OptionChainDocument(BaseModel):
    """The ``option-chain-*`` response body as NSE sends it."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    records: OptionChainRecords

    def entries_for(self, expiry: str) -> List[StrikeEntry]:
        return [entry for entry in self.records.data if entry.expiry_date == expiry]


class SideAnalytics(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    last: Number = 0
    oi: Number = 0
    chg: Number = 0
    iv: Number = 0

    @classmethod
    def from_leg(cls, leg: OptionLeg) -> "SideAnalytics":
        return cls(
            last=leg.last_price,
            oi=leg.open_interest,
            chg=leg.change,
            iv=leg.implied_volatility,
        )


class StrikeAnalytics(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    ce: SideAnalytics
    pe: SideAnalytics
    pcr: float | None = None


class CompiledChain(BaseModel):
    """Per-strike analytics for a single expiry, JSON-serializable by alias."""

    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)

    expiry: str
    timestamp: str | None = None
    underlying: Number
    atm: Number
    maxpain: Number
    max_coi: Number = Field(alias="maxCoi")
    max_poi: Number = Field(alias="maxPoi")
    coi_total: Number = Field(alias="coiTotal")
    poi_total: Number = Field(alias="poiTotal")
    pcr: float | None = None
    chain: Mapping[Number, StrikeAnalytics] = Field(default_factory=dict, validate_default=True)

    @field_validator("chain", mode="after")
    @staticmethod
    def _freeze_chain(value: Mapping[Number, StrikeAnalytics]) -> Mapping[Number, StrikeAnalytics]:
        return MappingProxyType(dict(value))

    @field_serializer("chain")
    def _serialize_chain(self, chain: Mapping[Number, StrikeAnalytics]) -> Dict[Number, StrikeAnalytics]:
        return dict(chain)

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


__all__ = [
    "CompiledChain",
    "OptionChainDocument",
    "OptionChainRecords",
    "OptionLeg",
    "SideAnalytics",
    "StrikeAnalytics",
    "StrikeEntry",
    "ZERO_LEG",
]
