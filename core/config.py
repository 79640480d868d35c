"""
Configuration schemas for the lending market model.

This module defines the Pydantic schemas for per-market risk parameters, the
interest rate model and the protocol wiring. Fixed point fields are stored as
1e18 integers but may be written as decimal strings (``"0.7"``) in JSON files.
"""

import json
from decimal import Decimal
from typing import Dict

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from constants import (
    BLOCKS_PER_YEAR,
    DEFAULT_LIQUIDATION_FEE,
    DEFAULT_LIQUIDATOR_PORTION,
    DEFAULT_MAX_LTV,
    MAX_RESERVE_FACTOR,
    SCALE,
    ZERO_ADDRESS,
)
from errors import InvalidConfig
from fixed_point import parse_units


def _to_fixed_point(value):
    """Accepts 1e18 integers as-is and parses decimal strings/floats."""
    if isinstance(value, bool):
        raise ValueError("Expected a number")
    if isinstance(value, int):
        return value
    if isinstance(value, (str, float, Decimal)):
        return parse_units(str(value))
    return value


class _Config(BaseModel):
    """Base schema: immutable, no unknown keys."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    @classmethod
    def parse(cls, data):
        """Validates ``data`` and raises InvalidConfig on any problem."""
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise InvalidConfig(str(e)) from e


class InterestRateModelConfig(_Config):
    """Interest rate model configuration (annual rates, 1e18 fixed point)"""
    base_rate_per_year: int = Field(ge=0, description="Rate charged at zero utilization")
    multiplier_per_year: int = Field(ge=0, description="Rate added at the kink")
    jump_multiplier_per_year: int = Field(ge=0, description="Rate added per unit of utilization above the kink")
    kink: int = Field(gt=0, le=SCALE, description="Utilization threshold for the jump rate")
    blocks_per_year: int = Field(gt=0, default=BLOCKS_PER_YEAR, description="Blocks per year")

    @field_validator("base_rate_per_year", "multiplier_per_year", "jump_multiplier_per_year", "kink",
                     mode="before")
    @classmethod
    def parse_fixed_point(cls, v):
        return _to_fixed_point(v)


class MarketConfig(_Config):
    """Immutable risk parameters of a single market"""
    max_ltv: int = Field(ge=0, le=SCALE, default=DEFAULT_MAX_LTV, description="Share of collateral value that can be borrowed")
    reserve_factor: int = Field(ge=0, le=MAX_RESERVE_FACTOR, description="Share of interest kept as reserves")
    liquidation_fee: int = Field(ge=0, le=SCALE, default=DEFAULT_LIQUIDATION_FEE, description="Premium charged on liquidated debt")
    liquidator_portion: int = Field(ge=0, le=SCALE, default=DEFAULT_LIQUIDATOR_PORTION, description="Share of seized collateral paid to the liquidator")
    interest_rate_model: InterestRateModelConfig = Field(description="Interest rate model")

    @field_validator("max_ltv", "reserve_factor", "liquidation_fee", "liquidator_portion", mode="before")
    @classmethod
    def parse_fixed_point(cls, v):
        return _to_fixed_point(v)


class AssetConfig(_Config):
    """Token metadata and starting price used by simulations"""
    decimals: int = Field(ge=0, le=36, default=18, description="Native token decimals")
    initial_price: int = Field(gt=0, description="USD value of one whole token, 1e18 fixed point")

    @field_validator("initial_price", mode="before")
    @classmethod
    def parse_fixed_point(cls, v):
        return _to_fixed_point(v)


class ProtocolConfig(_Config):
    """Protocol wiring: privileged addresses and listed markets"""
    owner: str = Field(min_length=1, description="Owner of the market and its admin surface")
    router: str = Field(min_length=1, description="Address allowed to batch on behalf of others")
    treasury: str = Field(min_length=1, description="Receiver of withdrawn reserves")
    markets: Dict[str, MarketConfig] = Field(default_factory=dict, description="Markets keyed by token symbol")
    assets: Dict[str, AssetConfig] = Field(default_factory=dict, description="Token metadata keyed by symbol")

    @field_validator("owner", "router", "treasury")
    @classmethod
    def validate_address(cls, v):
        if v == ZERO_ADDRESS:
            raise ValueError("Address cannot be the zero address")
        return v

    @model_validator(mode="after")
    def validate_assets(self):
        if self.assets:
            missing = [token for token in self.markets if token not in self.assets]
            if missing:
                raise ValueError(f"Missing asset metadata for markets: {', '.join(missing)}")
        return self

    @classmethod
    def from_json_file(cls, path):
        """Loads and validates a configuration file."""
        try:
            with open(path) as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise InvalidConfig(f"Cannot read configuration {path}: {e}") from e

        return cls.parse(data)
