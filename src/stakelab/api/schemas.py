"""Pydantic schemas for the StakeLab API."""

from __future__ import annotations

import re
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from stakelab.betting.odds import parse_odds
from stakelab.betting.types import FallbackPolicy

MIN_BANKROLL = 1.0
MAX_BANKROLL = 1_000_000.0
MAX_QUESTION_LENGTH = 1000
MAX_IMAGE_COUNT = 5
MAX_IMAGE_SIZE_MB = 10
MIN_ODDS = 1.01
MAX_ODDS = 1000.0
MAX_PARLAY_LEGS = 20

_DATA_URL_RE = re.compile(r"^data:image/[\w.+-]+;base64,(.+)$", re.DOTALL)

Outcome = Literal["pending", "won", "lost", "voided"]


def _coerce_odds(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise ValueError("Odds must be a number or an odds string such as +150, 5/2 or 2.5")
    decimal = parse_odds(value) if isinstance(value, str) else float(value)
    if not MIN_ODDS <= decimal <= MAX_ODDS:
        raise ValueError(f"Odds must be between {MIN_ODDS} and {MAX_ODDS:g} in decimal form")
    return decimal


class OddsInput(BaseModel):
    """An option as typed by the user; odds may be American, fractional, percent or decimal."""

    name: str = Field(min_length=1, max_length=500)
    odds: float
    estimated_probability: float | None = Field(default=None, ge=0.0, le=100.0)

    @field_validator("odds", mode="before")
    @classmethod
    def _parse_odds(cls, value: Any) -> float:
        return _coerce_odds(value)


class PredictRequest(BaseModel):
    question: str = Field(min_length=1, max_length=MAX_QUESTION_LENGTH)
    bankroll: float = Field(ge=MIN_BANKROLL, le=MAX_BANKROLL)
    is_parlay: bool = False
    input_mode: Literal["images", "manual"] = "manual"
    images: list[str] = Field(default_factory=list, max_length=MAX_IMAGE_COUNT)
    manual_input: str | None = Field(default=None, max_length=MAX_QUESTION_LENGTH)
    options: list[OddsInput] | None = Field(default=None, max_length=MAX_PARLAY_LEGS)
    kelly_fraction: float | None = Field(default=None, gt=0.0, le=1.0)
    fallback_policy: FallbackPolicy | None = None

    @field_validator("images")
    @classmethod
    def _check_images(cls, images: list[str]) -> list[str]:
        for image in images:
            match = _DATA_URL_RE.match(image)
            if not match:
                raise ValueError("Images must be base64 data URLs (data:image/...;base64,...)")
            if len(match.group(1)) * 0.75 / (1024 * 1024) > MAX_IMAGE_SIZE_MB:
                raise ValueError(f"Each image must be under {MAX_IMAGE_SIZE_MB}MB")
        return images

    @model_validator(mode="after")
    def _check_mode(self) -> PredictRequest:
        if self.input_mode == "images" and not self.images:
            raise ValueError('Images are required when input mode is "images"')
        if self.input_mode == "manual" and not (self.manual_input or self.options):
            raise ValueError('Manual input or options are required when input mode is "manual"')
        return self


class Verdict(BaseModel):
    winner: str
    confidence: float | None = None
    reasoning: str = ""


class OptionResult(BaseModel):
    name: str
    decimal_odds: float
    implied_probability: float
    ai_probability: float
    edge: float
    recommended_stake: float
    recommended_amount: float
    rationale: str = ""


class LegResult(BaseModel):
    name: str
    decimal_odds: float
    implied_probability: float
    ai_probability: float | None = None


class ParlayResult(BaseModel):
    legs: list[LegResult]
    combined_odds: float
    combined_probability: float
    potential_payout: float
    recommended_stake: float
    recommended_amount: float
    estimated_probability: float | None = None
    edge: float | None = None


class Analysis(BaseModel):
    base_rate: str = ""
    key_factors: list[str] = Field(default_factory=list)
    risks: str = ""
    confidence: str | None = None


class MarketAnalysis(BaseModel):
    total_edge: float
    best_value: str | None
    market_efficiency: str = ""


class PredictResponse(BaseModel):
    prediction_id: int
    bankroll: float
    is_parlay: bool
    prediction: Verdict
    options: list[OptionResult]
    analysis: Analysis
    market_analysis: MarketAnalysis
    non_positive_edge: bool = False
    fallback_policy: FallbackPolicy | None = None
    parlay: ParlayResult | None = None
    prompt_version: int | None = None


class StakeInput(BaseModel):
    name: str = Field(min_length=1)
    edge: float = 0.0
    stake: float = Field(ge=0.0, le=100.0)


class RebalanceRequest(BaseModel):
    bankroll: float = Field(ge=MIN_BANKROLL, le=MAX_BANKROLL)
    options: list[StakeInput] = Field(min_length=1)
    target: str
    new_stake: float
    non_positive_edge: bool = False


class StakeResult(BaseModel):
    name: str
    edge: float
    stake: float
    amount: float


class RebalanceResponse(BaseModel):
    bankroll: float
    options: list[StakeResult]
    total_stake: float
    uncommitted_stake: float
    non_positive_edge: bool = False


class ParlayRequest(BaseModel):
    legs: list[OddsInput] = Field(max_length=MAX_PARLAY_LEGS)
    bankroll: float = Field(default=100.0, ge=MIN_BANKROLL, le=MAX_BANKROLL)
    kelly_fraction: float | None = Field(default=None, gt=0.0, le=1.0)


class CustomBetRequest(BaseModel):
    bet_name: str = Field(min_length=1, max_length=500)
    odds: float | None = None
    stake: float = Field(ge=MIN_BANKROLL, le=MAX_BANKROLL)
    bankroll: float | None = Field(default=None, ge=MIN_BANKROLL, le=MAX_BANKROLL)
    notes: str | None = Field(default=None, max_length=1000)
    is_parlay: bool = False
    legs: list[OddsInput] | None = Field(default=None, max_length=MAX_PARLAY_LEGS)

    @field_validator("odds", mode="before")
    @classmethod
    def _parse_odds(cls, value: Any) -> float | None:
        return None if value is None else _coerce_odds(value)

    @model_validator(mode="after")
    def _check_shape(self) -> CustomBetRequest:
        if self.is_parlay and not self.legs:
            raise ValueError("Parlay bets need their legs")
        if not self.is_parlay and self.odds is None:
            raise ValueError("Odds are required for a single bet")
        return self


class SavedResponse(BaseModel):
    success: bool = True
    prediction_id: int


class OptionRecord(BaseModel):
    id: int
    name: str
    decimal_odds: float
    implied_probability: float
    ai_probability: float | None
    edge: float | None
    recommended_stake: float
    outcome: Outcome


class PredictionRecord(BaseModel):
    id: int
    question: str
    bankroll: float
    is_parlay: bool
    input_mode: str
    predicted_winner: str | None
    confidence: float | None
    non_positive_edge: bool
    parlay_combined_odds: float | None = None
    parlay_recommended_stake: float | None = None
    outcome: Outcome
    created_at: datetime
    options: list[OptionRecord]


class OutcomeUpdate(BaseModel):
    outcome: Outcome
    option_id: int | None = None


class StatsResponse(BaseModel):
    window_days: int
    total_predictions: int
    wins: int
    losses: int
    voided: int
    pending: int
    win_rate: float
    avg_edge: float
    last_updated: datetime | None


class LearnResponse(BaseModel):
    iteration_id: int
    predictions_analyzed: int
    wins: int
    win_rate: float
    analysis: dict[str, Any]
    recommendations: list[dict[str, Any]]
    updated_sections: dict[str, str | None]
    summary: str


class ApplyPromptRequest(BaseModel):
    learning_iteration_id: int
    prompt_sections: dict[str, str | None] | None = None


class PromptVersionResponse(BaseModel):
    id: int
    version_number: int
    created_at: datetime
