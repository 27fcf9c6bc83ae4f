"""Pydantic schemas for oracle and learning-agent replies."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class _OracleModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class OracleVerdict(_OracleModel):
    winner: str = ""
    confidence: float | None = Field(default=None, ge=0.0, le=100.0)
    reasoning: str = ""


class OracleOption(_OracleModel):
    name: str = Field(min_length=1)
    decimal_odds: float | None = Field(default=None, alias="decimalOdds", gt=1.0)
    ai_probability: float = Field(alias="aiProbability", ge=0.0, le=100.0)
    rationale: str = ""


class OracleAnalysis(_OracleModel):
    base_rate: str = Field(default="", alias="baseRate")
    key_factors: list[str] = Field(default_factory=list, alias="keyFactors")
    risks: str = ""
    confidence: Literal["High", "Medium", "Low"] | None = None


class OracleResponse(_OracleModel):
    prediction: OracleVerdict = Field(default_factory=OracleVerdict)
    options: list[OracleOption] = Field(min_length=1)
    analysis: OracleAnalysis = Field(default_factory=OracleAnalysis)
    market_efficiency: str = Field(default="", alias="marketEfficiency")

    def probability_of(self, name: str) -> float | None:
        wanted = name.strip().casefold()
        for option in self.options:
            if option.name.strip().casefold() == wanted:
                return option.ai_probability
        return None


class PromptSectionUpdates(_OracleModel):
    cognitive_posture: str | None = Field(default=None, alias="COGNITIVE_POSTURE")
    domain_adjustments: str | None = Field(default=None, alias="DOMAIN_ADJUSTMENTS")
    stake_distribution: str | None = Field(default=None, alias="STAKE_DISTRIBUTION")
    debiasing_checklist: str | None = Field(default=None, alias="DEBIASING_CHECKLIST")

    def as_overrides(self) -> dict[str, str | None]:
        return self.model_dump(by_alias=True)


class LearningRecommendation(_OracleModel):
    section: str
    change: str
    rationale: str = ""


class LearningReply(_OracleModel):
    analysis: dict[str, object] = Field(default_factory=dict)
    recommendations: list[LearningRecommendation] = Field(default_factory=list)
    updated_sections: PromptSectionUpdates = Field(
        default_factory=PromptSectionUpdates, alias="updatedPromptSections"
    )
    summary: str = ""
