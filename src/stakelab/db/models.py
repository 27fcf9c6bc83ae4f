"""ORM models for StakeLab."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

OUTCOMES = ("pending", "won", "lost", "voided")


class Base(DeclarativeBase):
    """Base declarative class."""


class Prediction(Base):
    """One allocation request and the oracle's verdict."""

    __tablename__ = "predictions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    question: Mapped[str] = mapped_column(String(1000), nullable=False)
    bankroll: Mapped[float] = mapped_column(Float, nullable=False)
    is_parlay: Mapped[bool] = mapped_column(Boolean, default=False)
    input_mode: Mapped[str] = mapped_column(String(16), default="manual")
    predicted_winner: Mapped[str | None] = mapped_column(String(255))
    confidence: Mapped[float | None] = mapped_column(Float)
    reasoning: Mapped[str | None] = mapped_column(Text)
    kelly_fraction: Mapped[float | None] = mapped_column(Float)
    fallback_policy: Mapped[str | None] = mapped_column(String(32))
    non_positive_edge: Mapped[bool] = mapped_column(Boolean, default=False)
    parlay_combined_odds: Mapped[float | None] = mapped_column(Float)
    parlay_combined_probability: Mapped[float | None] = mapped_column(Float)
    parlay_potential_payout: Mapped[float | None] = mapped_column(Float)
    parlay_recommended_stake: Mapped[float | None] = mapped_column(Float)
    outcome: Mapped[str] = mapped_column(String(16), default="pending")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    options: Mapped[list[PredictionOption]] = relationship(
        back_populates="prediction",
        cascade="all, delete-orphan",
        order_by="PredictionOption.leg_order",
    )


class PredictionOption(Base):
    """A single option (or parlay leg) of a prediction."""

    __tablename__ = "prediction_options"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    prediction_id: Mapped[int] = mapped_column(ForeignKey("predictions.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(500), nullable=False)
    leg_order: Mapped[int] = mapped_column(Integer, default=0)
    decimal_odds: Mapped[float] = mapped_column(Float, nullable=False)
    implied_probability: Mapped[float] = mapped_column(Float, nullable=False)
    ai_probability: Mapped[float | None] = mapped_column(Float)
    edge: Mapped[float | None] = mapped_column(Float)
    recommended_stake: Mapped[float] = mapped_column(Float, default=0.0)
    outcome: Mapped[str] = mapped_column(String(16), default="pending")

    prediction: Mapped[Prediction] = relationship(back_populates="options")


class LearningIteration(Base):
    """Result of one pass of the learning agent over settled predictions."""

    __tablename__ = "learning_iterations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    predictions_analyzed: Mapped[int] = mapped_column(Integer, nullable=False)
    win_rate: Mapped[float] = mapped_column(Float, nullable=False)
    analysis: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    recommendations: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list)
    updated_sections: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    summary: Mapped[str] = mapped_column(Text, default="")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


class PromptVersion(Base):
    """System prompt section overrides; at most one version is active."""

    __tablename__ = "prompt_versions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    version_number: Mapped[int] = mapped_column(Integer, nullable=False)
    prompt_sections: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    learning_iteration_id: Mapped[int | None] = mapped_column(ForeignKey("learning_iterations.id"))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
