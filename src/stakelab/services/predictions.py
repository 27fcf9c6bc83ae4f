"""Prediction workflow: oracle estimates -> edges and stakes -> stored records."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from stakelab.agents.llm_client import OracleError, request_estimates
from stakelab.agents.prompts import SYSTEM_PROMPT, build_user_prompt
from stakelab.agents.schemas import OracleResponse
from stakelab.api.schemas import OddsInput, PredictRequest
from stakelab.betting.edge import calculate_edge
from stakelab.betting.normalizer import normalize_stakes
from stakelab.betting.odds import implied_probability
from stakelab.betting.parlay import combine_parlay
from stakelab.betting.types import Allocation, FallbackPolicy, Option, ParlayBundle, ParlayLeg
from stakelab.db.models import Prediction, PredictionOption, PromptVersion

logger = logging.getLogger(__name__)

Oracle = Callable[[str, str, Sequence[str]], OracleResponse]


@dataclass
class PredictionPlan:
    """Everything computed for one request, before it is stored."""

    options: list[Option]
    oracle: OracleResponse
    kelly_fraction: float
    fallback: FallbackPolicy
    allocation: Allocation | None = None
    parlay: ParlayBundle | None = None
    rationales: dict[str, str] = field(default_factory=dict)

    def edge_of(self, option: Option) -> float:
        return calculate_edge(option.estimated_probability, implied_probability(option.decimal_odds))

    def stake_of(self, option: Option) -> float:
        return self.allocation.stake_of(option.name) if self.allocation else 0.0


def active_prompt_version(session: Session) -> PromptVersion | None:
    stmt = (
        select(PromptVersion)
        .where(PromptVersion.is_active.is_(True))
        .order_by(PromptVersion.version_number.desc())
    )
    return session.execute(stmt).scalars().first()


def active_system_prompt(session: Session) -> tuple[str, int | None]:
    """Render the system prompt with the active version's overrides, if any."""

    version = active_prompt_version(session)
    if version is None:
        return SYSTEM_PROMPT.render(), None
    try:
        return SYSTEM_PROMPT.render(version.prompt_sections), version.version_number
    except ValueError as exc:
        logger.error("Prompt version %s is invalid, using default: %s", version.version_number, exc)
        return SYSTEM_PROMPT.render(), None


def resolve_options(oracle: OracleResponse, requested: Sequence[OddsInput] | None) -> list[Option]:
    """Pair odds with the oracle's probabilities.

    Requested options keep the user's odds and names; otherwise the oracle's
    extracted odds are used. Missing values are oracle failures.
    """

    options: list[Option] = []
    if requested:
        for item in requested:
            prob = oracle.probability_of(item.name)
            if prob is None:
                raise OracleError(f"Oracle did not return a probability for {item.name!r}")
            options.append(Option(item.name, item.odds, prob))
        return options
    for item in oracle.options:
        if item.decimal_odds is None:
            raise OracleError(f"Oracle did not return odds for {item.name!r}")
        options.append(Option(item.name, item.decimal_odds, item.ai_probability))
    return options


def plan_prediction(
    payload: PredictRequest,
    system_prompt: str,
    kelly_fraction: float,
    fallback: FallbackPolicy,
    oracle: Oracle = request_estimates,
) -> PredictionPlan:
    requested = [(o.name, o.odds) for o in payload.options] if payload.options else None
    user_prompt = build_user_prompt(
        payload.question,
        payload.bankroll,
        payload.is_parlay,
        manual_input=payload.manual_input,
        options=requested,
        image_count=len(payload.images),
    )
    reply = oracle(system_prompt, user_prompt, payload.images)
    options = resolve_options(reply, payload.options)
    plan = PredictionPlan(
        options=options,
        oracle=reply,
        kelly_fraction=kelly_fraction,
        fallback=fallback,
        rationales={o.name: o.rationale for o in reply.options},
    )
    if payload.is_parlay:
        legs = [ParlayLeg(o.name, o.decimal_odds, o.estimated_probability) for o in options]
        plan.parlay = combine_parlay(legs, kelly_fraction)
    else:
        plan.allocation = normalize_stakes(options, kelly_fraction, fallback)
    return plan


def market_summary(plan: PredictionPlan) -> dict[str, Any]:
    edges = {o.name: plan.edge_of(o) for o in plan.options}
    best = max(edges, key=edges.__getitem__) if edges else None
    return {
        "total_edge": sum(e for e in edges.values() if e > 0),
        "best_value": best,
        "market_efficiency": plan.oracle.market_efficiency,
    }


def persist_prediction(session: Session, payload: PredictRequest, plan: PredictionPlan) -> Prediction:
    verdict = plan.oracle.prediction
    prediction = Prediction(
        question=payload.question,
        bankroll=payload.bankroll,
        is_parlay=payload.is_parlay,
        input_mode=payload.input_mode,
        predicted_winner=verdict.winner or None,
        confidence=verdict.confidence,
        reasoning=verdict.reasoning,
        kelly_fraction=plan.kelly_fraction,
        fallback_policy=plan.allocation.fallback.value if plan.allocation and plan.allocation.fallback else None,
        non_positive_edge=bool(plan.allocation and plan.allocation.non_positive_edge),
    )
    if plan.parlay:
        prediction.parlay_combined_odds = plan.parlay.combined_odds
        prediction.parlay_combined_probability = plan.parlay.combined_probability
        prediction.parlay_potential_payout = plan.parlay.potential_payout
        prediction.parlay_recommended_stake = plan.parlay.recommended_stake
    for order, option in enumerate(plan.options):
        prediction.options.append(
            PredictionOption(
                name=option.name,
                leg_order=order,
                decimal_odds=option.decimal_odds,
                implied_probability=option.implied_probability,
                ai_probability=option.estimated_probability,
                edge=plan.edge_of(option),
                recommended_stake=plan.stake_of(option),
            )
        )
    session.add(prediction)
    session.commit()
    session.refresh(prediction)
    logger.info(
        "Stored prediction %s (%d options, parlay=%s)", prediction.id, len(plan.options), payload.is_parlay
    )
    return prediction


def prediction_to_record(prediction: Prediction) -> dict[str, Any]:
    """Flatten a stored prediction for the learning agent."""

    return {
        "predicted_winner": prediction.predicted_winner,
        "confidence": prediction.confidence,
        "outcome": prediction.outcome,
        "is_parlay": prediction.is_parlay,
        "options": [
            {
                "name": o.name,
                "ai_probability": o.ai_probability,
                "implied_probability": o.implied_probability,
                "edge": o.edge,
                "stake": o.recommended_stake,
                "outcome": o.outcome,
            }
            for o in prediction.options
        ],
    }
