"""FastAPI backend for StakeLab."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from datetime import datetime, timedelta
from typing import Annotated, Any

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import select, update
from sqlalchemy.orm import Session, selectinload

from stakelab import __version__
from stakelab.agents import llm_client
from stakelab.agents.learning_agent import LearningAgent, NotEnoughHistoryError
from stakelab.agents.llm_client import OracleError
from stakelab.agents.prompts import OVERRIDABLE_SECTIONS
from stakelab.api.schemas import (
    Analysis,
    ApplyPromptRequest,
    CustomBetRequest,
    LearnResponse,
    LegResult,
    MarketAnalysis,
    OptionRecord,
    OptionResult,
    OutcomeUpdate,
    ParlayRequest,
    ParlayResult,
    PredictionRecord,
    PredictRequest,
    PredictResponse,
    PromptVersionResponse,
    RebalanceRequest,
    RebalanceResponse,
    SavedResponse,
    StakeResult,
    StatsResponse,
    Verdict,
)
from stakelab.betting.errors import AllocationError
from stakelab.betting.odds import implied_probability
from stakelab.betting.parlay import combine_parlay
from stakelab.betting.rebalancer import rebalance
from stakelab.betting.types import Allocation, ParlayBundle, ParlayLeg, StakeLine
from stakelab.config import get_api_access_key, get_settings
from stakelab.db.database import SessionLocal
from stakelab.db.models import LearningIteration, Prediction, PredictionOption, PromptVersion
from stakelab.services import predictions as workflow
from stakelab.services.rate_limit import RateLimitRegistry

logger = logging.getLogger(__name__)
settings = get_settings()

app = FastAPI(
    title="StakeLab API",
    version=__version__,
    description="Odds normalization, parlay math and bankroll allocation backed by an LLM probability oracle.",
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.state.rate_limits = RateLimitRegistry.from_settings(settings)


@app.exception_handler(AllocationError)
def _allocation_error(request: Request, exc: AllocationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": str(exc), "error": type(exc).__name__},
    )


@app.exception_handler(OracleError)
def _oracle_error(request: Request, exc: OracleError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_502_BAD_GATEWAY,
        content={"detail": "The forecasting service is unavailable. Please try again.", "error": "OracleError"},
    )


def get_db() -> Iterator[Session]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def require_api_key(x_api_key: str | None = Header(default=None, alias="X-API-Key")) -> None:
    expected = get_api_access_key()
    if not x_api_key or x_api_key != expected:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid API key")


def rate_limited(bucket: str) -> Callable[..., None]:
    def dependency(
        request: Request,
        x_client_id: str | None = Header(default=None, alias="X-Client-Id"),
    ) -> None:
        identifier = x_client_id or (request.client.host if request.client else "anonymous")
        limiter = request.app.state.rate_limits.get(bucket)
        result = limiter.hit(identifier)
        if not result.allowed:
            retry_after = result.retry_after(limiter.now())
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail=f"Rate limit exceeded. Please try again in {retry_after}s.",
                headers={
                    "Retry-After": str(retry_after),
                    "X-RateLimit-Limit": str(result.limit),
                    "X-RateLimit-Remaining": str(result.remaining),
                    "X-RateLimit-Reset": str(int(result.reset_at)),
                },
            )

    return dependency


SessionDep = Annotated[Session, Depends(get_db)]
APIKeyDep = Annotated[None, Depends(require_api_key)]
LimitQuery = Annotated[int, Query(ge=1, le=100)]
WindowQuery = Annotated[int, Query(ge=1, le=365)]


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/version")
def version(session: SessionDep) -> dict[str, Any]:
    active = workflow.active_prompt_version(session)
    return {
        "name": "stakelab",
        "version": __version__,
        "prompt_version": active.version_number if active else None,
    }


@app.post(
    "/predict",
    response_model=PredictResponse,
    dependencies=[Depends(rate_limited("predict"))],
)
def predict(payload: PredictRequest, _: APIKeyDep, session: SessionDep) -> PredictResponse:
    system_prompt, prompt_version = workflow.active_system_prompt(session)
    plan = workflow.plan_prediction(
        payload,
        system_prompt,
        kelly_fraction=payload.kelly_fraction or settings.kelly_fraction,
        fallback=payload.fallback_policy or settings.fallback_policy,
        oracle=llm_client.request_estimates,
    )
    prediction = workflow.persist_prediction(session, payload, plan)

    verdict = plan.oracle.prediction
    analysis = plan.oracle.analysis
    options = [
        OptionResult(
            name=option.name,
            decimal_odds=option.decimal_odds,
            implied_probability=option.implied_probability,
            ai_probability=option.estimated_probability,
            edge=plan.edge_of(option),
            recommended_stake=plan.stake_of(option),
            recommended_amount=plan.stake_of(option) / 100 * payload.bankroll,
            rationale=plan.rationales.get(option.name, ""),
        )
        for option in plan.options
    ]
    return PredictResponse(
        prediction_id=prediction.id,
        bankroll=payload.bankroll,
        is_parlay=payload.is_parlay,
        prediction=Verdict(winner=verdict.winner, confidence=verdict.confidence, reasoning=verdict.reasoning),
        options=options,
        analysis=Analysis(
            base_rate=analysis.base_rate,
            key_factors=analysis.key_factors,
            risks=analysis.risks,
            confidence=analysis.confidence,
        ),
        market_analysis=MarketAnalysis(**workflow.market_summary(plan)),
        non_positive_edge=bool(plan.allocation and plan.allocation.non_positive_edge),
        fallback_policy=plan.allocation.fallback if plan.allocation else None,
        parlay=_parlay_result(plan.parlay, payload.bankroll) if plan.parlay else None,
        prompt_version=prompt_version,
    )


@app.post("/rebalance", response_model=RebalanceResponse)
def rebalance_stakes(payload: RebalanceRequest, _: APIKeyDep) -> RebalanceResponse:
    allocation = Allocation(
        lines=tuple(StakeLine(name=o.name, edge=o.edge, stake=o.stake) for o in payload.options),
        non_positive_edge=payload.non_positive_edge,
    )
    updated = rebalance(allocation, payload.target, payload.new_stake)
    total = updated.total
    return RebalanceResponse(
        bankroll=payload.bankroll,
        options=[
            StakeResult(name=line.name, edge=line.edge, stake=line.stake, amount=line.amount(payload.bankroll))
            for line in updated.lines
        ],
        total_stake=total,
        uncommitted_stake=max(100.0 - total, 0.0),
        non_positive_edge=updated.non_positive_edge,
    )


@app.post("/parlay", response_model=ParlayResult)
def parlay(payload: ParlayRequest, _: APIKeyDep) -> ParlayResult:
    legs = [ParlayLeg(leg.name, leg.odds, leg.estimated_probability) for leg in payload.legs]
    bundle = combine_parlay(legs, payload.kelly_fraction or settings.kelly_fraction)
    return _parlay_result(bundle, payload.bankroll)


@app.post(
    "/bets/custom",
    response_model=SavedResponse,
    dependencies=[Depends(rate_limited("custom"))],
)
def save_custom_bet(payload: CustomBetRequest, _: APIKeyDep, session: SessionDep) -> SavedResponse:
    bankroll = payload.bankroll or payload.stake
    stake_pct = min(payload.stake / bankroll * 100, 100.0)
    prediction = Prediction(
        question=payload.notes or "Custom bet",
        bankroll=bankroll,
        is_parlay=payload.is_parlay,
        input_mode="manual",
        predicted_winner=payload.bet_name,
        reasoning=f"Custom bet: {payload.bet_name}",
    )
    if payload.is_parlay:
        bundle = combine_parlay([ParlayLeg(leg.name, leg.odds) for leg in payload.legs or []])
        prediction.parlay_combined_odds = bundle.combined_odds
        prediction.parlay_combined_probability = bundle.combined_probability
        prediction.parlay_potential_payout = bundle.potential_payout
        prediction.parlay_recommended_stake = stake_pct
        for order, leg in enumerate(bundle.legs):
            prediction.options.append(
                PredictionOption(
                    name=leg.name,
                    leg_order=order,
                    decimal_odds=leg.decimal_odds,
                    implied_probability=leg.implied_probability,
                )
            )
    else:
        prediction.options.append(
            PredictionOption(
                name=payload.bet_name,
                decimal_odds=payload.odds,
                implied_probability=implied_probability(payload.odds),
                recommended_stake=stake_pct,
            )
        )
    session.add(prediction)
    session.commit()
    logger.info("Stored custom bet %s", prediction.id)
    return SavedResponse(prediction_id=prediction.id)


@app.get("/predictions", response_model=list[PredictionRecord])
def list_predictions(
    _: APIKeyDep,
    session: SessionDep,
    limit: LimitQuery = 20,
    outcome: str | None = None,
) -> list[PredictionRecord]:
    stmt = (
        select(Prediction)
        .options(selectinload(Prediction.options))
        .order_by(Prediction.created_at.desc(), Prediction.id.desc())
    )
    if outcome:
        stmt = stmt.where(Prediction.outcome == outcome)
    rows = session.execute(stmt.limit(limit)).scalars().all()
    return [_prediction_record(row) for row in rows]


@app.patch(
    "/predictions/{prediction_id}/outcome",
    response_model=PredictionRecord,
    dependencies=[Depends(rate_limited("save"))],
)
def update_outcome(
    prediction_id: int,
    payload: OutcomeUpdate,
    _: APIKeyDep,
    session: SessionDep,
) -> PredictionRecord:
    prediction = session.get(Prediction, prediction_id)
    if prediction is None:
        raise HTTPException(status_code=404, detail="Prediction not found")
    if payload.option_id is None:
        prediction.outcome = payload.outcome
    else:
        option = next((o for o in prediction.options if o.id == payload.option_id), None)
        if option is None:
            raise HTTPException(status_code=404, detail="Option not found")
        option.outcome = payload.outcome
    session.commit()
    session.refresh(prediction)
    return _prediction_record(prediction)


@app.get("/stats", response_model=StatsResponse)
def stats(_: APIKeyDep, session: SessionDep, window_days: WindowQuery = 30) -> StatsResponse:
    window_start = datetime.utcnow() - timedelta(days=window_days)
    stmt = (
        select(Prediction)
        .options(selectinload(Prediction.options))
        .where(Prediction.created_at >= window_start)
    )
    rows = session.execute(stmt).scalars().all()
    counts = {key: 0 for key in ("won", "lost", "voided", "pending")}
    for row in rows:
        counts[row.outcome] = counts.get(row.outcome, 0) + 1
    decided = counts["won"] + counts["lost"]
    edges = [o.edge for row in rows for o in row.options if o.edge is not None]
    return StatsResponse(
        window_days=window_days,
        total_predictions=len(rows),
        wins=counts["won"],
        losses=counts["lost"],
        voided=counts["voided"],
        pending=counts["pending"],
        win_rate=(counts["won"] / decided * 100) if decided else 0.0,
        avg_edge=(sum(edges) / len(edges)) if edges else 0.0,
        last_updated=max((row.created_at for row in rows), default=None),
    )


@app.post(
    "/learn",
    response_model=LearnResponse,
    dependencies=[Depends(rate_limited("predict"))],
)
def learn(_: APIKeyDep, session: SessionDep) -> LearnResponse:
    stmt = (
        select(Prediction)
        .options(selectinload(Prediction.options))
        .where(Prediction.outcome != "pending")
        .order_by(Prediction.created_at.desc())
        .limit(50)
    )
    records = [workflow.prediction_to_record(row) for row in session.execute(stmt).scalars()]
    system_prompt, _version = workflow.active_system_prompt(session)
    try:
        report = LearningAgent().run(records, current_prompt=system_prompt)
    except NotEnoughHistoryError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    reply = report.reply
    iteration = LearningIteration(
        predictions_analyzed=report.predictions_analyzed,
        win_rate=report.win_rate,
        analysis=reply.analysis,
        recommendations=[r.model_dump() for r in reply.recommendations],
        updated_sections=reply.updated_sections.as_overrides(),
        summary=reply.summary,
    )
    session.add(iteration)
    session.commit()
    return LearnResponse(
        iteration_id=iteration.id,
        predictions_analyzed=report.predictions_analyzed,
        wins=report.wins,
        win_rate=report.win_rate,
        analysis=iteration.analysis,
        recommendations=iteration.recommendations,
        updated_sections=iteration.updated_sections,
        summary=iteration.summary,
    )


@app.post("/prompt/apply", response_model=PromptVersionResponse)
def apply_prompt(payload: ApplyPromptRequest, _: APIKeyDep, session: SessionDep) -> PromptVersionResponse:
    iteration = session.get(LearningIteration, payload.learning_iteration_id)
    if iteration is None:
        raise HTTPException(status_code=404, detail="Learning iteration not found")
    sections = payload.prompt_sections if payload.prompt_sections is not None else iteration.updated_sections
    unknown = set(sections) - set(OVERRIDABLE_SECTIONS)
    if unknown:
        raise HTTPException(status_code=422, detail=f"Unknown prompt sections: {', '.join(sorted(unknown))}")

    latest = session.execute(select(PromptVersion.version_number).order_by(PromptVersion.version_number.desc())).scalars().first()
    session.execute(update(PromptVersion).where(PromptVersion.is_active.is_(True)).values(is_active=False))
    version = PromptVersion(
        version_number=(latest or 0) + 1,
        prompt_sections=sections,
        learning_iteration_id=iteration.id,
        is_active=True,
    )
    session.add(version)
    session.commit()
    logger.info("Activated prompt version %s", version.version_number)
    return PromptVersionResponse(id=version.id, version_number=version.version_number, created_at=version.created_at)


def _parlay_result(bundle: ParlayBundle, bankroll: float) -> ParlayResult:
    return ParlayResult(
        legs=[
            LegResult(
                name=leg.name,
                decimal_odds=leg.decimal_odds,
                implied_probability=leg.implied_probability,
                ai_probability=leg.estimated_probability,
            )
            for leg in bundle.legs
        ],
        combined_odds=bundle.combined_odds,
        combined_probability=bundle.combined_probability,
        potential_payout=bundle.potential_payout,
        recommended_stake=bundle.recommended_stake,
        recommended_amount=bundle.recommended_amount(bankroll),
        estimated_probability=bundle.estimated_probability,
        edge=bundle.edge,
    )


def _prediction_record(prediction: Prediction) -> PredictionRecord:
    return PredictionRecord(
        id=prediction.id,
        question=prediction.question,
        bankroll=prediction.bankroll,
        is_parlay=prediction.is_parlay,
        input_mode=prediction.input_mode,
        predicted_winner=prediction.predicted_winner,
        confidence=prediction.confidence,
        non_positive_edge=prediction.non_positive_edge,
        parlay_combined_odds=prediction.parlay_combined_odds,
        parlay_recommended_stake=prediction.parlay_recommended_stake,
        outcome=prediction.outcome,
        created_at=prediction.created_at,
        options=[
            OptionRecord(
                id=o.id,
                name=o.name,
                decimal_odds=o.decimal_odds,
                implied_probability=o.implied_probability,
                ai_probability=o.ai_probability,
                edge=o.edge,
                recommended_stake=o.recommended_stake,
                outcome=o.outcome,
            )
            for o in prediction.options
        ],
    )
