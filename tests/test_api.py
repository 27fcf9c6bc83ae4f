"""API tests with the oracle and learning model stubbed out."""

from __future__ import annotations

import json

import pytest

from stakelab.agents import learning_agent, llm_client
from stakelab.agents.schemas import OracleResponse
from stakelab.services.rate_limit import RateLimiter, RateLimitRegistry

MARKET = {
    "prediction": {"winner": "Home", "confidence": 58, "reasoning": "Form and rest."},
    "options": [
        {"name": "Home", "decimalOdds": 2.1, "aiProbability": 55, "rationale": "Rested."},
        {"name": "Draw", "decimalOdds": 3.4, "aiProbability": 30},
        {"name": "Away", "decimalOdds": 3.8, "aiProbability": 15},
    ],
    "analysis": {"baseRate": "Home sides win 46%", "keyFactors": ["rest"], "risks": "Injuries"},
    "marketEfficiency": "Draw underpriced",
}


@pytest.fixture()
def oracle(monkeypatch):
    calls: list[dict] = []

    def fake(system_prompt, user_prompt, images=()):
        calls.append({"system": system_prompt, "user": user_prompt, "images": list(images)})
        return OracleResponse.model_validate(MARKET)

    monkeypatch.setattr(llm_client, "request_estimates", fake)
    return calls


def _predict_payload(**overrides) -> dict:
    payload = {
        "question": "Who wins the derby?",
        "bankroll": 500,
        "options": [
            {"name": "Home", "odds": "+110"},
            {"name": "Draw", "odds": "12/5"},
            {"name": "Away", "odds": 3.8},
        ],
    }
    payload.update(overrides)
    return payload


def _custom_bet(client, name: str = "Lakers ML") -> int:
    response = client.post("/bets/custom", json={"bet_name": name, "odds": "-150", "stake": 25, "bankroll": 100})
    assert response.status_code == 200
    return response.json()["prediction_id"]


def test_health(client) -> None:
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_api_key_is_required(client) -> None:
    response = client.post("/parlay", json={"legs": []}, headers={"X-API-Key": "wrong"})
    assert response.status_code == 401


def test_predict_allocates_the_whole_bankroll(client, oracle) -> None:
    response = client.post("/predict", json=_predict_payload())
    assert response.status_code == 200
    body = response.json()
    stakes = {o["name"]: o for o in body["options"]}
    assert sum(o["recommended_stake"] for o in body["options"]) == pytest.approx(100.0)
    assert stakes["Away"]["recommended_stake"] == 0.0
    assert stakes["Home"]["recommended_stake"] > 0
    assert stakes["Draw"]["recommended_stake"] > 0
    assert stakes["Home"]["recommended_amount"] == pytest.approx(stakes["Home"]["recommended_stake"] * 5)
    assert stakes["Draw"]["decimal_odds"] == pytest.approx(3.4)
    assert stakes["Home"]["rationale"] == "Rested."
    assert body["market_analysis"]["best_value"] == "Home"
    assert not body["non_positive_edge"]
    assert body["prompt_version"] is None
    assert "- Draw: 3.4" in oracle[0]["user"]

    stored = client.get("/predictions").json()
    assert stored[0]["id"] == body["prediction_id"]
    assert [o["name"] for o in stored[0]["options"]] == ["Home", "Draw", "Away"]


def test_predict_flags_markets_without_edge(client, monkeypatch) -> None:
    flat = dict(MARKET, options=[
        {"name": "Home", "decimalOdds": 2.1, "aiProbability": 40},
        {"name": "Away", "decimalOdds": 1.9, "aiProbability": 45},
    ])
    monkeypatch.setattr(
        llm_client, "request_estimates", lambda *args: OracleResponse.model_validate(flat)
    )
    payload = _predict_payload(
        options=[{"name": "Home", "odds": 2.1}, {"name": "Away", "odds": 1.9}],
        fallback_policy="equal_split",
    )
    body = client.post("/predict", json=payload).json()
    assert body["non_positive_edge"]
    assert body["fallback_policy"] == "equal_split"
    assert [o["recommended_stake"] for o in body["options"]] == pytest.approx([50.0, 50.0])


def test_predict_parlay_returns_bundle(client, oracle) -> None:
    response = client.post("/predict", json=_predict_payload(is_parlay=True))
    assert response.status_code == 200
    body = response.json()
    parlay = body["parlay"]
    assert parlay["combined_odds"] == pytest.approx(2.1 * 3.4 * 3.8)
    assert [leg["name"] for leg in parlay["legs"]] == ["Home", "Draw", "Away"]
    assert all(o["recommended_stake"] == 0.0 for o in body["options"])
    assert "BET TYPE: parlay" in oracle[0]["user"]


def test_oracle_missing_an_option_is_a_bad_gateway(client, oracle) -> None:
    payload = _predict_payload(options=[{"name": "Home", "odds": 2.1}, {"name": "Nobody", "odds": 9.0}])
    response = client.post("/predict", json=payload)
    assert response.status_code == 502


def test_oracle_failure_is_a_bad_gateway(client, monkeypatch) -> None:
    def broken(*args):
        raise llm_client.OracleError("down")

    monkeypatch.setattr(llm_client, "request_estimates", broken)
    assert client.post("/predict", json=_predict_payload()).status_code == 502


@pytest.mark.parametrize("odds", ["+50", "1.0", "abc", 0.5, True])
def test_predict_rejects_bad_odds(client, oracle, odds) -> None:
    payload = _predict_payload(options=[{"name": "Home", "odds": odds}, {"name": "Away", "odds": 2.0}])
    assert client.post("/predict", json=payload).status_code == 422
    assert oracle == []


def test_predict_requires_input_for_mode(client, oracle) -> None:
    payload = {"question": "Q?", "bankroll": 100, "input_mode": "images"}
    assert client.post("/predict", json=payload).status_code == 422


def test_rebalance_shrinks_other_stakes(client) -> None:
    payload = {
        "bankroll": 200,
        "target": "A",
        "new_stake": 70,
        "options": [
            {"name": "A", "edge": 5, "stake": 50},
            {"name": "B", "edge": 3, "stake": 30},
            {"name": "C", "edge": 1, "stake": 20},
        ],
    }
    response = client.post("/rebalance", json=payload)
    assert response.status_code == 200
    body = response.json()
    stakes = {o["name"]: o for o in body["options"]}
    assert stakes["B"]["stake"] == pytest.approx(18.0)
    assert stakes["C"]["amount"] == pytest.approx(24.0)
    assert body["total_stake"] == pytest.approx(100.0)
    assert body["uncommitted_stake"] == pytest.approx(0.0, abs=1e-9)


def test_rebalance_unknown_target(client) -> None:
    payload = {"bankroll": 200, "target": "Z", "new_stake": 10, "options": [{"name": "A", "stake": 100}]}
    response = client.post("/rebalance", json=payload)
    assert response.status_code == 422
    assert response.json()["error"] == "UnknownOptionError"


def test_parlay_endpoint(client) -> None:
    legs = [{"name": "A", "odds": 2.0}, {"name": "B", "odds": "1/2"}, {"name": "C", "odds": "+200"}]
    response = client.post("/parlay", json={"legs": legs, "bankroll": 50})
    assert response.status_code == 200
    assert response.json()["combined_odds"] == pytest.approx(9.0)
    assert response.json()["combined_probability"] == pytest.approx(100 / 9)


def test_parlay_endpoint_needs_two_legs(client) -> None:
    response = client.post("/parlay", json={"legs": [{"name": "A", "odds": 2.0}]})
    assert response.status_code == 422
    assert response.json()["error"] == "InvalidParlayError"


def test_custom_bet_is_stored(client) -> None:
    prediction_id = _custom_bet(client)
    stored = client.get("/predictions").json()
    record = next(r for r in stored if r["id"] == prediction_id)
    assert record["predicted_winner"] == "Lakers ML"
    assert record["options"][0]["decimal_odds"] == pytest.approx(1 + 100 / 150)
    assert record["options"][0]["recommended_stake"] == pytest.approx(25.0)


def test_custom_parlay_needs_legs(client) -> None:
    response = client.post("/bets/custom", json={"bet_name": "Combo", "stake": 10, "is_parlay": True})
    assert response.status_code == 422


def test_outcomes_feed_stats(client) -> None:
    ids = [_custom_bet(client, f"Bet {i}") for i in range(4)]
    for prediction_id, outcome in zip(ids, ["won", "lost", "won", "voided"]):
        response = client.patch(f"/predictions/{prediction_id}/outcome", json={"outcome": outcome})
        assert response.status_code == 200
        assert response.json()["outcome"] == outcome

    stats = client.get("/stats").json()
    assert stats["total_predictions"] == 4
    assert stats["wins"] == 2
    assert stats["losses"] == 1
    assert stats["voided"] == 1
    assert stats["win_rate"] == pytest.approx(200 / 3)
    assert len(client.get("/predictions", params={"outcome": "won"}).json()) == 2


def test_outcome_for_missing_prediction(client) -> None:
    assert client.patch("/predictions/999/outcome", json={"outcome": "won"}).status_code == 404


def test_learning_and_prompt_versions(client, oracle, monkeypatch) -> None:
    assert client.post("/learn").status_code == 400

    for prediction_id, outcome in zip([_custom_bet(client) for _ in range(3)], ["won", "lost", "won"]):
        client.patch(f"/predictions/{prediction_id}/outcome", json={"outcome": outcome})
    reply = {
        "analysis": {"calibration": "ok"},
        "recommendations": [{"section": "DOMAIN_ADJUSTMENTS", "change": "More on rest"}],
        "updatedPromptSections": {"DOMAIN_ADJUSTMENTS": "Rest days matter most."},
        "summary": "Lean on rest.",
    }
    monkeypatch.setattr(learning_agent, "chat_completion", lambda messages: json.dumps(reply))
    learned = client.post("/learn")
    assert learned.status_code == 200
    body = learned.json()
    assert body["predictions_analyzed"] == 3
    assert body["win_rate"] == pytest.approx(200 / 3)

    bad = client.post("/prompt/apply", json={"learning_iteration_id": body["iteration_id"], "prompt_sections": {"RULES": "x"}})
    assert bad.status_code == 422
    assert client.post("/prompt/apply", json={"learning_iteration_id": 999}).status_code == 404

    applied = client.post("/prompt/apply", json={"learning_iteration_id": body["iteration_id"]})
    assert applied.status_code == 200
    assert applied.json()["version_number"] == 1
    assert client.get("/version").json()["prompt_version"] == 1

    predicted = client.post("/predict", json=_predict_payload()).json()
    assert predicted["prompt_version"] == 1
    assert "Rest days matter most." in oracle[-1]["system"]

    again = client.post("/prompt/apply", json={"learning_iteration_id": body["iteration_id"]})
    assert again.json()["version_number"] == 2


def test_rate_limit_rejects_with_retry_after(client) -> None:
    client.app.state.rate_limits = RateLimitRegistry(
        {"custom": RateLimiter(1, 60), "default": RateLimiter(100, 60)}
    )
    _custom_bet(client)
    response = client.post("/bets/custom", json={"bet_name": "Again", "odds": 2.0, "stake": 10})
    assert response.status_code == 429
    assert int(response.headers["Retry-After"]) > 0
    assert response.headers["X-RateLimit-Limit"] == "1"
