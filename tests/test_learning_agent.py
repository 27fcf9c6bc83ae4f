"""Tests for the prompt-learning agent."""

from __future__ import annotations

import dataclasses
import json

import pytest

from stakelab.agents import learning_agent as la
from stakelab.agents.llm_client import OracleError

REPLY = {
    "analysis": {"calibration": "Overconfident on favourites"},
    "recommendations": [{"section": "DEBIASING_CHECKLIST", "change": "Add favourite bias check"}],
    "updatedPromptSections": {
        "DEBIASING_CHECKLIST": "- Check favourite-longshot bias.",
        "COGNITIVE_POSTURE": None,
    },
    "summary": "Tighten favourites.",
}


def _records(*outcomes: str) -> list[dict]:
    return [{"predicted_winner": f"Team {i}", "confidence": 60, "outcome": o} for i, o in enumerate(outcomes)]


def test_learning_agent_reports_win_rate_and_sections() -> None:
    prompts: list[str] = []

    def completion(messages):
        prompts.append(messages[0]["content"])
        return json.dumps(REPLY)

    agent = la.LearningAgent(completion=completion)
    report = agent.run(_records("won", "lost", "won", "won", "pending"))
    assert report.predictions_analyzed == 4
    assert [f.name for f in dataclasses.fields(report)] == ["predictions_analyzed", "wins", "win_rate", "reply"]
    assert report.wins == 3
    assert report.win_rate == pytest.approx(75.0)
    assert report.reply.summary == "Tighten favourites."
    overrides = report.reply.updated_sections.as_overrides()
    assert overrides["DEBIASING_CHECKLIST"] == "- Check favourite-longshot bias."
    assert overrides["COGNITIVE_POSTURE"] is None
    assert "75.0% win rate" in prompts[0]
    assert "pending" not in prompts[0]


def test_learning_agent_needs_settled_history() -> None:
    agent = la.LearningAgent(completion=lambda messages: json.dumps(REPLY))
    with pytest.raises(la.NotEnoughHistoryError):
        agent.run(_records("won", "pending", "pending"))


def test_learning_agent_uses_module_completion(monkeypatch) -> None:
    monkeypatch.setattr(la, "chat_completion", lambda messages: json.dumps(REPLY))
    report = la.LearningAgent().run(_records("won", "lost", "voided"))
    assert report.wins == 1


def test_unusable_learning_reply_is_an_oracle_error() -> None:
    agent = la.LearningAgent(completion=lambda messages: "no json here")
    with pytest.raises(OracleError):
        agent.run(_records("won", "lost", "lost"))


def test_learning_call_failure_is_an_oracle_error() -> None:
    def completion(messages):
        raise RuntimeError("OPENAI_API_KEY is not configured")

    with pytest.raises(OracleError):
        la.LearningAgent(completion=completion).run(_records("won", "lost", "lost"))
