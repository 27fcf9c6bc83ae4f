"""Learning agent that reviews settled predictions and proposes prompt edits."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any, Dict, List

import openai
from pydantic import ValidationError

from stakelab.agents.llm_client import OracleError, chat_completion, extract_json
from stakelab.agents.prompts import SYSTEM_PROMPT
from stakelab.agents.schemas import LearningReply

logger = logging.getLogger(__name__)

MIN_SETTLED_PREDICTIONS = 3

LEARNING_PROMPT = """You review the track record of a forecasting system and improve its system prompt.

1. Compare the stated probabilities with actual outcomes (calibration).
2. Find what correct predictions had in common, and what incorrect ones missed.
3. Look for bet types that do better or worse, and for systematic over- or underconfidence.

Respond with ONLY a JSON object:
{
  "analysis": {"calibration": str, "strengths": [str], "weaknesses": [str], "patterns": [str]},
  "recommendations": [{"section": str, "change": str, "rationale": str}],
  "updatedPromptSections": {
    "COGNITIVE_POSTURE": str | null,
    "DOMAIN_ADJUSTMENTS": str | null,
    "STAKE_DISTRIBUTION": str | null,
    "DEBIASING_CHECKLIST": str | null
  },
  "summary": str
}"""


class NotEnoughHistoryError(ValueError):
    """Too few settled predictions to learn from."""


@dataclass
class LearningReport:
    predictions_analyzed: int
    wins: int
    win_rate: float
    reply: LearningReply


class LearningAgent:
    """Summarises settled predictions with the LLM and suggests prompt section updates."""

    def __init__(
        self,
        completion: Callable[[List[Dict[str, Any]]], str] | None = None,
        min_predictions: int = MIN_SETTLED_PREDICTIONS,
    ) -> None:
        self.completion = completion or chat_completion
        self.min_predictions = min_predictions

    def run(self, records: Sequence[Dict[str, Any]], current_prompt: str | None = None) -> LearningReport:
        settled = [r for r in records if r.get("outcome") not in (None, "pending")]
        if len(settled) < self.min_predictions:
            raise NotEnoughHistoryError(
                f"Need at least {self.min_predictions} settled predictions, got {len(settled)}"
            )
        wins = sum(1 for r in settled if r["outcome"] == "won")
        win_rate = wins / len(settled) * 100
        prompt = (
            f"{LEARNING_PROMPT}\n\n## Current System Prompt\n{current_prompt or SYSTEM_PROMPT.render()}\n\n"
            f"## Prediction Results ({len(settled)} bets, {wins} wins, {win_rate:.1f}% win rate)\n"
            f"{json.dumps(settled, indent=2, default=str)}"
        )
        try:
            text = self.completion([{"role": "user", "content": prompt}])
        except (openai.OpenAIError, RuntimeError) as exc:
            logger.error("Learning agent call failed: %s", exc)
            raise OracleError(f"Learning agent call failed: {exc}") from exc
        try:
            reply = LearningReply.model_validate(extract_json(text))
        except (ValueError, ValidationError) as exc:
            logger.error("Unusable learning reply: %s", exc)
            raise OracleError("Learning agent returned an unusable reply") from exc
        logger.info("Learning pass over %d predictions (%.1f%% won)", len(settled), win_rate)
        return LearningReport(
            predictions_analyzed=len(settled),
            wins=wins,
            win_rate=win_rate,
            reply=reply,
        )
