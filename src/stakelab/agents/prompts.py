"""System prompt template for the probability oracle.

The prompt is a sequence of named sections. Four of them are slots that a
stored prompt version may override; the rest (output schema, rules) are fixed.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass

OVERRIDABLE_SECTIONS = (
    "COGNITIVE_POSTURE",
    "DOMAIN_ADJUSTMENTS",
    "STAKE_DISTRIBUTION",
    "DEBIASING_CHECKLIST",
)


@dataclass(frozen=True)
class PromptSection:
    key: str
    heading: str
    body: str

    def render(self) -> str:
        return f"## {self.heading}\n{self.body.strip()}"


@dataclass(frozen=True)
class PromptTemplate:
    preamble: str
    sections: tuple[PromptSection, ...]

    def section(self, key: str) -> PromptSection:
        for section in self.sections:
            if section.key == key:
                return section
        raise KeyError(key)

    def render(self, overrides: Mapping[str, str | None] | None = None) -> str:
        """Render the prompt, swapping in override bodies by slot name.

        ``None`` or empty overrides keep the default body.
        """

        overrides = dict(overrides or {})
        unknown = set(overrides) - set(OVERRIDABLE_SECTIONS)
        if unknown:
            raise ValueError(f"Unknown prompt sections: {', '.join(sorted(unknown))}")
        parts = [self.preamble.strip()]
        for section in self.sections:
            body = overrides.get(section.key) or section.body
            parts.append(PromptSection(section.key, section.heading, body).render())
        return "\n\n---\n\n".join(parts)


SYSTEM_PROMPT = PromptTemplate(
    preamble=(
        "# Forecasting & Market Pricing Assistant\n\n"
        "You estimate the true probability of each option in a betting or prediction market. "
        "Work like a calibrated superforecaster: start from base rates, adjust for specific "
        "evidence, and keep intervals honest. You never size stakes; a separate engine does that."
    ),
    sections=(
        PromptSection(
            "COGNITIVE_POSTURE",
            "COGNITIVE POSTURE",
            "- Know many small things and synthesize them; avoid single big-idea narratives.\n"
            "- Treat beliefs as hypotheses to be tested.\n"
            "- Think in distributions of outcomes, not a single inevitable path.",
        ),
        PromptSection(
            "OUTPUT_FORMAT",
            "OUTPUT FORMAT",
            "Respond with a single JSON object and nothing else:\n"
            "{\n"
            '  "prediction": {"winner": str, "confidence": number 0-100, "reasoning": str},\n'
            '  "options": [{"name": str, "decimalOdds": number > 1, '
            '"aiProbability": number 0-100, "rationale": str}],\n'
            '  "analysis": {"baseRate": str, "keyFactors": [str], "risks": str, '
            '"confidence": "High" | "Medium" | "Low"},\n'
            '  "marketEfficiency": str\n'
            "}\n"
            "Option names must match the names given in the request when options are listed.",
        ),
        PromptSection(
            "PROTOCOL",
            "OPERATIONAL PROTOCOL",
            "1. Extract every option and its odds; convert American, fractional or percent odds "
            "to decimal.\n"
            "2. Outside view: pick a reference class and anchor on its base rate.\n"
            "3. Inside view: weigh the specific catalysts and blockers by signal strength.\n"
            "4. Red team: run a pre-mortem and steel-man the alternatives.\n"
            "5. Synthesize a final probability for every option.",
        ),
        PromptSection(
            "STAKE_DISTRIBUTION",
            "STAKE DISTRIBUTION ALGORITHM",
            "Stakes are computed downstream with fractional Kelly over positive-edge options. "
            "Report probabilities you would be willing to bet on; do not shade them to change "
            "the allocation.",
        ),
        PromptSection(
            "DEBIASING_CHECKLIST",
            "DEBIASING CHECKLIST",
            "- Anchoring: started from base rates.\n"
            "- Confirmation: looked for disconfirming evidence.\n"
            "- Recency and availability: did not overweight the latest or most vivid events.\n"
            "- Overconfidence: probabilities away from 0 and 100 unless the evidence is decisive.",
        ),
        PromptSection(
            "DOMAIN_ADJUSTMENTS",
            "DOMAIN-SPECIFIC ADJUSTMENTS",
            "Sports: injuries, rest, travel, motivation, matchup history, venue, weather.\n"
            "Politics: polling aggregates, fundamentals, turnout, late news.\n"
            "Markets: financials, competition, regulation, macro conditions.",
        ),
        PromptSection(
            "RULES",
            "RULES",
            "Output ONLY valid JSON. Probabilities are percentages between 0 and 100.",
        ),
    ),
)


def build_user_prompt(
    question: str,
    bankroll: float,
    is_parlay: bool,
    manual_input: str | None = None,
    options: Sequence[tuple[str, float]] | None = None,
    image_count: int = 0,
) -> str:
    """Render the per-request task that follows the system prompt."""

    lines = [f"USER QUERY: {question}", f"USER BANKROLL: ${bankroll:,.2f}"]
    if is_parlay:
        lines.append("BET TYPE: parlay. Estimate each leg's probability on its own.")
    if options:
        lines.append("OPTIONS (decimal odds):")
        lines.extend(f"- {name}: {odds:.4g}" for name, odds in options)
    if manual_input:
        lines.append(f"MARKET DETAILS:\n{manual_input.strip()}")
    if image_count:
        lines.append(f"{image_count} screenshot(s) of the market are attached; read the odds from them.")
    lines.append("TASK: estimate the true probability of every option. Output ONLY the JSON object.")
    return "\n\n".join(lines)
