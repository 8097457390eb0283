"""
Collect stage: turn stage outputs into the structured result, the text
report, and the persisted Turn.
"""
from dataclasses import dataclass
from typing import Any, Optional

from chorus.sessions.schema import Cost, Expansion, PerspectiveResult, Synthesis, Turn

RULE = "=" * 64
THIN_RULE = "-" * 64


@dataclass
class TurnOutcome:
    """Everything a finished turn produced. Nothing here is partial."""
    mode: str                                   # "chorus" | "singleCall" | "interrogation"
    prompt: str
    prompt_name: Optional[str] = None
    expansion: Optional[Expansion] = None
    results: Optional[list[PerspectiveResult]] = None
    synthesis: Optional[Synthesis] = None
    response: Optional[str] = None
    response_cost: Optional[Cost] = None
    response_model: Optional[str] = None
    elapsed_seconds: float = 0.0
    dry_run: bool = False

    @property
    def is_chorus(self) -> bool:
        return self.mode == "chorus"

    @property
    def total_cost(self) -> Cost:
        """Sum over the stages that actually ran."""
        costs = [self.response_cost]
        if self.expansion:
            costs.append(self.expansion.cost)
        costs.extend(r.cost for r in self.results or [])
        if self.synthesis:
            costs.append(self.synthesis.cost)
        return Cost.total(costs)


# ─────────────────────────────────────────────────────────────
# Structured result
# ─────────────────────────────────────────────────────────────

def format_json(outcome: TurnOutcome) -> dict[str, Any]:
    if not outcome.is_chorus:
        return {
            "mode": outcome.mode,
            "promptName": outcome.prompt_name or "default",
            "prompt": outcome.prompt,
            "response": outcome.response,
            "model": outcome.response_model,
            "cost": (outcome.response_cost or Cost()).to_dict(),
            "elapsedSeconds": outcome.elapsed_seconds,
        }

    total = outcome.total_cost
    results = outcome.results or []
    output: dict[str, Any] = {
        "mode": "chorus",
        "prompt": outcome.prompt,
        "expansion": outcome.expansion.to_dict() if outcome.expansion else None,
        "perspectives": [r.to_dict() for r in results],
        "totals": {
            "inputTokens": total.input_tokens,
            "outputTokens": total.output_tokens,
            "totalCostUsd": total.usd,
            "perspectivesCount": len(results),
            "elapsedSeconds": outcome.elapsed_seconds,
        },
    }
    if outcome.dry_run:
        output["dryRun"] = True
    if outcome.synthesis:
        output["synthesis"] = outcome.synthesis.to_dict()
    return output


# ─────────────────────────────────────────────────────────────
# Text report
# ─────────────────────────────────────────────────────────────

def _cost_line(label: str, cost: Cost) -> str:
    return f"  {label:<21}${cost.usd:.4f}   ({cost.input_tokens} input / {cost.output_tokens} output tokens)"


def _format_single_call_text(outcome: TurnOutcome) -> str:
    cost = outcome.response_cost or Cost()
    return "\n".join([
        RULE,
        f"chorus -- {outcome.prompt_name or 'default'}",
        RULE,
        "",
        f"PROMPT: {outcome.prompt}",
        "",
        outcome.response or "",
        "",
        RULE,
        f"Cost: ${cost.usd:.4f}  ({cost.input_tokens} input / {cost.output_tokens} output)  "
        f"Model: {outcome.response_model}  Elapsed: {outcome.elapsed_seconds:.1f}s",
        RULE,
    ])


def _format_chorus_text(outcome: TurnOutcome) -> str:
    lines = [RULE, "PROMPT EVALUATOR REPORT", RULE, "", "ORIGINAL PROMPT:", f"  {outcome.prompt}", ""]

    if outcome.expansion:
        instructions = outcome.expansion.instructions
        lines.append(f"EXPANSION ({len(instructions)} perspectives):")
        for instr in instructions:
            preview = instr.instruction if len(instr.instruction) <= 100 else instr.instruction[:100] + "..."
            lines.append(f"  {instr.id}. [{instr.perspective}] {preview}")
        lines.append("")

    for r in outcome.results or []:
        lines.extend([
            THIN_RULE,
            f"PERSPECTIVE {r.id}: {r.perspective}",
            THIN_RULE,
            f"  Instruction: {r.instruction}",
            "",
            "  Findings:",
            r.findings,
            "",
        ])

    if outcome.synthesis:
        lines.extend([RULE, "SYNTHESIS", RULE, "", outcome.synthesis.text, ""])

    lines.extend([RULE, "COST SUMMARY", RULE])
    if outcome.expansion:
        lines.append(_cost_line("Expand:", outcome.expansion.cost))
    if outcome.results:
        lines.append("  Fan-out:")
        for r in outcome.results:
            lines.append("  " + _cost_line(f"Perspective {r.id}:", r.cost))
    if outcome.synthesis:
        lines.append(_cost_line("Synthesis:", outcome.synthesis.cost))
    lines.append("  ----------------------------")
    lines.append(f"  {'TOTAL:':<21}${outcome.total_cost.usd:.4f}")
    lines.append(f"  {'Elapsed:':<21}{outcome.elapsed_seconds:.1f}s")
    lines.append(RULE)
    return "\n".join(lines)


def format_text(outcome: TurnOutcome) -> str:
    if outcome.is_chorus:
        return _format_chorus_text(outcome)
    return _format_single_call_text(outcome)


# ─────────────────────────────────────────────────────────────
# Persisted turn
# ─────────────────────────────────────────────────────────────

def build_turn(outcome: TurnOutcome, turn_number: int = 1) -> Turn:
    """The Turn record for a completed execution. The store renumbers on append."""
    return Turn(
        turn_number=turn_number,
        turn_type=outcome.mode,
        prompt=outcome.prompt,
        prompt_name=outcome.prompt_name,
        response=outcome.response,
        expansion=outcome.expansion,
        perspectives=outcome.results if outcome.is_chorus else None,
        synthesis=outcome.synthesis,
        total_cost=outcome.total_cost,
        elapsed_seconds=outcome.elapsed_seconds,
    )
