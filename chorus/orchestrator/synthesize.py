"""
Synthesis stage: cross-perspective analysis of the fan-out results.

Only successful participants are synthesized; failure markers are left out.
"""
import logging

from chorus.agents import llm
from chorus.agents.mock import mock_synthesis_model
from chorus.agents.prompts import resolve_prompt
from chorus.config import Config
from chorus.errors import StageError
from chorus.sessions.schema import Instruction, PerspectiveResult, Synthesis

logger = logging.getLogger(__name__)

NO_SYNTHESIS = "[NO SYNTHESIS RESPONSE]"


def build_synthesis_message(prompt: str, instructions: list[Instruction], results: list[PerspectiveResult]) -> str:
    methodology = {i.id: i.methodology for i in instructions}
    sections = "\n\n".join(
        f"=== Perspective {r.id}: {r.perspective} ===\n"
        f"Methodology: {methodology.get(r.id) or 'N/A'}\n\n"
        f"Findings:\n{r.findings}"
        for r in results
    )
    return (
        f"ORIGINAL RESEARCH QUESTION:\n{prompt}\n\n"
        f"FINDINGS FROM {len(results)} INDEPENDENT ANALYSTS:\n\n{sections}"
    )


def synthesize(
    prompt: str,
    instructions: list[Instruction],
    results: list[PerspectiveResult],
    model: str,
) -> Synthesis:
    """
    Run the synthesis stage over the successful participants.

    Raises:
        StageError: every participant failed, or the model call failed
    """
    successful = [r for r in results if not r.failed]
    if not successful:
        raise StageError("synthesize", "All perspectives failed; nothing to synthesize")
    if len(successful) < len(results):
        logger.warning(
            "Synthesizing %d of %d perspectives (%d failed)",
            len(successful), len(results), len(results) - len(successful),
        )

    system = resolve_prompt("chorusSynthesizer", N=len(successful))
    user = build_synthesis_message(prompt, instructions, successful)
    model_obj = llm.chat_model(model, mock=lambda: mock_synthesis_model(prompt, len(successful)))

    try:
        text, cost = llm.invoke_text(model_obj, model, system, user)
    except Exception as e:
        raise StageError("synthesize", f"Synthesis call failed: {e}", e) from e

    logger.info("Synthesis: %d chars, $%.4f", len(text), cost.usd)
    return Synthesis(text=text or NO_SYNTHESIS, model=Config.resolve_model(model), cost=cost)
