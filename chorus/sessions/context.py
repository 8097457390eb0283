"""
Render a session's history as plain text for the next turn's prompts.
"""
from .schema import Session, Turn


def _response_label(turn: Turn) -> str:
    if turn.turn_type == "interrogation":
        return "INTERROGATION RESPONSE"
    if turn.prompt_name:
        return f"RESPONSE ({turn.prompt_name})"
    return "RESPONSE"


def build_session_context(session: Session) -> str:
    """
    Flatten all prior turns into a context block.

    Chorus turns contribute their numbered perspectives and synthesis;
    single-call and interrogation turns contribute their response.
    """
    lines = [f"=== PRIOR RESEARCH SESSION: {session.session_name} ===", ""]

    for turn in session.turns:
        lines.append(f"--- Turn {turn.turn_number} ---")
        lines.append(f"PROMPT: {turn.prompt}")
        lines.append("")

        if turn.turn_type in ("singleCall", "interrogation"):
            lines.append(f"{_response_label(turn)}: {turn.response or ''}")
            lines.append("")
            continue

        if turn.perspectives:
            lines.append("PERSPECTIVES:")
            for idx, p in enumerate(turn.perspectives, 1):
                lines.append(f"{idx}. [{p.perspective}]: {p.findings}")
            lines.append("")

        if turn.synthesis and turn.synthesis.text:
            lines.append(f"SYNTHESIS: {turn.synthesis.text}")
            lines.append("")

    return "\n".join(lines)
