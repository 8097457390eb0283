"""
Chorus - Main Entry Point

Usage:
    # Single call (no perspectives)
    chorus "What are the tradeoffs of event sourcing?"

    # Five perspectives with a synthesis
    chorus --perspectives 5 --summarize "Should we adopt a four-day week?"

    # Preview the expansion only
    chorus --perspectives 5 --dry-run "..."

    # Continue a session
    chorus --resume-session amber_ridge --interrogate "Expand on the economic impacts"

    # Sessions
    chorus --list-sessions
    chorus --view-session amber_ridge
    chorus --rename-session amber_ridge --session-name four_day_week
    chorus --delete-session amber_ridge
"""
import argparse
import json
import os
import sys
from pathlib import Path
from typing import Optional

from chorus.agents.pricing import validate_model
from chorus.config import Config
from chorus.errors import ChorusError, SessionExistsError
from chorus.jobs.services import Services
from chorus.logging_config import setup_logging
from chorus.orchestrator import RunOptions, build_turn, format_json, format_text, run_turn
from chorus.sessions.context import build_session_context


BANNER = """
╔══════════════════════════════════════════════════════════════╗
║           CHORUS RESEARCH                                    ║
║                                                              ║
║   One question, many independent perspectives.               ║
╚══════════════════════════════════════════════════════════════╝
"""

# Flags a resumed session can restore: argparse dest -> settings key
RESTORABLE = {
    "perspectives": "perspectives",
    "summarize": "summarize",
    "model": "model",
    "expand_model": "expandModel",
    "serial_fan_out": "serialFanOut",
    "tools": "useTools",
    "prompt_name": "promptName",
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="chorus",
        description="Multi-perspective research from the command line",
    )
    parser.add_argument("prompt", nargs="*", help="Research question")

    run = parser.add_argument_group("run")
    run.add_argument("--perspectives", "-n", type=int, default=None,
                     help=f"Number of perspectives (0 = single call, max {Config.MAX_PERSPECTIVES})")
    run.add_argument("--summarize", action="store_true", default=None,
                     help="Synthesize across perspectives")
    run.add_argument("--serial-fan-out", action="store_true", default=None,
                     help="Run perspectives one at a time")
    run.add_argument("--dry-run", action="store_true", help="Show the expansion only")
    run.add_argument("--model", default=None, help=f"Agent model (default: {Config.AGENT_MODEL})")
    run.add_argument("--expand-model", default=None,
                     help=f"Expansion/synthesis model (default: {Config.EXPAND_MODEL})")
    run.add_argument("--tools", action="store_true", default=None,
                     help=f"Let agents read documents under {Config.DOCS_DIR}")
    run.add_argument("--interrogate", action="store_true",
                     help="Question the prior findings of a resumed session")
    run.add_argument("--prompt-name", default=None, help="System prompt for single-call mode")
    run.add_argument("--json", action="store_true", help="Print the structured result")
    run.add_argument("--mock", action="store_true", help="Canned model responses, no API calls")
    run.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    sessions = parser.add_argument_group("sessions")
    sessions.add_argument("--no-save", action="store_true", help="Do not save this turn")
    sessions.add_argument("--session-name", default=None, help="Name for a new session")
    sessions.add_argument("--resume-session", default=None, metavar="NAME",
                          help="Continue an existing session")
    sessions.add_argument("--restore-settings", action="store_true",
                          help="Reuse the resumed session's original settings")
    sessions.add_argument("--list-sessions", action="store_true")
    sessions.add_argument("--view-session", default=None, metavar="NAME")
    sessions.add_argument("--delete-session", default=None, metavar="NAME")
    sessions.add_argument("--rename-session", default=None, metavar="OLD",
                          help="Rename OLD to --session-name")
    parser.add_argument("--data-dir", type=Path, default=None,
                        help=f"Data directory (default: {Config.DATA_DIR})")
    return parser


# ─────────────────────────────────────────────────────────────
# Session commands
# ─────────────────────────────────────────────────────────────

def list_sessions(services: Services) -> None:
    sessions = services.store.list_sessions()
    if not sessions:
        print("No saved sessions.")
        return
    print(f"\n📚 {len(sessions)} session(s):\n")
    for s in sessions:
        flag = "  ⚠️ error" if s.status == "error" else ""
        print(f"  {s.name:<32} {s.turn_count:>3} turn(s)  {s.updated_at[:19]}{flag}")
        print(f"      {s.prompt_preview}")
    print()


def view_session(services: Services, name: str) -> None:
    session = services.store.load(name)
    print("\n" + "=" * 60)
    print(f"Session: {session.session_name}")
    print("=" * 60)
    print(f"  Created: {session.created_at}")
    print(f"  Updated: {session.updated_at}")
    print(f"  Turns:   {len(session.turns)}")
    print(f"  Cost:    ${session.total_cost.usd:.4f}")
    if session.error:
        turn = f" (turn {session.error.turn_number})" if session.error.turn_number else ""
        print(f"  ❌ Error{turn}: {session.error.message}")

    for turn in session.turns:
        label = {"chorus": "Chorus", "singleCall": "Single call", "interrogation": "Interrogation"}[turn.turn_type]
        print(f"\n--- Turn {turn.turn_number} ({label}, ${turn.total_cost.usd:.4f}, {turn.elapsed_seconds:.1f}s) ---")
        print(f"PROMPT: {turn.prompt}")
        if turn.response is not None:
            print(f"\n{turn.response}")
        for p in turn.perspectives or []:
            print(f"\n  [{p.id}] {p.perspective}")
            print(f"      {p.findings[:200]}{'...' if len(p.findings) > 200 else ''}")
        if turn.synthesis:
            print(f"\nSYNTHESIS:\n{turn.synthesis.text}")
    print()


def delete_session(services: Services, name: str) -> None:
    with services.registry.hold(name, holder=f"cli-{os.getpid()}"):
        services.store.delete(name)
    print(f"🗑️  Deleted session: {name}")


def rename_session(services: Services, old: str, new: Optional[str]) -> None:
    if not new:
        raise ChorusError("--rename-session requires --session-name NEW")
    holder = f"cli-{os.getpid()}"
    with services.registry.hold(old, holder), services.registry.hold(new, holder):
        services.store.rename(old, new)
    print(f"✓ Renamed {old} → {new}")


# ─────────────────────────────────────────────────────────────
# Run
# ─────────────────────────────────────────────────────────────

def build_options(args: argparse.Namespace, prompt: str, restored: dict) -> RunOptions:
    """Explicit flags win, then restored session settings, then defaults."""
    def pick(dest, default):
        value = getattr(args, dest)
        if value is not None:
            return value
        key = RESTORABLE.get(dest)
        if key and restored.get(key) is not None:
            return restored[key]
        return default

    return RunOptions(
        prompt=prompt,
        perspectives=pick("perspectives", 0),
        summarize=pick("summarize", False),
        model=pick("model", Config.AGENT_MODEL),
        expand_model=pick("expand_model", Config.EXPAND_MODEL),
        dry_run=args.dry_run,
        serial_fan_out=pick("serial_fan_out", False),
        use_tools=pick("tools", False),
        interrogate=args.interrogate,
        prompt_name=pick("prompt_name", None),
    )


def run_prompt(services: Services, args: argparse.Namespace) -> None:
    prompt = " ".join(args.prompt).strip()
    if not prompt:
        raise ChorusError("No prompt given. Try: chorus --help")

    store = services.store
    context = None
    restored: dict = {}
    next_turn = 1

    if args.resume_session:
        session = store.load(args.resume_session)
        session_name = session.session_name
        next_turn = len(session.turns) + 1
        context = build_session_context(session) if session.turns else None
        if args.restore_settings:
            restored = session.settings
            print(f"♻️  Restored settings from {session_name}: {restored}")
    elif args.session_name:
        session_name = args.session_name
        if store.exists(session_name):
            raise SessionExistsError(session_name)
    else:
        session_name = store.generate_name()

    options = build_options(args, prompt, restored)
    validate_model(options.model)
    if options.perspectives > 0:
        validate_model(options.expand_model)

    save = not args.no_save
    if not args.json:
        print(BANNER)
        mode = f"{options.perspectives} perspectives" if options.perspectives else "single call"
        print(f"🎯 {mode}  |  model: {Config.resolve_model(options.model)}"
              + (f"  |  session: {session_name}" if save else ""))
        if context:
            print(f"📜 Resuming with {len(context)} chars of session context")

    if save:
        with services.registry.hold(session_name, holder=f"cli-{os.getpid()}"):
            outcome = run_turn(options, context)
            session = store.append_turn(session_name, build_turn(outcome, next_turn), settings=options.settings())
    else:
        outcome = run_turn(options, context)
        session = None

    if args.json:
        output = format_json(outcome)
        if session is not None:
            output["sessionName"] = session.session_name
            output["turnNumber"] = len(session.turns)
        print(json.dumps(output, indent=2, ensure_ascii=False))
        return

    print(format_text(outcome))
    if session is not None:
        print(f"\n💾 Session saved: {session.session_name} (turn {len(session.turns)})")
        print(f"   To continue: chorus --resume-session {session.session_name} \"...\"")


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose or Config.DEBUG)
    if args.mock:
        Config.MOCK_API = True

    services = Services.from_config(args.data_dir)

    try:
        if args.list_sessions:
            list_sessions(services)
        elif args.view_session:
            view_session(services, args.view_session)
        elif args.delete_session:
            delete_session(services, args.delete_session)
        elif args.rename_session:
            rename_session(services, args.rename_session, args.session_name)
        else:
            run_prompt(services, args)
    except ChorusError as e:
        print(f"❌ {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\n\n🛑 Interrupted. Nothing was saved for this turn.", file=sys.stderr)
        return 130
    return 0


if __name__ == "__main__":
    sys.exit(main())
