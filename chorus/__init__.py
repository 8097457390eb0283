"""
Chorus

Multi-perspective research: expand one question into independent lines of
analysis, run them in parallel, and synthesize the results. Long studies are
submitted as background jobs and polled for completion.

Usage:
    # CLI
    chorus --perspectives 5 --summarize "Should we adopt a four-day week?"

    # Server (submit/poll API + worker pool)
    chorus-server

    # Programmatic
    from chorus import RunOptions, run_turn
    outcome = run_turn(RunOptions(prompt="...", perspectives=3))
"""
from .orchestrator import RunOptions, run_turn
from .sessions import SessionStore

__version__ = "1.0.0"

__all__ = ["RunOptions", "run_turn", "SessionStore"]
