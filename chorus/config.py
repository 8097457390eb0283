"""
Centralized configuration. Load once, use everywhere.
"""
import os
from pathlib import Path
from dotenv import load_dotenv
from langchain_google_genai import ChatGoogleGenerativeAI

load_dotenv()


def _env_flag(name: str, default: str = "") -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


class Config:
    GEMINI_API_KEY = os.getenv("GEMINI_API_KEY")

    # ─────────────────────────────────────────────────────────────
    # Storage layout (sessions, locks, queue, job logs)
    # ─────────────────────────────────────────────────────────────
    DATA_DIR = Path(os.getenv("CHORUS_DATA_DIR", Path.home() / ".chorus")).expanduser()

    # Documents the research tools are allowed to read
    DOCS_DIR = Path(os.getenv("CHORUS_DOCS_DIR", Path.cwd())).expanduser()

    # ─────────────────────────────────────────────────────────────
    # Models
    # ─────────────────────────────────────────────────────────────
    AGENT_MODEL = os.getenv("CHORUS_AGENT_MODEL", "flash")
    EXPAND_MODEL = os.getenv("CHORUS_EXPAND_MODEL", "pro")

    MODEL_ALIASES = {
        "pro": "gemini-2.5-pro",
        "flash": "gemini-2.5-flash",
        "flash-lite": "gemini-2.5-flash-lite",
        "gemini-3-flash": "gemini-3-flash-preview",
        "gemini-3-pro": "gemini-3-pro-preview",
    }

    # USD per million tokens: (input, output)
    MODEL_PRICING = {
        "gemini-2.5-pro": (1.25, 10.00),
        "gemini-2.5-flash": (0.30, 2.50),
        "gemini-2.5-flash-lite": (0.10, 0.40),
        "gemini-3-flash-preview": (0.50, 3.00),
        "gemini-3-pro-preview": (2.00, 12.00),
    }

    # ─────────────────────────────────────────────────────────────
    # Pipeline limits
    # ─────────────────────────────────────────────────────────────
    MAX_PERSPECTIVES = int(os.getenv("CHORUS_MAX_PERSPECTIVES", "12"))
    MAX_TOOL_ITERATIONS = int(os.getenv("CHORUS_MAX_TOOL_ITERATIONS", "10"))
    SECONDS_PER_PERSPECTIVE = int(os.getenv("CHORUS_SECONDS_PER_PERSPECTIVE", "120"))

    # ─────────────────────────────────────────────────────────────
    # Job execution
    # ─────────────────────────────────────────────────────────────
    WORKERS = int(os.getenv("CHORUS_WORKERS", "2"))
    START_WORKERS = _env_flag("CHORUS_START_WORKERS", "true")

    # A running job's lock expires this long after its last heartbeat
    LOCK_TTL = float(os.getenv("CHORUS_LOCK_TTL", "120"))
    # A queued job's lock (no heartbeat until a worker claims it)
    QUEUED_LOCK_TTL = float(os.getenv("CHORUS_QUEUED_LOCK_TTL", str(24 * 3600)))
    HEARTBEAT_INTERVAL = float(os.getenv("CHORUS_HEARTBEAT_INTERVAL", "15"))

    POLL_ADVICE = "Wait 5 minutes before first check, then every 60 seconds."

    # Canned model responses, no network calls
    MOCK_API = _env_flag("CHORUS_MOCK_API")

    # Debug mode - set DEBUG=1 in env to enable verbose logging
    DEBUG = _env_flag("DEBUG")

    @classmethod
    def resolve_model(cls, name: str) -> str:
        """
        Resolve a model shorthand ("pro", "flash", ...) to its identifier.

        Unknown names are returned unchanged; pricing decides whether they
        are acceptable.
        """
        return cls.MODEL_ALIASES.get(name, name)


def get_model(model_name: str, json_mode: bool = False) -> ChatGoogleGenerativeAI:
    """
    Get a Gemini chat model.

    Args:
        model_name: Shorthand or full model identifier
        json_mode: Ask the model for a bare JSON document (no prose, no fences)
    """
    kwargs = {}
    if json_mode:
        kwargs["response_mime_type"] = "application/json"
    return ChatGoogleGenerativeAI(
        model=Config.resolve_model(model_name),
        google_api_key=Config.GEMINI_API_KEY,
        temperature=0,
        **kwargs,
    )
