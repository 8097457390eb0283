"""
Per-model token pricing.
"""
from chorus.config import Config
from chorus.errors import UnknownModelError


def validate_model(name: str) -> str:
    """Resolve a model name and make sure it has a price. Returns the identifier."""
    resolved = Config.resolve_model(name)
    if resolved not in Config.MODEL_PRICING:
        known = ", ".join(sorted(set(Config.MODEL_ALIASES) | set(Config.MODEL_PRICING)))
        raise UnknownModelError(f'Unknown model "{name}". Known models: {known}')
    return resolved


def estimate_usd(model: str, input_tokens: int, output_tokens: int) -> float:
    """USD cost of one call. Unknown models raise instead of being priced at a default."""
    input_rate, output_rate = Config.MODEL_PRICING[validate_model(model)]
    return (input_tokens / 1_000_000) * input_rate + (output_tokens / 1_000_000) * output_rate
