"""
Configuration for the Bertrand arena: LLM providers, game defaults and
runtime settings. Everything can be overridden from the environment.
"""

import os


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    return int(value) if value else default


def _env_float(name: str, default: float) -> float:
    value = os.environ.get(name)
    return float(value) if value else default


# API Keys - load from environment variables
API_KEYS = {
    "anthropic": os.environ.get("ANTHROPIC_API_KEY", ""),
    "openai": os.environ.get("OPENAI_API_KEY", ""),
    "gemini": os.environ.get("GEMINI_API_KEY", ""),
}

# Bot bidder models: model_id -> (provider, actual_model_name)
MODELS = {
    "claude-4.5-sonnet": ("anthropic", "claude-sonnet-4-5-20250929"),
    "gpt-5": ("openai", "gpt-5"),
    "gpt-5.1": ("openai", "gpt-5.1"),
    "gemini-2.5-pro": ("gemini", "gemini-2.5-pro"),
    "gemini-2.5-flash": ("gemini", "gemini-2.5-flash"),
}

LLM_MAX_TOKENS = _env_int("BERTRAND_LLM_MAX_TOKENS", 4000)
LLM_TIMEOUT_SECONDS = _env_float("BERTRAND_LLM_TIMEOUT", 60.0)

# Defaults offered when an admin creates a session
GAME_CONFIG_DEFAULTS = {
    "total_rounds": _env_int("BERTRAND_TOTAL_ROUNDS", 3),
    "round_time_limit": _env_int("BERTRAND_ROUND_TIME_LIMIT", 300),
    "min_bid": _env_float("BERTRAND_MIN_BID", 1),
    "max_bid": _env_float("BERTRAND_MAX_BID", 200),
    "cost_per_unit": _env_float("BERTRAND_COST_PER_UNIT", 25),
    "max_players": _env_int("BERTRAND_MAX_PLAYERS", 10),
}

# Bounds an admin-created session config must fit: field -> (low, high)
SESSION_LIMITS = {
    "total_rounds": (1, 10),
    "round_time_limit": (30, 600),
    "min_bid": (1, None),
    "max_bid": (None, 1000),
    "cost_per_unit": (0, 100),
    "max_players": (2, 20),
}

AUTOPILOT_INTERVAL_SECONDS = _env_float("BERTRAND_AUTOPILOT_INTERVAL", 300.0)
AUTOPILOT_LOG_RETENTION_DAYS = _env_int("BERTRAND_LOG_RETENTION_DAYS", 30)

LOG_LEVEL = os.environ.get("BERTRAND_LOG_LEVEL", "INFO")


def get_model_info(model_id: str) -> tuple:
    """Get provider and model name for a model ID."""
    if model_id not in MODELS:
        raise ValueError(f"Unknown model: {model_id}")
    return MODELS[model_id]


def get_api_key(provider: str) -> str:
    """Get API key for a provider."""
    if provider not in API_KEYS:
        raise ValueError(f"Unknown provider: {provider}")
    return API_KEYS[provider]
