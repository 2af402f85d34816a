from __future__ import annotations

import copy
import json
import logging
import os
from pathlib import Path
from typing import Dict, Any, List, Optional

logger = logging.getLogger(__name__)

_CONFIG_CACHE: Optional[Dict[str, Any]] = None

DEFAULT_CONFIG: Dict[str, Any] = {
    "openai": {
        "api_key": "",
        "model": "gpt-4o-mini"
    },
    "settings": {
        "llm_enabled": True,
        "external_timeout": 30
    },
    "relevance": {
        # Boilerplate the remote assistant emits when it has nothing useful to say
        "generic_phrases": [
            "enhanced AI service is not available",
            "I received your message",
            "but I'm here to help with basic financial guidance",
            "I apologize, but I cannot",
            "I am not able to",
            "I cannot provide",
            "I am a financial assistant",
            "I can help you with",
        ],
        "stop_words": ["what", "when", "where", "which", "whose", "about"],
        "min_length": 20,
        "min_relevant_length": 50
    },
    "analysis": {
        "recent_window_days": 30,
        "subscription_keywords": [
            "netflix", "spotify", "amazon", "apple", "google",
            "microsoft", "adobe", "subscription", "monthly", "annual",
        ],
        "emergency_fund_target_months": 6
    },
    "retry": {
        "base_delay": 1.0,
        "max_delay": 10.0
    }
}


def _get_config_path() -> Path:
    """Get the path to the config file, checking multiple locations."""
    env_path = os.getenv("INSIGHT_ENGINE_CONFIG")
    if env_path:
        return Path(env_path)
    current_dir = Path(__file__).parent
    for path in [current_dir, current_dir.parent]:
        config_file = path / "config.json"
        if config_file.exists():
            return config_file

    # If not found, return the expected path in the api directory
    return current_dir.parent / "config.json"


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    out = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(out.get(key), dict):
            out[key] = _merge(out[key], value)
        else:
            out[key] = value
    return out


def load_config() -> Dict[str, Any]:
    """Load configuration from config.json, layered over the defaults."""
    global _CONFIG_CACHE

    if _CONFIG_CACHE is not None:
        return _CONFIG_CACHE

    config_path = _get_config_path()

    if not config_path.exists():
        _CONFIG_CACHE = copy.deepcopy(DEFAULT_CONFIG)
        return _CONFIG_CACHE

    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            _CONFIG_CACHE = _merge(DEFAULT_CONFIG, json.load(f))
        return _CONFIG_CACHE
    except (json.JSONDecodeError, IOError) as e:
        logger.warning("Failed to load config from %s: %s", config_path, e)
        _CONFIG_CACHE = copy.deepcopy(DEFAULT_CONFIG)
        return _CONFIG_CACHE


def get_openai_api_key() -> Optional[str]:
    """Get OpenAI API key from config, fallback to environment variable."""
    config = load_config()

    api_key = config.get("openai", {}).get("api_key", "").strip()
    if api_key:
        return api_key

    env_key = os.getenv("OPENAI_API_KEY", "").strip()
    if env_key:
        return env_key

    return None


def get_openai_model() -> str:
    config = load_config()
    return config.get("openai", {}).get("model", "gpt-4o-mini")


def is_llm_enabled() -> bool:
    config = load_config()
    return bool(config.get("settings", {}).get("llm_enabled", True))


def get_external_timeout() -> float:
    config = load_config()
    return float(config.get("settings", {}).get("external_timeout", 30))


def get_generic_phrases() -> List[str]:
    return list(load_config()["relevance"]["generic_phrases"])


def get_stop_words() -> List[str]:
    return list(load_config()["relevance"]["stop_words"])


def get_relevance_lengths() -> Dict[str, int]:
    rel = load_config()["relevance"]
    return {"min_length": int(rel["min_length"]), "min_relevant_length": int(rel["min_relevant_length"])}


def get_subscription_keywords() -> List[str]:
    return [k.lower() for k in load_config()["analysis"]["subscription_keywords"]]


def get_recent_window_days() -> int:
    return int(load_config()["analysis"]["recent_window_days"])


def get_emergency_fund_target_months() -> int:
    return int(load_config()["analysis"]["emergency_fund_target_months"])


def get_retry_delays() -> Dict[str, float]:
    retry = load_config()["retry"]
    return {"base_delay": float(retry["base_delay"]), "max_delay": float(retry["max_delay"])}


def reload_config():
    """Force reload of configuration from file."""
    global _CONFIG_CACHE
    _CONFIG_CACHE = None
    return load_config()
