"""
Setup script for the Financial Insight Engine configuration.
"""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Optional

from .config import DEFAULT_CONFIG, _get_config_path, _merge, reload_config


def build_config(
    existing: Optional[Dict[str, Any]],
    api_key: Optional[str] = None,
    external_timeout: Optional[float] = None,
) -> Dict[str, Any]:
    """Merge user answers into an existing config, keeping anything already set."""
    config = _merge({"openai": {}, "settings": {}}, existing or {})
    if api_key:
        config["openai"]["api_key"] = api_key
    config["openai"].setdefault("model", DEFAULT_CONFIG["openai"]["model"])
    config["settings"]["llm_enabled"] = bool(config["openai"].get("api_key"))
    if external_timeout is not None:
        config["settings"]["external_timeout"] = external_timeout
    config["settings"].setdefault("external_timeout", DEFAULT_CONFIG["settings"]["external_timeout"])
    return config


def read_config(config_path: Path) -> Dict[str, Any]:
    if not config_path.exists():
        return {}
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            return json.load(f)
    except json.JSONDecodeError:
        print(f"Warning: Invalid JSON in {config_path}, creating new config")
        return {}


def write_config(config_path: Path, config: Dict[str, Any]) -> None:
    with open(config_path, "w", encoding="utf-8") as f:
        json.dump(config, f, indent=2)
    reload_config()


def setup_config() -> bool:
    """Interactive setup for API configuration."""
    config_path = _get_config_path()

    print("=== Financial Insight Engine Setup ===")
    print()
    existing = read_config(config_path)
    if existing:
        print(f"Found existing config at: {config_path}")
    else:
        print(f"Creating new config at: {config_path}")

    current_key = existing.get("openai", {}).get("api_key", "")
    if current_key:
        print(f"Current OpenAI API key: {current_key[:10]}...")

    print("\nEnter your OpenAI API key (or press Enter to skip):")
    print("You can get one at: https://platform.openai.com/api-keys")
    new_key = input("API Key: ").strip()
    if not new_key and not current_key:
        print("! No API key set - answers will come from the local engine only")

    raw_timeout = input("External answer timeout in seconds [30]: ").strip()
    try:
        timeout = float(raw_timeout) if raw_timeout else None
    except ValueError:
        print(f"! Ignoring invalid timeout: {raw_timeout}")
        timeout = None

    try:
        write_config(config_path, build_config(existing, new_key or None, timeout))
    except IOError as e:
        print(f"Error saving config: {e}")
        return False
    print(f"\n✓ Configuration saved to: {config_path}")
    return True


def main() -> None:
    setup_config()


if __name__ == "__main__":
    main()
