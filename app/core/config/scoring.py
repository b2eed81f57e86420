from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

_POLICY_CACHE: dict[str, Any] | None = None
_POLICY_PATH = Path(__file__).resolve().parents[3] / "config" / "scoring.yaml"


def get_scoring_config() -> dict[str, Any]:
    """Load the ATS scoring policy from config/scoring.yaml once per process."""
    global _POLICY_CACHE

    if _POLICY_CACHE is not None:
        return _POLICY_CACHE

    try:
        raw = _POLICY_PATH.read_text(encoding="utf-8")
    except OSError as exc:
        raise RuntimeError(f"Scoring policy not readable at '{_POLICY_PATH}': {exc}") from exc

    try:
        parsed = yaml.safe_load(raw)
    except yaml.YAMLError as exc:
        raise RuntimeError(f"Invalid YAML in scoring policy '{_POLICY_PATH}': {exc}") from exc

    if not isinstance(parsed, dict):
        raise RuntimeError(f"Invalid scoring policy '{_POLICY_PATH}': expected a top-level mapping.")

    _POLICY_CACHE = parsed
    return _POLICY_CACHE


def get_scoring_value(path: str, default: Any = None) -> Any:
    """Resolve a dotted path such as 'structure.points.experience'."""
    if not path:
        return default

    current: Any = get_scoring_config()
    for key in path.split("."):
        if not isinstance(current, dict) or key not in current:
            return default
        current = current[key]
    return current


def get_scoring_list(path: str) -> tuple[str, ...]:
    value = get_scoring_value(path, [])
    if not isinstance(value, list):
        return ()
    return tuple(str(item).strip().lower() for item in value if str(item).strip())
