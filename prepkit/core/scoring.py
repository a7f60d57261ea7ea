from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

_SCORING_CONFIG_CACHE: dict[str, Any] | None = None
_SCORING_CONFIG_PATH = Path(__file__).resolve().parents[2] / "config" / "scoring.yaml"


def get_scoring_config() -> dict[str, Any]:
    """Load scoring config from repo-level config/scoring.yaml and cache it."""
    global _SCORING_CONFIG_CACHE

    if _SCORING_CONFIG_CACHE is not None:
        return _SCORING_CONFIG_CACHE

    if not _SCORING_CONFIG_PATH.exists():
        raise RuntimeError(
            f"Scoring config not found at '{_SCORING_CONFIG_PATH}'. "
            "Expected file: config/scoring.yaml"
        )

    try:
        raw = _SCORING_CONFIG_PATH.read_text(encoding="utf-8")
    except OSError as exc:
        raise RuntimeError(
            f"Failed to read scoring config '{_SCORING_CONFIG_PATH}': {exc}"
        ) from exc

    try:
        parsed = yaml.safe_load(raw)
    except yaml.YAMLError as exc:
        raise RuntimeError(
            f"Invalid YAML in scoring config '{_SCORING_CONFIG_PATH}': {exc}"
        ) from exc

    if not isinstance(parsed, dict):
        raise RuntimeError(
            f"Invalid scoring config '{_SCORING_CONFIG_PATH}': expected a top-level mapping."
        )

    validate_scoring_config(parsed)
    _SCORING_CONFIG_CACHE = parsed
    return _SCORING_CONFIG_CACHE


def validate_scoring_config(config: dict[str, Any]) -> None:
    """Reject configs whose criteria weights or rank bands would skew scores."""
    criteria = (config.get("answer_scoring") or {}).get("criteria") or []
    total = sum(int(item.get("weight", 0)) for item in criteria if isinstance(item, dict))
    if total != 100:
        raise RuntimeError(f"answer_scoring.criteria weights must add up to 100 (got {total}).")

    ranks = (config.get("job_match") or {}).get("ranks") or {}
    covered: set[int] = set()
    for name, band in ranks.items():
        if not isinstance(band, dict) or "min" not in band or "max" not in band:
            raise RuntimeError(f"job_match.ranks.{name} needs min and max.")
        band_range = set(range(int(band["min"]), int(band["max"]) + 1))
        if covered & band_range:
            raise RuntimeError(f"job_match.ranks.{name} overlaps another rank.")
        covered |= band_range
    if covered != set(range(0, 101)):
        raise RuntimeError("job_match.ranks must cover scores 0 to 100.")

    categories = (config.get("resume_analysis") or {}).get("categories") or {}
    if not categories:
        raise RuntimeError("resume_analysis.categories must not be empty.")


def get_scoring_value(path: str, default: Any = None) -> Any:
    """Get nested config value using dot path notation, e.g. 'job_match.ranks.S.min'."""
    if not path:
        return default

    current: Any = get_scoring_config()
    for key in path.split("."):
        if not isinstance(current, dict):
            return default
        if key not in current:
            return default
        current = current[key]
    return current


def rank_definitions() -> dict[str, dict[str, Any]]:
    ranks = get_scoring_value("job_match.ranks", {}) or {}
    return {str(key): dict(value) for key, value in ranks.items() if isinstance(value, dict)}


def rank_info(rank: str | None) -> dict[str, Any]:
    """Definition for a match rank, falling back to the lowest rank."""
    definitions = rank_definitions()
    info = definitions.get(rank or "") or definitions.get("D") or {}
    return {"rank": rank if rank in definitions else "D", **info}


def grade_for_score(score: int | None) -> str | None:
    if score is None:
        return None
    for rank, definition in rank_definitions().items():
        if int(definition.get("min", 0)) <= score <= int(definition.get("max", 100)):
            return rank
    return "D"
