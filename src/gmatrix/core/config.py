"""Tunable parameters for voting, ranking, image intake and storage."""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml

ENV_PREFIX = "GMATRIX_"


@dataclass
class Settings:
    """
    Application configuration.

    Defaults match the production deployment. Override with a YAML file
    (see load_settings) or GMATRIX_* environment variables.
    """

    environment: str = "production"
    """'production' hides permission error details from users; 'development' shows them."""

    database_path: str = "gmatrix.duckdb"

    vision_model: str = "gpt-4o-mini"
    vision_api_key: Optional[str] = None
    vision_timeout_seconds: float = 20.0

    max_image_bytes: int = 5 * 1024 * 1024
    allowed_image_types: tuple[str, ...] = ("jpeg", "jpg", "png", "webp")

    transaction_max_attempts: int = 5

    registered_vote_weight: float = 2.0
    """A registered user's vote counts as this many anonymous votes in weighted recalculation."""

    anonymous_vote_weight: float = 1.0
    time_decay_factor_per_year: float = 0.9
    """final_weight = base_weight * factor ** years_since_vote. 1.0 disables decay."""

    time_decay_minimum_weight: float = 0.1

    quadrant_safety_threshold: float = 50.0
    quadrant_taste_threshold: float = 50.0
    rating_thresholds: dict[str, float] = field(
        default_factory=lambda: {"excellent": 75.0, "good": 50.0, "fair": 25.0}
    )

    near_me_radius_km: float = 10.0
    similar_name_threshold: int = 85

    @property
    def debug(self) -> bool:
        return self.environment == "development"


_ENV_OVERRIDES = {
    "GMATRIX_ENV": "environment",
    "GMATRIX_DB": "database_path",
    "GMATRIX_VISION_MODEL": "vision_model",
    "GMATRIX_VISION_TIMEOUT": "vision_timeout_seconds",
    "OPENAI_API_KEY": "vision_api_key",
}


def _coerce(name: str, value: Any) -> Any:
    default = getattr(Settings(), name)
    if isinstance(default, bool):
        return str(value).lower() in ("1", "true", "yes")
    if isinstance(default, int):
        return int(value)
    if isinstance(default, float):
        return float(value)
    if isinstance(default, tuple):
        if isinstance(value, str):
            return tuple(part.strip().lower() for part in value.split(",") if part.strip())
        return tuple(value)
    return value


def _load_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file must contain a mapping: {path}")
    return data


def load_settings(
    path: str | Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> Settings:
    """
    Build Settings from defaults, then a YAML file, then environment variables.

    Args:
        path: YAML config file. Falls back to $GMATRIX_CONFIG when omitted.
        environ: Environment mapping (defaults to os.environ).

    Returns:
        Resolved Settings

    Raises:
        ValueError: If the file names an unknown setting
    """
    env = os.environ if environ is None else environ
    known = {f.name for f in fields(Settings)}
    values: dict[str, Any] = {}

    config_path = path or env.get(f"{ENV_PREFIX}CONFIG")
    if config_path:
        for key, value in _load_yaml(Path(config_path)).items():
            if key not in known:
                raise ValueError(f"Unknown setting in {config_path}: {key}")
            values[key] = _coerce(key, value)

    for env_name, attr in _ENV_OVERRIDES.items():
        if env.get(env_name):
            values[attr] = _coerce(attr, env[env_name])

    return Settings(**values)
