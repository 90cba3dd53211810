"""Load, validate, and hot-reload the TrackerPro scoring configuration.

The config lives in ``scoring_config.yaml`` alongside this module.  At
startup it is loaded once and cached.  Call ``reload_scoring_config()`` to
re-read from disk after an edit — no restart required.

Usage::

    from src.training.config_loader import get_scoring_config

    config = get_scoring_config()
    config.ideal_body_fat("female")        # 25.0
    config.execution.superset_rest_seconds # 30
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path

import yaml

logger = logging.getLogger("trackerpro.training.config")

# Path to the YAML file sitting next to this module
_CONFIG_PATH = Path(__file__).parent / "scoring_config.yaml"

_GENDERS = ("male", "female", "other")
_BONUS_SOURCES = ("primary_average", "secondary_average", "balance_average", "consistency", "progression")

_DEFAULT_CATEGORIES = [
    {"name": "elite", "label": "Elite", "minimum": 900, "color": "purple"},
    {"name": "excellent", "label": "Excellent", "minimum": 800, "color": "green"},
    {"name": "good", "label": "Good", "minimum": 700, "color": "blue"},
    {"name": "fair", "label": "Fair", "minimum": 600, "color": "yellow"},
    {"name": "developing", "label": "Developing", "minimum": 500, "color": "orange"},
    {"name": "needs_work", "label": "Needs Work", "minimum": 0, "color": "red"},
]


# ---------------------------------------------------------------------------
# Typed config sections
# ---------------------------------------------------------------------------


@dataclass
class BodyCompositionConfig:
    ideal_body_fat_pct: dict[str, float]
    body_fat_penalty: float
    ideal_bmi: float
    bmi_penalty: float


@dataclass
class MuscleBalanceConfig:
    ideal_ratio: dict[str, float]
    ratio_penalty: float


@dataclass
class SessionScoringConfig:
    """Parameters for the session-history sub-scores."""

    consistency_window_days: int
    consistency_target_sessions: int
    strength_volume_target: float
    progression_min_sessions: int
    progression_multiplier: float
    progression_baseline: float


@dataclass
class TrendWindow:
    """Session-count thresholds for one trend indicator."""

    window_days: int
    improving_min: int
    maintaining_min: int


@dataclass
class ScoreBonus:
    """Flat bonus added to the overall score when ``source`` exceeds ``threshold``."""

    source: str
    threshold: float
    points: float


@dataclass
class OverallConfig:
    primary_weight: float
    secondary_weight: float
    balance_weight: float
    scale: float
    max_score: float
    bonuses: list[ScoreBonus] = field(default_factory=list)

    @property
    def total_weight(self) -> float:
        return self.primary_weight + self.secondary_weight + self.balance_weight


@dataclass
class ScoreBand:
    name: str
    label: str
    minimum: float
    color: str


@dataclass
class ExecutionConfig:
    """Rest timing for the session execution engine."""

    superset_rest_seconds: int
    exercise_rest_seconds: int
    tick_seconds: float


@dataclass
class IntensityConfig:
    """Session intensity blend: weights and the volume and duration that count as full effort."""

    rpe_weight: float
    volume_weight: float
    duration_weight: float
    volume_target: float
    duration_target_seconds: float
    default_rpe: float


@dataclass
class ScoringConfig:
    """Complete, validated scoring configuration.

    The single in-memory representation of scoring_config.yaml.  The
    scoring engine and the session engine both read from this object.
    """

    version: str
    body_composition: BodyCompositionConfig
    muscle_balance: MuscleBalanceConfig
    sessions: SessionScoringConfig
    lifestyle_window_days: int
    trends: dict[str, TrendWindow]
    overall: OverallConfig
    categories: list[ScoreBand]
    execution: ExecutionConfig
    intensity: IntensityConfig
    _raw: dict = field(default_factory=dict, repr=False)

    def ideal_body_fat(self, gender: str) -> float:
        table = self.body_composition.ideal_body_fat_pct
        return table.get(gender, table["male"])

    def ideal_muscle_ratio(self, gender: str) -> float:
        table = self.muscle_balance.ideal_ratio
        return table.get(gender, table["other"])

    def trend_window(self, name: str) -> TrendWindow:
        return self.trends[name]


# ---------------------------------------------------------------------------
# Loader / validation
# ---------------------------------------------------------------------------


class ConfigValidationError(ValueError):
    """Raised when scoring_config.yaml fails validation."""


def _load_yaml(path: Path) -> dict:
    """Read and parse a YAML file.

    Raises:
        FileNotFoundError: If the file does not exist.
        ConfigValidationError: If the YAML is malformed.
    """
    if not path.exists():
        raise FileNotFoundError(f"Scoring config not found: {path}")

    with path.open("r", encoding="utf-8") as fh:
        try:
            return yaml.safe_load(fh) or {}
        except yaml.YAMLError as exc:
            raise ConfigValidationError(f"YAML parse error in {path}: {exc}") from exc


def _validate_and_build(raw: dict) -> ScoringConfig:
    """Validate the raw YAML dict and construct a ScoringConfig.

    Missing sections fall back to the built-in defaults; present values are
    type- and range-checked.  All problems are collected and reported in a
    single ConfigValidationError.
    """
    errors: list[str] = []

    def _number(section: dict, key: str, default: float, path: str, minimum: float | None = 0.0) -> float:
        value = section.get(key, default)
        try:
            number = float(value)
        except (TypeError, ValueError):
            errors.append(f"{path}.{key} must be a number, got {value!r}")
            return float(default)
        if minimum is not None and number < minimum:
            errors.append(f"{path}.{key} = {number} must be >= {minimum}")
        return number

    def _per_gender(section: dict, key: str, defaults: dict[str, float], path: str) -> dict[str, float]:
        table_raw = section.get(key, defaults)
        if not isinstance(table_raw, dict):
            errors.append(f"{path}.{key} must be a mapping of gender→value")
            return dict(defaults)
        table = {g: _number(table_raw, g, defaults[g], f"{path}.{key}") for g in _GENDERS}
        unknown = set(table_raw) - set(_GENDERS)
        if unknown:
            errors.append(f"{path}.{key} has unknown genders: {sorted(unknown)}")
        return table

    version = str(raw.get("version", "1.0"))

    # ── Body composition ──
    bc_raw = raw.get("body_composition") or {}
    body_composition = BodyCompositionConfig(
        ideal_body_fat_pct=_per_gender(
            bc_raw, "ideal_body_fat_pct", {"male": 15.0, "female": 25.0, "other": 15.0}, "body_composition"
        ),
        body_fat_penalty=_number(bc_raw, "body_fat_penalty", 3.0, "body_composition"),
        ideal_bmi=_number(bc_raw, "ideal_bmi", 22.5, "body_composition"),
        bmi_penalty=_number(bc_raw, "bmi_penalty", 5.0, "body_composition"),
    )

    # ── Muscle balance ──
    mb_raw = raw.get("muscle_balance") or {}
    muscle_balance = MuscleBalanceConfig(
        ideal_ratio=_per_gender(
            mb_raw, "ideal_ratio", {"male": 0.45, "female": 0.36, "other": 0.36}, "muscle_balance"
        ),
        ratio_penalty=_number(mb_raw, "ratio_penalty", 200.0, "muscle_balance"),
    )

    # ── Session history ──
    s_raw = raw.get("sessions") or {}
    sessions = SessionScoringConfig(
        consistency_window_days=int(_number(s_raw, "consistency_window_days", 28, "sessions")),
        consistency_target_sessions=int(_number(s_raw, "consistency_target_sessions", 12, "sessions")),
        strength_volume_target=_number(s_raw, "strength_volume_target", 5000, "sessions"),
        progression_min_sessions=int(_number(s_raw, "progression_min_sessions", 2, "sessions")),
        progression_multiplier=_number(s_raw, "progression_multiplier", 10, "sessions"),
        progression_baseline=_number(s_raw, "progression_baseline", 50, "sessions"),
    )
    if sessions.consistency_target_sessions <= 0:
        errors.append("sessions.consistency_target_sessions must be > 0")
    if sessions.strength_volume_target <= 0:
        errors.append("sessions.strength_volume_target must be > 0")
    if sessions.progression_min_sessions < 2:
        errors.append("sessions.progression_min_sessions must be >= 2")

    ls_raw = raw.get("lifestyle") or {}
    lifestyle_window_days = int(_number(ls_raw, "window_days", 7, "lifestyle"))

    # ── Trends ──
    trend_defaults = {
        "weekly": (7, 3, 2),
        "monthly": (30, 12, 8),
        "quarterly": (90, 36, 24),
    }
    tr_raw = raw.get("trends") or {}
    trends: dict[str, TrendWindow] = {}
    for name, (days, improving, maintaining) in trend_defaults.items():
        section = tr_raw.get(name) or {}
        if not isinstance(section, dict):
            errors.append(f"trends.{name} must be a mapping")
            section = {}
        window = TrendWindow(
            window_days=int(_number(section, "window_days", days, f"trends.{name}")),
            improving_min=int(_number(section, "improving_min", improving, f"trends.{name}")),
            maintaining_min=int(_number(section, "maintaining_min", maintaining, f"trends.{name}")),
        )
        if window.improving_min < window.maintaining_min:
            errors.append(
                f"trends.{name}.improving_min ({window.improving_min}) must be >= "
                f"maintaining_min ({window.maintaining_min})"
            )
        trends[name] = window

    # ── Overall score ──
    ov_raw = raw.get("overall") or {}
    w_raw = ov_raw.get("weights") or {}
    bonuses: list[ScoreBonus] = []
    bonuses_raw = ov_raw.get(
        "bonuses",
        [
            {"source": "primary_average", "threshold": 90, "points": 50},
            {"source": "consistency", "threshold": 95, "points": 25},
            {"source": "progression", "threshold": 90, "points": 25},
        ],
    )
    for i, b in enumerate(bonuses_raw or []):
        if not isinstance(b, dict) or b.get("source") not in _BONUS_SOURCES:
            errors.append(f"overall.bonuses[{i}] must name a source in {list(_BONUS_SOURCES)}")
            continue
        bonuses.append(
            ScoreBonus(
                source=b["source"],
                threshold=_number(b, "threshold", 100, f"overall.bonuses[{i}]"),
                points=_number(b, "points", 0, f"overall.bonuses[{i}]"),
            )
        )
    overall = OverallConfig(
        primary_weight=_number(w_raw, "primary", 0.5, "overall.weights"),
        secondary_weight=_number(w_raw, "secondary", 0.3, "overall.weights"),
        balance_weight=_number(w_raw, "balance", 0.2, "overall.weights"),
        scale=_number(ov_raw, "scale", 10, "overall"),
        max_score=_number(ov_raw, "max_score", 1000, "overall"),
        bonuses=bonuses,
    )
    for name in ("primary_weight", "secondary_weight", "balance_weight"):
        w = getattr(overall, name)
        if not (0.0 <= w <= 1.0):
            errors.append(f"overall.weights.{name.removesuffix('_weight')} = {w} is out of range [0.0, 1.0]")

    # Weights are expected to sum to ~1.0 (warn only)
    if not (0.95 <= overall.total_weight <= 1.05):
        logger.warning(
            "Overall score weights sum to %.3f (expected ~1.0).",
            overall.total_weight,
        )

    # ── Categories ──
    categories: list[ScoreBand] = []
    for i, c in enumerate(raw.get("categories", _DEFAULT_CATEGORIES) or []):
        if not isinstance(c, dict) or "name" not in c:
            errors.append(f"categories[{i}] must be a mapping with a 'name'")
            continue
        categories.append(
            ScoreBand(
                name=str(c["name"]),
                label=str(c.get("label", c["name"])),
                minimum=_number(c, "minimum", 0, f"categories[{i}]"),
                color=str(c.get("color", "")),
            )
        )
    if not categories:
        errors.append("'categories' section is missing or empty")
    categories.sort(key=lambda band: band.minimum, reverse=True)

    # ── Execution ──
    ex_raw = raw.get("execution") or {}
    execution = ExecutionConfig(
        superset_rest_seconds=int(_number(ex_raw, "superset_rest_seconds", 30, "execution")),
        exercise_rest_seconds=int(_number(ex_raw, "exercise_rest_seconds", 90, "execution")),
        tick_seconds=_number(ex_raw, "tick_seconds", 1, "execution"),
    )
    if execution.tick_seconds <= 0:
        errors.append("execution.tick_seconds must be > 0")

    # ── Intensity ──
    in_raw = raw.get("intensity") or {}
    intensity = IntensityConfig(
        rpe_weight=_number(in_raw, "rpe_weight", 0.4, "intensity"),
        volume_weight=_number(in_raw, "volume_weight", 0.4, "intensity"),
        duration_weight=_number(in_raw, "duration_weight", 0.2, "intensity"),
        volume_target=_number(in_raw, "volume_target", 10000, "intensity"),
        duration_target_seconds=_number(in_raw, "duration_target_seconds", 7200, "intensity"),
        default_rpe=_number(in_raw, "default_rpe", 5, "intensity"),
    )
    if intensity.volume_target <= 0:
        errors.append("intensity.volume_target must be > 0")
    if intensity.duration_target_seconds <= 0:
        errors.append("intensity.duration_target_seconds must be > 0")
    if intensity.default_rpe > 10:
        errors.append(f"intensity.default_rpe = {intensity.default_rpe} must be <= 10")

    if errors:
        raise ConfigValidationError(
            f"scoring_config.yaml has {len(errors)} validation error(s):\n"
            + "\n".join(f"  • {e}" for e in errors)
        )

    return ScoringConfig(
        version=version,
        body_composition=body_composition,
        muscle_balance=muscle_balance,
        sessions=sessions,
        lifestyle_window_days=lifestyle_window_days,
        trends=trends,
        overall=overall,
        categories=categories,
        execution=execution,
        intensity=intensity,
        _raw=raw,
    )


def load_scoring_config(path: Path | None = None) -> ScoringConfig:
    """Load and validate the scoring config from disk.

    Args:
        path: Override path to YAML. Uses the bundled scoring_config.yaml by default.
    """
    target = path or _CONFIG_PATH
    raw = _load_yaml(target)
    config = _validate_and_build(raw)
    logger.info("Loaded scoring config v%s from %s", config.version, target)
    return config


# ---------------------------------------------------------------------------
# Global singleton with hot-reload support
# ---------------------------------------------------------------------------

_config: ScoringConfig | None = None
_config_lock = threading.Lock()


def get_scoring_config() -> ScoringConfig:
    """Return the global ScoringConfig singleton, loading it on first call."""
    global _config
    if _config is None:
        with _config_lock:
            if _config is None:  # double-checked locking
                _config = load_scoring_config()
    return _config


def reload_scoring_config(path: Path | None = None) -> ScoringConfig:
    """Reload the scoring config from disk and replace the global singleton.

    If validation fails, the old config is retained and the error is
    re-raised.

    Raises:
        ConfigValidationError: If the new config is invalid.
        FileNotFoundError:     If the config file is missing.
    """
    global _config
    new_config = load_scoring_config(path)  # validate before acquiring lock
    with _config_lock:
        old_version = _config.version if _config else "none"
        _config = new_config
    logger.info("Reloaded scoring config: %s → %s", old_version, new_config.version)
    return new_config

