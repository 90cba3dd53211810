"""TrackerPro FitScore engine.

Derives a bounded 0–1000 composite score from a client's body
measurements, session history and lifestyle logs.  Analogous to a credit
score: every sub-score lives in [0, 100] and the overall score is a
weighted blend scaled by 10 plus flat excellence bonuses.

Score formula (from scoring_config.yaml):
    - Primary average   (strength, endurance, mobility,
                         body composition, consistency)      weight 0.5
    - Secondary average (nutrition, recovery, progression,
                         technique, mental)                  weight 0.3
    - Balance average   (upper, lower, core, muscle balance) weight 0.2

The ``score_from_*`` functions are pure: they read their inputs and return
a FitScoreUpdate without touching the FitScore.  ``apply_update`` and the
FitScoreEngine wrapper perform the in-place mutation.  Nothing here does
I/O; callers persist the result.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Iterable, Sequence

from src.training.base import (
    BALANCE_COMPONENTS,
    PRIMARY_COMPONENTS,
    SECONDARY_COMPONENTS,
    Client,
    FitScore,
    Session,
    SessionStatus,
    Trend,
    utc_now,
)
from src.training.config_loader import (
    ScoreBand,
    ScoringConfig,
    TrendWindow,
    get_scoring_config,
)

logger = logging.getLogger("trackerpro.training.fit_score")

_SUB_SCORE_NAMES = frozenset(PRIMARY_COMPONENTS + SECONDARY_COMPONENTS + BALANCE_COMPONENTS)
_TREND_NAMES = ("weekly", "monthly", "quarterly")


def _clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return min(max(value, low), high)


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values) if values else 0.0


# ---------------------------------------------------------------------------
# Result type
# ---------------------------------------------------------------------------


@dataclass
class FitScoreUpdate:
    """A partial set of new FitScore values.

    Attributes:
        values: Sub-score name → new value (already clamped to [0, 100]).
        trends: Trend name ('weekly', 'monthly', 'quarterly') → Trend.
        notes:  Human-readable explanation per updated field.
    """

    values: dict[str, float] = field(default_factory=dict)
    trends: dict[str, Trend] = field(default_factory=dict)
    notes: dict[str, str] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not self.values and not self.trends

    def merge(self, other: FitScoreUpdate) -> FitScoreUpdate:
        """Return a new update with ``other`` layered over this one."""
        return FitScoreUpdate(
            values={**self.values, **other.values},
            trends={**self.trends, **other.trends},
            notes={**self.notes, **other.notes},
        )


# ---------------------------------------------------------------------------
# Input normalization
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MeasurementSnapshot:
    """A client's measurements with every missing value resolved.

    ``weight_kg`` and ``bmi`` are None when they cannot be derived
    (non-positive weight or height); formula code only checks these flags.
    """

    gender: str
    weight_kg: float | None
    bmi: float | None
    body_fat_pct: float | None
    muscle_mass_kg: float | None


@dataclass(frozen=True)
class SessionSnapshot:
    when: datetime
    volume: float
    technique: int | None


def normalize_measurements(client: Client) -> MeasurementSnapshot:
    weight = client.current_weight_kg if client.current_weight_kg and client.current_weight_kg > 0 else None
    bmi = client.bmi if weight is not None else 0.0
    body_fat = client.body_fat_pct
    if body_fat is not None and body_fat < 0:
        body_fat = None
    muscle = client.muscle_mass_kg
    if muscle is not None and muscle < 0:
        muscle = None
    return MeasurementSnapshot(
        gender=client.gender.value,
        weight_kg=weight,
        bmi=bmi if bmi and bmi > 0 else None,
        body_fat_pct=body_fat,
        muscle_mass_kg=muscle,
    )


def normalize_sessions(sessions: Iterable[Session]) -> list[SessionSnapshot]:
    """Snapshot sessions sorted by date ascending."""
    snapshots = [
        SessionSnapshot(
            when=s.scheduled_for,
            volume=max(s.total_volume or 0.0, 0.0),
            technique=s.technique_quality,
        )
        for s in sessions
    ]
    snapshots.sort(key=lambda snap: snap.when)
    return snapshots


def _count_within(snapshots: Sequence[SessionSnapshot], now: datetime, days: int) -> int:
    cutoff = now - timedelta(days=days)
    return sum(1 for snap in snapshots if cutoff < snap.when <= now)


# ---------------------------------------------------------------------------
# Component scorers
# ---------------------------------------------------------------------------


def _score_body_composition(snap: MeasurementSnapshot, config: ScoringConfig) -> float | None:
    """Average of the body-fat and BMI terms that are available.

    Each term is 100 minus a linear penalty on the distance from the
    gender (body fat) or population (BMI) ideal, clamped to [0, 100].
    Returns None when neither term can be computed.
    """
    bc = config.body_composition
    terms: list[float] = []

    if snap.body_fat_pct is not None:
        ideal = config.ideal_body_fat(snap.gender)
        terms.append(_clamp(100 - abs(snap.body_fat_pct - ideal) * bc.body_fat_penalty))

    if snap.bmi is not None:
        terms.append(_clamp(100 - abs(snap.bmi - bc.ideal_bmi) * bc.bmi_penalty))

    if not terms:
        return None
    return _mean(terms)


def _score_muscle_balance(snap: MeasurementSnapshot, config: ScoringConfig) -> float | None:
    if snap.muscle_mass_kg is None or snap.weight_kg is None:
        return None
    ratio = snap.muscle_mass_kg / snap.weight_kg
    ideal = config.ideal_muscle_ratio(snap.gender)
    return _clamp(100 - abs(ratio - ideal) * config.muscle_balance.ratio_penalty)


def _score_consistency(snapshots: Sequence[SessionSnapshot], now: datetime, config: ScoringConfig) -> float:
    cfg = config.sessions
    recent = _count_within(snapshots, now, cfg.consistency_window_days)
    return _clamp(recent / cfg.consistency_target_sessions * 100)


def _score_strength(snapshots: Sequence[SessionSnapshot], config: ScoringConfig) -> float:
    avg_volume = _mean([snap.volume for snap in snapshots])
    return _clamp(avg_volume / config.sessions.strength_volume_target * 100)


def _score_progression(snapshots: Sequence[SessionSnapshot], config: ScoringConfig) -> float:
    """Volume change from the older half of the history to the newer half.

    Both halves hold ``n // 2`` sessions, so with an odd count the middle
    session is in neither.  +1% volume moves the score by the configured
    multiplier around the baseline of 50, clamped to [0, 100].
    """
    cfg = config.sessions
    if len(snapshots) < cfg.progression_min_sessions:
        return cfg.progression_baseline

    half = len(snapshots) // 2
    first_avg = _mean([snap.volume for snap in snapshots[:half]])
    second_avg = _mean([snap.volume for snap in snapshots[-half:]])
    if first_avg <= 0:
        return cfg.progression_baseline

    change_pct = (second_avg - first_avg) / first_avg * 100
    return _clamp(change_pct * cfg.progression_multiplier + cfg.progression_baseline)


def _score_technique(snapshots: Sequence[SessionSnapshot]) -> float | None:
    ratings = [snap.technique for snap in snapshots if snap.technique is not None]
    if not ratings:
        return None
    return _clamp(_mean(ratings) * 10)


def _trend(count: int, window: TrendWindow) -> Trend:
    if count >= window.improving_min:
        return Trend.improving
    if count >= window.maintaining_min:
        return Trend.maintaining
    return Trend.declining


# ---------------------------------------------------------------------------
# Public scoring functions
# ---------------------------------------------------------------------------


def score_from_measurements(client: Client, config: ScoringConfig | None = None) -> FitScoreUpdate:
    """Body-composition and muscle-balance sub-scores from measurements.

    Missing body fat skips the body-fat term, missing weight or height
    skips the BMI term; with neither, body composition is left unchanged.
    Muscle balance needs both muscle mass and weight.
    """
    cfg = config or get_scoring_config()
    snap = normalize_measurements(client)
    update = FitScoreUpdate()

    body_comp = _score_body_composition(snap, cfg)
    if body_comp is not None:
        update.values["body_composition"] = body_comp
        update.notes["body_composition"] = (
            f"body fat {snap.body_fat_pct if snap.body_fat_pct is not None else 'n/a'}%, "
            f"BMI {f'{snap.bmi:.1f}' if snap.bmi is not None else 'n/a'}"
        )

    balance = _score_muscle_balance(snap, cfg)
    if balance is not None:
        update.values["muscle_balance"] = balance
        update.notes["muscle_balance"] = (
            f"muscle/weight ratio {snap.muscle_mass_kg / snap.weight_kg:.2f} "
            f"vs {cfg.ideal_muscle_ratio(snap.gender):.2f} ideal"
        )

    return update


def score_from_sessions(
    sessions: Sequence[Session],
    now: datetime | None = None,
    config: ScoringConfig | None = None,
) -> FitScoreUpdate:
    """Consistency, strength, progression, technique and trends from history.

    Returns an empty update for an empty history.  Deterministic for a
    given ``sessions``, ``now`` and ``config``.
    """
    if not sessions:
        return FitScoreUpdate()

    cfg = config or get_scoring_config()
    now = now or utc_now()
    snapshots = normalize_sessions(sessions)
    update = FitScoreUpdate()

    update.values["consistency"] = _score_consistency(snapshots, now, cfg)
    update.values["strength"] = _score_strength(snapshots, cfg)
    update.values["progression"] = _score_progression(snapshots, cfg)

    technique = _score_technique(snapshots)
    if technique is not None:
        update.values["technique"] = technique

    for name in _TREND_NAMES:
        window = cfg.trend_window(name)
        count = _count_within(snapshots, now, window.window_days)
        update.trends[name] = _trend(count, window)
        update.notes[f"{name}_trend"] = f"{count} session(s) in last {window.window_days} days"

    return update


def score_from_logs(
    client: Client,
    now: datetime | None = None,
    config: ScoringConfig | None = None,
) -> FitScoreUpdate:
    """Nutrition and recovery sub-scores from the trailing lifestyle window.

    Nutrition is mean plan adherence (1–10) × 10; recovery is the mean
    LifestyleLog recovery score.  Each is skipped when no log falls in
    the window.
    """
    cfg = config or get_scoring_config()
    now = now or utc_now()
    cutoff = now - timedelta(days=cfg.lifestyle_window_days)
    update = FitScoreUpdate()

    adherence = [log.adherence for log in client.nutrition_logs if cutoff < log.log_date <= now]
    if adherence:
        update.values["nutrition"] = _clamp(_mean(adherence) * 10)

    recovery = [log.recovery_score for log in client.lifestyle_logs if cutoff < log.log_date <= now]
    if recovery:
        update.values["recovery"] = _clamp(_mean(recovery))

    return update


def _averages(fit_score: FitScore) -> dict[str, float]:
    return {
        "primary_average": _mean([getattr(fit_score, n) for n in PRIMARY_COMPONENTS]),
        "secondary_average": _mean([getattr(fit_score, n) for n in SECONDARY_COMPONENTS]),
        "balance_average": _mean([getattr(fit_score, n) for n in BALANCE_COMPONENTS]),
    }


def compute_overall_score(fit_score: FitScore, config: ScoringConfig | None = None) -> float:
    """Weighted 0–1000 overall score for the current sub-scores.

    Bonuses are strictly-greater-than thresholds; the result is capped at
    ``max_score``.  Sub-scores are non-negative, so no floor is applied.
    """
    cfg = (config or get_scoring_config()).overall
    avg = _averages(fit_score)

    weighted = (
        avg["primary_average"] * cfg.primary_weight
        + avg["secondary_average"] * cfg.secondary_weight
        + avg["balance_average"] * cfg.balance_weight
    )
    overall = weighted * cfg.scale

    for bonus in cfg.bonuses:
        value = avg[bonus.source] if bonus.source in avg else getattr(fit_score, bonus.source)
        if value > bonus.threshold:
            overall += bonus.points

    return min(overall, cfg.max_score)


def category_of(overall_score: float, config: ScoringConfig | None = None) -> ScoreBand:
    """Banded category for an overall score (Elite ... Needs Work)."""
    bands = (config or get_scoring_config()).categories
    for band in bands:
        if overall_score >= band.minimum:
            return band
    return bands[-1]


def apply_update(
    fit_score: FitScore,
    update: FitScoreUpdate,
    config: ScoringConfig | None = None,
    now: datetime | None = None,
) -> FitScore:
    """Write ``update`` into ``fit_score`` and recompute the overall score.

    Unknown names raise before any field is written, so a bad update
    leaves the FitScore untouched.
    """
    unknown = set(update.values) - _SUB_SCORE_NAMES
    unknown |= set(update.trends) - set(_TREND_NAMES)
    if unknown:
        raise KeyError(f"Unknown FitScore fields in update: {sorted(unknown)}")

    for name, value in update.values.items():
        setattr(fit_score, name, _clamp(value))
    for name, trend in update.trends.items():
        setattr(fit_score, f"{name}_trend", trend)

    fit_score.overall_score = compute_overall_score(fit_score, config)
    fit_score.updated_at = now or utc_now()
    return fit_score


def scored_sessions(client: Client) -> list[Session]:
    """The client's completed sessions; scheduled and cancelled ones are ignored."""
    return [s for s in client.sessions if s.status is SessionStatus.completed]


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class FitScoreEngine:
    """Apply scoring updates to a client's FitScore in place.

    Usage::

        engine = FitScoreEngine()
        engine.update_from_measurements(client)   # after a measurement edit
        engine.refresh(client)                    # after a session finalize
        print(client.fit_score.overall_score, engine.category(client).label)
    """

    def __init__(
        self,
        config: ScoringConfig | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._config = config or get_scoring_config()
        self._clock = clock or utc_now

    @property
    def config(self) -> ScoringConfig:
        return self._config

    def _apply(self, client: Client, update: FitScoreUpdate, reason: str) -> FitScore:
        fit_score = client.ensure_fit_score()
        before = fit_score.overall_score
        apply_update(fit_score, update, self._config, now=self._clock())
        logger.debug(
            "FitScore for %s updated from %s: %.1f → %.1f (%s)",
            client.client_id, reason, before, fit_score.overall_score,
            ", ".join(f"{k}={v:.1f}" for k, v in sorted(update.values.items())) or "no sub-scores",
        )
        return fit_score

    def update_from_measurements(self, client: Client) -> FitScore:
        return self._apply(client, score_from_measurements(client, self._config), "measurements")

    def update_from_sessions(self, client: Client, sessions: Sequence[Session] | None = None) -> FitScore:
        """Score the given sessions (default: the client's completed sessions).

        A no-op on the sub-scores when there is no history.
        """
        history = scored_sessions(client) if sessions is None else list(sessions)
        update = score_from_sessions(history, now=self._clock(), config=self._config)
        if update.is_empty:
            return client.ensure_fit_score()
        return self._apply(client, update, "sessions")

    def update_from_logs(self, client: Client) -> FitScore:
        return self._apply(client, score_from_logs(client, now=self._clock(), config=self._config), "logs")

    def refresh(self, client: Client) -> FitScore:
        """Recompute every derivable sub-score and apply them in one step."""
        now = self._clock()
        update = (
            score_from_sessions(scored_sessions(client), now=now, config=self._config)
            .merge(score_from_measurements(client, self._config))
            .merge(score_from_logs(client, now=now, config=self._config))
        )
        return self._apply(client, update, "refresh")

    def category(self, client: Client) -> ScoreBand:
        return category_of(client.ensure_fit_score().overall_score, self._config)
