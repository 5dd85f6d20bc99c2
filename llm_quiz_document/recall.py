from __future__ import annotations
import datetime
import math
from dataclasses import dataclass, replace
from typing import Any, Dict, Optional

SCHEMA_VERSION = "1"

# "Recently learned, review soon": recall at half an hour ~ Beta(3, 3)
DEFAULT_SHAPE = 3.0
DEFAULT_HALF_LIFE_HOURS = 0.5

# Zero elapsed time makes the failure likelihood 1 - p**0 vanish
MIN_UPDATE_ELAPSED_HOURS = 1.0 / 3600.0

UNKNOWN_RECALL = math.inf


@dataclass(frozen=True)
class RecallModel:
    """Memory state for one key.

    Recall probability `reference_half_life_hours` after `last_seen` is
    distributed as Beta(strength_a, strength_b). Recall at other times is
    that probability raised to elapsed / reference.
    """
    strength_a: float
    strength_b: float
    reference_half_life_hours: float
    last_seen: datetime.datetime
    schema_version: str = SCHEMA_VERSION

    def strength(self) -> Dict[str, float]:
        return {
            "strengthA": self.strength_a,
            "strengthB": self.strength_b,
            "referenceHalfLifeHours": self.reference_half_life_hours,
        }

    def to_doc(self) -> Dict[str, Any]:
        doc: Dict[str, Any] = self.strength()
        doc["lastSeen"] = to_iso(self.last_seen)
        doc["schemaVersion"] = self.schema_version
        return doc

    @classmethod
    def from_doc(cls, doc: Optional[Dict[str, Any]]) -> Optional[RecallModel]:
        """Read a persisted document; an empty or missing one means "unknown"."""
        if not doc or "strengthA" not in doc:
            return None
        return cls(
            strength_a=float(doc["strengthA"]),
            strength_b=float(doc["strengthB"]),
            reference_half_life_hours=float(doc["referenceHalfLifeHours"]),
            last_seen=from_iso(doc["lastSeen"]),
            schema_version=str(doc.get("schemaVersion", SCHEMA_VERSION)),
        )


def to_iso(dt: datetime.datetime) -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=datetime.timezone.utc)
    dt = dt.astimezone(datetime.timezone.utc)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def from_iso(text: str) -> datetime.datetime:
    dt = datetime.datetime.fromisoformat(text.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=datetime.timezone.utc)
    return dt


def elapsed_hours(since: datetime.datetime, now: datetime.datetime) -> float:
    """Hours from `since` to `now`, clamped at zero to absorb clock skew."""
    return max(0.0, (now - since).total_seconds() / 3600.0)


def _betaln(a: float, b: float) -> float:
    return math.lgamma(a) + math.lgamma(b) - math.lgamma(a + b)


def _log_sub_exp(x: float, y: float) -> float:
    """log(exp(x) - exp(y)) for x > y."""
    return x + math.log1p(-math.exp(y - x))


def initialize_model(now: datetime.datetime) -> RecallModel:
    return RecallModel(DEFAULT_SHAPE, DEFAULT_SHAPE, DEFAULT_HALF_LIFE_HOURS, now)


def log_recall_at(model: RecallModel, hours: float) -> float:
    """Log of expected recall `hours` after the model's last exposure."""
    delta = max(0.0, hours) / model.reference_half_life_hours
    a, b = model.strength_a, model.strength_b
    return _betaln(a + delta, b) - _betaln(a, b)


def predict_recall(model: Optional[RecallModel], now: datetime.datetime) -> float:
    """Expected recall probability at `now`.

    An absent model is unknown and predicts +inf so that it sorts after every
    known model.
    """
    if model is None:
        return UNKNOWN_RECALL
    return math.exp(log_recall_at(model, elapsed_hours(model.last_seen, now)))


def half_life(model: RecallModel, percentile: float = 0.5) -> float:
    """Elapsed hours at which expected recall drops to `percentile`.

    Brackets the root by doubling/halving from the reference time, then
    bisects in log-time.
    """
    target = math.log(percentile)
    lo = hi = model.reference_half_life_hours
    while log_recall_at(model, lo) < target:
        lo /= 2.0
    while log_recall_at(model, hi) > target:
        hi *= 2.0
    lo_log, hi_log = math.log(lo), math.log(hi)
    for _ in range(100):
        mid = (lo_log + hi_log) / 2.0
        if log_recall_at(model, math.exp(mid)) > target:
            lo_log = mid
        else:
            hi_log = mid
        if hi_log - lo_log < 1e-9:
            break
    return math.exp((lo_log + hi_log) / 2.0)


def _posterior(model: RecallModel, success: bool, delta: float, back: float) -> tuple[float, float]:
    """Moment-match the posterior of recall at `back` reference units to a Beta.

    `delta` is the elapsed time of the quiz in reference units. With
    p ~ Beta(a, b) at the reference time, the quiz likelihood is p**delta on
    success and 1 - p**delta on failure; the n-th moment of p**back under the
    posterior is a ratio of Beta functions.
    """
    a, b = model.strength_a, model.strength_b

    def log_moment_numerator(n: int) -> float:
        if success:
            return _betaln(a + delta + n * back, b)
        return _log_sub_exp(_betaln(a + n * back, b), _betaln(a + delta + n * back, b))

    log_den = log_moment_numerator(0)
    mean = math.exp(log_moment_numerator(1) - log_den)
    second = math.exp(log_moment_numerator(2) - log_den)
    var = second - mean * mean
    tmp = mean * (1.0 - mean) / var - 1.0
    return mean * tmp, (1.0 - mean) * tmp


def update_model(
    model: RecallModel,
    success: bool,
    elapsed: float,
    now: datetime.datetime,
    rebalance: bool = True,
) -> RecallModel:
    """Bayesian update of a recall model after a quiz `elapsed` hours after last exposure.

    The posterior is expressed at the old reference time; when one shape
    parameter grows past twice the other the reference time moves to the
    posterior half-life so the Beta stays well balanced. `last_seen` becomes
    `now`.
    """
    elapsed = max(elapsed, MIN_UPDATE_ELAPSED_HOURS)
    t = model.reference_half_life_hours
    delta = elapsed / t

    new_a, new_b = _posterior(model, success, delta, 1.0)
    proposed = RecallModel(new_a, new_b, t, now, SCHEMA_VERSION)
    if rebalance and (new_a > 2 * new_b or new_b > 2 * new_a):
        new_t = half_life(proposed)
        new_a, new_b = _posterior(model, success, delta, new_t / t)
        proposed = RecallModel(new_a, new_b, new_t, now, SCHEMA_VERSION)
    return proposed


def refresh_model(model: RecallModel, now: datetime.datetime) -> RecallModel:
    """Passive exposure: move `last_seen` to `now` without touching the strength."""
    return replace(model, last_seen=now)
