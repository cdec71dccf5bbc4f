import logging
import time
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Callable, List, Optional, Sequence, Tuple

from sqlalchemy.exc import OperationalError, SQLAlchemyError

from models import db
from models.login_attempt import LoginAttempt
from security.errors import ScoringTimeout, StorageError

logger = logging.getLogger(__name__)

MAX_SCORE = 100


@dataclass(frozen=True)
class RiskPolicy:
    """Tunable thresholds for scoring and alerting. Defaults mirror config.Config."""

    velocity_window: timedelta = timedelta(minutes=30)
    baseline_window: timedelta = timedelta(days=30)
    history_limit: int = 500
    scoring_timeout_ms: int = 250

    # (min count, points, severity), highest tier first
    velocity_tiers: Tuple[Tuple[int, int, str], ...] = ((8, 60, "high"), (5, 40, "high"), (3, 20, "medium"))
    multiple_ip_tiers: Tuple[Tuple[int, int, str], ...] = ((5, 35, "high"), (3, 15, "medium"))
    # (min attempts, window minutes, points, severity), tightest window first
    rapid_attempt_tiers: Tuple[Tuple[int, int, int, str], ...] = ((10, 5, 50, "high"), (10, 15, 30, "high"))
    cross_account_email_threshold: int = 3
    unusual_time_min_samples: int = 5
    unusual_time_rarity: float = 0.05

    alert_high_threshold: int = 70
    alert_medium_threshold: int = 40
    dedup_window: timedelta = timedelta(minutes=60)

    block_threshold: int = 80
    block_window: timedelta = timedelta(minutes=60)

    @classmethod
    def from_config(cls, config) -> "RiskPolicy":
        base = cls()
        return cls(
            velocity_window=timedelta(minutes=config.get("RISK_VELOCITY_WINDOW_MINUTES", 30)),
            baseline_window=timedelta(days=config.get("RISK_BASELINE_DAYS", 30)),
            history_limit=int(config.get("RISK_HISTORY_LIMIT", base.history_limit)),
            scoring_timeout_ms=int(config.get("SCORING_TIMEOUT_MS", base.scoring_timeout_ms)),
            velocity_tiers=tuple(config.get("VELOCITY_TIERS", base.velocity_tiers)),
            multiple_ip_tiers=tuple(config.get("MULTIPLE_IP_TIERS", base.multiple_ip_tiers)),
            rapid_attempt_tiers=tuple(config.get("RAPID_ATTEMPT_TIERS", base.rapid_attempt_tiers)),
            cross_account_email_threshold=int(
                config.get("CROSS_ACCOUNT_EMAIL_THRESHOLD", base.cross_account_email_threshold)
            ),
            unusual_time_min_samples=int(config.get("UNUSUAL_TIME_MIN_SAMPLES", base.unusual_time_min_samples)),
            unusual_time_rarity=float(config.get("UNUSUAL_TIME_RARITY", base.unusual_time_rarity)),
            alert_high_threshold=int(config.get("ALERT_HIGH_RISK_THRESHOLD", base.alert_high_threshold)),
            alert_medium_threshold=int(config.get("ALERT_MEDIUM_RISK_THRESHOLD", base.alert_medium_threshold)),
            dedup_window=timedelta(minutes=config.get("ALERT_DEDUP_WINDOW_MINUTES", 60)),
            block_threshold=int(config.get("BLOCK_RISK_THRESHOLD", base.block_threshold)),
            block_window=timedelta(minutes=config.get("BLOCK_WINDOW_MINUTES", 60)),
        )


@dataclass(frozen=True)
class RiskFactor:
    factor: str
    severity: str  # low | medium | high
    description: str
    points: int = 0

    def to_dict(self) -> dict:
        return {"factor": self.factor, "severity": self.severity, "description": self.description}


@dataclass
class RiskAssessment:
    score: int = 0
    factors: List[RiskFactor] = field(default_factory=list)

    def factor_dicts(self) -> List[dict]:
        return [f.to_dict() for f in self.factors]

    def to_dict(self) -> dict:
        return {"risk_score": self.score, "risk_factors": self.factor_dicts()}


def degraded_assessment(reason: str) -> RiskAssessment:
    return RiskAssessment(
        score=0,
        factors=[RiskFactor("scoring_degraded", "low", f"Risk scoring skipped: {reason}")],
    )


# ---------------------------------------------------------------------------
# history helpers

def _prior(attempt, history: Sequence) -> list:
    """History rows at or before the attempt, newest first, never the attempt itself."""
    at = attempt.created_at
    rows = [
        r for r in history
        if r is not attempt
        and (attempt.id is None or r.id != attempt.id)
        and r.created_at is not None
        and r.created_at <= at
    ]
    rows.sort(key=lambda r: (r.created_at, r.id or 0), reverse=True)
    return rows


def _in_window(attempt, rows: list, window: timedelta) -> list:
    since = attempt.created_at - window
    return [r for r in rows if r.created_at >= since]


def _known_successes(attempt, rows: list) -> list:
    return [r for r in rows if r.success and r.email == attempt.email]


def _pick_tier(count: int, tiers) -> Optional[Tuple[int, int, str]]:
    for tier in tiers:
        if count >= tier[0]:
            return tier
    return None


def _hour_distance(a: int, b: int) -> int:
    d = abs(a - b) % 24
    return min(d, 24 - d)


def _minutes(window: timedelta) -> int:
    return int(window.total_seconds() // 60)


# ---------------------------------------------------------------------------
# heuristics: (attempt, prior_history, policy) -> RiskFactor | None

def velocity(attempt, prior: list, policy: RiskPolicy) -> Optional[RiskFactor]:
    # consecutive failures for this email; a success ends the streak
    streak = 0 if attempt.success else 1
    for row in _in_window(attempt, prior, policy.velocity_window):
        if row.email != attempt.email:
            continue
        if row.success:
            break
        streak += 1

    tier = _pick_tier(streak, policy.velocity_tiers)
    if tier is None:
        return None
    _, points, severity = tier
    return RiskFactor(
        "velocity",
        severity,
        f"{streak} consecutive failed attempts in the last {_minutes(policy.velocity_window)} minutes",
        points,
    )


def new_ip(attempt, prior: list, policy: RiskPolicy) -> Optional[RiskFactor]:
    known = _known_successes(attempt, prior)
    if not known:
        return None
    if attempt.ip_address in {r.ip_address for r in known}:
        return None
    return RiskFactor("new_ip", "medium", f"No previous successful login from {attempt.ip_address}", 15)


def new_location(attempt, prior: list, policy: RiskPolicy) -> Optional[RiskFactor]:
    if not attempt.country:
        return None
    countries = {r.country.casefold() for r in _known_successes(attempt, prior) if r.country}
    if not countries or attempt.country.casefold() in countries:
        return None
    return RiskFactor("new_location", "medium", f"No previous successful login from {attempt.country}", 15)


def unusual_time(attempt, prior: list, policy: RiskPolicy) -> Optional[RiskFactor]:
    hours = [r.created_at.hour for r in _known_successes(attempt, prior)]
    if len(hours) < policy.unusual_time_min_samples:
        return None

    hour = attempt.created_at.hour
    nearby = sum(1 for h in hours if _hour_distance(h, hour) <= 1)
    if nearby / len(hours) >= policy.unusual_time_rarity:
        return None
    return RiskFactor(
        "unusual_time",
        "low",
        f"Login at {hour:02d}:00 UTC is rare for this account ({nearby} of {len(hours)} past logins)",
        10,
    )


def cross_account_targeting(attempt, prior: list, policy: RiskPolicy) -> Optional[RiskFactor]:
    # failed attempts only; successes from a shared IP are normal
    if attempt.success:
        return None
    recent = _in_window(attempt, prior, policy.velocity_window)
    emails = {r.email for r in recent if r.ip_address == attempt.ip_address and not r.success}
    emails.add(attempt.email)
    if len(emails) < policy.cross_account_email_threshold:
        return None
    return RiskFactor(
        "cross_account_targeting",
        "high",
        f"{len(emails)} different accounts tried from {attempt.ip_address}",
        25,
    )


def multiple_ips(attempt, prior: list, policy: RiskPolicy) -> Optional[RiskFactor]:
    if attempt.success:
        return None
    recent = _in_window(attempt, prior, policy.velocity_window)
    ips = {r.ip_address for r in recent if r.email == attempt.email and not r.success}
    ips.add(attempt.ip_address)

    tier = _pick_tier(len(ips), policy.multiple_ip_tiers)
    if tier is None:
        return None
    _, points, severity = tier
    return RiskFactor("multiple_ips", severity, f"Login attempts from {len(ips)} different IPs", points)


def admin_account_targeted(attempt, prior: list, policy: RiskPolicy) -> Optional[RiskFactor]:
    if attempt.success or attempt.user_type != "admin":
        return None
    recent = _in_window(attempt, prior, policy.velocity_window)
    failures = sum(1 for r in recent if r.email == attempt.email and not r.success)
    if failures < 2:
        return None
    return RiskFactor("admin_account_targeted", "high", "Repeated failed logins on an admin account", 25)


def account_status(attempt, prior: list, policy: RiskPolicy) -> Optional[RiskFactor]:
    if attempt.success or attempt.failure_reason not in ("account_suspended", "account_pending"):
        return None
    state = attempt.failure_reason.split("_", 1)[1]
    return RiskFactor("account_status", "low", f"Login attempted on a {state} account", 5)


def rapid_attempts(attempt, prior: list, policy: RiskPolicy) -> Optional[RiskFactor]:
    # attempt density for this email, successes included
    for min_count, minutes, points, severity in policy.rapid_attempt_tiers:
        recent = _in_window(attempt, prior, timedelta(minutes=minutes))
        count = 1 + sum(1 for r in recent if r.email == attempt.email)
        if count >= min_count:
            return RiskFactor("rapid_attempts", severity, f"{count} attempts in the last {minutes} minutes", points)
    return None


Heuristic = Callable[..., Optional[RiskFactor]]

HEURISTICS: Tuple[Heuristic, ...] = (
    velocity,
    new_ip,
    new_location,
    unusual_time,
    cross_account_targeting,
    multiple_ips,
    admin_account_targeted,
    account_status,
    rapid_attempts,
)


def score_attempt(attempt, history: Sequence, policy: Optional[RiskPolicy] = None,
                  heuristics: Sequence[Heuristic] = HEURISTICS) -> RiskAssessment:
    """
    Pure: same attempt + same history -> same assessment.
    Windows are measured back from attempt.created_at, never from the clock.
    """
    policy = policy or RiskPolicy()
    prior = _prior(attempt, history)
    if not prior:
        return RiskAssessment()

    factors = []
    for heuristic in heuristics:
        found = heuristic(attempt, prior, policy)
        if found is not None:
            factors.append(found)

    score = sum(f.points for f in factors)
    return RiskAssessment(score=max(0, min(score, MAX_SCORE)), factors=factors)


def _history_query(attempt, criterion, since, limit: int):
    q = LoginAttempt.query.filter(criterion).filter(
        LoginAttempt.created_at >= since,
        LoginAttempt.created_at <= attempt.created_at,
    )
    if attempt.id is not None:
        q = q.filter(LoginAttempt.id != attempt.id)
    return q.order_by(LoginAttempt.created_at.desc(), LoginAttempt.id.desc()).limit(limit).all()


def load_recent_history(attempt, policy: RiskPolicy) -> list:
    """
    Same-email attempts over the baseline window plus same-IP attempts over
    the velocity window, newest first. Raises ScoringTimeout when over budget.
    """
    at = attempt.created_at
    started = time.monotonic()
    try:
        by_email = _history_query(
            attempt, LoginAttempt.email == attempt.email, at - policy.baseline_window, policy.history_limit
        )
        by_ip = _history_query(
            attempt, LoginAttempt.ip_address == attempt.ip_address, at - policy.velocity_window, policy.history_limit
        )
    except OperationalError as exc:
        db.session.rollback()
        message = str(exc).lower()
        if "timeout" in message or "canceling statement" in message:
            raise ScoringTimeout(str(exc)) from exc
        raise StorageError(str(exc)) from exc
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise StorageError(str(exc)) from exc

    elapsed_ms = (time.monotonic() - started) * 1000
    if elapsed_ms > policy.scoring_timeout_ms:
        raise ScoringTimeout(f"history lookup took {elapsed_ms:.0f} ms (budget {policy.scoring_timeout_ms} ms)")

    merged = {r.id: r for r in by_email}
    for r in by_ip:
        merged.setdefault(r.id, r)
    rows = sorted(merged.values(), key=lambda r: (r.created_at, r.id), reverse=True)

    logger.debug("Loaded %d history rows for attempt %s in %.1f ms", len(rows), attempt.id, elapsed_ms)
    return rows
