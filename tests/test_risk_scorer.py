import random

from config import Config, TestConfig
from factories import make_attempt
from security.risk import HEURISTICS, RiskPolicy, degraded_assessment, score_attempt


def test_empty_history_success_scores_zero():
    result = score_attempt(make_attempt(success=True), [])

    assert result.score == 0
    assert result.factors == []


def test_empty_history_short_circuits_every_heuristic():
    result = score_attempt(make_attempt(failure_reason="account_suspended"), [])

    assert result.score == 0
    assert result.factor_dicts() == []


def test_five_failures_score_at_least_forty_with_high_velocity():
    history = [make_attempt(email="a@x.com", ip="1.1.1.1", minutes=i) for i in range(4)]

    result = score_attempt(make_attempt(email="a@x.com", ip="1.1.1.1", minutes=4), history)

    assert result.score >= 40
    assert {"factor": "velocity", "severity": "high"}.items() <= result.factor_dicts()[0].items()


def test_scoring_is_deterministic_and_order_independent():
    history = [make_attempt(ip=f"10.0.0.{i}", minutes=i) for i in range(6)]
    attempt = make_attempt(ip="10.0.0.99", minutes=6)

    first = score_attempt(attempt, history)
    shuffled = list(history)
    random.Random(7).shuffle(shuffled)
    second = score_attempt(attempt, shuffled)

    assert first.score == second.score
    assert first.factor_dicts() == second.factor_dicts()


def test_attempt_itself_and_later_rows_are_ignored():
    attempt = make_attempt(minutes=10)
    later = [make_attempt(minutes=11 + i) for i in range(8)]

    result = score_attempt(attempt, [attempt] + later)

    assert result.score == 0


def test_score_is_clamped_to_one_hundred():
    ips = ["1.1.1.1", "2.2.2.2", "3.3.3.3", "4.4.4.4"]
    history = [make_attempt(ip=ips[i % 4], minutes=i) for i in range(7)]
    history += [
        make_attempt(email="b@x.com", ip="9.9.9.9", minutes=7),
        make_attempt(email="c@x.com", ip="9.9.9.9", minutes=8),
    ]

    result = score_attempt(make_attempt(ip="9.9.9.9", minutes=10), history)

    names = [f.factor for f in result.factors]
    assert names == ["velocity", "cross_account_targeting", "multiple_ips"]
    assert sum(f.points for f in result.factors) == 120
    assert result.score == 100


def test_factor_severities_stay_within_attempt_schema():
    history = [make_attempt(minutes=i) for i in range(9)]

    result = score_attempt(make_attempt(minutes=9), history)

    assert result.factors
    assert {f.severity for f in result.factors} <= {"low", "medium", "high"}


def test_policy_defaults_mirror_config():
    config = {k: getattr(Config, k) for k in dir(Config) if k.isupper()}

    assert RiskPolicy.from_config(config) == RiskPolicy()


def test_policy_from_test_config_overrides_timeout():
    config = {k: getattr(TestConfig, k) for k in dir(TestConfig) if k.isupper()}

    assert RiskPolicy.from_config(config).scoring_timeout_ms == 10_000


def test_custom_policy_tiers_are_honoured():
    policy = RiskPolicy(velocity_tiers=((2, 10, "low"),))

    result = score_attempt(make_attempt(minutes=1), [make_attempt(minutes=0)], policy)

    assert result.score == 10
    assert result.factors[0].severity == "low"


def test_degraded_assessment_shape():
    result = degraded_assessment("history lookup took 900 ms")

    assert result.score == 0
    assert [f["factor"] for f in result.factor_dicts()] == ["scoring_degraded"]


def test_heuristics_are_plain_functions_in_fixed_order():
    assert [h.__name__ for h in HEURISTICS][:5] == [
        "velocity",
        "new_ip",
        "new_location",
        "unusual_time",
        "cross_account_targeting",
    ]


def test_interleaved_burst_is_not_invisible():
    history = [make_attempt(minutes=i * 0.1, success=bool(i % 2)) for i in range(11)]

    result = score_attempt(make_attempt(success=True, minutes=1.2), history)

    assert result.score > 0
    assert "rapid_attempts" in [f.factor for f in result.factors]
