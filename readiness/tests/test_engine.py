import numpy as np
import pytest

from readiness.models.domain import SimulationSettings
from readiness.models.ruleset import DEFAULT_RULESET, AllocationAssumption, Ruleset
from readiness.simulation.cashflow import CashFlowSchedule
from readiness.simulation.engine import (
    _choose_executor,
    _chunk,
    _resolve_max_workers,
    assumptions_and_limits,
    draw_ltc_onset_age,
    ltc_probability,
    run_trial,
    run_trials,
    simulate,
)
from readiness.simulation.random_source import SequenceSource, normal, standard_normal
from readiness.tests.helpers import make_intake


class DummyRNG:
    """Uniform source stub that always yields the same value."""

    def __init__(self, value: float = 0.5):
        self.value = value
        self.calls = 0

    def next_uniform(self) -> float:
        self.calls += 1
        return self.value


def _schedule(years: int, spending: float = 100.0, income: float = 0.0, **kwargs) -> CashFlowSchedule:
    params = dict(
        retirement_age=65,
        spending=[spending] * years,
        income=[income] * years,
        ltc_cost=[0.0] * years,
        ltc_years=3,
        buffer_years=0,
    )
    params.update(kwargs)
    return CashFlowSchedule(**params)


def _fixed_return(rate: float) -> AllocationAssumption:
    return AllocationAssumption(mean_return=rate, volatility=0.0)


def test_box_muller_known_values():
    # u2 = 0.25 puts the cosine at zero, so the draw is the mean.
    assert standard_normal(SequenceSource([0.3, 0.25])) == pytest.approx(0.0, abs=1e-12)
    # u1 = 0.5 reflected to 0.5, u2 = 0.5 gives cos(pi) = -1.
    z = standard_normal(SequenceSource([0.5, 0.5]))
    assert z == pytest.approx(-np.sqrt(-2 * np.log(0.5)))
    assert normal(SequenceSource([0.5, 0.5]), 0.05, 0.1) == pytest.approx(0.05 + 0.1 * z)


def test_box_muller_handles_zero_uniform():
    assert np.isfinite(standard_normal(SequenceSource([0.0, 0.0])))


def test_sequence_source_rejects_out_of_range():
    with pytest.raises(ValueError):
        SequenceSource([1.0])
    with pytest.raises(ValueError):
        SequenceSource([])


def test_trial_grows_before_withdrawing():
    outcome = run_trial(_schedule(2), 1000.0, _fixed_return(0.10), DEFAULT_RULESET, DummyRNG())
    assert outcome.success
    # Grow-then-withdraw keeps 1000 flat; withdraw-then-grow would end at 979.
    assert outcome.ending_wealth == pytest.approx(1000.0)


def test_trial_failure_ends_at_exactly_zero():
    outcome = run_trial(_schedule(5), 150.0, _fixed_return(0.0), DEFAULT_RULESET, DummyRNG())
    assert not outcome.success
    assert outcome.ending_wealth == 0.0


def test_trial_surplus_income_never_adds_to_wealth():
    outcome = run_trial(_schedule(3, spending=100, income=500), 1000.0, _fixed_return(0.0), DEFAULT_RULESET, DummyRNG())
    assert outcome.ending_wealth == pytest.approx(1000.0)


def test_cash_buffer_halves_withdrawals_in_early_down_years():
    with_buffer = run_trial(_schedule(5, buffer_years=4), 1000.0, _fixed_return(-0.10), DEFAULT_RULESET, DummyRNG())
    without = run_trial(_schedule(5, buffer_years=0), 1000.0, _fixed_return(-0.10), DEFAULT_RULESET, DummyRNG())
    assert with_buffer.ending_wealth == pytest.approx(290.735)
    assert without.ending_wealth == pytest.approx(180.98)


def test_cash_buffer_exhausts_after_configured_years():
    outcome = run_trial(_schedule(5, buffer_years=1), 1000.0, _fixed_return(-0.10), DEFAULT_RULESET, DummyRNG())
    assert outcome.ending_wealth == pytest.approx(213.785)


def test_cash_buffer_ignored_in_up_years():
    buffered = run_trial(_schedule(3, buffer_years=4), 1000.0, _fixed_return(0.05), DEFAULT_RULESET, DummyRNG())
    plain = run_trial(_schedule(3, buffer_years=0), 1000.0, _fixed_return(0.05), DEFAULT_RULESET, DummyRNG())
    assert buffered.ending_wealth == pytest.approx(plain.ending_wealth)


def test_ltc_cost_applies_for_configured_years_from_onset():
    schedule = _schedule(5, spending=0.0, retirement_age=80, ltc_cost=[1000.0] * 5, ltc_years=3)
    outcome = run_trial(schedule, 10_000.0, _fixed_return(0.0), DEFAULT_RULESET, DummyRNG(), ltc_onset_age=81)
    assert outcome.ending_wealth == pytest.approx(7000.0)


def test_ltc_onset_draw_triggers_inside_horizon():
    intake = make_intake(ltc_expectation="both_may_need")
    source = SequenceSource([0.1, 0.5])
    assert draw_ltc_onset_age(intake, 30, DEFAULT_RULESET, source) == 84


def test_ltc_onset_draw_misses_and_out_of_horizon():
    intake = make_intake(ltc_expectation="one_may_need")
    assert draw_ltc_onset_age(intake, 30, DEFAULT_RULESET, SequenceSource([0.5])) is None
    # Onset at 84 lies beyond a 10-year horizon from 65.
    assert draw_ltc_onset_age(intake, 10, DEFAULT_RULESET, SequenceSource([0.1, 0.5])) is None


def test_ltc_onset_window_bounds():
    intake = make_intake(ltc_expectation="both_may_need")
    assert draw_ltc_onset_age(intake, 40, DEFAULT_RULESET, SequenceSource([0.0, 0.0])) == 80
    assert draw_ltc_onset_age(intake, 40, DEFAULT_RULESET, SequenceSource([0.0, 0.9999])) == 88


def test_no_ltc_expectation_consumes_no_randomness():
    rng = DummyRNG(0.0)
    assert draw_ltc_onset_age(make_intake(ltc_expectation="none"), 30, DEFAULT_RULESET, rng) is None
    assert rng.calls == 0


@pytest.mark.parametrize(
    "expectation,expected",
    [("none", 0.0), ("one_may_need", 0.40), ("not_sure", 0.40), ("both_may_need", 0.40)],
)
def test_ltc_probability_by_expectation(expectation, expected):
    assert ltc_probability(make_intake(ltc_expectation=expectation), DEFAULT_RULESET) == expected


def test_run_trials_tally_shape():
    intake = make_intake()
    tally = run_trials(intake, DEFAULT_RULESET, 300, 20, seed_sequence=np.random.SeedSequence(11))
    assert tally.trials == 300
    assert len(tally.ending_wealth) == 300
    assert np.all(np.diff(tally.ending_wealth) >= 0)
    assert np.all(tally.ending_wealth >= 0)
    failures = tally.trials - tally.successes
    assert np.count_nonzero(tally.ending_wealth == 0.0) >= failures


def test_run_trials_rejects_non_positive():
    with pytest.raises(ValueError):
        run_trials(make_intake(), DEFAULT_RULESET, 0, 20)


def test_thread_pool_matches_serial_for_same_seed():
    intake = make_intake(ltc_expectation="both_may_need")
    serial = run_trials(intake, DEFAULT_RULESET, 200, 20, seed_sequence=np.random.SeedSequence(5))
    threaded = run_trials(
        intake,
        DEFAULT_RULESET,
        200,
        20,
        seed_sequence=np.random.SeedSequence(5),
        parallel=True,
        executor="thread",
        max_workers=3,
    )
    assert serial.successes == threaded.successes
    assert np.array_equal(serial.ending_wealth, threaded.ending_wealth)


def test_process_pool_matches_serial_for_same_seed():
    intake = make_intake(ltc_expectation="one_may_need", bridge_years="6_10")
    settings = SimulationSettings(num_trials=120, random_seed=8)
    serial = simulate(intake, DEFAULT_RULESET, settings)
    pooled = simulate(intake, DEFAULT_RULESET, settings, parallel=True, executor="process", max_workers=2)
    assert pooled == serial


def test_household_past_planning_age_is_rejected():
    intake = make_intake(
        user_age=85,
        retirement_age=85,
        user_life_expectancy="early_80s",
        ss_claim_age=None,
        ss_monthly_household=None,
    )
    with pytest.raises(ValueError, match="planning age"):
        simulate(intake, DEFAULT_RULESET, SimulationSettings(num_trials=50, random_seed=1))
    with pytest.raises(ValueError):
        run_trials(make_intake(), DEFAULT_RULESET, 10, 0)


def test_choose_executor_respects_flags_and_injected_rng():
    assert _choose_executor(False, "process", None) == "none"
    assert _choose_executor(True, "thread", None) == "thread"
    assert _choose_executor(True, "bogus", None) == "process"
    assert _choose_executor(True, "process", DummyRNG()) == "none"


def test_resolve_workers_and_chunking():
    assert _resolve_max_workers(None, 1) == 1
    assert _resolve_max_workers(4, 2) == 2
    assert _resolve_max_workers(0, 100) == 1
    assert _chunk(list(range(5)), 2) == [[0, 1], [2, 3], [4]]


def test_simulate_is_idempotent_with_deterministic_source():
    intake = make_intake(ltc_expectation="one_may_need")
    settings = SimulationSettings(num_trials=50)
    values = [0.12, 0.73, 0.41, 0.95, 0.08, 0.66, 0.27]
    first = simulate(intake, DEFAULT_RULESET, settings, rng=SequenceSource(values))
    second = simulate(intake, DEFAULT_RULESET, settings, rng=SequenceSource(values))
    assert first == second


def test_simulate_is_reproducible_with_seed():
    intake = make_intake()
    settings = SimulationSettings(num_trials=200, random_seed=99)
    assert simulate(intake, DEFAULT_RULESET, settings) == simulate(intake, DEFAULT_RULESET, settings)


def test_simulate_with_injected_rng_ignores_parallel_flag():
    intake = make_intake()
    res = simulate(
        intake,
        DEFAULT_RULESET,
        SimulationSettings(num_trials=20),
        rng=SequenceSource([0.3, 0.25]),
        parallel=True,
    )
    # Mean return every year and no early draws below zero: every path identical.
    assert res.raw_success_probability in (0.0, 100.0)
    assert res.simulation_details.median_ending_portfolio == res.simulation_details.worst_case_portfolio


def test_end_to_end_reference_scenario():
    intake = make_intake()
    res = simulate(intake, DEFAULT_RULESET, SimulationSettings(random_seed=2024))
    details = res.simulation_details
    assert res.verdict in ("on_track", "borderline")
    assert details.trials == DEFAULT_RULESET.monte_carlo.trials == 3000
    assert details.retirement_duration_years == 20
    assert details.starting_portfolio == 750_000
    assert details.annual_spending_year1 == 48_000
    assert details.guaranteed_income_at_start == 0
    assert details.ss_annual_income == 26_400
    assert details.pre_ss_withdrawal_rate == 6.4
    assert details.post_ss_withdrawal_rate == 2.9
    assert 0 <= res.success_probability <= 100
    assert details.worst_case_portfolio <= details.median_ending_portfolio
    assert sum(b.count for b in details.distribution_data) == 3000
    assert len(res.assumptions_and_limits) == 6
    assert res.ruleset_version == DEFAULT_RULESET.version


def test_thin_assets_without_social_security_scores_materially_lower():
    settings = SimulationSettings(random_seed=2024, num_trials=1000)
    baseline = simulate(make_intake(), DEFAULT_RULESET, settings)
    thin = simulate(
        make_intake(assets_bucket="less_500k", ss_claim_age=None, ss_monthly_household=None, ss_not_sure=True),
        DEFAULT_RULESET,
        settings,
    )
    assert thin.success_probability < baseline.success_probability - 30
    assert thin.verdict == "at_risk"
    assert "High Withdrawal Rate" in [r.title for r in thin.top_3_risks]


def test_degraded_ruleset_falls_back_instead_of_failing(caplog):
    ruleset = Ruleset(life_expectancy_ages={}, asset_midpoints={})
    with caplog.at_level("WARNING"):
        res = simulate(make_intake(), ruleset, SimulationSettings(num_trials=50, random_seed=1))
    assert res.simulation_details.retirement_duration_years == 90 - 65
    assert res.simulation_details.starting_portfolio == 1_000_000
    assert "missing from ruleset" in caplog.text


def test_assumption_disclosures_reflect_ruleset():
    lines = assumptions_and_limits(DEFAULT_RULESET, DEFAULT_RULESET.allocation("balanced"), 3000)
    assert lines[0] == "Inflation assumed at 2.5% annually"
    assert lines[1] == "Portfolio returns modeled using 6.5% mean return with 12% volatility"
    assert lines[3] == "Long-term care costs estimated at $100k/year for 3 years if needed"
    assert lines[5] == "Results based on 3,000 Monte Carlo simulations"
