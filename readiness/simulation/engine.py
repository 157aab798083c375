from __future__ import annotations

"""
Core Monte Carlo engine for retirement readiness.

Each trial walks one retirement path from retirement age to the household's
planning age: it draws a normal annual return per year, grows the portfolio,
withdraws spending net of guaranteed income, and fails the first year wealth
goes negative. Many independent trials yield the raw success rate and the
ending-wealth distribution; rule-based scoring, insights and the verdict are
layered on top. Trials can run serially or across process/thread pools, with
one SeedSequence-spawned stream per trial.
"""

import logging
import math
import os
from concurrent.futures import ProcessPoolExecutor, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, List, Optional, Tuple

import numpy as np

from readiness.models.domain import IntakeProfile, SimulationDetails, SimulationResult, SimulationSettings
from readiness.models.ruleset import DEFAULT_RULESET, AllocationAssumption, Ruleset
from readiness.simulation.cashflow import (
    CashFlowSchedule,
    annual_spending,
    build_schedule,
    guaranteed_income,
    retirement_duration,
    social_security_annual,
)
from readiness.simulation.distribution import headline_wealth, summarize_distribution
from readiness.simulation.insights import InsightContext, special_callouts, top_levers, top_risks, what_matters_less
from readiness.simulation.random_source import GeneratorSource, UniformSource, normal
from readiness.simulation.scoring import adjust_probability, classify_verdict, score_adjustment

logger = logging.getLogger(__name__)


@dataclass
class TrialOutcome:
    """Result of one simulated path; ending wealth is 0 whenever the path failed."""
    success: bool
    ending_wealth: float


@dataclass
class MonteCarloTally:
    """Reduction of all trials: success count and ending wealth sorted ascending."""
    trials: int
    successes: int
    ending_wealth: np.ndarray

    @property
    def success_rate(self) -> float:
        return self.successes / self.trials * 100 if self.trials else 0.0


def ltc_probability(intake: IntakeProfile, ruleset: Ruleset) -> float:
    """Chance that a trial triggers a long-term-care event.

    Keyed to the household expectation: both partners use `probability_both`,
    one partner or an unsure answer uses `probability_one`, none is 0.
    """
    if intake.ltc_expectation == "both_may_need":
        return ruleset.ltc.probability_both
    if intake.ltc_expectation in ("one_may_need", "not_sure"):
        return ruleset.ltc.probability_one
    return 0.0


def draw_ltc_onset_age(
    intake: IntakeProfile,
    duration: int,
    ruleset: Ruleset,
    source: UniformSource,
) -> Optional[int]:
    """Decide once per trial whether, and at what age, long-term care begins.

    A Bernoulli draw keyed to the household's expectation decides whether care
    is needed; the onset age is then uniform over the ruleset's integer window
    and discarded if it falls outside the simulated horizon. Households that
    expect no care consume no random numbers here.
    """
    probability = ltc_probability(intake, ruleset)
    if probability <= 0 or source.next_uniform() >= probability:
        return None
    low, high = ruleset.ltc.onset_age_min, ruleset.ltc.onset_age_max
    onset_age = low + int(source.next_uniform() * (high - low + 1))
    if intake.retirement_age <= onset_age < intake.retirement_age + duration:
        return onset_age
    return None


def run_trial(
    schedule: CashFlowSchedule,
    starting_wealth: float,
    allocation: AllocationAssumption,
    ruleset: Ruleset,
    source: UniformSource,
    ltc_onset_age: Optional[int] = None,
) -> TrialOutcome:
    """Simulate a single retirement path year by year (grow, then withdraw).

    In the first `cash_buffer.protected_years` years a negative return with an
    unexhausted cash buffer takes only `withdrawal_share` of the net withdrawal
    from invested wealth. The buffer is a count of down years it can cover, not
    a tracked dollar pool.
    """
    buffer_rules = ruleset.cash_buffer
    wealth = starting_wealth
    buffer_used = 0

    for year in range(schedule.duration):
        age = schedule.retirement_age + year
        spending = schedule.spending[year]
        if ltc_onset_age is not None and 0 <= age - ltc_onset_age < schedule.ltc_years:
            spending += schedule.ltc_cost[year]
        withdrawal = max(0.0, spending - schedule.income[year])

        annual_return = normal(source, allocation.mean_return, allocation.volatility)
        wealth *= 1 + annual_return
        if (
            year < buffer_rules.protected_years
            and annual_return < 0
            and buffer_used < schedule.buffer_years
        ):
            wealth -= withdrawal * buffer_rules.withdrawal_share
            buffer_used += 1
        else:
            wealth -= withdrawal

        if wealth < 0:
            return TrialOutcome(success=False, ending_wealth=0.0)

    return TrialOutcome(success=True, ending_wealth=wealth)


def _simulate_single_trial(
    intake: IntakeProfile,
    ruleset: Ruleset,
    schedule: CashFlowSchedule,
    starting_wealth: float,
    allocation: AllocationAssumption,
    source: UniformSource,
) -> TrialOutcome:
    """Draw the trial's long-term-care onset, then walk its path.

    The onset draw always precedes the first return draw from `source`.
    """
    onset = draw_ltc_onset_age(intake, schedule.duration, ruleset, source)
    return run_trial(schedule, starting_wealth, allocation, ruleset, source, onset)


def _resolve_max_workers(max_workers: int | None, trials: int) -> int:
    """Bound pool size by requested max, trial count, and CPU availability."""
    if trials <= 1:
        return 1
    if max_workers is None:
        return max(1, min(trials, os.cpu_count() or 1))
    return max(1, min(max_workers, trials))


def _chunk(items: List[Any], size: int) -> List[List[Any]]:
    """Split a list into fixed-size batches, preserving order."""
    return [items[i : i + size] for i in range(0, len(items), size)]


def _choose_executor(parallel: bool, executor: str, rng: Any) -> str:
    """Pick executor mode respecting the parallel flag, requested type, and injected RNG.

    A caller-supplied uniform source is a single shared stream, so trials drawing
    from it must run serially. Unknown executor hints default to process pools
    because the work is CPU-bound.
    """
    if not parallel or rng is not None:
        return "none"
    if executor not in ("process", "thread", "none"):
        return "process"
    return executor


def _run_batch(
    intake: IntakeProfile,
    ruleset: Ruleset,
    schedule: CashFlowSchedule,
    starting_wealth: float,
    allocation: AllocationAssumption,
    seed_batch: List[np.random.SeedSequence],
) -> List[TrialOutcome]:
    """Run one trial per seed sequence; each seed drives an independent generator."""
    return [
        _simulate_single_trial(
            intake,
            ruleset,
            schedule,
            starting_wealth,
            allocation,
            GeneratorSource(np.random.default_rng(seq)),
        )
        for seq in seed_batch
    ]


def _run_batch_process(args: Tuple[Any, ...]) -> List[TrialOutcome]:
    return _run_batch(*args)


def _run_batch_thread(args: Tuple[Any, ...]) -> List[TrialOutcome]:
    return _run_batch(*args)


def run_trials(
    intake: IntakeProfile,
    ruleset: Ruleset,
    trials: int,
    duration: int,
    seed_sequence: np.random.SeedSequence | None = None,
    rng: UniformSource | None = None,
    parallel: bool = False,
    max_workers: int | None = None,
    executor: str = "process",
) -> MonteCarloTally:
    """Run `trials` independent paths and reduce them to a tally.

    With an injected `rng` every trial draws from that one source in order,
    which makes the run fully deterministic for tests. Otherwise each trial
    gets its own child of `seed_sequence`, so results do not depend on how
    trials are batched across workers.

    Raises ValueError when `trials` or `duration` is not positive; a household
    already at or past its planning age has no retirement years to simulate.
    """
    if trials <= 0:
        raise ValueError("trials must be positive")
    if duration <= 0:
        raise ValueError(
            f"retirement age {intake.retirement_age} is not before the household planning age; nothing to simulate"
        )
    starting_wealth = ruleset.asset_midpoint(intake.assets_bucket)
    allocation = ruleset.allocation(intake.allocation_bucket)
    schedule = build_schedule(intake, duration, ruleset)
    mode = _choose_executor(parallel, executor, rng)

    if rng is not None:
        outcomes = [
            _simulate_single_trial(intake, ruleset, schedule, starting_wealth, allocation, rng)
            for _ in range(trials)
        ]
    else:
        seed_seq = seed_sequence or np.random.SeedSequence()
        child_sequences = seed_seq.spawn(trials)
        if mode == "none":
            outcomes = _run_batch(intake, ruleset, schedule, starting_wealth, allocation, child_sequences)
        else:
            worker_count = _resolve_max_workers(max_workers, trials)
            batch_size = max(1, math.ceil(trials / max(1, worker_count * 4)))
            batches = _chunk(child_sequences, batch_size)
            worker_func = _run_batch_process if mode == "process" else _run_batch_thread
            ExecutorCls = ProcessPoolExecutor if mode == "process" else ThreadPoolExecutor
            logger.debug("dispatching %d trials in %d batches to %s pool (%d workers)", trials, len(batches), mode, worker_count)
            outcomes = []
            with ExecutorCls(max_workers=worker_count) as pool:
                for batch_results in pool.map(
                    worker_func,
                    [(intake, ruleset, schedule, starting_wealth, allocation, batch) for batch in batches],
                ):
                    outcomes.extend(batch_results)

    successes = sum(1 for o in outcomes if o.success)
    ending_wealth = np.sort(np.array([o.ending_wealth for o in outcomes], dtype=float))
    return MonteCarloTally(trials=trials, successes=successes, ending_wealth=ending_wealth)


def assumptions_and_limits(ruleset: Ruleset, allocation: AllocationAssumption, trials: int) -> List[str]:
    """Plain-language disclosures of the assumptions behind a report."""
    ltc = ruleset.ltc
    return [
        f"Inflation assumed at {ruleset.monte_carlo.inflation_rate * 100:.1f}% annually",
        f"Portfolio returns modeled using {allocation.mean_return * 100:g}% mean return "
        f"with {allocation.volatility * 100:g}% volatility",
        "Social Security assumed to pay stated benefits (no reduction modeled)",
        f"Long-term care costs estimated at ${ltc.cost_per_year / 1000:.0f}k/year for {ltc.years} years if needed",
        "Taxes not explicitly modeled - actual withdrawals may need to be higher",
        f"Results based on {trials:,} Monte Carlo simulations",
    ]


def _rate(amount: float, base: float) -> float:
    return round(amount / base * 100, 1) if base > 0 else 0.0


def simulate(
    intake: IntakeProfile,
    ruleset: Ruleset = DEFAULT_RULESET,
    settings: SimulationSettings | None = None,
    rng: UniformSource | None = None,
    parallel: bool = False,
    max_workers: int | None = None,
    executor: str = "process",
) -> SimulationResult:
    """Assess one household: Monte Carlo success rate, adjustments, insights and verdict.

    The ruleset is the only source of assumptions and is never mutated. The
    call is synchronous and self-contained; callers wanting a deadline should
    wrap the whole call (partial trial sets are meaningless).
    """
    settings = settings or SimulationSettings()
    trials = settings.num_trials or ruleset.monte_carlo.trials
    duration = retirement_duration(intake, ruleset)
    allocation = ruleset.allocation(intake.allocation_bucket)
    starting_wealth = ruleset.asset_midpoint(intake.assets_bucket)
    logger.debug("simulating %d trials over %d years (ruleset %s)", trials, duration, ruleset.version)

    tally = run_trials(
        intake,
        ruleset,
        trials,
        duration,
        seed_sequence=np.random.SeedSequence(settings.random_seed),
        rng=rng,
        parallel=parallel,
        max_workers=max_workers,
        executor=executor,
    )
    raw_probability = tally.success_rate
    adjusted = adjust_probability(raw_probability, intake, duration, ruleset)
    verdict = classify_verdict(adjusted, ruleset.verdict_thresholds)

    median_wealth, worst_wealth = headline_wealth(tally.ending_wealth)
    year1_spending = annual_spending(intake, 0, ruleset)
    year1_income = guaranteed_income(intake, 0, ruleset)
    ss_annual = social_security_annual(intake)
    ctx = InsightContext.build(intake, ruleset, duration)

    logger.info(
        "simulation complete: raw %.1f%%, adjusted %.1f%%, verdict %s",
        raw_probability,
        adjusted,
        verdict,
    )
    return SimulationResult(
        verdict=verdict,
        success_probability=round(adjusted, 1),
        raw_success_probability=round(raw_probability, 1),
        score_adjustment=round(score_adjustment(intake, duration, ruleset), 2),
        ruleset_version=ruleset.version,
        top_3_risks=top_risks(ctx),
        top_3_levers=top_levers(ctx),
        what_matters_less=what_matters_less(ctx),
        assumptions_and_limits=assumptions_and_limits(ruleset, allocation, trials),
        special_callouts=special_callouts(ctx),
        simulation_details=SimulationDetails(
            trials=trials,
            median_ending_portfolio=round(median_wealth),
            worst_case_portfolio=round(worst_wealth),
            retirement_duration_years=duration,
            annual_spending_year1=round(year1_spending),
            guaranteed_income_at_start=round(year1_income),
            starting_portfolio=starting_wealth,
            ss_annual_income=ss_annual,
            pre_ss_withdrawal_rate=_rate(year1_spending, starting_wealth),
            post_ss_withdrawal_rate=_rate(max(0.0, year1_spending - ss_annual), starting_wealth),
            distribution_data=summarize_distribution(tally.ending_wealth),
        ),
    )
