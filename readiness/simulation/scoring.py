from __future__ import annotations

"""Rule-driven adjustments to the raw Monte Carlo success rate, and the verdict.

The stochastic model ignores qualitative factors a planner would weigh:
diversification, behavior under stress, cash reserves, horizon length and
long-term-care exposure. Each factor is an independent check against the
ruleset's penalty/offset table; their sum shifts the raw percentage.
"""

from typing import Callable, List, Tuple

from readiness.models.domain import IntakeProfile, Verdict
from readiness.models.ruleset import Ruleset, VerdictThresholds
from readiness.simulation.cashflow import mortgage_payoff_age

AdjustmentCheck = Callable[[IntakeProfile, int, Ruleset], float]


def _duration(intake: IntakeProfile, duration: int, ruleset: Ruleset) -> float:
    """Per-year penalty for every year beyond the normal retirement horizon."""
    normal = ruleset.scoring.normal_duration_years
    if duration > normal:
        return ruleset.scoring.penalties.long_duration_per_year * (duration - normal)
    return 0.0


def _ltc_exposure(intake: IntakeProfile, duration: int, ruleset: Ruleset) -> float:
    """Penalty for expected long-term care; larger when both partners may need it."""
    penalties = ruleset.scoring.penalties
    if intake.ltc_expectation == "both_may_need":
        return penalties.ltc_risk_both
    if intake.ltc_expectation in ("one_may_need", "not_sure"):
        return penalties.ltc_risk_one
    return 0.0


def _early_withdrawal(intake: IntakeProfile, duration: int, ruleset: Ruleset) -> float:
    """Per-year penalty for the gap between retiring and claiming Social Security."""
    if intake.ss_not_sure or not intake.ss_claim_age:
        return 0.0
    years_before_ss = max(0, intake.ss_claim_age - intake.retirement_age)
    return ruleset.scoring.penalties.early_withdrawal_per_year * years_before_ss


def _diversification(intake: IntakeProfile, duration: int, ruleset: Ruleset) -> float:
    """Penalties for low diversification confidence and for a concentrated portfolio."""
    penalties = ruleset.scoring.penalties
    total = 0.0
    if intake.diversification_confidence < ruleset.scoring.low_confidence_below:
        total += penalties.low_diversification
    if intake.allocation_bucket == "concentrated":
        total += penalties.concentrated_portfolio
    return total


def _stress_response(intake: IntakeProfile, duration: int, ruleset: Ruleset) -> float:
    """Penalty when the household expects to react badly to a downturn."""
    if intake.market_stress_response == "high_stress":
        return ruleset.scoring.penalties.high_stress_response
    return 0.0


def _spending_confidence(intake: IntakeProfile, duration: int, ruleset: Ruleset) -> float:
    """Penalty when the household is unsure of its spending estimate."""
    if intake.spending_confidence < ruleset.scoring.low_confidence_below:
        return ruleset.scoring.penalties.low_spending_confidence
    return 0.0


def _cash_buffer(intake: IntakeProfile, duration: int, ruleset: Ruleset) -> float:
    """Offset for six or more bridge years; penalty for two or fewer."""
    if intake.bridge_years in ("6_10", "10_plus"):
        return ruleset.scoring.offsets.strong_cash_buffer
    if intake.bridge_years == "0_2":
        return ruleset.scoring.penalties.no_cash_buffer
    return 0.0


def _flexibility(intake: IntakeProfile, duration: int, ruleset: Ruleset) -> float:
    """Offset when the household can adjust spending or timing."""
    if intake.flexibility_score >= ruleset.scoring.high_flexibility_min:
        return ruleset.scoring.offsets.high_flexibility
    return 0.0


def _mortgage_paid(intake: IntakeProfile, duration: int, ruleset: Ruleset) -> float:
    """Offset when the mortgage is paid off by retirement."""
    payoff_age = mortgage_payoff_age(intake, ruleset)
    if payoff_age is not None and payoff_age <= intake.retirement_age:
        return ruleset.scoring.offsets.mortgage_paid_at_retirement
    return 0.0


def _employer_healthcare(intake: IntakeProfile, duration: int, ruleset: Ruleset) -> float:
    """Offset when a spouse's employer covers healthcare."""
    if intake.spouse_employer_health == "yes":
        return ruleset.scoring.offsets.employer_healthcare_bridge
    return 0.0


def _pension_survivor(intake: IntakeProfile, duration: int, ruleset: Ruleset) -> float:
    """Offset for a pension that continues in full to a survivor."""
    if intake.has_pension and intake.pension_survivor == "full":
        return ruleset.scoring.offsets.pension_with_survivor
    return 0.0


ADJUSTMENT_CHECKS: List[Tuple[str, AdjustmentCheck]] = [
    ("duration", _duration),
    ("ltc_exposure", _ltc_exposure),
    ("early_withdrawal", _early_withdrawal),
    ("diversification", _diversification),
    ("stress_response", _stress_response),
    ("spending_confidence", _spending_confidence),
    ("cash_buffer", _cash_buffer),
    ("flexibility", _flexibility),
    ("mortgage_paid", _mortgage_paid),
    ("employer_healthcare", _employer_healthcare),
    ("pension_survivor", _pension_survivor),
]


def score_adjustment(intake: IntakeProfile, duration: int, ruleset: Ruleset) -> float:
    """Sum every adjustment check; negative values are penalties."""
    return sum(check(intake, duration, ruleset) for _, check in ADJUSTMENT_CHECKS)


def _has_strong_support(intake: IntakeProfile, ruleset: Ruleset) -> bool:
    """True when guaranteed income or flexibility exempts a plan from the long-horizon cap."""
    cap = ruleset.long_horizon_cap
    strong_income = (intake.ss_monthly_household or 0) > cap.strong_ss_monthly or (
        intake.pension_monthly or 0
    ) > cap.strong_pension_monthly
    return strong_income or intake.flexibility_score >= cap.flexibility_min


def adjust_probability(raw_probability: float, intake: IntakeProfile, duration: int, ruleset: Ruleset) -> float:
    """Apply the summed adjustment, clamp to [0, 100], then the long-horizon cap."""
    adjusted = max(0.0, min(100.0, raw_probability + score_adjustment(intake, duration, ruleset)))
    cap = ruleset.long_horizon_cap
    if duration >= cap.min_duration and adjusted >= cap.trigger and not _has_strong_support(intake, ruleset):
        adjusted = min(adjusted, cap.cap)
    return adjusted


def classify_verdict(probability: float, thresholds: VerdictThresholds) -> Verdict:
    """Map an adjusted probability to a verdict; each threshold is inclusive."""
    if probability >= thresholds.on_track:
        return "on_track"
    if probability >= thresholds.borderline:
        return "borderline"
    return "at_risk"
