from __future__ import annotations

"""Deterministic yearly cash flows for a household in retirement.

These helpers answer "how much does the household spend, and how much arrives
from guaranteed sources, in retirement year N?" They contain no randomness:
the path simulator layers returns and long-term-care events on top.
"""

from dataclasses import dataclass
from typing import List, Optional

from readiness.models.domain import IntakeProfile
from readiness.models.ruleset import Ruleset


def retirement_duration(intake: IntakeProfile, ruleset: Ruleset) -> int:
    """Years from retirement to the oldest planning age in the household."""
    max_age = ruleset.life_expectancy_age(intake.user_life_expectancy)
    if intake.is_couple and intake.spouse_life_expectancy:
        max_age = max(max_age, ruleset.life_expectancy_age(intake.spouse_life_expectancy))
    return max_age - intake.retirement_age


def mortgage_payoff_age(intake: IntakeProfile, ruleset: Ruleset) -> Optional[int]:
    """User's age in the mortgage payoff year, or None when there is no mortgage end date."""
    if not intake.has_mortgage or not intake.mortgage_payoff_year:
        return None
    birth_year = ruleset.current_year - intake.user_age
    return intake.mortgage_payoff_year - birth_year


def ltc_annual_cost(intake: IntakeProfile, ruleset: Ruleset) -> float:
    """Yearly long-term-care cost after the midpoint of the policy's insurance reduction."""
    cost = ruleset.ltc.cost_per_year
    reduction = ruleset.ltc.insurance_reduction.get(intake.ltc_insurance)
    if reduction is not None:
        cost *= 1 - reduction.midpoint
    return cost


def annual_spending(
    intake: IntakeProfile,
    year: int,
    ruleset: Ruleset,
    ltc_active: bool = False,
) -> float:
    """Nominal spending need for retirement year `year` (0-based).

    Base spending, mortgage until payoff, pre-Medicare healthcare, the early
    spending pattern and any active long-term-care cost are summed in today's
    dollars, then inflated to the year.
    """
    age = intake.retirement_age + year
    spending = intake.monthly_spending_ex_mortgage * 12

    payoff_age = mortgage_payoff_age(intake, ruleset)
    if payoff_age is not None and intake.mortgage_monthly and age < payoff_age:
        spending += intake.mortgage_monthly * 12

    healthcare = ruleset.healthcare
    if age < healthcare.medicare_start_age:
        if intake.pre65_healthcare == "yes" and intake.pre65_healthcare_monthly:
            spending += intake.pre65_healthcare_monthly * 12
        elif intake.pre65_healthcare == "not_sure":
            persons = 2 if intake.is_couple else 1
            spending += healthcare.default_pre65_per_person_monthly * persons * 12
        if intake.spouse_employer_health == "yes" and intake.is_couple:
            spending -= healthcare.default_pre65_per_person_monthly * 12

    pattern = ruleset.spending_pattern
    if intake.early_spending_pattern == "higher" and year < pattern.higher_years:
        spending *= pattern.higher_multiplier
    elif intake.early_spending_pattern == "one_time_purchases" and year < pattern.one_time_purchase_years:
        spending += pattern.one_time_purchase_amount
    elif intake.early_spending_pattern == "lower":
        spending *= pattern.lower_multiplier

    if ltc_active:
        spending += ltc_annual_cost(intake, ruleset)

    return spending * (1 + ruleset.monte_carlo.inflation_rate) ** year


def guaranteed_income(intake: IntakeProfile, year: int, ruleset: Ruleset) -> float:
    """Nominal Social Security, pension and rental/business income for `year`.

    Income grows at only a share of general inflation (see
    `MonteCarloAssumptions.income_inflation_share`).
    """
    age = intake.retirement_age + year
    income = 0.0

    if intake.claims_social_security and age >= intake.ss_claim_age:
        income += intake.ss_monthly_household * 12

    if intake.has_pension and intake.pension_monthly and intake.pension_start_age:
        if age >= intake.pension_start_age:
            income += intake.pension_monthly * 12

    if intake.has_rental_business_income and intake.rental_annual_amount and intake.rental_start_age:
        end_age = 100 if intake.rental_end_age in (None, "ongoing") else intake.rental_end_age
        if intake.rental_start_age <= age < end_age:
            factor = ruleset.rental_reliability_factors.get(intake.rental_reliability or "stable", 1.0)
            income += intake.rental_annual_amount * factor

    mc = ruleset.monte_carlo
    return income * (1 + mc.inflation_rate * mc.income_inflation_share) ** year


@dataclass(frozen=True)
class CashFlowSchedule:
    """Per-year nominal flows for one household, shared read-only by all trials.

    `ltc_cost[year]` is the inflated long-term-care cost to add to
    `spending[year]` when a trial's care event is active that year.
    """
    retirement_age: int
    spending: List[float]
    income: List[float]
    ltc_cost: List[float]
    ltc_years: int
    buffer_years: int

    @property
    def duration(self) -> int:
        return len(self.spending)


def build_schedule(intake: IntakeProfile, duration: int, ruleset: Ruleset) -> CashFlowSchedule:
    """Precompute spending, income and inflated LTC cost for each retirement year.

    Trials share the schedule and only add LTC cost in the years their own
    onset draw activates it. `buffer_years` is 0 for buckets without a buffer.
    """
    inflation = ruleset.monte_carlo.inflation_rate
    ltc_base = ltc_annual_cost(intake, ruleset)
    return CashFlowSchedule(
        retirement_age=intake.retirement_age,
        spending=[annual_spending(intake, year, ruleset) for year in range(duration)],
        income=[guaranteed_income(intake, year, ruleset) for year in range(duration)],
        ltc_cost=[ltc_base * (1 + inflation) ** year for year in range(duration)],
        ltc_years=ruleset.ltc.years,
        buffer_years=ruleset.cash_buffer.years_by_bucket.get(intake.bridge_years, 0),
    )


def social_security_annual(intake: IntakeProfile) -> float:
    if not intake.ss_not_sure and intake.ss_monthly_household:
        return intake.ss_monthly_household * 12
    return 0.0
