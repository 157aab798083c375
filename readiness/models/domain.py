from __future__ import annotations

"""Pydantic models for the readiness engine.

Defines the household intake profile accepted from the intake layer, the
per-call simulation settings, and the report schema returned to callers. The
intake model carries the full field-level contract (enumerations and numeric
bounds) so malformed profiles are rejected before they ever reach the engine.
"""

from typing import List, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator

PlanningFor = Literal["self", "couple"]
RetireSameTime = Literal["same", "spouse_longer", "spouse_earlier", "not_sure"]
LifeExpectancy = Literal["early_80s", "mid_80s", "late_80s", "90_plus", "not_sure"]
LtcExpectation = Literal["none", "one_may_need", "both_may_need", "not_sure"]
LtcInsurance = Literal["comprehensive", "partial", "none", "not_sure"]
EarlySpendingPattern = Literal["higher", "same", "lower", "one_time_purchases", "not_sure"]
SurvivorBenefit = Literal["full", "partial", "none", "not_sure"]
IncomeReliability = Literal["stable", "variable", "uncertain"]
AssetsBucket = Literal["less_500k", "500k_1m", "1m_2m", "2m_3m", "3m_plus", "not_sure"]
AllocationBucket = Literal["mostly_stocks", "balanced", "conservative", "concentrated", "not_sure"]
BridgeYears = Literal["0_2", "3_5", "6_10", "10_plus", "not_sure"]
MarketStressResponse = Literal["cash_1_2_years", "reduce_spending", "return_to_work", "high_stress", "not_sure"]
Pre65Healthcare = Literal["no", "yes", "not_sure"]
YesNoNotSure = Literal["yes", "no", "not_sure"]

Verdict = Literal["on_track", "borderline", "at_risk"]
Level = Literal["high", "medium", "low"]


class IntakeProfile(BaseModel):
    """Household answers collected by the intake wizard.

    Fields are grouped the way the wizard asks them: household and timing, life
    expectancy and long-term care, spending, guaranteed income, portfolio, and
    behavior. Optional fields are only meaningful when their gating flag is set
    (for example `mortgage_monthly` with `has_mortgage`); the engine checks the
    flag and the value together rather than trusting either alone.
    """
    # Household & timing
    planning_for: PlanningFor
    user_age: int = Field(ge=18, le=100)
    spouse_age: Optional[int] = Field(None, ge=18, le=100)
    retirement_age: int = Field(ge=50, le=85)
    flexibility_score: float = Field(5, ge=0, le=10)
    retire_same_time: Optional[RetireSameTime] = None

    # Life expectancy & long-term care
    user_life_expectancy: LifeExpectancy
    spouse_life_expectancy: Optional[LifeExpectancy] = None
    ltc_expectation: LtcExpectation
    ltc_insurance: LtcInsurance

    # Spending
    monthly_spending_ex_mortgage: float = Field(ge=0)
    has_mortgage: bool = False
    mortgage_monthly: Optional[float] = Field(None, ge=0)
    mortgage_payoff_year: Optional[int] = Field(None, ge=2024, le=2080)
    pre65_healthcare: Pre65Healthcare
    pre65_healthcare_monthly: Optional[float] = Field(None, ge=0)
    pre65_healthcare_years: Optional[int] = Field(None, ge=0, le=20)
    spouse_employer_health: Optional[YesNoNotSure] = None
    spending_confidence: float = Field(5, ge=0, le=10)
    early_spending_pattern: EarlySpendingPattern

    # Guaranteed income
    ss_claim_age: Optional[int] = Field(None, ge=62, le=70)
    ss_monthly_household: Optional[float] = Field(None, ge=0)
    ss_not_sure: bool = False
    has_pension: bool = False
    pension_monthly: Optional[float] = Field(None, ge=0)
    pension_start_age: Optional[int] = Field(None, ge=50, le=85)
    pension_survivor: Optional[SurvivorBenefit] = None
    has_rental_business_income: bool = False
    rental_annual_amount: Optional[float] = Field(None, ge=0)
    rental_start_age: Optional[int] = Field(None, ge=50, le=85)
    rental_end_age: Optional[Union[int, Literal["ongoing"]]] = None
    rental_reliability: Optional[IncomeReliability] = None

    # Portfolio
    assets_bucket: AssetsBucket
    allocation_bucket: AllocationBucket
    diversification_confidence: float = Field(5, ge=0, le=10)

    # Stress & behavior
    bridge_years: BridgeYears
    market_stress_response: MarketStressResponse

    # Psychology & acknowledgment
    worries_free_text: Optional[str] = Field(None, max_length=2000)
    regret_tradeoff: Optional[str] = Field(None, max_length=2000)
    readiness_feel: float = Field(5, ge=0, le=10)
    acknowledgment_checkbox: bool

    @field_validator("rental_end_age")
    @classmethod
    def check_rental_end_age(cls, v: Optional[Union[int, str]]) -> Optional[Union[int, str]]:
        if isinstance(v, int) and not 50 <= v <= 100:
            raise ValueError("rental_end_age must be between 50 and 100 or 'ongoing'")
        return v

    @field_validator("acknowledgment_checkbox")
    @classmethod
    def check_acknowledged(cls, v: bool) -> bool:
        if v is not True:
            raise ValueError("You must acknowledge the terms to continue")
        return v

    @property
    def is_couple(self) -> bool:
        return self.planning_for == "couple"

    @property
    def claims_social_security(self) -> bool:
        """True when a usable Social Security claim age and benefit were given."""
        return not self.ss_not_sure and bool(self.ss_claim_age) and bool(self.ss_monthly_household)


class SimulationSettings(BaseModel):
    """Per-call knobs that do not belong in the owner-tuned ruleset.

    `random_seed` makes a run reproducible; leaving it unset matches the
    production behavior of fresh randomness per assessment. `num_trials`
    overrides the ruleset's trial count for quick what-if runs and tests.
    """
    random_seed: Optional[int] = None
    num_trials: Optional[int] = None

    @field_validator("num_trials")
    @classmethod
    def check_trials(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v <= 0:
            raise ValueError("num_trials must be positive")
        return v


class Risk(BaseModel):
    title: str
    description: str
    severity: Level


class Lever(BaseModel):
    title: str
    description: str
    impact: Level


class Callout(BaseModel):
    type: str
    message: str


class DistributionBucket(BaseModel):
    range: str
    count: int
    percentage: float


class SimulationDetails(BaseModel):
    """Numbers behind the verdict, surfaced on the report's detail panel."""
    trials: int
    median_ending_portfolio: float
    worst_case_portfolio: float
    retirement_duration_years: int
    annual_spending_year1: float
    guaranteed_income_at_start: float
    starting_portfolio: float
    ss_annual_income: float
    pre_ss_withdrawal_rate: float
    post_ss_withdrawal_rate: float
    distribution_data: List[DistributionBucket]


class SimulationResult(BaseModel):
    """Full assessment report: verdict, adjusted probability, insights and details.

    The raw (pre-adjustment) probability, the summed adjustment and the ruleset
    version are kept alongside the headline figure so a stored report can be
    audited against the assumptions that produced it.
    """
    verdict: Verdict
    success_probability: float = Field(ge=0, le=100)
    raw_success_probability: float = Field(ge=0, le=100)
    score_adjustment: float
    ruleset_version: str
    top_3_risks: List[Risk]
    top_3_levers: List[Lever]
    what_matters_less: List[str]
    assumptions_and_limits: List[str]
    special_callouts: List[Callout]
    simulation_details: SimulationDetails
