from __future__ import annotations

"""Versioned financial assumptions that drive the readiness engine.

The ruleset is a single immutable pydantic tree: long-term-care costs and odds,
healthcare defaults, return/volatility pairs per allocation bucket, bucket
midpoints, verdict thresholds and the scoring table. Owners tune it by shipping
a JSON file; the engine only ever reads it.
"""

import json
import logging
from pathlib import Path
from typing import Dict, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

logger = logging.getLogger(__name__)

FALLBACK_ALLOCATION = "balanced"
FALLBACK_LIFE_EXPECTANCY_AGE = 90
FALLBACK_ASSET_MIDPOINT = 1_000_000.0


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class ReductionRange(_Frozen):
    """Share of long-term-care cost an insurance policy absorbs, as a min/max band."""
    min: float = Field(ge=0.0, le=1.0)
    max: float = Field(ge=0.0, le=1.0)

    @model_validator(mode="after")
    def check_order(self) -> "ReductionRange":
        if self.min > self.max:
            raise ValueError("reduction range min must not exceed max")
        return self

    @property
    def midpoint(self) -> float:
        return (self.min + self.max) / 2


class LongTermCareAssumptions(_Frozen):
    """Cost, duration and odds of a long-term-care event.

    A triggered event costs `cost_per_year` (today's dollars) for `years`
    consecutive years starting at an onset age drawn uniformly from
    `[onset_age_min, onset_age_max]`.
    """
    cost_per_year: float = 100_000
    years: int = Field(3, ge=0)
    probability_one: float = Field(0.40, ge=0.0, le=1.0)
    probability_both: float = Field(0.40, ge=0.0, le=1.0)
    insurance_reduction: Dict[str, ReductionRange] = Field(
        default_factory=lambda: {
            "comprehensive": ReductionRange(min=0.8, max=1.0),
            "partial": ReductionRange(min=0.4, max=0.6),
            "none": ReductionRange(min=0.0, max=0.2),
            "not_sure": ReductionRange(min=0.0, max=0.2),
        }
    )
    onset_age_min: int = 80
    onset_age_max: int = 88

    @model_validator(mode="after")
    def check_window(self) -> "LongTermCareAssumptions":
        if self.onset_age_min > self.onset_age_max:
            raise ValueError("onset_age_min must not exceed onset_age_max")
        return self


class HealthcareAssumptions(_Frozen):
    default_pre65_per_person_monthly: float = 1000
    medicare_start_age: int = 65


class AllocationAssumption(_Frozen):
    mean_return: float
    volatility: float = Field(ge=0.0)


def _default_allocations() -> Dict[str, AllocationAssumption]:
    return {
        "mostly_stocks": AllocationAssumption(mean_return=0.08, volatility=0.18),
        "balanced": AllocationAssumption(mean_return=0.065, volatility=0.12),
        "conservative": AllocationAssumption(mean_return=0.05, volatility=0.08),
        "concentrated": AllocationAssumption(mean_return=0.09, volatility=0.25),
        "not_sure": AllocationAssumption(mean_return=0.06, volatility=0.14),
    }


class MonteCarloAssumptions(_Frozen):
    """Trial count, inflation and the return model per allocation bucket.

    Guaranteed income only keeps pace with `income_inflation_share` of general
    inflation, which models benefits that lag prices.
    """
    trials: int = 3000
    inflation_rate: float = 0.025
    income_inflation_share: float = Field(0.5, ge=0.0, le=1.0)
    allocation_assumptions: Dict[str, AllocationAssumption] = Field(default_factory=_default_allocations)

    @field_validator("trials")
    @classmethod
    def check_trials(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("trials must be positive")
        return v


class DurationTier(_Frozen):
    min: int | None = None
    max: int | None = None
    penalty: float = 0


class VerdictThresholds(_Frozen):
    on_track: float = 85
    borderline: float = 70
    at_risk: float = 0

    @model_validator(mode="after")
    def check_order(self) -> "VerdictThresholds":
        if not self.at_risk <= self.borderline <= self.on_track:
            raise ValueError("verdict thresholds must satisfy at_risk <= borderline <= on_track")
        return self


class ScoringPenalties(_Frozen):
    """Negative adjustments (percentage points) for qualitative risk factors."""
    long_duration_per_year: float = -0.5
    ltc_risk_one: float = -3
    ltc_risk_both: float = -6
    early_withdrawal_per_year: float = -0.3
    low_diversification: float = -2
    concentrated_portfolio: float = -5
    high_stress_response: float = -3
    low_spending_confidence: float = -2
    no_cash_buffer: float = -2


class ScoringOffsets(_Frozen):
    """Positive adjustments (percentage points) for mitigating factors."""
    strong_cash_buffer: float = 3
    high_flexibility: float = 4
    mortgage_paid_at_retirement: float = 2
    employer_healthcare_bridge: float = 2
    strong_guaranteed_income: float = 5
    pension_with_survivor: float = 3


class ScoringRules(_Frozen):
    """Penalty/offset table plus the score thresholds the checks compare against."""
    penalties: ScoringPenalties = ScoringPenalties()
    offsets: ScoringOffsets = ScoringOffsets()
    normal_duration_years: int = 30
    low_confidence_below: float = 4
    high_flexibility_min: float = 7


class CashBufferRules(_Frozen):
    """Bridge-year buckets and how a buffer softens withdrawals in down years.

    During the first `protected_years` of retirement a negative return year
    draws only `withdrawal_share` of the net withdrawal from invested wealth,
    at most `years_by_bucket[bucket]` times per trial.
    """
    years_by_bucket: Dict[str, int] = Field(
        default_factory=lambda: {"3_5": 4, "6_10": 8, "10_plus": 10}
    )
    protected_years: int = 3
    withdrawal_share: float = Field(0.5, ge=0.0, le=1.0)


class SpendingPatternRules(_Frozen):
    higher_multiplier: float = 1.15
    higher_years: int = 5
    one_time_purchase_amount: float = 20_000
    one_time_purchase_years: int = 3
    lower_multiplier: float = 0.90


class LongHorizonCap(_Frozen):
    """Keeps very long retirements from reading as comfortably on track.

    Applies when duration >= `min_duration` and the adjusted probability is at
    least `trigger`, unless Social Security or a pension exceeds its monthly
    floor or flexibility is at least `flexibility_min`.
    """
    min_duration: int = 40
    trigger: float = 85
    cap: float = 82
    strong_ss_monthly: float = 4000
    strong_pension_monthly: float = 2500
    flexibility_min: float = 8


class Ruleset(_Frozen):
    """Complete, immutable assumption set supplied to every engine component.

    A few fields are published for owners but not read by the engine:
    `duration_tiers`, `scoring.offsets.strong_guaranteed_income` and
    `verdict_thresholds.at_risk` (which only bounds the threshold order). They
    mirror the reference ruleset so a stored report's `ruleset_version` names
    the full table it was scored against. The duration penalty is per year
    (`scoring.penalties.long_duration_per_year`), and strong guaranteed income
    only waives the long-horizon cap.
    """
    version: str = "1.0"
    ltc: LongTermCareAssumptions = LongTermCareAssumptions()
    healthcare: HealthcareAssumptions = HealthcareAssumptions()
    monte_carlo: MonteCarloAssumptions = MonteCarloAssumptions()
    asset_midpoints: Dict[str, float] = Field(
        default_factory=lambda: {
            "less_500k": 350_000,
            "500k_1m": 750_000,
            "1m_2m": 1_500_000,
            "2m_3m": 2_500_000,
            "3m_plus": 4_000_000,
            "not_sure": 1_000_000,
        }
    )
    life_expectancy_ages: Dict[str, int] = Field(
        default_factory=lambda: {
            "early_80s": 82,
            "mid_80s": 85,
            "late_80s": 88,
            "90_plus": 95,
            "not_sure": 90,
        }
    )
    duration_tiers: Dict[str, DurationTier] = Field(
        default_factory=lambda: {
            "normal": DurationTier(max=30, penalty=0),
            "elevated": DurationTier(max=35, penalty=5),
            "high": DurationTier(max=40, penalty=10),
            "extreme": DurationTier(min=40, penalty=20),
        }
    )
    verdict_thresholds: VerdictThresholds = VerdictThresholds()
    scoring: ScoringRules = ScoringRules()
    cash_buffer: CashBufferRules = CashBufferRules()
    spending_pattern: SpendingPatternRules = SpendingPatternRules()
    rental_reliability_factors: Dict[str, float] = Field(
        default_factory=lambda: {"stable": 1.0, "variable": 0.85, "uncertain": 0.70}
    )
    long_horizon_cap: LongHorizonCap = LongHorizonCap()
    current_year: int = 2026

    def allocation(self, bucket: str) -> AllocationAssumption:
        """Return the return/volatility pair for a bucket, falling back to `balanced`."""
        assumptions = self.monte_carlo.allocation_assumptions
        if bucket in assumptions:
            return assumptions[bucket]
        logger.warning("allocation bucket %r missing from ruleset %s; using %s", bucket, self.version, FALLBACK_ALLOCATION)
        if FALLBACK_ALLOCATION in assumptions:
            return assumptions[FALLBACK_ALLOCATION]
        return _default_allocations()[FALLBACK_ALLOCATION]

    def life_expectancy_age(self, bucket: str) -> int:
        if bucket in self.life_expectancy_ages:
            return self.life_expectancy_ages[bucket]
        logger.warning("life expectancy bucket %r missing from ruleset %s; using %d", bucket, self.version, FALLBACK_LIFE_EXPECTANCY_AGE)
        return FALLBACK_LIFE_EXPECTANCY_AGE

    def asset_midpoint(self, bucket: str) -> float:
        if bucket in self.asset_midpoints:
            return float(self.asset_midpoints[bucket])
        logger.warning("asset bucket %r missing from ruleset %s; using %.0f", bucket, self.version, FALLBACK_ASSET_MIDPOINT)
        return FALLBACK_ASSET_MIDPOINT


DEFAULT_RULESET = Ruleset()


def load_ruleset(path: Union[str, Path]) -> Ruleset:
    """Read a ruleset from a JSON file; omitted sections keep their defaults.

    Raises FileNotFoundError for a missing file and pydantic's ValidationError
    when the document does not describe a valid ruleset.
    """
    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    ruleset = Ruleset.model_validate(raw)
    logger.info("loaded ruleset version %s from %s", ruleset.version, path)
    return ruleset
