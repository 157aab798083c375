from __future__ import annotations

"""Risks, levers, callouts and de-emphasized factors derived from the intake.

None of these depend on the Monte Carlo draws. Each output list is backed by a
table of `InsightRule`s: a trigger predicate, a factory for the report item,
and a heuristic score. Tables are evaluated uniformly so rules can be added,
reordered or tested one at a time.
"""

from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Sequence, Union

from readiness.models.domain import Callout, IntakeProfile, Lever, Risk
from readiness.models.ruleset import Ruleset
from readiness.simulation.cashflow import annual_spending, guaranteed_income, mortgage_payoff_age

TOP_N = 3
HIGH_WITHDRAWAL_RATE = 0.05
SEVERE_WITHDRAWAL_RATE = 0.07


@dataclass(frozen=True)
class InsightContext:
    """Inputs shared by every rule, with the derived figures computed once."""
    intake: IntakeProfile
    ruleset: Ruleset
    duration: int
    payoff_age: Optional[int]
    first_year_withdrawal_rate: float

    @classmethod
    def build(cls, intake: IntakeProfile, ruleset: Ruleset, duration: int) -> "InsightContext":
        starting = ruleset.asset_midpoint(intake.assets_bucket)
        withdrawal = max(0.0, annual_spending(intake, 0, ruleset) - guaranteed_income(intake, 0, ruleset))
        return cls(
            intake=intake,
            ruleset=ruleset,
            duration=duration,
            payoff_age=mortgage_payoff_age(intake, ruleset),
            first_year_withdrawal_rate=withdrawal / starting if starting > 0 else 0.0,
        )

    @property
    def medicare_age(self) -> int:
        return self.ruleset.healthcare.medicare_start_age

    @property
    def years_before_medicare(self) -> int:
        return max(0, self.medicare_age - self.intake.retirement_age)

    @property
    def mortgage_years_in_retirement(self) -> int:
        if self.payoff_age is None:
            return 0
        return max(0, self.payoff_age - self.intake.retirement_age)


Item = Union[Risk, Lever, Callout, str]


@dataclass(frozen=True)
class InsightRule:
    name: str
    trigger: Callable[[InsightContext], bool]
    build: Callable[[InsightContext], Any]
    score: Callable[[InsightContext], float] = lambda ctx: 0.0


def evaluate(rules: Sequence[InsightRule], ctx: InsightContext) -> List[tuple]:
    """Return (score, item) for every triggered rule, in table order."""
    return [(rule.score(ctx), rule.build(ctx)) for rule in rules if rule.trigger(ctx)]


def top_ranked(rules: Sequence[InsightRule], ctx: InsightContext, limit: int = TOP_N) -> List[Item]:
    """Highest-scoring triggered items; ties keep table order."""
    ranked = sorted(evaluate(rules, ctx), key=lambda pair: -pair[0])
    return [item for _, item in ranked[:limit]]


# Risks

RISK_RULES: List[InsightRule] = [
    InsightRule(
        name="long_duration",
        trigger=lambda ctx: ctx.duration > 35,
        build=lambda ctx: Risk(
            title="Long Retirement Duration",
            description=f"Your {ctx.duration}-year retirement timeline is significantly longer than average. "
            "This increases the risk of outliving your savings.",
            severity="high" if ctx.duration > 40 else "medium",
        ),
        score=lambda ctx: ctx.duration - 30,
    ),
    InsightRule(
        name="ltc_exposure",
        trigger=lambda ctx: ctx.intake.ltc_expectation != "none" and ctx.intake.ltc_insurance != "comprehensive",
        build=lambda ctx: Risk(
            title="Long-Term Care Exposure",
            description="Potential long-term care costs could significantly impact your plan. "
            "Consider reviewing your coverage options.",
            severity="high" if ctx.intake.ltc_expectation == "both_may_need" else "medium",
        ),
        score=lambda ctx: 15 if ctx.intake.ltc_expectation == "both_may_need" else 10,
    ),
    InsightRule(
        name="sequence_of_returns",
        trigger=lambda ctx: ctx.intake.bridge_years == "0_2" and ctx.intake.retirement_age < ctx.medicare_age,
        build=lambda ctx: Risk(
            title="Sequence of Returns Risk",
            description="Limited cash reserves make you vulnerable to market downturns in early retirement. "
            "A poor first few years could significantly impact your plan.",
            severity="high",
        ),
        score=lambda ctx: 12,
    ),
    InsightRule(
        name="high_withdrawal_rate",
        trigger=lambda ctx: ctx.first_year_withdrawal_rate > HIGH_WITHDRAWAL_RATE,
        build=lambda ctx: Risk(
            title="High Withdrawal Rate",
            description=f"Your first-year spending draws about {ctx.first_year_withdrawal_rate * 100:.1f}% "
            "of your portfolio, above the 4-5% range most portfolios can sustain for decades.",
            severity="high" if ctx.first_year_withdrawal_rate > SEVERE_WITHDRAWAL_RATE else "medium",
        ),
        score=lambda ctx: round(ctx.first_year_withdrawal_rate * 200, 1),
    ),
    InsightRule(
        name="concentration",
        trigger=lambda ctx: ctx.intake.allocation_bucket == "concentrated",
        build=lambda ctx: Risk(
            title="Portfolio Concentration",
            description="A concentrated portfolio increases volatility and risk. "
            "Consider diversifying across asset classes.",
            severity="high",
        ),
        score=lambda ctx: 14,
    ),
    InsightRule(
        name="pre_medicare_gap",
        trigger=lambda ctx: ctx.intake.pre65_healthcare != "no" and ctx.intake.retirement_age < ctx.medicare_age,
        build=lambda ctx: Risk(
            title="Pre-Medicare Healthcare Gap",
            description=f"You'll need {ctx.years_before_medicare} years of healthcare coverage "
            "before Medicare eligibility, which can be expensive.",
            severity="high" if ctx.years_before_medicare > 5 else "medium",
        ),
        score=lambda ctx: ctx.years_before_medicare * 2,
    ),
    InsightRule(
        name="low_diversification",
        trigger=lambda ctx: ctx.intake.diversification_confidence < ctx.ruleset.scoring.low_confidence_below,
        build=lambda ctx: Risk(
            title="Portfolio Diversification Concerns",
            description="Your portfolio may lack sufficient diversification. This increases risk and volatility.",
            severity="medium",
        ),
        score=lambda ctx: 8,
    ),
    InsightRule(
        name="mortgage_in_retirement",
        trigger=lambda ctx: ctx.mortgage_years_in_retirement > 0,
        build=lambda ctx: Risk(
            title="Mortgage in Retirement",
            description=f"You'll have {ctx.mortgage_years_in_retirement} years of mortgage payments "
            "in retirement, reducing flexibility.",
            severity="medium" if ctx.mortgage_years_in_retirement > 5 else "low",
        ),
        score=lambda ctx: ctx.mortgage_years_in_retirement,
    ),
    InsightRule(
        name="behavioral",
        trigger=lambda ctx: ctx.intake.market_stress_response == "high_stress",
        build=lambda ctx: Risk(
            title="Behavioral Risk",
            description="Emotional reactions to market volatility could lead to poor timing decisions. "
            "Having a plan before downturns occur is crucial.",
            severity="medium",
        ),
        score=lambda ctx: 7,
    ),
]


# Levers

LEVER_RULES: List[InsightRule] = [
    InsightRule(
        name="delay_retirement",
        trigger=lambda ctx: ctx.intake.flexibility_score < ctx.ruleset.scoring.high_flexibility_min,
        build=lambda ctx: Lever(
            title="Delay Retirement",
            description="Each year you delay retirement adds to savings, reduces withdrawal years, "
            "and potentially increases Social Security benefits.",
            impact="high",
        ),
        score=lambda ctx: 15,
    ),
    InsightRule(
        name="delay_social_security",
        trigger=lambda ctx: not ctx.intake.ss_not_sure
        and bool(ctx.intake.ss_claim_age)
        and ctx.intake.ss_claim_age < 70,
        build=lambda ctx: Lever(
            title="Delay Social Security Claiming",
            description="Waiting to claim Social Security until age 70 maximizes your guaranteed lifetime "
            "income by approximately 8% per year of delay.",
            impact="high",
        ),
        score=lambda ctx: 14,
    ),
    InsightRule(
        name="reduce_spending",
        trigger=lambda ctx: True,
        build=lambda ctx: Lever(
            title="Reduce Discretionary Spending",
            description="Even a 10% reduction in spending can significantly improve your plan's "
            "probability of success.",
            impact="medium",
        ),
        score=lambda ctx: 10,
    ),
    InsightRule(
        name="build_cash_reserves",
        trigger=lambda ctx: ctx.intake.bridge_years in ("0_2", "3_5"),
        build=lambda ctx: Lever(
            title="Build Cash Reserves",
            description="Having 3-5 years of expenses in stable assets protects against sequence of "
            "returns risk in early retirement.",
            impact="high",
        ),
        score=lambda ctx: 12,
    ),
    InsightRule(
        name="ltc_insurance",
        trigger=lambda ctx: ctx.intake.ltc_insurance != "comprehensive" and ctx.intake.ltc_expectation != "none",
        build=lambda ctx: Lever(
            title="Consider Long-Term Care Insurance",
            description="A comprehensive LTC policy could protect your portfolio from a major tail risk.",
            impact="medium",
        ),
        score=lambda ctx: 9,
    ),
    InsightRule(
        name="diversify",
        trigger=lambda ctx: ctx.intake.allocation_bucket == "concentrated"
        or ctx.intake.diversification_confidence < 5,
        build=lambda ctx: Lever(
            title="Diversify Your Portfolio",
            description="Spreading investments across asset classes, sectors, and geographies reduces "
            "risk and volatility.",
            impact="medium",
        ),
        score=lambda ctx: 8,
    ),
    InsightRule(
        name="pay_off_mortgage",
        trigger=lambda ctx: ctx.intake.has_mortgage,
        build=lambda ctx: Lever(
            title="Pay Off Mortgage Before Retirement",
            description="Eliminating mortgage payments reduces your baseline expenses and provides "
            "more flexibility.",
            impact="medium",
        ),
        score=lambda ctx: 7,
    ),
    InsightRule(
        name="part_time_work",
        trigger=lambda ctx: True,
        build=lambda ctx: Lever(
            title="Consider Part-Time Work",
            description="Even modest income in early retirement years reduces portfolio withdrawals "
            "during the critical sequence risk period.",
            impact="medium",
        ),
        score=lambda ctx: 6,
    ),
]


# Callouts (all triggered callouts are reported)

CALLOUT_RULES: List[InsightRule] = [
    InsightRule(
        name="long_duration",
        trigger=lambda ctx: ctx.duration >= 40,
        build=lambda ctx: Callout(
            type="Long Retirement Duration",
            message=f"Your {ctx.duration}-year retirement timeline requires extra conservative planning. "
            "Small changes now have big impacts.",
        ),
    ),
    InsightRule(
        name="early_retirement",
        trigger=lambda ctx: ctx.intake.retirement_age < 60,
        build=lambda ctx: Callout(
            type="Early Retirement",
            message="Early retirement increases sequence of returns risk. "
            "The first 10 years of returns matter significantly more.",
        ),
    ),
    InsightRule(
        name="mortgage_duration",
        trigger=lambda ctx: ctx.payoff_age is not None and ctx.payoff_age > ctx.intake.retirement_age + 5,
        build=lambda ctx: Callout(
            type="Mortgage Duration",
            message=f"Your mortgage won't be paid off until age {ctx.payoff_age}. "
            "This impacts your early retirement flexibility.",
        ),
    ),
    InsightRule(
        name="pre_medicare_bridge",
        trigger=lambda ctx: ctx.intake.retirement_age < ctx.medicare_age and ctx.intake.pre65_healthcare != "no",
        build=lambda ctx: Callout(
            type="Pre-65 Healthcare Bridge",
            message="Healthcare costs before Medicare can be $15,000-25,000 per year for a couple. "
            "Budget accordingly.",
        ),
    ),
]


# Factors that matter less

LESS_IMPORTANT_RULES: List[InsightRule] = [
    InsightRule(
        name="strong_pension",
        trigger=lambda ctx: ctx.intake.has_pension and (ctx.intake.pension_monthly or 0) > 3000,
        build=lambda ctx: "Short-term market volatility - your strong pension provides a stable income floor",
    ),
    InsightRule(
        name="strong_social_security",
        trigger=lambda ctx: not ctx.intake.ss_not_sure and (ctx.intake.ss_monthly_household or 0) > 5000,
        build=lambda ctx: "Portfolio withdrawal rate - strong Social Security coverage reduces dependence on portfolio",
    ),
    InsightRule(
        name="high_flexibility",
        trigger=lambda ctx: ctx.intake.flexibility_score >= 8,
        build=lambda ctx: "Exact retirement date - your high flexibility allows adjustment if needed",
    ),
    InsightRule(
        name="deep_cash_buffer",
        trigger=lambda ctx: ctx.intake.bridge_years == "10_plus",
        build=lambda ctx: "Sequence of returns risk - your substantial cash reserves provide significant protection",
    ),
    InsightRule(
        name="comprehensive_ltc",
        trigger=lambda ctx: ctx.intake.ltc_insurance == "comprehensive",
        build=lambda ctx: "Long-term care costs - your comprehensive coverage addresses this tail risk",
    ),
]


def top_risks(ctx: InsightContext) -> List[Risk]:
    return top_ranked(RISK_RULES, ctx)


def top_levers(ctx: InsightContext) -> List[Lever]:
    return top_ranked(LEVER_RULES, ctx)


def special_callouts(ctx: InsightContext) -> List[Callout]:
    return [item for _, item in evaluate(CALLOUT_RULES, ctx)]


def what_matters_less(ctx: InsightContext) -> List[str]:
    return [item for _, item in evaluate(LESS_IMPORTANT_RULES, ctx)][:TOP_N]
