from readiness.models.domain import IntakeProfile

BASE_INTAKE = {
    "planning_for": "self",
    "user_age": 65,
    "retirement_age": 65,
    "flexibility_score": 5,
    "user_life_expectancy": "mid_80s",
    "ltc_expectation": "none",
    "ltc_insurance": "none",
    "monthly_spending_ex_mortgage": 4000,
    "has_mortgage": False,
    "pre65_healthcare": "no",
    "spending_confidence": 5,
    "early_spending_pattern": "same",
    "ss_claim_age": 67,
    "ss_monthly_household": 2200,
    "ss_not_sure": False,
    "has_pension": False,
    "has_rental_business_income": False,
    "assets_bucket": "500k_1m",
    "allocation_bucket": "balanced",
    "diversification_confidence": 6,
    "bridge_years": "3_5",
    "market_stress_response": "reduce_spending",
    "readiness_feel": 6,
    "acknowledgment_checkbox": True,
}


def make_intake(**overrides) -> IntakeProfile:
    """Single 65-year-old retiring now on $4k/month with Social Security at 67."""
    return IntakeProfile(**{**BASE_INTAKE, **overrides})
