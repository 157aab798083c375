import json

import pytest
from pydantic import ValidationError

from readiness.models.ruleset import (
    DEFAULT_RULESET,
    AllocationAssumption,
    MonteCarloAssumptions,
    ReductionRange,
    Ruleset,
    load_ruleset,
)
from readiness.tests.helpers import BASE_INTAKE, make_intake


def test_intake_requires_acknowledgment():
    with pytest.raises(ValidationError):
        make_intake(acknowledgment_checkbox=False)


@pytest.mark.parametrize(
    "field,value",
    [
        ("retirement_age", 40),
        ("flexibility_score", 11),
        ("assets_bucket", "loads"),
        ("ss_claim_age", 61),
        ("rental_end_age", 120),
        ("monthly_spending_ex_mortgage", -1),
    ],
)
def test_intake_rejects_out_of_contract_values(field, value):
    with pytest.raises(ValidationError):
        make_intake(**{field: value})


def test_intake_accepts_ongoing_rental_and_round_trips_json():
    intake = make_intake(has_rental_business_income=True, rental_end_age="ongoing")
    assert intake.rental_end_age == "ongoing"
    assert type(intake).model_validate_json(intake.model_dump_json()) == intake


def test_claims_social_security_requires_all_fields():
    assert make_intake().claims_social_security
    assert not make_intake(ss_not_sure=True).claims_social_security
    assert not make_intake(ss_monthly_household=None).claims_social_security


def test_ruleset_defaults_match_reference():
    assert DEFAULT_RULESET.monte_carlo.trials == 3000
    assert DEFAULT_RULESET.allocation("balanced") == AllocationAssumption(mean_return=0.065, volatility=0.12)
    assert DEFAULT_RULESET.ltc.insurance_reduction["partial"].midpoint == pytest.approx(0.5)
    assert DEFAULT_RULESET.verdict_thresholds.on_track == 85
    assert DEFAULT_RULESET.cash_buffer.years_by_bucket == {"3_5": 4, "6_10": 8, "10_plus": 10}


def test_ruleset_is_immutable():
    with pytest.raises(ValidationError):
        DEFAULT_RULESET.version = "2.0"
    with pytest.raises(ValidationError):
        DEFAULT_RULESET.monte_carlo.inflation_rate = 0.1


def test_ruleset_validation():
    with pytest.raises(ValidationError):
        MonteCarloAssumptions(trials=0)
    with pytest.raises(ValidationError):
        ReductionRange(min=0.7, max=0.3)
    with pytest.raises(ValidationError):
        Ruleset(unknown_section={})


def test_fallbacks_log_and_use_documented_defaults(caplog):
    ruleset = Ruleset(
        monte_carlo=MonteCarloAssumptions(
            allocation_assumptions={"balanced": AllocationAssumption(mean_return=0.06, volatility=0.1)}
        ),
        life_expectancy_ages={},
        asset_midpoints={},
    )
    with caplog.at_level("WARNING"):
        assert ruleset.allocation("concentrated").mean_return == 0.06
        assert ruleset.life_expectancy_age("mid_80s") == 90
        assert ruleset.asset_midpoint("1m_2m") == 1_000_000
    assert caplog.text.count("missing from ruleset") == 3


def test_allocation_fallback_without_balanced_entry():
    ruleset = Ruleset(monte_carlo=MonteCarloAssumptions(allocation_assumptions={}))
    assert ruleset.allocation("mostly_stocks") == AllocationAssumption(mean_return=0.065, volatility=0.12)


def test_load_ruleset_merges_over_defaults(tmp_path):
    path = tmp_path / "ruleset.json"
    path.write_text(json.dumps({"version": "2.1", "monte_carlo": {"trials": 500}}), encoding="utf-8")
    ruleset = load_ruleset(path)
    assert ruleset.version == "2.1"
    assert ruleset.monte_carlo.trials == 500
    assert ruleset.monte_carlo.inflation_rate == 0.025
    assert ruleset.life_expectancy_ages == DEFAULT_RULESET.life_expectancy_ages


def test_load_ruleset_errors(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_ruleset(tmp_path / "missing.json")
    bad = tmp_path / "bad.json"
    bad.write_text(json.dumps({"verdict_thresholds": {"on_track": 50, "borderline": 80}}), encoding="utf-8")
    with pytest.raises(ValidationError):
        load_ruleset(bad)


def test_base_intake_fixture_is_complete():
    assert set(BASE_INTAKE) <= set(type(make_intake()).model_fields)
