from datetime import datetime, timezone

import pytest

from growchamber.domain.conditions import DerivedQuantities, FusedConditions
from growchamber.enums.common import GrowthPhase, RecommendationSeverity
from growchamber.services.recommendation_service import RecommendationGenerator, generate_recommendations
from growchamber.utils.psychrometrics import compute_derived_quantities


def recommend(temperature, humidity, phase=GrowthPhase.VEGETATIVE, lux=None, hours=18.0, now=None):
    fused = FusedConditions(temperature=temperature, humidity=humidity, light_lux=lux)
    derived = compute_derived_quantities(fused, hours)
    return generate_recommendations(fused, derived, phase, now=now)


def by_id(recs):
    return {r.id: r for r in recs}


def test_hot_humid_vegetative_chamber():
    recs = by_id(recommend(30, 75))

    assert recs["temperature-high"].severity == RecommendationSeverity.WARNING
    assert recs["humidity-high"].severity == RecommendationSeverity.WARNING
    assert recs["humidity-high"].current_value == 75
    assert recs["humidity-high"].target_value == 60
    assert recs["vpd-optimal"].severity == RecommendationSeverity.INFO
    assert recs["vpd-optimal"].current_value == pytest.approx(1.06, abs=0.01)


def test_sorted_by_severity():
    recs = recommend(37, 92)

    priorities = [r.severity.priority for r in recs]
    assert priorities == sorted(priorities)
    assert recs[0].severity == RecommendationSeverity.CRITICAL


def test_escalates_to_critical_beyond_margin():
    recs = by_id(recommend(33, 60))
    # Vegetative max 28 + 4 margin; also above the 32 °C absolute limit
    assert recs["temperature-high"].severity == RecommendationSeverity.CRITICAL
    assert recs["temperature-high"].suggested_actions[0].action == "fan-max"

    recs = by_id(recommend(15, 60))
    assert recs["temperature-low"].severity == RecommendationSeverity.CRITICAL


def test_absolute_humidity_limit_is_critical_in_every_phase():
    recs = by_id(recommend(22, 82, GrowthPhase.SEEDLING))
    assert recs["humidity-high"].severity == RecommendationSeverity.CRITICAL
    assert recs["humidity-high"].title == "Mold risk"


def test_phase_changes_targets():
    # 24 °C / 60 % suits vegetative but is too dry for seedlings
    assert "humidity-low" not in by_id(recommend(24, 60, GrowthPhase.VEGETATIVE))
    assert "humidity-low" in by_id(recommend(24, 60, GrowthPhase.SEEDLING))


def test_low_vpd_is_optimization():
    recs = by_id(recommend(22, 78))
    assert recs["vpd-low"].severity == RecommendationSeverity.OPTIMIZATION


def test_invalid_conditions_give_no_climate_advisories():
    fused = FusedConditions(temperature=None, humidity=75)
    assert generate_recommendations(fused, None, GrowthPhase.VEGETATIVE) == []


def test_dli_skipped_while_lights_off():
    assert not any(r.metric == "dli" for r in recommend(25, 60, lux=0))
    low = by_id(recommend(25, 60, lux=5000))
    assert low["dli-low"].severity == RecommendationSeverity.WARNING


def test_ids_are_stable_across_cycles():
    first = [r.id for r in recommend(30, 75)]
    second = [r.id for r in recommend(30.4, 76)]
    assert first == second


def test_time_of_day_tips():
    generator = RecommendationGenerator(local_tz=timezone.utc)
    fused = FusedConditions(temperature=25, humidity=60)
    derived = DerivedQuantities(vpd_kpa=1.27, dew_point_c=16.7, dli_mol_m2_day=None)

    morning = generator.generate(fused, derived, now=datetime(2026, 3, 2, 6, 30, tzinfo=timezone.utc))
    noon = generator.generate(fused, derived, now=datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc))
    evening = generator.generate(fused, derived, now=datetime(2026, 3, 2, 21, 0, tzinfo=timezone.utc))

    assert "routine-morning" in by_id(morning)
    assert not any(r.id.startswith("routine") for r in noon)
    assert "routine-evening" in by_id(evening)
