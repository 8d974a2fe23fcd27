"""
Unit tests for growchamber.utils.psychrometrics.

Tests the air-science derived metric calculations:
- VPD (Vapor Pressure Deficit)
- Dew Point
- DLI (Daily Light Integral)
- VPD inversions and classification
"""

import pytest

from growchamber.domain.conditions import FusedConditions
from growchamber.enums.common import GrowthPhase
from growchamber.utils.psychrometrics import (
    calculate_dew_point_c,
    calculate_dli,
    calculate_heat_index_c,
    calculate_svp_kpa,
    calculate_vpd_kpa,
    classify_vpd,
    compute_derived_quantities,
    optimal_humidity_for_vpd,
    optimal_temperature_for_vpd,
)


class TestSaturationVaporPressure:
    """Test saturation vapor pressure calculation (Magnus formula)."""

    def test_svp_at_0c(self):
        """SVP at 0°C should be approximately 0.611 kPa."""
        assert calculate_svp_kpa(0) == pytest.approx(0.61078)

    def test_svp_at_25c(self):
        svp = calculate_svp_kpa(25)
        assert 3.1 < svp < 3.2

    def test_svp_singularity_is_missing_data(self):
        assert calculate_svp_kpa(-237.3) is None
        assert calculate_svp_kpa(-300) is None
        assert calculate_svp_kpa(None) is None


class TestVPD:
    """Test Vapor Pressure Deficit calculation."""

    def test_vpd_100_percent_humidity_is_zero(self):
        """Saturated air has no deficit, at any temperature."""
        for temp in (-20, 5, 25, 45):
            assert calculate_vpd_kpa(temp, 100) == pytest.approx(0.0, abs=1e-12)

    def test_vpd_at_30c_75_percent(self):
        assert calculate_vpd_kpa(30, 75) == pytest.approx(1.06, abs=0.01)

    def test_vpd_typical_grow_room_conditions(self):
        """25°C at 60% RH should give VPD around 1.27 kPa."""
        vpd = calculate_vpd_kpa(25, 60)
        assert 1.2 < vpd < 1.4

    @pytest.mark.parametrize("temp,humidity", [(None, 50), (25, None), (0, 50), (25, 0), (float("nan"), 50)])
    def test_missing_or_zero_inputs_return_zero(self, temp, humidity):
        assert calculate_vpd_kpa(temp, humidity) == 0.0

    def test_vpd_never_negative(self):
        for temp in range(-49, 60, 7):
            for humidity in (0.5, 10, 50, 99.9, 100):
                assert calculate_vpd_kpa(temp, humidity) >= 0

    def test_humidity_above_100_treated_as_saturated(self):
        assert calculate_vpd_kpa(25, 104) == 0.0

    def test_singular_temperature_returns_zero(self):
        assert calculate_vpd_kpa(-240, 50) == 0.0


class TestDewPoint:
    def test_dew_point_at_saturation_equals_temperature(self):
        assert calculate_dew_point_c(20, 100) == pytest.approx(20, abs=0.01)

    def test_dew_point_typical(self):
        """25°C at 60% RH gives a dew point around 16.7°C."""
        assert calculate_dew_point_c(25, 60) == pytest.approx(16.7, abs=0.2)

    def test_dew_point_below_temperature(self):
        assert calculate_dew_point_c(30, 75) < 30

    def test_missing_inputs_return_zero(self):
        assert calculate_dew_point_c(None, 60) == 0.0
        assert calculate_dew_point_c(25, 0) == 0.0


class TestHeatIndex:
    def test_below_threshold_returns_temperature(self):
        assert calculate_heat_index_c(24, 80) == 24

    def test_hot_humid_feels_hotter(self):
        assert calculate_heat_index_c(32, 70) > 32

    def test_none_inputs(self):
        assert calculate_heat_index_c(None, 50) is None


class TestDLI:
    def test_dli_from_lux(self):
        # 20000 lux * 0.015 = 300 PPFD; 300 * 3600 * 18 / 1e6 = 19.44
        assert calculate_dli(20000, 18) == pytest.approx(19.44)

    def test_lights_off_is_zero(self):
        assert calculate_dli(0, 18) == 0.0
        assert calculate_dli(None, 18) == 0.0
        assert calculate_dli(-5, 18) == 0.0

    def test_invalid_photoperiod_raises(self):
        with pytest.raises(ValueError):
            calculate_dli(1000, 25)


class TestVPDTargeting:
    def test_optimal_temperature_round_trips(self):
        temp = optimal_temperature_for_vpd(1.0, 60)
        assert temp is not None
        assert calculate_vpd_kpa(temp, 60) == pytest.approx(1.0, abs=1e-6)

    def test_optimal_humidity_round_trips(self):
        humidity = optimal_humidity_for_vpd(1.0, 26)
        assert humidity is not None
        assert calculate_vpd_kpa(26, humidity) == pytest.approx(1.0, abs=1e-6)

    def test_unreachable_targets(self):
        assert optimal_temperature_for_vpd(1.0, 100) is None
        assert optimal_humidity_for_vpd(10.0, 10) is None

    @pytest.mark.parametrize(
        "vpd,expected",
        [(0.3, "too_low"), (0.7, "low"), (1.0, "optimal"), (1.3, "high"), (1.6, "too_high")],
    )
    def test_classify_vegetative(self, vpd, expected):
        assert classify_vpd(vpd, GrowthPhase.VEGETATIVE) == expected


class TestComputeDerivedQuantities:
    def test_invalid_fused_gives_none(self):
        assert compute_derived_quantities(FusedConditions(temperature=25, humidity=None)) is None
        assert compute_derived_quantities(FusedConditions(temperature=0, humidity=50)) is None

    def test_valid_fused(self):
        derived = compute_derived_quantities(FusedConditions(temperature=30, humidity=75, light_lux=20000), 18)
        assert derived.vpd_kpa == pytest.approx(1.06, abs=0.01)
        assert derived.dew_point_c < 30
        assert derived.dli_mol_m2_day == pytest.approx(19.44)

    def test_dli_none_without_light_reading(self):
        derived = compute_derived_quantities(FusedConditions(temperature=25, humidity=60))
        assert derived.dli_mol_m2_day is None
