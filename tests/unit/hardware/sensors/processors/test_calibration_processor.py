import pytest

from growchamber.hardware.sensors.processors.calibration_processor import (
    SoilCalibration,
    SoilCalibrationProcessor,
)


def test_raw_counts_are_mapped_between_dry_and_wet():
    processor = SoilCalibrationProcessor.uniform(dry=4000, wet=1000)

    assert processor.calibrate_reading(4000) == pytest.approx(0.0)
    assert processor.calibrate_reading(2500) == pytest.approx(50.0)
    assert processor.calibrate_reading(1000) == pytest.approx(100.0)


def test_raw_counts_outside_calibration_are_clamped():
    processor = SoilCalibrationProcessor.uniform(dry=3000, wet=1500)

    assert processor.calibrate_reading(3500) == 0.0
    assert processor.calibrate_reading(1200) == 100.0


def test_percent_values_pass_through():
    processor = SoilCalibrationProcessor()

    assert processor.calibrate_reading(55) == 55
    assert processor.calibrate_reading(100) == 100


@pytest.mark.parametrize("raw", [None, 0, -3, 5000])
def test_absent_probe_is_no_reading(raw):
    assert SoilCalibrationProcessor().calibrate_reading(raw) is None


def test_per_probe_calibration():
    processor = SoilCalibrationProcessor([SoilCalibration(dry=4000, wet=2000), SoilCalibration(dry=3000, wet=1000)])

    assert processor.calibrate([3000, 3000, 0]) == (pytest.approx(50.0), pytest.approx(0.0), None)
    # Unconfigured probes use the defaults
    assert processor.calibration_for(5) == SoilCalibration()


def test_invalid_calibration_rejected():
    with pytest.raises(ValueError):
        SoilCalibration(dry=1000, wet=2000)
    with pytest.raises(ValueError):
        SoilCalibration(dry=5000, wet=1000)
    with pytest.raises(ValueError):
        SoilCalibrationProcessor([SoilCalibration()] * 7)
