"""Integrity Flags — device reuse and token/GPS disagreement annotations."""

from rollcall.core.domain_types import CheckInMethod
from rollcall.core.integrity import compose_flags, gps_mismatch_reason

EVENT = {"latitude": 0.0, "longitude": 0.0, "check_in_radius": 100}

# 0.001° latitude ≈ 111.19 m
LAT_130M = 130 / 111.19 * 0.001
LAT_110M = 110 / 111.19 * 0.001


def test_token_far_beyond_radius_is_gps_mismatch():
    reason = gps_mismatch_reason(CheckInMethod.TOKEN, EVENT, LAT_130M, 0.0)
    assert reason == "GPS mismatch with QR (130m from event, radius: 100m)"


def test_within_multiplied_radius_is_not_flagged():
    assert gps_mismatch_reason(CheckInMethod.TOKEN, EVENT, LAT_110M, 0.0) is None


def test_gps_mismatch_only_for_token_with_coordinates():
    assert gps_mismatch_reason(CheckInMethod.GEOLOCATION, EVENT, LAT_130M, 0.0) is None
    assert gps_mismatch_reason(CheckInMethod.TOKEN, EVENT, None, None) is None
    assert gps_mismatch_reason(CheckInMethod.TOKEN, {"latitude": None}, LAT_130M, 0.0) is None


def test_multiplier_is_configurable():
    reason = gps_mismatch_reason(
        CheckInMethod.TOKEN, EVENT, LAT_110M, 0.0, multiplier=1.05,
    )
    assert reason is not None


def test_reasons_compose_in_order():
    gps = "GPS mismatch with QR (130m from event, radius: 100m)"
    assert compose_flags(CheckInMethod.TOKEN, True, gps) == (
        True, f"Device fingerprint conflict; {gps}",
    )
    assert compose_flags(CheckInMethod.GEOLOCATION, True, None) == (
        True, "Device fingerprint conflict",
    )
    assert compose_flags(CheckInMethod.TOKEN, False, None) == (False, None)


def test_override_is_never_flagged():
    assert compose_flags(CheckInMethod.OVERRIDE, True, "anything") == (False, None)
