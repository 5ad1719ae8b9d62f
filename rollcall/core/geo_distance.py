"""Geo Distance — great-circle distance between two coordinates.

Invariants:
    - Pure function, spherical earth (radius 6 371 000 m), haversine formula
    - Missing, non-numeric or non-finite input returns math.nan — never raises
"""

import math

EARTH_RADIUS_M = 6_371_000.0


def _usable(value: object) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def haversine_distance(lat1, lon1, lat2, lon2) -> float:
    """Distance in metres, or nan when any coordinate is unusable."""
    if not all(_usable(v) for v in (lat1, lon1, lat2, lon2)):
        return math.nan

    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = (
        math.sin(d_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_M * c
