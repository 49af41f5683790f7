"""Great-circle helpers mapping a GPS position onto a ring sector.

Sector 0 starts at true north; indices increase clockwise.
"""
import numpy as np

N_SECTORS = 13
EARTH_RADIUS_M = 6371000.0
MILES_TO_M = 1609.344
INNER_RADIUS_M = 0.05 * MILES_TO_M
OUTER_RADIUS_M = 0.5 * MILES_TO_M
SLICE_DEG = 360.0 / N_SECTORS


def haversine_meters(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    phi1, phi2 = np.deg2rad(lat1), np.deg2rad(lat2)
    d_phi = np.deg2rad(lat2 - lat1)
    d_lambda = np.deg2rad(lon2 - lon1)
    a = np.sin(d_phi / 2) ** 2 + np.cos(phi1) * np.cos(phi2) * np.sin(d_lambda / 2) ** 2
    c = 2 * np.arctan2(np.sqrt(a), np.sqrt(1 - a))
    return float(EARTH_RADIUS_M * c)


def bearing_degrees(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Initial bearing from point 1 to point 2, 0 = north, clockwise, in [0, 360)."""
    phi1, phi2 = np.deg2rad(lat1), np.deg2rad(lat2)
    d_lambda = np.deg2rad(lon2 - lon1)
    y = np.sin(d_lambda) * np.cos(phi2)
    x = np.cos(phi1) * np.sin(phi2) - np.sin(phi1) * np.cos(phi2) * np.cos(d_lambda)
    theta = np.rad2deg(np.arctan2(y, x))
    return float((theta + 360.0) % 360.0)


def sector_for_position(
    center_lat: float | None,
    center_lon: float | None,
    lat: float,
    lon: float,
) -> int | None:
    """Return the sector containing (lat, lon), or None outside the annulus.

    Args:
        center_lat (float | None): Latitude of the game center
        center_lon (float | None): Longitude of the game center
        lat (float): Latitude of the player
        lon (float): Longitude of the player

    Returns:
        int | None: Sector index in [0, N_SECTORS), None if the center is unset
            or the player is nearer than INNER_RADIUS_M / farther than OUTER_RADIUS_M
    """
    if center_lat is None or center_lon is None:
        return None
    distance = haversine_meters(center_lat, center_lon, lat, lon)
    if distance < INNER_RADIUS_M or distance > OUTER_RADIUS_M:
        return None
    bearing = bearing_degrees(center_lat, center_lon, lat, lon)
    index = int(bearing // SLICE_DEG)
    return max(0, min(N_SECTORS - 1, index))
