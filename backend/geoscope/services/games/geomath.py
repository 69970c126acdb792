from math import radians, sin, cos, sqrt, atan2, exp

EARTH_RADIUS_KM = 6371.0
MAX_SCORE = 1000
DEFAULT_DECAY_KM = 2000.0


def distance_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two points, in kilometers.

    Haversine formula. Inputs are degrees and must already be in range;
    see ``valid_coordinate``. Works on angular differences, so points on
    either side of the antimeridian come out close together.
    """
    lat1_rad = radians(lat1)
    lat2_rad = radians(lat2)
    dlat = lat2_rad - lat1_rad
    dlon = radians(lon2 - lon1)

    a = sin(dlat / 2) ** 2 + cos(lat1_rad) * cos(lat2_rad) * sin(dlon / 2) ** 2
    # Float error can push `a` a hair past 1 for antipodal points
    a = min(1.0, max(0.0, a))
    c = 2 * atan2(sqrt(a), sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def score(distance: float, decay_km: float = DEFAULT_DECAY_KM) -> int:
    """Points for a guess ``distance`` km away: 1000 at 0 km, decaying exponentially."""
    points = round(MAX_SCORE * exp(-distance / decay_km))
    return max(0, min(MAX_SCORE, int(points)))


def valid_coordinate(lat, lon) -> bool:
    try:
        lat = float(lat)
        lon = float(lon)
    except (TypeError, ValueError):
        return False
    return -90.0 <= lat <= 90.0 and -180.0 <= lon <= 180.0
